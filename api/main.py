"""FastAPI application exposing the conversational travel planner."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import CORS_ORIGINS, configure_logging, validate_api_keys
from tools.errors import ValidationError
from workflows.orchestrator import ConversationOrchestrator, SessionNotFound
from workflows.schemas import ChatAction, ChatMessage, TravelPreferences
from workflows.state import InvalidTransitionError, SessionState

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Travel Planner API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_orchestrator: Optional[ConversationOrchestrator] = None


def build_orchestrator() -> ConversationOrchestrator:
    missing = validate_api_keys()
    if missing:
        logger.warning("Missing API keys (mock data will be used): %s", ", ".join(missing))
    return ConversationOrchestrator()


def get_orchestrator() -> ConversationOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator


# ---------------------------
# Request bodies
# ---------------------------
class MessageRequest(BaseModel):
    message: str = Field(min_length=1)


class ActionRequest(BaseModel):
    action: ChatAction


class SelectionRequest(BaseModel):
    option_ids: List[str] = Field(default_factory=list)


# ---------------------------
# Error mapping
# ---------------------------
@app.exception_handler(SessionNotFound)
async def session_not_found(request: Request, exc: SessionNotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": "Session not found"})


@app.exception_handler(ValidationError)
async def validation_failed(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(InvalidTransitionError)
async def invalid_transition(request: Request, exc: InvalidTransitionError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "phase": exc.phase.value, "event": exc.event.value},
    )


def _serialize_state(state: SessionState) -> Dict[str, Any]:
    return jsonable_encoder(state.model_dump(mode="json", by_alias=True))


def _serialize_message(message: Optional[ChatMessage]) -> Optional[Dict[str, Any]]:
    return jsonable_encoder(message.model_dump(mode="json")) if message else None


# ---------------------------
# Routes
# ---------------------------
@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/sessions")
async def create_session(orchestrator: ConversationOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    state = orchestrator.create_session()
    return {"session_id": state.session_id, "state": _serialize_state(state)}


@app.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    state = orchestrator.get_session(session_id)
    return {"session_id": session_id, "state": _serialize_state(state)}


@app.post("/sessions/{session_id}/messages")
async def post_message(
    session_id: str,
    payload: MessageRequest,
    wait: bool = False,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    reply = await orchestrator.handle_user_message(session_id, payload.message)
    if wait:
        await orchestrator.wait_for_quick_search(session_id)
    state = orchestrator.get_session(session_id)
    return {
        "session_id": session_id,
        "reply": _serialize_message(reply),
        "state": _serialize_state(state),
    }


@app.post("/sessions/{session_id}/actions")
async def post_action(
    session_id: str,
    payload: ActionRequest,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    message = await orchestrator.trigger_action(session_id, payload.action)
    state = orchestrator.get_session(session_id)
    return {
        "session_id": session_id,
        "message": _serialize_message(message),
        "state": _serialize_state(state),
    }


@app.patch("/sessions/{session_id}/preferences")
async def patch_preferences(
    session_id: str,
    payload: TravelPreferences,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    preferences = orchestrator.update_preferences(session_id, payload)
    return {"session_id": session_id, "preferences": preferences.to_dict()}


@app.get("/sessions/{session_id}/options")
async def get_options(
    session_id: str,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    state = orchestrator.get_session(session_id)
    return {
        "session_id": session_id,
        "phase": state.phase.value,
        "status": state.search_status,
        "options": jsonable_encoder([o.model_dump(mode="json") for o in state.options]),
    }


@app.post("/sessions/{session_id}/selection")
async def post_selection(
    session_id: str,
    payload: SelectionRequest,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    selected = orchestrator.record_selection(session_id, payload.option_ids)
    return {
        "session_id": session_id,
        "selected": jsonable_encoder([o.model_dump(mode="json") for o in selected]),
    }


if __name__ == "__main__":
    import uvicorn

    from config import API_HOST, API_PORT

    uvicorn.run("api.main:app", host=API_HOST, port=API_PORT)
