"""ChatAgent: conversational replies, preference extraction and travel insights.

The agent is stateless; the orchestrator owns the transcript and passes it in
on every call.
"""
from __future__ import annotations

import json
import logging
import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from pydantic import ValidationError as SchemaError

from config import (
    CHAT_TEMPERATURE,
    DEFAULT_MODEL_NAME,
    EXTRACTION_TEMPERATURE,
    get_google_api_key,
)
from prompts import PromptTemplate, get_prompt
from tools.errors import UpstreamFailure
from workflows.schemas import (
    ChatMessage,
    ChatRole,
    ExtractionResult,
    PreferenceDelta,
    QuickAvailabilitySnapshot,
    TravelPreferences,
)

logger = logging.getLogger(__name__)

PARSE_WARNING = "Failed to parse preferences, using default values"


def insights_fallback(origin: str, destination: str) -> str:
    return (
        f"I've found some travel options from {origin} to {destination}. "
        "Let's take a look at what's available for your trip."
    )


# ---------------------------
# Model output helpers
# ---------------------------
def content_text(response: Any) -> str:
    """Gemini may return content as a string or as a list of parts."""
    content = getattr(response, "content", response)
    if isinstance(content, list):
        parts: List[str] = []
        for p in content:
            if isinstance(p, dict):
                txt = p.get("text") or p.get("content") or ""
                if txt:
                    parts.append(str(txt))
            else:
                parts.append(str(p))
        return "\n".join(parts).strip()
    return str(content or "").strip()


def try_parse_json(text: str) -> Optional[Dict[str, Any]]:
    """Parse a JSON object from model output: direct, fenced block, or first {...} slice."""
    if not text:
        return None
    # 1) direct
    try:
        obj = json.loads(text)
        if isinstance(obj, dict):
            return obj
    except json.JSONDecodeError:
        pass
    # 2) fenced block ```json ... ```
    m = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", text, re.DOTALL | re.IGNORECASE)
    if m:
        try:
            obj = json.loads(m.group(1))
            if isinstance(obj, dict):
                return obj
        except json.JSONDecodeError:
            pass
    # 3) first {...} slice
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        try:
            obj = json.loads(text[start:end + 1])
            if isinstance(obj, dict):
                return obj
        except json.JSONDecodeError:
            pass
    return None


def to_langchain_messages(messages: Sequence[ChatMessage]) -> List[BaseMessage]:
    converted: List[BaseMessage] = []
    for message in messages:
        if message.role == ChatRole.USER:
            converted.append(HumanMessage(content=message.content))
        elif message.role == ChatRole.ASSISTANT:
            converted.append(AIMessage(content=message.content))
        else:
            converted.append(SystemMessage(content=message.content))
    return converted


# ---------------------------
# Extraction flattening
# ---------------------------
def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _positive(value: Any) -> Optional[float]:
    """0 and unparseable numbers mean the user did not mention the field."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _code(value: Any) -> Optional[str]:
    value = _text(value)
    if value and len(value) == 3 and value.isalpha():
        return value.upper()
    return None


def _place(value: Any) -> tuple:
    if isinstance(value, dict):
        return _text(value.get("name")), _code(value.get("code"))
    return _text(value), None


def flatten_extraction(data: Dict[str, Any]) -> PreferenceDelta:
    """Turn the nested extraction object into a preference delta.

    ``origin.name`` becomes ``origin``, ``origin.code`` becomes ``origin_code``
    and so on. Raises pydantic's ``ValidationError`` for values of the wrong type.
    """
    origin, origin_code = _place(data.get("origin"))
    destination, destination_code = _place(data.get("destination"))
    dates = data.get("dates") or {}
    budget = data.get("budget") or {}
    flights = data.get("flights") or {}
    accommodation = data.get("accommodation") or {}
    activities = data.get("activities") or {}

    flexibility = _positive(dates.get("flexibility"))
    travelers = _positive(data.get("travelers"))
    direct = flights.get("direct")

    return TravelPreferences.model_validate(
        {
            "origin": origin,
            "originCode": origin_code,
            "destination": destination,
            "destinationCode": destination_code,
            "dates": {
                "departure": _text(dates.get("departure")),
                "return": _text(dates.get("return")),
                "flexibility": math.ceil(flexibility) if flexibility else None,
            },
            "travelers": math.ceil(travelers) if travelers else None,
            "budget": {
                "min": _positive(budget.get("min")),
                "max": _positive(budget.get("max")),
                "total": _positive(budget.get("total")),
                "priority": _text(budget.get("priority")),
            },
            "flights": {
                "airlines": flights.get("airlines") or [],
                "class": (_text(flights.get("class")) or "").upper() or None,
                "direct": direct if isinstance(direct, bool) else None,
            },
            "accommodation": {
                "type": _text(accommodation.get("type")),
                "amenities": accommodation.get("amenities") or [],
                "location": _text(accommodation.get("location")),
            },
            "activities": {
                "interests": activities.get("interests") or [],
                "pacePreference": _text(activities.get("pacePreference") or activities.get("pace_preference")),
            },
        }
    )


def missing_info(prefs: TravelPreferences) -> List[str]:
    """What the assistant should still ask about, in priority order."""
    missing: List[str] = []
    if not prefs.origin:
        missing.append("origin location (where the user is traveling from)")
    if not prefs.destination:
        missing.append("destination (where the user wants to go)")
    elif not prefs.origin:
        missing.append("origin location is particularly important to plan the trip")
    if not prefs.dates.departure:
        missing.append("departure date")
    elif not prefs.dates.return_date:
        missing.append("return date")
    if not prefs.activities.interests:
        missing.append("activities or points of interest")
    return missing


# ---------------------------
# Insights formatting
# ---------------------------
def _money_range(low: float, high: float) -> str:
    return f"${low:,.0f} - ${high:,.0f}"


def format_availability(snapshot: QuickAvailabilitySnapshot) -> str:
    flights, hotels, activities, analysis = (
        snapshot.flights,
        snapshot.hotels,
        snapshot.activities,
        snapshot.analysis,
    )
    lines = [
        "FLIGHTS:",
        f"- Airlines: {', '.join(flights.airlines) or 'unknown'}",
        f"- Price range: {_money_range(flights.min_price, flights.max_price)}",
        f"- Stops available: {', '.join(str(s) for s in flights.available_stops) or 'unknown'}",
        f"- Cabin classes: {', '.join(flights.cabin_classes)}",
        "HOTELS:",
    ]
    if hotels.price_ranges:
        lines.append(f"- Nightly price range: {_money_range(hotels.price_ranges.min, hotels.price_ranges.max)}")
    lines += [
        f"- Categories: {', '.join(hotels.categories)}",
        f"- Amenities: {', '.join(hotels.amenities) or 'unknown'}",
        "ACTIVITIES:",
        f"- Categories: {', '.join(activities.categories)}",
    ]
    if activities.price_ranges:
        lines.append(f"- Price range: {_money_range(activities.price_ranges.min, activities.price_ranges.max)}")
    lines += [
        "ANALYSIS:",
        f"- Multiple airlines: {'yes' if analysis.has_multiple_airlines else 'no'}",
        f"- Multiple stop options: {'yes' if analysis.has_multiple_stops else 'no'}",
        f"- Flexible pricing: {'yes' if analysis.has_flexible_pricing else 'no'}",
        f"- Hotel variety: {'yes' if analysis.has_hotel_variety else 'no'}",
    ]
    return "\n".join(lines)


def format_trip(prefs: TravelPreferences) -> str:
    return "\n".join(
        [
            f"- Origin: {prefs.origin or prefs.origin_code or 'unknown'}",
            f"- Destination: {prefs.destination or prefs.destination_code or 'unknown'}",
            f"- Departure: {prefs.dates.departure or 'not set'}",
            f"- Return: {prefs.dates.return_date or 'not set'}",
            f"- Travelers: {prefs.travelers or 1}",
        ]
    )


class ChatAgent:
    """LLM adapter for chat replies, preference extraction and travel insights."""

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL_NAME,
        model=None,
        extraction_model=None,
        chat_prompt: Optional[PromptTemplate] = None,
        extraction_prompt: Optional[PromptTemplate] = None,
        insights_prompt: Optional[PromptTemplate] = None,
    ):
        if not get_google_api_key():
            logger.warning("Missing GOOGLE_API_KEY or GEMINI_API_KEY; ChatAgent calls will fail")

        self.model = model if model is not None else ChatGoogleGenerativeAI(
            model=model_name, temperature=CHAT_TEMPERATURE
        )
        if extraction_model is not None:
            self.extraction_model = extraction_model
        elif model is not None:
            self.extraction_model = model
        else:
            self.extraction_model = ChatGoogleGenerativeAI(model=model_name, temperature=EXTRACTION_TEMPERATURE)

        self.chat_prompt = chat_prompt or get_prompt("chat")
        self.extraction_prompt = extraction_prompt or get_prompt("extract_preferences")
        self.insights_prompt = insights_prompt or get_prompt("travel_insights")

    @staticmethod
    async def _invoke(model, messages: List[BaseMessage], purpose: str) -> str:
        try:
            response = await model.ainvoke(messages)
        except Exception as exc:
            raise UpstreamFailure(f"LLM {purpose} call failed: {exc}") from exc
        return content_text(response)

    # ---------------------------
    # Public API
    # ---------------------------
    async def complete(
        self,
        messages: Sequence[ChatMessage],
        preferences: Optional[TravelPreferences] = None,
    ) -> str:
        """Next assistant reply for the transcript. Raises ``UpstreamFailure``."""
        prefs = preferences or TravelPreferences()
        missing = missing_info(prefs)
        system = self.chat_prompt.format(
            current_date=datetime.now().strftime("%Y-%m-%d"),
            preferences_json=json.dumps(prefs.to_dict(), ensure_ascii=False, indent=2),
            missing_info="\n".join(f"- {item}" for item in missing) or "- nothing",
        )
        reply = await self._invoke(
            self.model, [SystemMessage(content=system)] + to_langchain_messages(messages), "chat"
        )
        if not reply:
            raise UpstreamFailure("LLM chat call returned an empty reply")
        return reply

    async def extract(self, messages: Sequence[ChatMessage]) -> ExtractionResult:
        """Preferences mentioned in the conversation.

        A model failure raises ``UpstreamFailure``; output that cannot be parsed
        yields an empty delta with a warning instead.
        """
        now = datetime.now()
        system = self.extraction_prompt.format(
            current_date=now.strftime("%Y-%m-%d"),
            current_year=now.year,
        )
        content = await self._invoke(
            self.extraction_model,
            [SystemMessage(content=system)] + to_langchain_messages(messages),
            "extraction",
        )

        data = try_parse_json(content)
        if data is None:
            logger.warning("Extraction output was not JSON: %.200s", content)
            return ExtractionResult(warning=PARSE_WARNING)
        try:
            return ExtractionResult(delta=flatten_extraction(data))
        except (SchemaError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Extraction output did not match the preference shape: %s", exc)
            return ExtractionResult(warning=PARSE_WARNING)

    async def travel_insights(
        self,
        preferences: TravelPreferences,
        snapshot: QuickAvailabilitySnapshot,
    ) -> str:
        """Short overview of a quick-availability snapshot; never raises for model failures."""
        origin = preferences.origin or snapshot.origin
        destination = preferences.destination or snapshot.destination
        system = self.insights_prompt.format(
            origin=origin,
            destination=destination,
            trip_summary=format_trip(preferences),
            availability=format_availability(snapshot),
        )
        try:
            text = await self._invoke(
                self.model,
                [SystemMessage(content=system), HumanMessage(content="What does my trip look like?")],
                "insights",
            )
        except UpstreamFailure as exc:
            logger.warning("travel_insights unavailable, using fallback text: %s", exc)
            return insights_fallback(origin, destination)
        return text or insights_fallback(origin, destination)
