"""ConversationOrchestrator: drives one chat session from first message to travel options.

Per user message the orchestrator runs chat completion and preference
extraction concurrently, merges the extracted delta into the session's
preferences, decides whether a background quick-availability search should
start, and decides whether the reply carries a "show options" action.
"""
from __future__ import annotations

import asyncio
import logging
import math
import uuid
from typing import Dict, List, Optional

from agents.availability_agent import AvailabilityAgent
from agents.chat_agent import ChatAgent
from agents.option_formatter import OptionFormatter
from tools.errors import TravelServiceError, ValidationError
from workflows.schemas import (
    ChatAction,
    ChatActionButton,
    ChatMessage,
    PreferenceDelta,
    QuickAvailabilitySnapshot,
    TravelOption,
    TravelPreferences,
    merge_preferences,
)
from workflows.state import (
    ConversationEvent,
    ConversationPhase,
    InvalidTransitionError,
    SessionState,
    can_transition,
)

logger = logging.getLogger(__name__)

GREETING = "Hi there! I'm your travel assistant. Where would you like to go?"
APOLOGY = "Sorry, I encountered an error processing your request. Please try again."
BUSY = "I'm putting your travel options together right now. Please send that again once they're ready."
QUICK_SEARCH_FAILED_STATUS = "Could not find initial options"
GENERATING_STATUS = "Generating your personalized travel options..."
GENERATION_FAILED_STATUS = "Error generating travel options. Please try again."

SHOW_OPTIONS_BUTTON = ChatActionButton(label="Show travel options", action=ChatAction.SHOW_OPTIONS)
SHOW_INSIGHTS_BUTTON = ChatActionButton(label="Show travel options", action=ChatAction.SHOW_INSIGHTS)
VIEW_OPTIONS_BUTTON = ChatActionButton(label="View travel options", action=ChatAction.VIEW_OPTIONS)
CONTINUE_BUTTON = ChatActionButton(label="Continue to Selection", action=ChatAction.CONTINUE)


class SessionNotFound(KeyError):
    """No session with the given id exists in this process."""


# ==================== PROMPT BUILDING ====================

def _place(name: Optional[str], code: Optional[str], fallback: str) -> str:
    return name or code or fallback


def fallback_questions(snapshot: QuickAvailabilitySnapshot) -> List[str]:
    """Questions built from raw availability when the analysis suggested none."""
    questions: List[str] = []
    flights, analysis = snapshot.flights, snapshot.analysis
    if analysis.has_multiple_airlines:
        questions.append(
            f"Available airlines include {', '.join(flights.airlines[:3])}. "
            "Do you have any airline preferences?"
        )
    elif len(flights.airlines) == 1 and analysis.has_multiple_stops:
        questions.append(
            f"I see that {flights.airlines[0]} is the airline serving your route. "
            "Would you prefer direct flights or are you open to connecting flights for potentially better prices?"
        )
    if snapshot.hotels.price_ranges:
        rng = snapshot.hotels.price_ranges
        questions.append(
            f"Hotels range from ${math.floor(rng.min)} to ${math.ceil(rng.max)} per night. "
            "What's your budget for accommodation?"
        )
    if snapshot.activities.categories:
        questions.append(
            f"Popular activities include {', '.join(snapshot.activities.categories[:3])}. "
            "What kinds of activities interest you most?"
        )
    return questions


def build_refinement_prompt(snapshot: QuickAvailabilitySnapshot) -> str:
    """Refinement questions for the places the snapshot was actually searched for."""
    questions = list(snapshot.analysis.suggested_questions) or fallback_questions(snapshot)
    if not questions:
        questions = ["Do you have any specific preferences for flights, hotels or activities?"]
    return (
        f"I've found some initial travel options from {snapshot.origin} to {snapshot.destination}.\n\n"
        + "\n\n".join(questions)
        + "\n\nPlease let me know your preferences, or if you're ready, we can see detailed travel options."
    )


def snapshot_message(origin: str, destination: str) -> ChatMessage:
    return ChatMessage.assistant(
        f"I've found some travel options for your trip from {origin} to {destination}. "
        "Would you like to see the available options?",
        [SHOW_INSIGHTS_BUTTON],
    )


def _same_place(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


# ==================== ORCHESTRATOR ====================

class ConversationOrchestrator:
    """Owns every session's preferences, transcript and current snapshot."""

    def __init__(
        self,
        chat_agent: Optional[ChatAgent] = None,
        availability_agent: Optional[AvailabilityAgent] = None,
        formatter: Optional[OptionFormatter] = None,
    ):
        self.chat_agent = chat_agent or ChatAgent()
        self.availability_agent = availability_agent or AvailabilityAgent()
        self.formatter = formatter or OptionFormatter()
        self.sessions: Dict[str, SessionState] = {}
        self._quick_searches: Dict[str, asyncio.Task] = {}

    # ---------------------------
    # Sessions
    # ---------------------------
    def create_session(self) -> SessionState:
        state = SessionState(session_id=str(uuid.uuid4()))
        state.transcript.append(ChatMessage.assistant(GREETING))
        self.sessions[state.session_id] = state
        logger.info("Created session %s", state.session_id)
        return state

    def get_session(self, session_id: str) -> SessionState:
        try:
            return self.sessions[session_id]
        except KeyError:
            raise SessionNotFound(session_id) from None

    # ---------------------------
    # Chat turn
    # ---------------------------
    async def handle_user_message(self, session_id: str, text: str) -> ChatMessage:
        """Process one user message and return the assistant reply appended for it.

        Raises ``InvalidTransitionError`` while options are being generated.
        Adapter failures produce an apology; preferences and phase stay as they were.
        If generation starts while the reply is being computed, the turn ends with
        a busy notice and the extracted preferences are discarded.
        """
        state = self.get_session(session_id)
        if state.phase == ConversationPhase.GENERATING_OPTIONS:
            raise InvalidTransitionError(state.phase, ConversationEvent.USER_MESSAGE)

        state.transcript.append(ChatMessage.user(text))
        history = list(state.transcript)

        try:
            reply, extraction = await asyncio.gather(
                self.chat_agent.complete(history, state.preferences),
                self.chat_agent.extract(history),
            )
        except TravelServiceError as exc:
            logger.warning("Chat turn failed for session %s: %s", session_id, exc)
            message = ChatMessage.assistant(APOLOGY)
            state.transcript.append(message)
            return message

        # option generation may have started while the agents were running
        if not can_transition(state.phase, ConversationEvent.USER_MESSAGE):
            logger.info("Session %s: dropping chat turn during %s", session_id, state.phase.value)
            message = ChatMessage.assistant(BUSY)
            state.transcript.append(message)
            return message
        state.apply(ConversationEvent.USER_MESSAGE)

        previous = state.preferences
        state.preferences = merge_preferences(previous, extraction.delta)
        state.last_warning = extraction.warning
        if extraction.warning:
            logger.warning("Session %s: %s", session_id, extraction.warning)

        if self._should_quick_search(state, previous, extraction.delta):
            self._start_quick_search(state)

        actions: List[ChatActionButton] = []
        if self._refinement_gate_open(state):
            actions.append(SHOW_OPTIONS_BUTTON)
            state.refinement_offered_for = state.snapshot.id

        message = ChatMessage.assistant(reply, actions)
        state.transcript.append(message)
        return message

    @staticmethod
    def _should_quick_search(
        state: SessionState,
        previous: TravelPreferences,
        delta: PreferenceDelta,
    ) -> bool:
        prefs = state.preferences
        if state.quick_search_in_flight:
            return False
        if not (prefs.origin or prefs.origin_code) or not prefs.dates.departure:
            return False
        destination_changed = bool(delta.destination) and not _same_place(delta.destination, previous.destination)
        has_destination = bool(prefs.destination or prefs.destination_code)
        return destination_changed or (has_destination and state.snapshot is None)

    @staticmethod
    def _refinement_gate_open(state: SessionState) -> bool:
        snapshot = state.snapshot
        if snapshot is None or state.quick_search_in_flight:
            return False
        prefs = state.preferences
        if not (prefs.destination or prefs.destination_code) or not prefs.dates.departure:
            return False
        return state.refinement_offered_for != snapshot.id

    # ---------------------------
    # Quick availability
    # ---------------------------
    def _start_quick_search(self, state: SessionState) -> None:
        state.apply(ConversationEvent.QUICK_SEARCH_STARTED)
        prefs = state.preferences
        origin = _place(prefs.origin, prefs.origin_code, "your origin")
        destination = _place(prefs.destination, prefs.destination_code, "your destination")
        state.search_status = f"Looking for options from {origin} to {destination}..."
        logger.info("Session %s: quick search %s → %s", state.session_id, origin, destination)
        self._quick_searches[state.session_id] = asyncio.create_task(
            self._run_quick_search(state, prefs.model_copy(deep=True), origin, destination)
        )

    async def _run_quick_search(
        self,
        state: SessionState,
        preferences: TravelPreferences,
        origin: str,
        destination: str,
    ) -> None:
        try:
            snapshot = await self.availability_agent.quick_availability(preferences)
        except Exception as exc:
            # background task: nobody awaits the exception, so it ends here
            logger.warning("Quick search failed for session %s: %s", state.session_id, exc)
            state.search_status = QUICK_SEARCH_FAILED_STATUS
            state.apply(ConversationEvent.QUICK_SEARCH_FAILED)
            return

        state.snapshot = snapshot
        state.refinement_offered_for = None
        state.search_status = f"Found initial options from {origin} to {destination}"
        state.apply(ConversationEvent.QUICK_SEARCH_SUCCEEDED)
        state.transcript.append(snapshot_message(origin, destination))
        logger.info(
            "Session %s: snapshot %s ready (flights=%s, hotels=%s)",
            state.session_id,
            snapshot.id,
            snapshot.sources.get("flights"),
            snapshot.sources.get("hotels"),
        )

    async def wait_for_quick_search(self, session_id: str) -> None:
        """Block until the session's background quick search, if any, has finished."""
        task = self._quick_searches.get(session_id)
        if task is not None and not task.done():
            await task

    # ---------------------------
    # Actions
    # ---------------------------
    async def trigger_action(self, session_id: str, action: ChatAction) -> Optional[ChatMessage]:
        """Resolve a button press. Returns the assistant message it produced, if any."""
        action = ChatAction(action)
        if action == ChatAction.SHOW_OPTIONS:
            return await self.ask_for_refined_preferences(session_id)
        if action == ChatAction.SHOW_INSIGHTS:
            return await self.show_travel_insights(session_id)
        await self.generate_options(session_id)
        return None

    async def ask_for_refined_preferences(self, session_id: str) -> Optional[ChatMessage]:
        state = self.get_session(session_id)
        if state.snapshot is None:
            await self.generate_options(session_id)
            return None
        message = ChatMessage.assistant(
            build_refinement_prompt(state.snapshot),
            [VIEW_OPTIONS_BUTTON],
        )
        state.refinement_offered_for = state.snapshot.id
        state.transcript.append(message)
        return message

    async def show_travel_insights(self, session_id: str) -> Optional[ChatMessage]:
        state = self.get_session(session_id)
        if state.snapshot is None:
            await self.generate_options(session_id)
            return None
        text = await self.chat_agent.travel_insights(state.preferences, state.snapshot)
        message = ChatMessage.assistant(text, [CONTINUE_BUTTON])
        state.transcript.append(message)
        return message

    # ---------------------------
    # Options
    # ---------------------------
    async def generate_options(self, session_id: str) -> List[TravelOption]:
        """Run the option formatter for the session's current preferences.

        Raises ``ValidationError`` when origin, destination or departure date is
        missing, and ``InvalidTransitionError`` while a quick search or another
        generation is running. A formatter failure leaves the session in the
        refinement phase with an error status and returns no options.
        """
        state = self.get_session(session_id)
        prefs = state.preferences
        missing = [
            label
            for label, value in (
                ("origin", prefs.origin or prefs.origin_code),
                ("destination", prefs.destination or prefs.destination_code),
                ("departure date", prefs.dates.departure),
            )
            if not value
        ]
        if missing:
            raise ValidationError(f"Cannot generate options without: {', '.join(missing)}")

        state.apply(ConversationEvent.OPTIONS_REQUESTED)
        state.search_status = GENERATING_STATUS
        try:
            options = await self.formatter.generate_options(prefs.model_copy(deep=True))
        except Exception as exc:
            logger.exception("Option generation failed for session %s: %s", session_id, exc)
            state.search_status = GENERATION_FAILED_STATUS
            state.apply(ConversationEvent.OPTIONS_FAILED)
            return []

        state.options = list(options)
        state.search_status = f"Found {len(options)} travel options"
        state.apply(ConversationEvent.OPTIONS_READY)
        return list(options)

    # ---------------------------
    # Manual edits and hand-off
    # ---------------------------
    def update_preferences(self, session_id: str, delta: PreferenceDelta) -> TravelPreferences:
        state = self.get_session(session_id)
        state.preferences = merge_preferences(state.preferences, delta)
        return state.preferences

    def record_selection(self, session_id: str, option_ids: List[str]) -> List[TravelOption]:
        """Store copies of the accepted options, in the order they were generated."""
        state = self.get_session(session_id)
        known = {option.id for option in state.options}
        unknown = [option_id for option_id in option_ids if option_id not in known]
        if unknown:
            raise ValidationError(f"Unknown option ids: {', '.join(unknown)}")
        wanted = set(option_ids)
        state.selected_options = [o.model_copy() for o in state.options if o.id in wanted]
        return list(state.selected_options)
