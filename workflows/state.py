"""Conversation phases, the transition table, and per-session state."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from workflows.schemas import ChatMessage, QuickAvailabilitySnapshot, TravelOption, TravelPreferences


class ConversationPhase(str, Enum):
    IDLE = "idle"
    AWAITING_PREFERENCES = "awaiting_preferences"
    QUICK_SEARCH_IN_FLIGHT = "quick_search_in_flight"
    REFINEMENT_OFFERED = "refinement_offered"
    GENERATING_OPTIONS = "generating_options"
    OPTIONS_READY = "options_ready"


class ConversationEvent(str, Enum):
    USER_MESSAGE = "user_message"
    QUICK_SEARCH_STARTED = "quick_search_started"
    QUICK_SEARCH_SUCCEEDED = "quick_search_succeeded"
    QUICK_SEARCH_FAILED = "quick_search_failed"
    OPTIONS_REQUESTED = "options_requested"
    OPTIONS_READY = "options_ready"
    OPTIONS_FAILED = "options_failed"


class InvalidTransitionError(Exception):
    """An event arrived in a phase that does not accept it."""

    def __init__(self, phase: ConversationPhase, event: ConversationEvent):
        super().__init__(f"Cannot handle {event.value} while {phase.value}")
        self.phase = phase
        self.event = event


P = ConversationPhase
E = ConversationEvent

# (phase, event) -> next phase. Anything absent is illegal.
TRANSITIONS: Dict[Tuple[ConversationPhase, ConversationEvent], ConversationPhase] = {
    (P.IDLE, E.USER_MESSAGE): P.AWAITING_PREFERENCES,
    (P.AWAITING_PREFERENCES, E.USER_MESSAGE): P.AWAITING_PREFERENCES,
    (P.QUICK_SEARCH_IN_FLIGHT, E.USER_MESSAGE): P.QUICK_SEARCH_IN_FLIGHT,
    (P.REFINEMENT_OFFERED, E.USER_MESSAGE): P.REFINEMENT_OFFERED,
    (P.OPTIONS_READY, E.USER_MESSAGE): P.OPTIONS_READY,

    (P.AWAITING_PREFERENCES, E.QUICK_SEARCH_STARTED): P.QUICK_SEARCH_IN_FLIGHT,
    (P.REFINEMENT_OFFERED, E.QUICK_SEARCH_STARTED): P.QUICK_SEARCH_IN_FLIGHT,
    (P.OPTIONS_READY, E.QUICK_SEARCH_STARTED): P.QUICK_SEARCH_IN_FLIGHT,
    (P.QUICK_SEARCH_IN_FLIGHT, E.QUICK_SEARCH_SUCCEEDED): P.REFINEMENT_OFFERED,
    (P.QUICK_SEARCH_IN_FLIGHT, E.QUICK_SEARCH_FAILED): P.AWAITING_PREFERENCES,

    (P.AWAITING_PREFERENCES, E.OPTIONS_REQUESTED): P.GENERATING_OPTIONS,
    (P.REFINEMENT_OFFERED, E.OPTIONS_REQUESTED): P.GENERATING_OPTIONS,
    (P.OPTIONS_READY, E.OPTIONS_REQUESTED): P.GENERATING_OPTIONS,
    (P.GENERATING_OPTIONS, E.OPTIONS_READY): P.OPTIONS_READY,
    (P.GENERATING_OPTIONS, E.OPTIONS_FAILED): P.REFINEMENT_OFFERED,
}

del P, E


def can_transition(phase: ConversationPhase, event: ConversationEvent) -> bool:
    return (phase, event) in TRANSITIONS


def next_phase(phase: ConversationPhase, event: ConversationEvent) -> ConversationPhase:
    try:
        return TRANSITIONS[(phase, event)]
    except KeyError:
        raise InvalidTransitionError(phase, event) from None


class SessionState(BaseModel):
    """Everything one conversation owns. Lives in memory only."""

    session_id: str
    phase: ConversationPhase = ConversationPhase.IDLE
    preferences: TravelPreferences = Field(default_factory=TravelPreferences)
    transcript: List[ChatMessage] = Field(default_factory=list)
    snapshot: Optional[QuickAvailabilitySnapshot] = None
    # id of the snapshot for which the show-options offer was already made
    refinement_offered_for: Optional[str] = None
    search_status: Optional[str] = None
    options: List[TravelOption] = Field(default_factory=list)
    selected_options: List[TravelOption] = Field(default_factory=list)
    last_warning: Optional[str] = None

    def apply(self, event: ConversationEvent) -> ConversationPhase:
        """Move to the phase the table prescribes; raises ``InvalidTransitionError``."""
        self.phase = next_phase(self.phase, event)
        return self.phase

    @property
    def quick_search_in_flight(self) -> bool:
        return self.phase == ConversationPhase.QUICK_SEARCH_IN_FLIGHT
