"""Conversation orchestrator tests with stubbed agents."""

from __future__ import annotations

import asyncio

import pytest

from agents.availability_agent import build_snapshot
from tools.errors import UpstreamFailure, ValidationError
from workflows.orchestrator import (
    APOLOGY,
    BUSY,
    CONTINUE_BUTTON,
    GENERATION_FAILED_STATUS,
    GREETING,
    QUICK_SEARCH_FAILED_STATUS,
    SHOW_INSIGHTS_BUTTON,
    SHOW_OPTIONS_BUTTON,
    VIEW_OPTIONS_BUTTON,
    ConversationOrchestrator,
    SessionNotFound,
    build_refinement_prompt,
)
from workflows.schemas import (
    ChatAction,
    ChatRole,
    ExtractionResult,
    FlightOffer,
    TravelOption,
    TravelPreferences,
)
from workflows.state import ConversationPhase, InvalidTransitionError

FULL_TRIP = {
    "origin": "Miami",
    "destination": "Bordeaux",
    "dates": {"departure": "2025-06-05", "return": "2025-07-08"},
}


class StubChat:
    """Replies "reply N" and hands out queued extraction deltas."""

    def __init__(self, deltas=None, error=None):
        self.deltas = list(deltas or [])
        self.error = error
        self.turns = 0

    async def complete(self, messages, preferences=None):
        if self.error is not None:
            raise self.error
        self.turns += 1
        return f"reply {self.turns}"

    async def extract(self, messages):
        raw = self.deltas.pop(0) if self.deltas else {}
        return ExtractionResult(delta=TravelPreferences.model_validate(raw))

    async def travel_insights(self, preferences, snapshot):
        return f"Insights for {snapshot.origin} to {snapshot.destination}"


def _offer(id, carrier, stops, price):
    return FlightOffer(
        id=id, carrier=carrier, price=price, stops=stops,
        origin="MIA", destination="BOD", departure_date="2025-06-05",
    )


class StubAvailability:
    def __init__(self, error=None, gate=None):
        self.error = error
        self.gate = gate
        self.calls = []

    async def quick_availability(self, preferences):
        self.calls.append(preferences)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        flights = [_offer("1", "AF", 0, 610.0), _offer("2", "AF", 1, 540.0)]
        return build_snapshot(preferences.origin, preferences.destination, flights, [])


class StubFormatter:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def generate_options(self, preferences):
        self.calls.append(preferences)
        if self.error is not None:
            raise self.error
        return [
            TravelOption(id="flight-1", title="AF", description="MIA → BOD", image_src="f", type="flight", price=540.0),
            TravelOption(id="hotel-1", title="Quai Hotel", description="", image_src="h", type="hotel", price=300.0),
        ]


def _orchestrator(chat=None, availability=None, formatter=None):
    return ConversationOrchestrator(
        chat_agent=chat or StubChat(),
        availability_agent=availability or StubAvailability(),
        formatter=formatter or StubFormatter(),
    )


def test_new_session_starts_with_greeting():
    orchestrator = _orchestrator()

    state = orchestrator.create_session()

    assert state.phase == ConversationPhase.IDLE
    assert [m.content for m in state.transcript] == [GREETING]
    assert orchestrator.get_session(state.session_id) is state


def test_unknown_session():
    with pytest.raises(SessionNotFound):
        _orchestrator().get_session("missing")


def test_message_merges_preferences_without_searching():
    orchestrator = _orchestrator(chat=StubChat([{"destination": "Bordeaux"}]))

    async def run():
        state = orchestrator.create_session()
        reply = await orchestrator.handle_user_message(state.session_id, "Bordeaux!")
        return state, reply

    state, reply = asyncio.run(run())

    assert reply.content == "reply 1"
    assert reply.actions == []
    assert state.preferences.destination == "Bordeaux"
    assert state.phase == ConversationPhase.AWAITING_PREFERENCES
    assert [m.role for m in state.transcript] == [ChatRole.ASSISTANT, ChatRole.USER, ChatRole.ASSISTANT]
    assert orchestrator.availability_agent.calls == []


def test_quick_search_runs_in_background_and_offers_refinement_once():
    chat = StubChat([FULL_TRIP, {}, {}])
    orchestrator = _orchestrator(chat=chat)

    async def run():
        state = orchestrator.create_session()
        sid = state.session_id
        first = await orchestrator.handle_user_message(sid, "Miami to Bordeaux, June 5 to July 8")
        in_flight_phase = state.phase
        await orchestrator.wait_for_quick_search(sid)
        second = await orchestrator.handle_user_message(sid, "Sounds good")
        third = await orchestrator.handle_user_message(sid, "What else?")
        return state, in_flight_phase, first, second, third

    state, in_flight_phase, first, second, third = asyncio.run(run())

    assert in_flight_phase == ConversationPhase.QUICK_SEARCH_IN_FLIGHT
    assert first.actions == []
    assert second.actions == [SHOW_OPTIONS_BUTTON]
    assert third.actions == []
    assert state.phase == ConversationPhase.REFINEMENT_OFFERED
    assert state.snapshot is not None
    assert state.refinement_offered_for == state.snapshot.id
    assert state.search_status == "Found initial options from Miami to Bordeaux"
    snapshot_note = [m for m in state.transcript if SHOW_INSIGHTS_BUTTON in m.actions]
    assert len(snapshot_note) == 1
    assert "from Miami to Bordeaux" in snapshot_note[0].content


def test_new_snapshot_reopens_the_refinement_offer():
    chat = StubChat([FULL_TRIP, {}, {"destination": "Paris"}, {}])
    orchestrator = _orchestrator(chat=chat)

    async def run():
        sid = orchestrator.create_session().session_id
        await orchestrator.handle_user_message(sid, "trip")
        await orchestrator.wait_for_quick_search(sid)
        offered = await orchestrator.handle_user_message(sid, "ok")
        await orchestrator.handle_user_message(sid, "Actually Paris")
        await orchestrator.wait_for_quick_search(sid)
        reoffered = await orchestrator.handle_user_message(sid, "ok")
        return offered, reoffered

    offered, reoffered = asyncio.run(run())

    assert offered.actions == [SHOW_OPTIONS_BUTTON]
    assert reoffered.actions == [SHOW_OPTIONS_BUTTON]
    assert [p.destination for p in orchestrator.availability_agent.calls] == ["Bordeaux", "Paris"]


def test_only_one_quick_search_in_flight():
    async def run():
        gate = asyncio.Event()
        availability = StubAvailability(gate=gate)
        chat = StubChat([FULL_TRIP, {"destination": "Paris"}, {"destination": "Lisbon"}])
        orchestrator = _orchestrator(chat=chat, availability=availability)
        sid = orchestrator.create_session().session_id

        await orchestrator.handle_user_message(sid, "trip")
        await asyncio.sleep(0)
        await orchestrator.handle_user_message(sid, "Paris instead")
        await orchestrator.handle_user_message(sid, "No, Lisbon")
        calls_while_blocked = len(availability.calls)
        gate.set()
        await orchestrator.wait_for_quick_search(sid)
        return orchestrator.get_session(sid), calls_while_blocked

    state, calls_while_blocked = asyncio.run(run())

    assert calls_while_blocked == 1
    assert state.preferences.destination == "Lisbon"
    assert state.phase == ConversationPhase.REFINEMENT_OFFERED


def test_chat_failure_apologizes_and_keeps_state():
    orchestrator = _orchestrator(chat=StubChat(error=UpstreamFailure("LLM down")))

    async def run():
        state = orchestrator.create_session()
        state.preferences = TravelPreferences(origin="Miami")
        reply = await orchestrator.handle_user_message(state.session_id, "hello")
        return state, reply

    state, reply = asyncio.run(run())

    assert reply.content == APOLOGY
    assert state.preferences == TravelPreferences(origin="Miami")
    assert state.phase == ConversationPhase.IDLE
    assert state.transcript[-1] is reply


def test_quick_search_failure_sets_status():
    orchestrator = _orchestrator(
        chat=StubChat([FULL_TRIP]),
        availability=StubAvailability(error=RuntimeError("boom")),
    )

    async def run():
        sid = orchestrator.create_session().session_id
        await orchestrator.handle_user_message(sid, "trip")
        await orchestrator.wait_for_quick_search(sid)
        return orchestrator.get_session(sid)

    state = asyncio.run(run())

    assert state.search_status == QUICK_SEARCH_FAILED_STATUS
    assert state.phase == ConversationPhase.AWAITING_PREFERENCES
    assert state.snapshot is None


def _session_with_snapshot(orchestrator):
    async def run():
        sid = orchestrator.create_session().session_id
        await orchestrator.handle_user_message(sid, "trip")
        await orchestrator.wait_for_quick_search(sid)
        return sid

    return run


def test_show_options_action_asks_refinement_questions():
    orchestrator = _orchestrator(chat=StubChat([FULL_TRIP]))

    async def run():
        sid = await _session_with_snapshot(orchestrator)()
        return sid, await orchestrator.trigger_action(sid, ChatAction.SHOW_OPTIONS)

    sid, message = asyncio.run(run())
    state = orchestrator.get_session(sid)

    assert message.actions == [VIEW_OPTIONS_BUTTON]
    assert message.content.startswith("I've found some initial travel options from Miami to Bordeaux.")
    assert "only AF offers flights" in message.content
    assert state.refinement_offered_for == state.snapshot.id


def test_show_insights_action_uses_chat_agent():
    orchestrator = _orchestrator(chat=StubChat([FULL_TRIP]))

    async def run():
        sid = await _session_with_snapshot(orchestrator)()
        return await orchestrator.trigger_action(sid, ChatAction.SHOW_INSIGHTS)

    message = asyncio.run(run())

    assert message.content == "Insights for Miami to Bordeaux"
    assert message.actions == [CONTINUE_BUTTON]


def test_view_options_generates_options():
    formatter = StubFormatter()
    orchestrator = _orchestrator(chat=StubChat([FULL_TRIP]), formatter=formatter)

    async def run():
        sid = await _session_with_snapshot(orchestrator)()
        result = await orchestrator.trigger_action(sid, ChatAction.VIEW_OPTIONS)
        return sid, result

    sid, result = asyncio.run(run())
    state = orchestrator.get_session(sid)

    assert result is None
    assert [o.id for o in state.options] == ["flight-1", "hotel-1"]
    assert state.phase == ConversationPhase.OPTIONS_READY
    assert state.search_status == "Found 2 travel options"
    assert formatter.calls[0].destination == "Bordeaux"


def test_show_options_without_snapshot_generates_directly():
    orchestrator = _orchestrator()

    async def run():
        state = orchestrator.create_session()
        state.phase = ConversationPhase.AWAITING_PREFERENCES
        state.preferences = TravelPreferences.model_validate(FULL_TRIP)
        return state, await orchestrator.trigger_action(state.session_id, ChatAction.SHOW_OPTIONS)

    state, message = asyncio.run(run())

    assert message is None
    assert state.phase == ConversationPhase.OPTIONS_READY


def test_generation_failure_returns_to_refinement():
    orchestrator = _orchestrator(chat=StubChat([FULL_TRIP]), formatter=StubFormatter(error=RuntimeError("down")))

    async def run():
        sid = await _session_with_snapshot(orchestrator)()
        return sid, await orchestrator.generate_options(sid)

    sid, options = asyncio.run(run())
    state = orchestrator.get_session(sid)

    assert options == []
    assert state.search_status == GENERATION_FAILED_STATUS
    assert state.phase == ConversationPhase.REFINEMENT_OFFERED


def test_generation_requires_trip_basics():
    orchestrator = _orchestrator()
    state = orchestrator.create_session()
    state.preferences = TravelPreferences(origin="Miami")

    with pytest.raises(ValidationError):
        asyncio.run(orchestrator.generate_options(state.session_id))
    assert orchestrator.formatter.calls == []


def test_options_cannot_be_requested_during_quick_search():
    async def run():
        gate = asyncio.Event()
        orchestrator = _orchestrator(chat=StubChat([FULL_TRIP]), availability=StubAvailability(gate=gate))
        sid = orchestrator.create_session().session_id
        await orchestrator.handle_user_message(sid, "trip")
        try:
            with pytest.raises(InvalidTransitionError):
                await orchestrator.generate_options(sid)
        finally:
            gate.set()
            await orchestrator.wait_for_quick_search(sid)

    asyncio.run(run())


def test_messages_are_rejected_while_generating():
    orchestrator = _orchestrator()
    state = orchestrator.create_session()
    state.phase = ConversationPhase.GENERATING_OPTIONS

    with pytest.raises(InvalidTransitionError):
        asyncio.run(orchestrator.handle_user_message(state.session_id, "hello?"))
    assert len(state.transcript) == 1


def test_record_selection_keeps_generation_order():
    orchestrator = _orchestrator(chat=StubChat([FULL_TRIP]))

    async def run():
        sid = await _session_with_snapshot(orchestrator)()
        await orchestrator.generate_options(sid)
        return sid

    sid = asyncio.run(run())

    selected = orchestrator.record_selection(sid, ["hotel-1", "flight-1"])
    assert [o.id for o in selected] == ["flight-1", "hotel-1"]
    with pytest.raises(ValidationError):
        orchestrator.record_selection(sid, ["car-9"])
    assert [o.id for o in orchestrator.get_session(sid).selected_options] == ["flight-1", "hotel-1"]


def test_update_preferences_merges():
    orchestrator = _orchestrator()
    state = orchestrator.create_session()
    state.preferences = TravelPreferences(origin="Miami")

    merged = orchestrator.update_preferences(state.session_id, TravelPreferences(destination="Bordeaux", origin=""))

    assert (merged.origin, merged.destination) == ("Miami", "Bordeaux")


def test_refinement_prompt_falls_back_to_generic_questions():
    snapshot = build_snapshot("Miami", "Bordeaux", [_offer("1", "AF", 0, 600.0), _offer("2", "DL", 0, 620.0)], [])
    snapshot.analysis.suggested_questions = []

    text = build_refinement_prompt(snapshot)

    assert "Available airlines include AF, DL." in text
    assert "Popular activities include sightseeing, tour, food." in text
    assert text.endswith("we can see detailed travel options.")


def test_refinement_prompt_names_the_searched_route():
    orchestrator = _orchestrator(chat=StubChat([FULL_TRIP]))

    async def run():
        sid = await _session_with_snapshot(orchestrator)()
        orchestrator.update_preferences(sid, TravelPreferences(destination="Lisbon"))
        return await orchestrator.trigger_action(sid, ChatAction.SHOW_OPTIONS)

    message = asyncio.run(run())

    assert message.content.startswith("I've found some initial travel options from Miami to Bordeaux.")
    assert "Lisbon" not in message.content


class SlowChat(StubChat):
    """Holds every reply until ``gate`` is set."""

    def __init__(self, gate, deltas=None):
        super().__init__(deltas)
        self.gate = gate

    async def complete(self, messages, preferences=None):
        await self.gate.wait()
        return await super().complete(messages, preferences)


class SlowFormatter(StubFormatter):
    def __init__(self, gate):
        super().__init__()
        self.gate = gate

    async def generate_options(self, preferences):
        await self.gate.wait()
        return await super().generate_options(preferences)


def test_message_finishing_during_generation_keeps_preferences():
    async def run():
        chat_gate, formatter_gate = asyncio.Event(), asyncio.Event()
        chat_gate.set()
        orchestrator = _orchestrator(
            chat=SlowChat(chat_gate, [FULL_TRIP, {"destination": "Lisbon"}]),
            formatter=SlowFormatter(formatter_gate),
        )
        sid = await _session_with_snapshot(orchestrator)()
        chat_gate.clear()

        turn = asyncio.create_task(orchestrator.handle_user_message(sid, "Lisbon instead"))
        await asyncio.sleep(0)
        generation = asyncio.create_task(orchestrator.generate_options(sid))
        await asyncio.sleep(0)
        chat_gate.set()
        reply = await turn
        formatter_gate.set()
        options = await generation
        return orchestrator, orchestrator.get_session(sid), reply, options

    orchestrator, state, reply, options = asyncio.run(run())

    assert reply.content == BUSY
    assert state.transcript[-1] is reply
    assert state.preferences.destination == "Bordeaux"
    assert [o.id for o in options] == ["flight-1", "hotel-1"]
    assert state.phase == ConversationPhase.OPTIONS_READY
    assert len(orchestrator.availability_agent.calls) == 1
