"""Dialogue manager and turn state machine tests."""

from __future__ import annotations

from typing import Any

import pytest

from conversation.errors import InvalidTransitionError
from conversation.types import Intent, ParsedIntent
from core.conversation_interface import ConversationInterface
from core.event_bus import TURN_STATE, EventBus
from dialogue.dialogue_manager import DialogueManager
from dialogue.turn_state import TurnState, TurnStateMachine


def test_state_machine_rejects_skips_and_revisits() -> None:
    bus = EventBus()
    seen: list[dict[str, Any]] = []
    bus.subscribe(TURN_STATE, seen.append)
    machine = TurnStateMachine("conv-1", bus)

    with pytest.raises(InvalidTransitionError):
        machine.advance(TurnState.ROUTED)

    machine.advance(TurnState.REFERENCE_RESOLVED)
    machine.advance(TurnState.INTENT_PARSED)
    machine.advance(TurnState.CLARIFICATION_NEEDED)
    machine.advance(TurnState.ASKED_CLARIFICATION)
    assert machine.finished
    with pytest.raises(InvalidTransitionError):
        machine.advance(TurnState.RECEIVED)
    assert [event["to"] for event in seen] == [
        "reference_resolved",
        "intent_parsed",
        "clarification_needed",
        "asked_clarification",
    ]


@pytest.mark.asyncio
async def test_answered_turn_walks_full_state_path(interface: ConversationInterface) -> None:
    states: list[str] = []
    interface.event_bus.subscribe(TURN_STATE, lambda payload: states.append(payload["to"]))
    conversation_id = interface.create_conversation()

    outcome = await interface.dialogue.process_turn("Tell me about 4D-Network-Agent", conversation_id)

    assert outcome.state is TurnState.ANSWERED
    assert states == ["reference_resolved", "intent_parsed", "routed", "responses_merged", "answered"]
    assert outcome.turn.agents_used == ["agent-4d-network"]
    assert "What are the dependencies of 4D-Network-Agent?" in outcome.result.follow_up_suggestions


@pytest.mark.asyncio
async def test_follow_up_merges_previous_intent(interface: ConversationInterface) -> None:
    dialogue = interface.dialogue
    conversation_id = interface.create_conversation()
    await dialogue.process_turn("Tell me about 4D-Network-Agent", conversation_id)

    outcome = await dialogue.process_turn("What are its dependencies?", conversation_id)

    assert outcome.follow_up
    assert not outcome.context_switched
    assert outcome.parsed.entity == "4D-Network-Agent"
    assert outcome.parsed.filters["queryType"] == "dependencies"
    assert "3D-Algebraic-Agent" in outcome.result.answer
    assert outcome.result.confidence > 0.5


@pytest.mark.asyncio
async def test_tell_me_more_inherits_entity(interface: ConversationInterface) -> None:
    dialogue = interface.dialogue
    conversation_id = interface.create_conversation()
    await dialogue.process_turn("What are the dependencies of 4D-Network-Agent?", conversation_id)

    outcome = await dialogue.process_turn("Tell me more", conversation_id)

    assert outcome.follow_up
    assert outcome.parsed.type == "agent"
    assert outcome.parsed.entity == "4D-Network-Agent"
    assert "queryType" not in outcome.parsed.filters
    assert outcome.state is TurnState.ANSWERED


@pytest.mark.asyncio
async def test_context_switch_replaces_topic(interface: ConversationInterface) -> None:
    dialogue = interface.dialogue
    conversation_id = interface.create_conversation()
    await dialogue.process_turn("Tell me about 4D-Network-Agent", conversation_id)

    outcome = await dialogue.process_turn("How do I use r5rs:church-add?", conversation_id)

    assert outcome.context_switched
    assert not outcome.follow_up
    conversation = interface.store.require(conversation_id)
    assert conversation.current_topic == "r5rs:church-add"
    assert outcome.result.citations[0].type == "definition"


@pytest.mark.asyncio
async def test_clarification_short_circuits_but_records_turn(interface: ConversationInterface) -> None:
    conversation_id = interface.create_conversation()

    outcome = await interface.dialogue.process_turn("asdf qwerty", conversation_id)

    assert outcome.state is TurnState.ASKED_CLARIFICATION
    assert outcome.result.requires_clarification
    assert outcome.result.clarification is not None
    assert outcome.result.clarification.type == "disambiguation"
    assert outcome.result.confidence < 0.5
    history = interface.get_history(conversation_id)
    assert len(history) == 1
    assert history[0].clarification
    assert history[0].agents_used == []


def test_follow_up_kinds() -> None:
    assert DialogueManager.follow_up_kind("What are its capabilities?") == ("related_query", "capabilities")
    assert DialogueManager.follow_up_kind("Tell me more") == ("more_info", None)
    assert DialogueManager.follow_up_kind("Show me more") == ("more_info", None)
    assert DialogueManager.follow_up_kind("What else is there?") == ("related_query", None)
    assert DialogueManager.follow_up_kind("And the 5D layer?") == ("additional_query", None)
    assert DialogueManager.follow_up_kind("Tell me about 4D-Network-Agent") is None


def test_ask_clarification_kinds() -> None:
    assert DialogueManager.ask_clarification(Intent(type="unknown")).options == [
        "agent",
        "function",
        "rule",
        "example",
        "fact",
    ]
    assert DialogueManager.ask_clarification(Intent(type="function")).type == "missing_info"
    confirm = DialogueManager.ask_clarification(Intent(type="agent", entity="4D-Network-Agent"))
    assert confirm.type == "confirmation"
    assert confirm.question == 'Did you mean "4D-Network-Agent"?'
    ambiguous = ParsedIntent(
        type="agent",
        clarification_questions=["Which one?"],
        clarification_options=["4D-Network-Agent", "5D-Consensus-Agent"],
    )
    assert DialogueManager.ask_clarification(ambiguous).options == ["4D-Network-Agent", "5D-Consensus-Agent"]


@pytest.mark.asyncio
async def test_suggestions_include_recent_siblings(interface: ConversationInterface) -> None:
    dialogue = interface.dialogue
    conversation_id = interface.create_conversation()
    await dialogue.process_turn("Tell me about 5D-Consensus-Agent", conversation_id)

    outcome = await dialogue.process_turn("Tell me about 4D-Network-Agent", conversation_id)

    suggestions = outcome.result.follow_up_suggestions
    assert len(suggestions) <= 5
    assert suggestions[0] == "What are the dependencies of 4D-Network-Agent?"
    assert "Tell me about 5D-Consensus-Agent" in suggestions


@pytest.mark.asyncio
async def test_clarification_does_not_reset_topic(interface: ConversationInterface) -> None:
    conversation_id = interface.create_conversation()
    await interface.ask("Tell me about 4D-Network-Agent", conversation_id)

    await interface.ask("asdf qwerty", conversation_id)

    assert interface.store.require(conversation_id).current_topic == "4D-Network-Agent"
