"""Conversation store tests."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from conversation.conversation_store import ConversationStore
from conversation.errors import ConversationNotFoundError, MalformedSnapshotError
from conversation.types import Entity, Intent, Turn
from conversation.types.entity import utc_now


def agent_turn(name: str, question: str | None = None, **kwargs) -> Turn:
    return Turn(
        user_input=question or f"Tell me about {name}",
        intent=Intent(type="agent", entity=name, filters={"name": name}),
        entities=[Entity(type="agent", name=name)],
        response=f"{name} answer",
        **kwargs,
    )


def test_create_and_require_unknown(store: ConversationStore) -> None:
    conversation = store.create()
    assert conversation.id.startswith("conv-")
    assert conversation.user_id == "default"
    assert store.get(conversation.id) is conversation
    assert store.get("conv-missing") is None
    with pytest.raises(ConversationNotFoundError):
        store.require("conv-missing")
    with pytest.raises(KeyError):
        store.append_turn("conv-missing", agent_turn("4D-Network-Agent"))


def test_turns_capped_at_most_recent(store: ConversationStore) -> None:
    conversation = store.create()
    for index in range(105):
        store.append_turn(
            conversation.id,
            Turn(user_input=f"q{index}", intent=Intent(type="fact", question=f"q{index}")),
        )

    history = store.get_history(conversation.id)
    assert len(history) == 100
    assert [t.user_input for t in history] == [f"q{i}" for i in range(5, 105)]
    assert [t.user_input for t in store.get_history(conversation.id, limit=3)] == ["q102", "q103", "q104"]
    assert store.get_history(conversation.id, limit=0) == []


def test_append_turn_tracks_intents_topic_and_assignments(store: ConversationStore) -> None:
    conversation = store.create()
    store.append_turn(conversation.id, agent_turn("4D-Network-Agent", agents_used=["agent-4d-network"]))
    store.append_turn(conversation.id, agent_turn("5D-Consensus-Agent"))

    assert conversation.current_intent is not None
    assert conversation.current_intent.entity == "5D-Consensus-Agent"
    assert [i.entity for i in conversation.previous_intents] == ["4D-Network-Agent"]
    assert conversation.current_topic == "5D-Consensus-Agent"
    assert conversation.agent_assignments == {"4D-Network-Agent": "agent-4d-network"}
    assert sorted(e.name for e in conversation.entities.values()) == [
        "4D-Network-Agent",
        "5D-Consensus-Agent",
    ]


def test_repeated_entity_is_refreshed_not_duplicated(store: ConversationStore) -> None:
    conversation = store.create()
    store.append_turn(conversation.id, agent_turn("4D-Network-Agent"))
    store.append_turn(conversation.id, agent_turn("4d-network-agent"))
    assert len(conversation.entities) == 1


def test_expired_entities_are_not_returned(store: ConversationStore) -> None:
    conversation = store.create()
    stale = utc_now() - timedelta(minutes=31)
    store.append_turn(
        conversation.id,
        Turn(
            timestamp=stale,
            user_input="Tell me about 4D-Network-Agent",
            intent=Intent(type="agent", entity="4D-Network-Agent"),
            entities=[Entity(type="agent", name="4D-Network-Agent", last_seen=stale)],
        ),
    )

    assert len(conversation.entities) == 1
    assert store.recent_entities(conversation) == []
    assert store.find_entity(conversation, "4D-Network-Agent") is None
    assert store.resolve_reference("it", conversation) is None


def test_resolve_reference_prefers_compatible_type(store: ConversationStore) -> None:
    conversation = store.create()
    store.update_entity(conversation.id, Entity(type="agent", name="4D-Network-Agent"))
    store.update_entity(conversation.id, Entity(type="function", name="r5rs:church-add"))

    assert store.resolve_reference("that agent", conversation).name == "4D-Network-Agent"
    assert store.resolve_reference("it", conversation).name == "r5rs:church-add"
    # No concept is known, so recency wins.
    assert store.resolve_reference("this concept", conversation).name == "r5rs:church-add"


def test_clear_keeps_conversation(store: ConversationStore) -> None:
    conversation = store.create()
    store.append_turn(conversation.id, agent_turn("4D-Network-Agent"))
    store.clear(conversation.id)

    assert store.exists(conversation.id)
    assert conversation.turns == []
    assert conversation.entities == {}
    assert conversation.current_intent is None
    assert conversation.current_topic is None


def test_export_import_round_trip(store: ConversationStore) -> None:
    conversation = store.create(user_id="alice")
    store.append_turn(conversation.id, agent_turn("4D-Network-Agent"))
    store.append_turn(conversation.id, agent_turn("5D-Consensus-Agent"))

    snapshot = store.export_context(conversation.id)
    assert snapshot is not None

    restored_store = ConversationStore()
    restored = restored_store.import_context(snapshot)

    assert restored.id == conversation.id
    assert restored.user_id == "alice"
    assert len(restored.turns) == len(conversation.turns)
    assert {e.name for e in restored.entities.values()} == {e.name for e in conversation.entities.values()}
    assert restored.current_intent is not None
    assert restored.current_intent.type == conversation.current_intent.type
    assert store.export_context("conv-missing") is None


@pytest.mark.parametrize(
    "snapshot",
    [
        {"id": "conv-1"},
        {"id": "conv-1", "user_id": "default", "turns": "not-a-list"},
        {"id": "conv-1", "user_id": "default", "turns": [{"intent": {"type": "bogus"}}]},
        ["not", "a", "mapping"],
    ],
)
def test_import_rejects_malformed_snapshot(store: ConversationStore, snapshot) -> None:
    with pytest.raises(MalformedSnapshotError):
        store.import_context(snapshot)
    assert store.get("conv-1") is None


def test_list_user_conversations_newest_first(store: ConversationStore) -> None:
    first = store.create(user_id="alice")
    second = store.create(user_id="alice")
    store.create(user_id="bob")
    store.append_turn(first.id, agent_turn("4D-Network-Agent"))

    owned = store.list_user_conversations("alice")
    assert [c.id for c in owned] == [first.id, second.id]
    assert store.delete(second.id) is True
    assert store.delete(second.id) is False


def strip_offset(value: str) -> str:
    return datetime.fromisoformat(value).replace(tzinfo=None).isoformat()


def test_import_treats_naive_timestamps_as_utc(store: ConversationStore) -> None:
    conversation = store.create()
    store.append_turn(conversation.id, agent_turn("4D-Network-Agent"))
    snapshot = store.export_context(conversation.id)
    assert snapshot is not None
    for entity in snapshot["entities"].values():
        entity["last_seen"] = strip_offset(entity["last_seen"])
    for turn in snapshot["turns"]:
        turn["timestamp"] = strip_offset(turn["timestamp"])
        for entity in turn["entities"]:
            entity["last_seen"] = strip_offset(entity["last_seen"])
    snapshot["created_at"] = strip_offset(snapshot["created_at"])
    snapshot["last_updated"] = strip_offset(snapshot["last_updated"])

    restored_store = ConversationStore()
    restored = restored_store.import_context(snapshot)
    restored_store.append_turn(restored.id, agent_turn("4D-Network-Agent"))
    restored_store.append_turn(restored.id, agent_turn("5D-Consensus-Agent"))

    assert all(e.last_seen.tzinfo is not None for e in restored.entities.values())
    assert restored.turns[0].timestamp.tzinfo is not None
    assert restored.created_at.tzinfo is not None
    assert [e.name for e in restored_store.recent_entities(restored)] == [
        "5D-Consensus-Agent",
        "4D-Network-Agent",
    ]
    assert restored_store.list_user_conversations(restored.user_id) == [restored]


def test_history_cannot_rewrite_stored_turns(store: ConversationStore) -> None:
    conversation = store.create()
    store.append_turn(conversation.id, agent_turn("4D-Network-Agent"))

    returned = store.get_history(conversation.id)[0]
    with pytest.raises(ValidationError):
        returned.response = "rewritten"
    returned.entities[0].name = "rewritten"

    stored = store.get_history(conversation.id)[0]
    assert stored.response == "4D-Network-Agent answer"
    assert stored.entities[0].name == "4D-Network-Agent"


def test_clarification_turn_keeps_current_topic(store: ConversationStore) -> None:
    conversation = store.create()
    store.append_turn(conversation.id, agent_turn("4D-Network-Agent"))
    store.append_turn(
        conversation.id,
        Turn(
            user_input="asdf qwerty",
            intent=Intent(type="unknown"),
            clarification=True,
            context_switched=True,
        ),
    )

    assert conversation.current_topic == "4D-Network-Agent"
    assert len(store.get_history(conversation.id)) == 2
