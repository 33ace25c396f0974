"""In-process conversation store owning turn and entity lifecycle."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any

from pydantic import ValidationError

from conversation.errors import ConversationNotFoundError, MalformedSnapshotError
from conversation.types.entity import NOUN_ENTITY_TYPES, Entity, EntityType, utc_now
from conversation.types.turn import DEFAULT_USER_ID, Conversation, Turn

logger = logging.getLogger("nlq.store")

_DEMONSTRATIVE = re.compile(r"^(?:that|this|the|those)\s+(\w+)$", re.IGNORECASE)


class ConversationStore:
    """Holds every active conversation; the only mutation path for their state."""

    def __init__(
        self,
        max_turns: int = 100,
        entity_ttl: timedelta = timedelta(minutes=30),
        default_user_id: str = DEFAULT_USER_ID,
    ) -> None:
        self.max_turns = max_turns
        self.entity_ttl = entity_ttl
        self.default_user_id = default_user_id
        self._conversations: dict[str, Conversation] = {}

    def create(self, user_id: str | None = None) -> Conversation:
        """Create an empty conversation with a fresh id."""
        conversation = Conversation(user_id=user_id or self.default_user_id)
        self._conversations[conversation.id] = conversation
        logger.info("Created conversation %s for user %s", conversation.id, conversation.user_id)
        return conversation

    def get(self, conversation_id: str) -> Conversation | None:
        return self._conversations.get(conversation_id)

    def require(self, conversation_id: str) -> Conversation:
        """Return the conversation or raise ConversationNotFoundError."""
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    def exists(self, conversation_id: str) -> bool:
        return conversation_id in self._conversations

    def append_turn(self, conversation_id: str, turn: Turn) -> Conversation:
        """Commit a turn, folding its intent and entities into the conversation."""
        conversation = self.require(conversation_id)
        conversation.turns.append(turn)

        if conversation.current_intent is not None:
            conversation.previous_intents.append(conversation.current_intent)
            if len(conversation.previous_intents) > self.max_turns:
                del conversation.previous_intents[: -self.max_turns]
        conversation.current_intent = turn.intent

        for entity in turn.entities:
            self._upsert_entity(conversation, entity, seen_at=turn.timestamp)

        if turn.intent.entity and turn.agents_used:
            conversation.agent_assignments[turn.intent.entity] = turn.agents_used[0]

        if not turn.clarification and (turn.context_switched or turn.intent.entity):
            conversation.current_topic = turn.intent.entity

        overflow = len(conversation.turns) - self.max_turns
        if overflow > 0:
            del conversation.turns[:overflow]

        conversation.last_updated = utc_now()
        return conversation

    def update_entity(self, conversation_id: str, entity: Entity) -> Entity:
        """Insert an entity or refresh the last-seen time of a known one."""
        conversation = self.require(conversation_id)
        stored = self._upsert_entity(conversation, entity, seen_at=utc_now())
        conversation.last_updated = utc_now()
        return stored

    def recent_entities(
        self,
        conversation: Conversation,
        limit: int | None = None,
        entity_type: EntityType | None = None,
        now: datetime | None = None,
    ) -> list[Entity]:
        """Live entities, most recently touched first."""
        current = now or utc_now()
        ranked = [
            (entity.last_seen, index, entity)
            for index, entity in enumerate(conversation.entities.values())
            if not entity.is_expired(self.entity_ttl, now=current)
            and (entity_type is None or entity.type == entity_type)
        ]
        ranked.sort(key=lambda item: (item[0], item[1]), reverse=True)
        entities = [entity for _, _, entity in ranked]
        return entities[:limit] if limit is not None else entities

    def find_entity(self, conversation: Conversation, name: str) -> Entity | None:
        """Case-insensitive name lookup among live entities."""
        for entity in self.recent_entities(conversation):
            if entity.matches_name(name):
                return entity
        return None

    def resolve_reference(self, reference_text: str, conversation: Conversation) -> Entity | None:
        """Pick the entity a pronoun or demonstrative phrase refers to."""
        candidates = self.recent_entities(conversation)
        if not candidates:
            return None
        match = _DEMONSTRATIVE.match(reference_text.strip())
        if match:
            wanted = NOUN_ENTITY_TYPES.get(match.group(1).lower())
            if wanted is not None:
                for entity in candidates:
                    if entity.type == wanted:
                        return entity
        return candidates[0]

    def get_history(self, conversation_id: str, limit: int | None = None) -> list[Turn]:
        """Most recent ``limit`` turns in original order."""
        conversation = self.require(conversation_id)
        if limit is None:
            turns = conversation.turns
        elif limit <= 0:
            return []
        else:
            turns = conversation.turns[-limit:]
        return [turn.model_copy(deep=True) for turn in turns]

    def clear(self, conversation_id: str) -> None:
        """Empty turns, entities and intents without deleting the conversation."""
        conversation = self.require(conversation_id)
        conversation.turns.clear()
        conversation.entities.clear()
        conversation.current_intent = None
        conversation.previous_intents.clear()
        conversation.agent_assignments.clear()
        conversation.current_topic = None
        conversation.last_updated = utc_now()

    def delete(self, conversation_id: str) -> bool:
        return self._conversations.pop(conversation_id, None) is not None

    def list_user_conversations(self, user_id: str) -> list[Conversation]:
        """Conversations owned by ``user_id``, newest activity first."""
        owned = [c for c in self._conversations.values() if c.user_id == user_id]
        return sorted(owned, key=lambda c: c.last_updated, reverse=True)

    def export_context(self, conversation_id: str) -> dict[str, Any] | None:
        """Serialize full conversation state, or None for an unknown id."""
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return None
        return conversation.model_dump(mode="json")

    def import_context(self, snapshot: Mapping[str, Any]) -> Conversation:
        """Restore a conversation from an exported snapshot."""
        if not isinstance(snapshot, Mapping):
            raise MalformedSnapshotError(
                f"Snapshot must be a mapping, got {type(snapshot).__name__}"
            )
        missing = [key for key in ("id", "user_id", "turns") if key not in snapshot]
        if missing:
            raise MalformedSnapshotError(f"Snapshot is missing required keys: {missing}")
        try:
            conversation = Conversation.model_validate(dict(snapshot))
        except ValidationError as exc:
            raise MalformedSnapshotError(f"Snapshot failed validation: {exc}") from exc

        overflow = len(conversation.turns) - self.max_turns
        if overflow > 0:
            del conversation.turns[:overflow]
        self._conversations[conversation.id] = conversation
        logger.info(
            "Imported conversation %s (%d turns, %d entities)",
            conversation.id,
            len(conversation.turns),
            len(conversation.entities),
        )
        return conversation

    @staticmethod
    def _upsert_entity(conversation: Conversation, entity: Entity, seen_at: datetime) -> Entity:
        existing = conversation.entities.get(entity.id)
        if existing is None:
            existing = next(
                (e for e in conversation.entities.values() if e.matches_name(entity.name)),
                None,
            )
        if existing is not None:
            existing.last_seen = max(existing.last_seen, seen_at)
            if entity.metadata:
                existing.metadata = {**existing.metadata, **entity.metadata}
            return existing
        stored = entity.model_copy(update={"last_seen": max(entity.last_seen, seen_at)})
        conversation.entities[stored.id] = stored
        return stored
