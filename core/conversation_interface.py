"""Conversation facade: the single entry point for callers."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from conversation.conversation_store import ConversationStore
from conversation.types import AskResult, Conversation, Turn
from core.event_bus import CONVERSATION_CLEARED, CONVERSATION_CREATED, TURN_COMPLETED, EventBus
from dialogue.dialogue_manager import DialogueManager

logger = logging.getLogger("nlq.facade")


class ConversationInterface:
    """Composes the store and dialogue manager behind a small API.

    Turns for one conversation must be awaited one at a time; distinct
    conversations may be processed concurrently.
    """

    def __init__(
        self,
        store: ConversationStore,
        dialogue: DialogueManager,
        event_bus: EventBus | None = None,
    ) -> None:
        self.store = store
        self.dialogue = dialogue
        self.event_bus = event_bus or EventBus()
        self.active_conversation_id: str | None = None

    async def ask(self, question: str, conversation_id: str | None = None) -> AskResult:
        """Answer ``question``; creates a conversation when none is given or active.

        Raises ConversationNotFoundError for an explicit unknown id.
        """
        if conversation_id is None:
            conversation_id = self.active_conversation_id
            if conversation_id is None or not self.store.exists(conversation_id):
                conversation_id = self.create_conversation()
        else:
            self.store.require(conversation_id)

        outcome = await self.dialogue.process_turn(question, conversation_id)
        self.active_conversation_id = conversation_id
        self.event_bus.emit(
            TURN_COMPLETED,
            {
                "conversation_id": conversation_id,
                "question": question,
                "intent_type": outcome.parsed.type,
                "state": outcome.state.value,
                "agents_used": list(outcome.turn.agents_used),
                "confidence": outcome.result.confidence,
            },
        )
        logger.info(
            "Answered turn in %s (%s, confidence=%.2f)",
            conversation_id,
            outcome.state.value,
            outcome.result.confidence,
        )
        return outcome.result

    def get_history(self, conversation_id: str, limit: int | None = None) -> list[Turn]:
        return self.store.get_history(conversation_id, limit)

    def create_conversation(self, user_id: str | None = None) -> str:
        conversation = self.store.create(user_id)
        self.active_conversation_id = conversation.id
        self.event_bus.emit(
            CONVERSATION_CREATED,
            {"conversation_id": conversation.id, "user_id": conversation.user_id},
        )
        return conversation.id

    def switch_conversation(self, conversation_id: str) -> bool:
        """Make ``conversation_id`` active; unknown ids leave the active one unchanged."""
        if not self.store.exists(conversation_id):
            logger.warning("Cannot switch to unknown conversation %s", conversation_id)
            return False
        self.active_conversation_id = conversation_id
        return True

    def clear_history(self, conversation_id: str) -> None:
        self.store.clear(conversation_id)
        self.event_bus.emit(CONVERSATION_CLEARED, {"conversation_id": conversation_id})

    def delete_conversation(self, conversation_id: str) -> bool:
        deleted = self.store.delete(conversation_id)
        if deleted and self.active_conversation_id == conversation_id:
            self.active_conversation_id = None
        return deleted

    def list_conversations(self, user_id: str | None = None) -> list[Conversation]:
        return self.store.list_user_conversations(user_id or self.store.default_user_id)

    def export_context(self, conversation_id: str) -> dict[str, Any] | None:
        return self.store.export_context(conversation_id)

    def import_context(self, snapshot: Mapping[str, Any]) -> Conversation:
        """Restore a snapshot; raises MalformedSnapshotError on bad input."""
        return self.store.import_context(snapshot)
