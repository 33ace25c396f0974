"""Error taxonomy for the conversation engine."""

from __future__ import annotations


class ConversationError(Exception):
    """Base class for conversation engine errors."""


class ConversationNotFoundError(ConversationError, KeyError):
    """Raised when an operation names an unknown conversation id."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id

    def __str__(self) -> str:
        return f"Conversation {self.conversation_id} not found"


class MalformedSnapshotError(ConversationError, ValueError):
    """Raised when an exported snapshot cannot be restored."""


class AgentQueryError(ConversationError):
    """Raised by a responder when a single route cannot be answered."""


class InvalidTransitionError(ConversationError):
    """Raised when a turn attempts an illegal state transition."""
