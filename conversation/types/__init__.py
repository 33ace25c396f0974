"""Typed conversation payload models."""

from conversation.types.entity import Entity, EntityType
from conversation.types.intent import Intent, IntentType, ParsedIntent
from conversation.types.response import AskResult, Citation, ClarificationQuestion
from conversation.types.routing import AgentResponse, AgentRoute, CoordinatedResponse
from conversation.types.turn import Conversation, Turn

__all__ = [
    "AgentResponse",
    "AgentRoute",
    "AskResult",
    "Citation",
    "ClarificationQuestion",
    "Conversation",
    "CoordinatedResponse",
    "Entity",
    "EntityType",
    "Intent",
    "IntentType",
    "ParsedIntent",
    "Turn",
]
