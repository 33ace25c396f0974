"""Conversation and turn models."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from conversation.types.entity import Entity, ensure_utc, utc_now
from conversation.types.intent import Intent

DEFAULT_USER_ID = "default"


class Turn(BaseModel):
    """One committed question/answer exchange."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = Field(default_factory=utc_now)
    user_input: str
    intent: Intent
    entities: list[Entity] = Field(default_factory=list)
    response: str = ""
    confidence: float = 0.0
    agents_used: list[str] = Field(default_factory=list)
    clarification: bool = False
    follow_up: bool = False
    context_switched: bool = False

    @field_validator("timestamp")
    @classmethod
    def timestamp_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class Conversation(BaseModel):
    """Full dialogue state for one conversation id."""

    id: str = Field(default_factory=lambda: f"conv-{uuid.uuid4().hex[:16]}")
    user_id: str = DEFAULT_USER_ID
    turns: list[Turn] = Field(default_factory=list)
    entities: dict[str, Entity] = Field(default_factory=dict)
    current_intent: Intent | None = None
    previous_intents: list[Intent] = Field(default_factory=list)
    agent_assignments: dict[str, str] = Field(default_factory=dict)
    current_topic: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    last_updated: datetime = Field(default_factory=utc_now)

    @field_validator("created_at", "last_updated")
    @classmethod
    def clock_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def last_known_intent(self) -> Intent | None:
        """Most recent committed intent whose type is known."""
        candidates = [self.current_intent, *reversed(self.previous_intents)]
        for intent in candidates:
            if intent is not None and intent.type != "unknown":
                return intent
        return None
