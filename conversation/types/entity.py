"""Entity models tracked for reference resolution."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

EntityType = Literal["agent", "function", "concept", "fact", "rule"]

RESOLVED_FROM_QUESTION = "resolved-from-question"

# Nouns that may follow a demonstrative ("that agent") and the entity type
# they select.
NOUN_ENTITY_TYPES: dict[str, EntityType] = {
    "agent": "agent",
    "agents": "agent",
    "function": "function",
    "functions": "function",
    "rule": "rule",
    "rules": "rule",
    "fact": "fact",
    "facts": "fact",
    "concept": "concept",
    "concepts": "concept",
    "dimension": "concept",
    "dimensions": "concept",
}


def utc_now() -> datetime:
    """Return UTC datetime for default timestamps."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so all stored clocks compare."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Entity(BaseModel):
    """Named thing mentioned in conversation."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: EntityType
    name: str
    last_seen: datetime = Field(default_factory=utc_now)
    source: str = RESOLVED_FROM_QUESTION
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("last_seen")
    @classmethod
    def last_seen_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def is_expired(self, ttl: timedelta, now: datetime | None = None) -> bool:
        """True when the entity has not been touched within ``ttl``."""
        current = ensure_utc(now or utc_now())
        return current - self.last_seen > ttl

    def matches_name(self, name: str) -> bool:
        return self.name.lower() == name.strip().lower()
