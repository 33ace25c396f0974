"""Intent models produced by classification and parsing."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from conversation.types.entity import Entity

IntentType = Literal["agent", "function", "rule", "fact", "example", "unknown"]

# Filter keys each intent type understands. Routing and responders only
# read keys listed here.
FILTER_KEYS: dict[str, frozenset[str]] = {
    "agent": frozenset({"dimension", "topic", "queryType", "name"}),
    "function": frozenset({"dimension", "topic", "queryType", "name"}),
    "rule": frozenset({"dimension", "topic", "keyword", "context", "related"}),
    "fact": frozenset({"dimension", "topic", "keyword"}),
    "example": frozenset({"dimension", "topic", "function"}),
    "unknown": frozenset({"dimension", "topic"}),
}
ALL_FILTER_KEYS: frozenset[str] = frozenset().union(*FILTER_KEYS.values())

# Entity types that can stand in as the target of an intent type.
COMPATIBLE_ENTITY_TYPES: dict[str, frozenset[str]] = {
    "agent": frozenset({"agent"}),
    "function": frozenset({"function"}),
    "example": frozenset({"function"}),
    "rule": frozenset({"rule"}),
    "fact": frozenset({"fact", "concept"}),
    "unknown": frozenset(),
}


class Intent(BaseModel):
    """Classified purpose of a question."""

    type: IntentType = "unknown"
    entity: str | None = None
    question: str = ""
    filters: dict[str, Any] = Field(default_factory=dict)

    @field_validator("filters")
    @classmethod
    def _known_filter_keys(cls, value: dict[str, Any]) -> dict[str, Any]:
        unknown = set(value) - ALL_FILTER_KEYS
        if unknown:
            raise ValueError(f"Unrecognized intent filter keys: {sorted(unknown)}")
        return value

    def recognized_filters(self) -> dict[str, Any]:
        """Return only the filters meaningful for this intent's type."""
        allowed = FILTER_KEYS[self.type]
        return {key: value for key, value in self.filters.items() if key in allowed}


class ParsedIntent(Intent):
    """Intent enriched with resolution, entities, and confidence."""

    original_question: str = ""
    resolved_question: str = ""
    entities: list[Entity] = Field(default_factory=list)
    confidence: float = 0.0
    requires_clarification: bool = False
    clarification_questions: list[str] = Field(default_factory=list)
    clarification_options: list[str] = Field(default_factory=list)
    expanded_intents: list[Intent] = Field(default_factory=list)
    explicit_entity: bool = False
    unresolved_references: list[str] = Field(default_factory=list)

    def as_intent(self) -> Intent:
        """Strip parse metadata, keeping the committed intent fields."""
        return Intent(
            type=self.type,
            entity=self.entity,
            question=self.question,
            filters=dict(self.filters),
        )
