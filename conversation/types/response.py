"""User-facing response models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from conversation.types.entity import Entity

CitationType = Literal["agent", "definition", "example", "rule", "fact", "document"]


class Citation(BaseModel):
    """Pointer to a knowledge record backing part of an answer."""

    source: str
    title: str
    type: CitationType = "document"
    line_number: int | None = None
    url: str | None = None


class ClarificationQuestion(BaseModel):
    """Structured request for more information."""

    question: str
    options: list[str] = Field(default_factory=list)
    type: Literal["disambiguation", "missing_info", "confirmation"]


class AskResult(BaseModel):
    """Reply returned by the conversation facade."""

    answer: str
    citations: list[Citation] = Field(default_factory=list)
    follow_up_suggestions: list[str] = Field(default_factory=list)
    related_entities: list[Entity] = Field(default_factory=list)
    confidence: float = 0.0
    conversation_id: str = ""
    requires_clarification: bool = False
    clarification: ClarificationQuestion | None = None
