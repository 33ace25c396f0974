"""Routing and coordinated response models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class AgentRoute(BaseModel):
    """Candidate responder for an intent."""

    agent_id: str
    agent_name: str
    dimension: str | None = None
    confidence: float = 0.0
    reason: str = ""


class AgentResponse(BaseModel):
    """Content returned by querying one route."""

    agent_id: str
    agent_name: str
    response: str
    confidence: float = 0.0
    records: list[dict[str, Any]] = Field(default_factory=list)


class CoordinatedResponse(BaseModel):
    """Merged outcome of a fan-out over several routes."""

    primary_response: AgentResponse
    additional_responses: list[AgentResponse] = Field(default_factory=list)
    merged_answer: str
    routes_used: list[AgentRoute] = Field(default_factory=list)
    agents_used: list[str] = Field(default_factory=list)
    confidence: float = 0.0
