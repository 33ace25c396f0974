"""Knowledge record models read from the knowledge store."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

RecordType = Literal["agent", "function", "rule", "fact", "example"]


class KnowledgeRecord(BaseModel):
    """Common fields of every knowledge record."""

    id: str
    source: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def title(self) -> str:
        return str(self.metadata.get("title") or self.id)

    def citation_payload(self, record_type: RecordType) -> dict[str, Any]:
        payload = self.model_dump()
        payload["record_type"] = record_type
        payload["title"] = self.title
        return payload


class AgentDefinition(KnowledgeRecord):
    name: str
    dimension: str | None = None
    purpose: str = ""
    capabilities: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)

    @property
    def title(self) -> str:
        return self.name


class FunctionDefinition(KnowledgeRecord):
    name: str
    signature: str = ""
    description: str = ""

    @property
    def title(self) -> str:
        return self.name


class RuleDefinition(KnowledgeRecord):
    text: str
    rfc2119_keyword: str = ""
    context: str = ""


class FactDefinition(KnowledgeRecord):
    statement: str
    keywords: list[str] = Field(default_factory=list)


class ExampleDefinition(KnowledgeRecord):
    function: str
    code: str = ""
    description: str = ""

    @property
    def title(self) -> str:
        return str(self.metadata.get("title") or f"Example: {self.function}")
