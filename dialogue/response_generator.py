"""Builds the user-facing reply: citations, sources, related entities."""

from __future__ import annotations

import json
import re
from typing import Any, Literal

from conversation.conversation_store import ConversationStore
from conversation.types import (
    AskResult,
    Citation,
    Conversation,
    CoordinatedResponse,
    Entity,
    ParsedIntent,
)

OutputFormat = Literal["markdown", "plain", "json"]

CITATION_TYPES: dict[str, str] = {
    "agent": "agent",
    "function": "definition",
    "example": "example",
    "rule": "rule",
    "fact": "fact",
}
RELATED_ENTITY_LIMIT = 5


class ResponseGenerator:
    """Turns a coordinated response into an AskResult."""

    def __init__(self, store: ConversationStore) -> None:
        self.store = store

    def generate(
        self,
        coordinated: CoordinatedResponse,
        parsed: ParsedIntent,
        conversation: Conversation,
        suggestions: list[str],
    ) -> AskResult:
        citations = self.extract_citations(coordinated)
        return AskResult(
            answer=self.format_answer_with_citations(coordinated.merged_answer, citations),
            citations=citations,
            follow_up_suggestions=suggestions,
            related_entities=self.related_entities(parsed, conversation),
            confidence=coordinated.confidence,
            conversation_id=conversation.id,
        )

    @staticmethod
    def extract_citations(coordinated: CoordinatedResponse) -> list[Citation]:
        """One citation per contributing record, deduplicated by source and title."""
        responses = [coordinated.primary_response, *coordinated.additional_responses]
        citations: list[Citation] = []
        seen: set[tuple[str, str]] = set()
        for response in responses:
            for record in response.records:
                citation = _citation_from_record(record, fallback_source=response.agent_name)
                key = (citation.source, citation.title)
                if key in seen:
                    continue
                seen.add(key)
                citations.append(citation)
        return citations

    @staticmethod
    def format_answer_with_citations(answer: str, citations: list[Citation]) -> str:
        if not citations:
            return answer
        lines = [answer, "", "---", "", "**Sources:**", ""]
        for index, citation in enumerate(citations, start=1):
            entry = f"{index}. **{citation.title}** ({citation.source}"
            if citation.line_number:
                entry += f", line {citation.line_number}"
            entry += ")"
            if citation.url:
                entry += f" - {citation.url}"
            lines.append(entry)
        return "\n".join(lines)

    def related_entities(self, parsed: ParsedIntent, conversation: Conversation) -> list[Entity]:
        """This turn's entities followed by recent conversation entities."""
        related: list[Entity] = []
        seen: set[str] = set()
        recent = self.store.recent_entities(conversation, limit=RELATED_ENTITY_LIMIT)
        for entity in [*parsed.entities, *recent]:
            key = entity.name.lower()
            if key in seen:
                continue
            seen.add(key)
            related.append(entity)
        return related


def _citation_from_record(record: dict[str, Any], fallback_source: str) -> Citation:
    metadata = record.get("metadata") or {}
    line_number = metadata.get("line_number")
    return Citation(
        source=str(record.get("source") or fallback_source),
        title=str(record.get("title") or record.get("id") or fallback_source),
        type=CITATION_TYPES.get(str(record.get("record_type")), "document"),
        line_number=int(line_number) if line_number is not None else None,
        url=metadata.get("url"),
    )


def strip_markdown(text: str) -> str:
    text = re.sub(r"\*\*(.*?)\*\*", r"\1", text)
    text = re.sub(r"\*(.*?)\*", r"\1", text)
    text = re.sub(r"`(.*?)`", r"\1", text)
    text = re.sub(r"#{1,6}\s", "", text)
    return re.sub(r"\[(.*?)\]\(.*?\)", r"\1", text)


def format_for_output(result: AskResult, output: OutputFormat = "markdown") -> str:
    """Render an AskResult for a terminal, a plain-text sink, or JSON."""
    if output == "json":
        return json.dumps(result.model_dump(mode="json"), indent=2)

    suggestions = result.follow_up_suggestions
    if output == "plain":
        text = strip_markdown(result.answer)
        if suggestions:
            text += "\n\nRelated questions:\n"
            text += "\n".join(f"{i}. {s}" for i, s in enumerate(suggestions, start=1))
        return text

    text = result.answer
    if suggestions:
        text += "\n\n**You might also ask:**\n"
        text += "\n".join(f"- {s}" for s in suggestions)
    return text
