"""Anaphora resolution by textual substitution."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from conversation.conversation_store import ConversationStore
from conversation.types.entity import Entity
from conversation.types.turn import Conversation

logger = logging.getLogger("nlq.resolver")

_REFERENCE_PATTERN = re.compile(
    r"\b(?:"
    r"(?P<demonstrative>(?:that|this|the)\s+(?:agent|function|rule|fact|concept|dimension)"
    r"|those\s+(?:agents|functions|rules|facts|concepts|dimensions))"
    r"|(?P<possessive>its)"
    r"|(?P<pronoun>it|them)"
    r")\b",
    re.IGNORECASE,
)


@dataclass
class ResolutionResult:
    """Outcome of resolving references in one question."""

    text: str
    resolved: list[tuple[str, Entity]] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.resolved)


class ReferenceResolver:
    """Replaces pronouns and demonstratives with recent entity names."""

    def __init__(self, store: ConversationStore) -> None:
        self.store = store

    def resolve(self, question: str, conversation: Conversation) -> ResolutionResult:
        """Return the fully dereferenced question."""
        result = ResolutionResult(text=question)
        pieces: list[str] = []
        cursor = 0
        for match in _REFERENCE_PATTERN.finditer(question):
            span = match.group(0)
            entity = self.store.resolve_reference(span, conversation)
            pieces.append(question[cursor : match.start()])
            cursor = match.end()
            if entity is None:
                result.unresolved.append(span)
                pieces.append(span)
                continue
            replacement = f"{entity.name}'s" if match.group("possessive") else entity.name
            result.resolved.append((span, entity))
            pieces.append(replacement)
        pieces.append(question[cursor:])
        result.text = "".join(pieces)

        if result.resolved:
            logger.debug(
                "Resolved %s in conversation %s",
                ", ".join(f"{span!r}->{entity.name}" for span, entity in result.resolved),
                conversation.id,
            )
        return result
