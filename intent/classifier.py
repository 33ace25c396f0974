"""Base intent classification: keyword and pattern matching.

The classifier is the pluggable first pass of intent parsing. It looks only
at the (already dereferenced) question text plus the names known to the
knowledge store, and never at conversation state.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any

from conversation.types.intent import Intent, IntentType
from knowledge.knowledge_store import BaseKnowledgeStore

# A dimension tag such as "4D", but not the prefix of "4D-Network-Agent".
DIMENSION_PATTERN = re.compile(r"\b(\d+)D\b(?!-)", re.IGNORECASE)
AGENT_NAME_PATTERN = re.compile(r"\b((?:\d+D-)?[A-Za-z][\w-]*-Agent)\b", re.IGNORECASE)
FUNCTION_NAME_PATTERN = re.compile(r"(r5rs:[\w-]+|\b[A-Za-z_][\w-]*\(\))", re.IGNORECASE)

QUERY_TYPE_PATTERN = re.compile(
    r"\b(dependencies|capabilities|requirements|examples|parameters)\b", re.IGNORECASE
)
RFC2119_PATTERN = re.compile(r"\b(MUST NOT|MUST|SHOULD NOT|SHOULD|MAY|SHALL)\b")
RULE_CONTEXT_PATTERN = re.compile(r"\bappl(?:y|ies)\s+to\s+([\w-]+)", re.IGNORECASE)

# Checked in order; the first keyword group that matches wins.
_KEYWORD_TYPES: list[tuple[IntentType, re.Pattern[str]]] = [
    ("example", re.compile(r"\b(examples?|sample|demonstrate)\b", re.IGNORECASE)),
    ("rule", re.compile(r"\b(rules?|must|should|shall|requirements?|policy)\b", re.IGNORECASE)),
    ("agent", re.compile(r"\b(agents?)\b", re.IGNORECASE)),
    ("function", re.compile(r"\b(functions?|how do i use|procedure|call)\b", re.IGNORECASE)),
    ("fact", re.compile(r"\b(what is|facts?|define|definition|explain|meaning of)\b", re.IGNORECASE)),
]


def normalize_dimension(raw: str) -> str:
    return f"{int(raw)}D"


class BaseIntentClassifier(ABC):
    """Abstract base classifier interface."""

    @abstractmethod
    async def classify(self, question: str) -> Intent:
        """Return the base intent for a dereferenced question."""


class KeywordIntentClassifier(BaseIntentClassifier):
    """Knowledge-store-aware keyword and pattern classifier."""

    def __init__(self, knowledge_store: BaseKnowledgeStore | None = None) -> None:
        self.knowledge_store = knowledge_store

    async def classify(self, question: str) -> Intent:
        text = question.strip()
        filters: dict[str, Any] = {}

        dimension = DIMENSION_PATTERN.search(text)
        if dimension:
            filters["dimension"] = normalize_dimension(dimension.group(1))

        agent_name = self._find_agent_name(text)
        function_name = self._find_function_name(text)
        intent_type: IntentType = "unknown"
        entity: str | None = None

        if agent_name:
            intent_type, entity = "agent", agent_name
        elif function_name:
            intent_type, entity = "function", function_name

        keyword_type = self._keyword_type(text)
        if intent_type == "function" and keyword_type == "example":
            intent_type = "example"
            filters["function"] = entity
        elif intent_type == "unknown" and keyword_type is not None:
            intent_type = keyword_type

        query_type = QUERY_TYPE_PATTERN.search(text)
        if query_type and intent_type in ("agent", "function"):
            filters["queryType"] = query_type.group(1).lower()

        if intent_type == "rule":
            rfc_keyword = RFC2119_PATTERN.search(text)
            if rfc_keyword:
                filters["keyword"] = rfc_keyword.group(1)
            context = RULE_CONTEXT_PATTERN.search(text)
            if context:
                filters["context"] = context.group(1).lower().rstrip("s")

        if entity and intent_type in ("agent", "function"):
            filters["name"] = entity

        return Intent(type=intent_type, entity=entity, question=text, filters=filters)

    def _find_agent_name(self, text: str) -> str | None:
        lowered = text.lower()
        if self.knowledge_store is not None:
            known = sorted(
                (a.name for a in self.knowledge_store.query_agents()),
                key=len,
                reverse=True,
            )
            for name in known:
                if re.search(rf"(?<![\w-]){re.escape(name.lower())}(?![\w-])", lowered):
                    return name
        match = AGENT_NAME_PATTERN.search(text)
        if match:
            return self._canonical_agent(match.group(1))
        return None

    def _canonical_agent(self, name: str) -> str:
        if self.knowledge_store is None:
            return name
        for agent in self.knowledge_store.query_agents():
            if agent.name.lower() == name.lower():
                return agent.name
        return name

    def _find_function_name(self, text: str) -> str | None:
        match = FUNCTION_NAME_PATTERN.search(text)
        if match:
            return match.group(1)
        if self.knowledge_store is not None:
            lowered = text.lower()
            for func in self.knowledge_store.query_functions():
                if re.search(rf"(?<![\w-]){re.escape(func.name.lower())}(?![\w-])", lowered):
                    return func.name
        return None

    @staticmethod
    def _keyword_type(text: str) -> IntentType | None:
        for intent_type, pattern in _KEYWORD_TYPES:
            if pattern.search(text):
                return intent_type
        return None
