"""Read-only knowledge store boundary and an in-memory implementation."""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

from pydantic import ValidationError

from knowledge.records import (
    AgentDefinition,
    ExampleDefinition,
    FactDefinition,
    FunctionDefinition,
    RuleDefinition,
)

logger = logging.getLogger("nlq.knowledge")


class BaseKnowledgeStore(ABC):
    """Lookup operations the conversation engine consumes."""

    @abstractmethod
    def query_agents(
        self, dimension: str | None = None, name: str | None = None
    ) -> list[AgentDefinition]:
        """Agents filtered by dimension tag and/or name fragment."""

    @abstractmethod
    def get_agent(self, agent_id: str) -> AgentDefinition | None:
        """Agent by identifier."""

    @abstractmethod
    def query_functions(self, name: str | None = None) -> list[FunctionDefinition]:
        """Functions whose name contains ``name``."""

    @abstractmethod
    def query_rules(
        self, keyword: str | None = None, text: str | None = None
    ) -> list[RuleDefinition]:
        """Rules filtered by RFC 2119 keyword and/or text fragment."""

    @abstractmethod
    def query_facts(self, keyword: str | None = None) -> list[FactDefinition]:
        """Facts mentioning ``keyword``."""

    @abstractmethod
    def query_examples(self, function: str | None = None) -> list[ExampleDefinition]:
        """Examples demonstrating ``function``."""


class InMemoryKnowledgeStore(BaseKnowledgeStore):
    """Knowledge store held in lists, loadable from JSON lines."""

    def __init__(self) -> None:
        self.agents: list[AgentDefinition] = []
        self.functions: list[FunctionDefinition] = []
        self.rules: list[RuleDefinition] = []
        self.facts: list[FactDefinition] = []
        self.examples: list[ExampleDefinition] = []

    def load_jsonl(self, lines: Iterable[str]) -> int:
        """Load records keyed by their ``type`` field. Returns count loaded."""
        loaded = 0
        for line_no, line in enumerate(lines, start=1):
            raw = line.strip()
            if not raw:
                continue
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid JSON on knowledge base line {line_no}: {exc}") from exc
            if not isinstance(payload, dict):
                raise ValueError(f"Knowledge base line {line_no} must be an object")
            record_type = payload.pop("type", None)
            try:
                if record_type == "agent":
                    self.agents.append(AgentDefinition.model_validate(payload))
                elif record_type == "function":
                    self.functions.append(FunctionDefinition.model_validate(payload))
                elif record_type == "rule":
                    self.rules.append(RuleDefinition.model_validate(payload))
                elif record_type == "fact":
                    self.facts.append(FactDefinition.model_validate(payload))
                elif record_type == "example":
                    self.examples.append(ExampleDefinition.model_validate(payload))
                else:
                    logger.warning("Skipping line %d with unknown record type %r", line_no, record_type)
                    continue
            except ValidationError as exc:
                raise ValueError(f"Invalid {record_type} record on line {line_no}: {exc}") from exc
            loaded += 1
        return loaded

    @classmethod
    def from_path(cls, path: Path) -> InMemoryKnowledgeStore:
        """Build a store from a JSONL file; a missing file yields an empty store."""
        store = cls()
        if not path.exists():
            logger.warning("Knowledge base not found: %s", path)
            return store
        with path.open("r", encoding="utf-8") as fh:
            count = store.load_jsonl(fh)
        logger.info("Loaded %d knowledge records from %s", count, path)
        return store

    def stats(self) -> dict[str, int]:
        return {
            "agents": len(self.agents),
            "functions": len(self.functions),
            "rules": len(self.rules),
            "facts": len(self.facts),
            "examples": len(self.examples),
        }

    def query_agents(
        self, dimension: str | None = None, name: str | None = None
    ) -> list[AgentDefinition]:
        agents = self.agents
        if dimension:
            agents = [a for a in agents if (a.dimension or "").upper() == dimension.upper()]
        if name:
            needle = name.lower()
            agents = [a for a in agents if needle in a.name.lower()]
        return list(agents)

    def get_agent(self, agent_id: str) -> AgentDefinition | None:
        return next((a for a in self.agents if a.id == agent_id), None)

    def query_functions(self, name: str | None = None) -> list[FunctionDefinition]:
        if not name:
            return list(self.functions)
        needle = _strip_call(name).lower()
        return [f for f in self.functions if needle in f.name.lower()]

    def query_rules(
        self, keyword: str | None = None, text: str | None = None
    ) -> list[RuleDefinition]:
        rules = self.rules
        if keyword:
            rules = [r for r in rules if r.rfc2119_keyword.upper() == keyword.upper()]
        if text:
            needle = text.lower()
            rules = [r for r in rules if needle in r.text.lower() or needle in r.context.lower()]
        return list(rules)

    def query_facts(self, keyword: str | None = None) -> list[FactDefinition]:
        if not keyword:
            return list(self.facts)
        needle = keyword.lower()
        return [
            f
            for f in self.facts
            if needle in f.statement.lower() or needle in (k.lower() for k in f.keywords)
        ]

    def query_examples(self, function: str | None = None) -> list[ExampleDefinition]:
        if not function:
            return list(self.examples)
        needle = _strip_call(function).lower()
        return [e for e in self.examples if needle in e.function.lower()]


def _strip_call(name: str) -> str:
    return re.sub(r"\(\)$", "", name.strip())
