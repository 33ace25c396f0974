"""Turns a routed intent into an agent response using the knowledge store."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any

from conversation.errors import AgentQueryError
from conversation.types.intent import Intent
from conversation.types.routing import AgentResponse, AgentRoute
from knowledge.knowledge_store import BaseKnowledgeStore
from knowledge.records import AgentDefinition

GENERAL_ROUTE_ID = "query-interface-agent"
GENERAL_ROUTE_NAME = "Query-Interface-Agent"

_STOPWORDS = frozenset(
    {
        "what", "which", "about", "tell", "show", "with", "does", "that", "this",
        "there", "their", "them", "have", "from", "into", "more", "some", "are",
        "the", "and", "for", "how", "can", "you", "me", "is", "of", "in", "to", "a",
    }
)


class BaseResponder(ABC):
    """Answers one route for an intent."""

    @abstractmethod
    async def query(self, route: AgentRoute, intent: Intent) -> AgentResponse:
        """Return the route's answer or raise AgentQueryError."""


class KnowledgeStoreResponder(BaseResponder):
    """Builds markdown answers from knowledge store records."""

    def __init__(self, knowledge_store: BaseKnowledgeStore) -> None:
        self.knowledge_store = knowledge_store

    async def query(self, route: AgentRoute, intent: Intent) -> AgentResponse:
        if route.agent_id == GENERAL_ROUTE_ID:
            return self._general_query(route, intent)
        agent = self.knowledge_store.get_agent(route.agent_id)
        if agent is None:
            candidates = self.knowledge_store.query_agents(route.dimension, route.agent_name)
            agent = next(
                (a for a in candidates if a.name.lower() == route.agent_name.lower()),
                candidates[0] if candidates else None,
            )
        if agent is None:
            raise AgentQueryError(f"Agent '{route.agent_name}' is not in the knowledge base")
        return AgentResponse(
            agent_id=route.agent_id,
            agent_name=agent.name,
            response=self._describe_agent(agent, intent),
            confidence=route.confidence,
            records=[agent.citation_payload("agent")],
        )

    @staticmethod
    def _describe_agent(agent: AgentDefinition, intent: Intent) -> str:
        query_type = str(intent.filters.get("queryType") or "")
        question = intent.question.lower()
        lines = [f"**{agent.name}**", "", f"**Purpose:** {agent.purpose or 'Not documented'}", ""]
        if agent.dimension:
            lines += [f"**Dimension:** {agent.dimension}", ""]

        if query_type == "dependencies" or "dependenc" in question:
            if agent.dependencies:
                lines += ["**Dependencies:**", *[f"- {dep}" for dep in agent.dependencies], ""]
            else:
                lines += ["**Dependencies:** None", ""]
        elif query_type == "capabilities" or "capabilit" in question:
            if agent.capabilities:
                lines += ["**Capabilities:**", *[f"- {cap}" for cap in agent.capabilities], ""]
            else:
                lines += ["**Capabilities:** None specified", ""]
        elif query_type == "requirements" and agent.requirements:
            lines += ["**Requirements:**", *[f"- {req}" for req in agent.requirements], ""]
        else:
            if agent.capabilities:
                lines += ["**Capabilities:**", *[f"- {cap}" for cap in agent.capabilities], ""]
            if agent.dependencies:
                lines += [f"**Dependencies:** {', '.join(agent.dependencies)}", ""]
            if agent.requirements:
                lines += [f"**Requirements:** {', '.join(agent.requirements)}", ""]

        if agent.source:
            lines.append(f"*Source: {agent.source}*")
        return "\n".join(lines).strip()

    def _general_query(self, route: AgentRoute, intent: Intent) -> AgentResponse:
        records: list[dict[str, Any]] = []
        lines: list[str] = []
        filters = intent.filters

        if intent.type == "agent":
            agents = self.knowledge_store.query_agents(filters.get("dimension"), intent.entity)
            for agent in agents:
                label = f"{agent.name} ({agent.dimension})" if agent.dimension else agent.name
                lines.append(f"- **{label}**: {agent.purpose}")
                records.append(agent.citation_payload("agent"))
        elif intent.type == "function":
            for func in self.knowledge_store.query_functions(intent.entity):
                signature = f" `{func.signature}`" if func.signature else ""
                lines.append(f"- **{func.name}**{signature}: {func.description}")
                records.append(func.citation_payload("function"))
        elif intent.type == "example":
            target = filters.get("function") or intent.entity
            for example in self.knowledge_store.query_examples(target):
                lines.append(f"- **{example.title}**: {example.description}")
                if example.code:
                    lines.append(f"  `{example.code}`")
                records.append(example.citation_payload("example"))
        elif intent.type == "rule":
            rules = self.knowledge_store.query_rules(filters.get("keyword"), filters.get("context"))
            if not rules and filters.get("related"):
                rules = self.knowledge_store.query_rules()
            for rule in rules:
                keyword = f"**{rule.rfc2119_keyword}** " if rule.rfc2119_keyword else ""
                lines.append(f"- {keyword}{rule.text}")
                records.append(rule.citation_payload("rule"))
        else:
            seen: set[str] = set()
            for keyword in self._keywords(intent):
                for fact in self.knowledge_store.query_facts(keyword):
                    if fact.id in seen:
                        continue
                    seen.add(fact.id)
                    lines.append(f"- {fact.statement}")
                    records.append(fact.citation_payload("fact"))

        if not lines:
            return AgentResponse(
                agent_id=route.agent_id,
                agent_name=route.agent_name,
                response=f"I couldn't find anything in the knowledge base for: {intent.question}",
                confidence=min(route.confidence, 0.2),
            )
        return AgentResponse(
            agent_id=route.agent_id,
            agent_name=route.agent_name,
            response="\n".join(lines),
            confidence=route.confidence,
            records=records,
        )

    @staticmethod
    def _keywords(intent: Intent) -> list[str]:
        if intent.entity:
            return [intent.entity]
        tokens = re.findall(r"[\w:-]+", intent.question.lower())
        return [t for t in tokens if len(t) > 2 and t not in _STOPWORDS]
