"""Intent-to-agent routing and multi-agent response coordination."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any

from conversation.conversation_store import ConversationStore
from conversation.types.intent import Intent
from conversation.types.routing import AgentResponse, AgentRoute, CoordinatedResponse
from knowledge.knowledge_store import BaseKnowledgeStore
from knowledge.records import AgentDefinition
from knowledge.responder import GENERAL_ROUTE_ID, GENERAL_ROUTE_NAME, BaseResponder
from routing.fanout import fan_out

logger = logging.getLogger("nlq.router")

FALLBACK_AGENT_ID = "fallback"
APOLOGY_ANSWER = (
    "I'm sorry, I couldn't get an answer from any knowledge source right now. "
    "Please try rephrasing the question or ask again shortly."
)
EVALUATION_CAPABILITIES = ("evaluation", "eval", "repl", "r5rs")

DEFAULT_ROUTING_CONFIG: dict[str, Any] = {
    "route_timeout_seconds": 5.0,
    "merge_penalty": 0.9,
    "fallback_confidence": 0.3,
    "direct_match_confidence": 0.9,
    "partial_match_confidence": 0.75,
    "dimension_confidence": 0.8,
    "capability_confidence": 0.7,
    "knowledge_confidence": 0.75,
    "context_confidence": 0.6,
}


class AgentRouter:
    """Maps intents to candidate agents and merges their answers."""

    def __init__(
        self,
        knowledge_store: BaseKnowledgeStore,
        store: ConversationStore,
        responder: BaseResponder,
        config: dict[str, Any] | None = None,
    ) -> None:
        self.knowledge_store = knowledge_store
        self.store = store
        self.responder = responder
        self.config = {**DEFAULT_ROUTING_CONFIG, **(config or {})}

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def route_query(self, intent: Intent, conversation_id: str) -> list[AgentRoute]:
        """Candidate routes for one intent, highest confidence first."""
        agents = self.knowledge_store.query_agents()
        routes: list[AgentRoute] = []
        routes += self._entity_routes(intent, agents, conversation_id)
        routes += self._dimension_routes(intent, agents)
        routes += self._capability_routes(intent, agents)
        routes += self._context_routes(intent, agents)
        routes += self._knowledge_routes(intent)

        if not routes:
            routes.append(
                AgentRoute(
                    agent_id=GENERAL_ROUTE_ID,
                    agent_name=GENERAL_ROUTE_NAME,
                    confidence=float(self.config["fallback_confidence"]),
                    reason="Fallback: general query",
                )
            )
        deduped = self.dedupe(routes)
        logger.debug(
            "Routed %s/%s to %s",
            intent.type,
            intent.entity,
            ", ".join(f"{r.agent_id}({r.confidence:.2f})" for r in deduped),
        )
        return deduped

    def route_intents(self, intents: Iterable[Intent], conversation_id: str) -> list[AgentRoute]:
        """Union of routes over an expanded intent list."""
        routes: list[AgentRoute] = []
        for intent in intents:
            routes += self.route_query(intent, conversation_id)
        return self.dedupe(routes)

    @staticmethod
    def dedupe(routes: Iterable[AgentRoute]) -> list[AgentRoute]:
        """Keep the highest-confidence route per agent id."""
        best: dict[str, AgentRoute] = {}
        for route in routes:
            current = best.get(route.agent_id)
            if current is None or route.confidence > current.confidence:
                best[route.agent_id] = route
        return sorted(best.values(), key=lambda r: r.confidence, reverse=True)

    def _entity_routes(
        self, intent: Intent, agents: list[AgentDefinition], conversation_id: str
    ) -> list[AgentRoute]:
        if not intent.entity:
            return []
        wanted = intent.entity.lower()

        exact = next((a for a in agents if a.name.lower() == wanted), None)
        if exact is not None:
            return [self._route(exact, "direct_match_confidence", f"Direct match for agent: {exact.name}")]

        partial = None
        if len(wanted) >= 3:
            partial = next(
                (
                    a
                    for a in agents
                    if wanted in a.name.lower()
                    or a.name.lower().replace(" ", "-") in wanted
                ),
                None,
            )
        if partial is None:
            prefix = re.match(r"^(\d+d)[-_]?(.*)$", wanted)
            if prefix and prefix.group(2):
                dimension = prefix.group(1).upper()
                partial = next(
                    (
                        a
                        for a in agents
                        if (a.dimension or "").upper() == dimension
                        and prefix.group(2) in a.name.lower()
                    ),
                    None,
                )
        if partial is not None:
            return [self._route(partial, "partial_match_confidence", f"Partial match for agent: {partial.name}")]

        conversation = self.store.get(conversation_id)
        if conversation is not None:
            assigned = conversation.agent_assignments.get(intent.entity)
            agent = next((a for a in agents if a.id == assigned), None) if assigned else None
            if agent is not None:
                return [self._route(agent, "partial_match_confidence", f"Previously routed: {agent.name}")]
        return []

    def _dimension_routes(self, intent: Intent, agents: list[AgentDefinition]) -> list[AgentRoute]:
        dimension = intent.filters.get("dimension")
        if not dimension:
            return []
        return [
            self._route(agent, "dimension_confidence", f"Dimension match: {dimension}")
            for agent in agents
            if (agent.dimension or "").upper() == str(dimension).upper()
        ]

    def _capability_routes(self, intent: Intent, agents: list[AgentDefinition]) -> list[AgentRoute]:
        if intent.type != "function":
            return []
        routes = []
        for agent in agents:
            caps = " ".join(agent.capabilities).lower()
            if any(tag in caps for tag in EVALUATION_CAPABILITIES):
                routes.append(
                    self._route(agent, "capability_confidence", f"Evaluation-capable agent: {agent.name}")
                )
        return routes

    def _context_routes(self, intent: Intent, agents: list[AgentDefinition]) -> list[AgentRoute]:
        routes = []
        if intent.type == "rule" and intent.filters.get("context"):
            context = str(intent.filters["context"]).lower()
            for agent in agents:
                text = f"{agent.purpose} {' '.join(agent.capabilities)}".lower()
                if context in text:
                    routes.append(
                        self._route(agent, "context_confidence", f"Rule context matches agent: {agent.name}")
                    )
        elif intent.type == "fact" and intent.entity:
            entity = intent.entity.lower()
            for agent in agents:
                dimension = (agent.dimension or "").lower()
                if (dimension and dimension in entity) or entity in agent.name.lower():
                    routes.append(
                        self._route(agent, "context_confidence", f"Fact entity matches agent: {agent.name}")
                    )
        return routes

    def _knowledge_routes(self, intent: Intent) -> list[AgentRoute]:
        if intent.type not in ("function", "example", "rule", "fact"):
            return []
        return [
            AgentRoute(
                agent_id=GENERAL_ROUTE_ID,
                agent_name=GENERAL_ROUTE_NAME,
                confidence=float(self.config["knowledge_confidence"]),
                reason=f"Knowledge base lookup for {intent.type} records",
            )
        ]

    def _route(self, agent: AgentDefinition, confidence_key: str, reason: str) -> AgentRoute:
        return AgentRoute(
            agent_id=agent.id,
            agent_name=agent.name,
            dimension=agent.dimension,
            confidence=float(self.config[confidence_key]),
            reason=reason,
        )

    # ------------------------------------------------------------------
    # Coordination
    # ------------------------------------------------------------------

    async def coordinate_response(
        self,
        routes: list[AgentRoute],
        intent: Intent,
        conversation_id: str,
    ) -> CoordinatedResponse:
        """Query every route concurrently and merge whatever answered in time."""
        timeout = float(self.config["route_timeout_seconds"])
        results = await fan_out(
            [(route.agent_id, lambda route=route: self.responder.query(route, intent)) for route in routes],
            timeout=timeout,
        )

        answered: list[tuple[AgentRoute, AgentResponse]] = []
        for route, result in zip(routes, results):
            if result.ok and result.value is not None:
                answered.append((route, result.value))
            elif result.timed_out:
                logger.warning("Route %s timed out for conversation %s", route.agent_id, conversation_id)
            else:
                logger.warning(
                    "Route %s failed for conversation %s: %s", route.agent_id, conversation_id, result.error
                )

        if not answered:
            logger.warning("All %d routes failed for conversation %s", len(routes), conversation_id)
            return self._fallback_response()

        answered.sort(key=lambda pair: pair[1].confidence, reverse=True)
        responses = [response for _, response in answered]
        primary = responses[0]

        if len(responses) == 1:
            merged = primary.response
        else:
            merged = "\n\n".join(f"**From {r.agent_name}:**\n{r.response}" for r in responses)

        best_route = max(route.confidence for route, _ in answered)
        confidence = min(max(r.confidence for r in responses), best_route)
        if len(responses) > 1:
            confidence *= float(self.config["merge_penalty"])

        return CoordinatedResponse(
            primary_response=primary,
            additional_responses=responses[1:],
            merged_answer=merged,
            routes_used=[route for route, _ in answered],
            agents_used=[route.agent_id for route, _ in answered],
            confidence=max(0.0, min(1.0, confidence)),
        )

    @staticmethod
    def _fallback_response() -> CoordinatedResponse:
        apology = AgentResponse(
            agent_id=FALLBACK_AGENT_ID,
            agent_name="Fallback",
            response=APOLOGY_ANSWER,
            confidence=0.0,
        )
        return CoordinatedResponse(
            primary_response=apology,
            merged_answer=APOLOGY_ANSWER,
            confidence=0.0,
        )
