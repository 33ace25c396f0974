"""Routing, fan-out and response coordination tests."""

from __future__ import annotations

import asyncio

import pytest

from conversation.conversation_store import ConversationStore
from conversation.errors import AgentQueryError
from conversation.types import AgentResponse, AgentRoute, Intent
from knowledge.knowledge_store import InMemoryKnowledgeStore
from knowledge.responder import GENERAL_ROUTE_ID, BaseResponder, KnowledgeStoreResponder
from routing.agent_router import APOLOGY_ANSWER, AgentRouter
from routing.fanout import fan_out


class FailingResponder(BaseResponder):
    async def query(self, route: AgentRoute, intent: Intent) -> AgentResponse:
        raise AgentQueryError(f"{route.agent_id} is down")


class SlowResponder(BaseResponder):
    def __init__(self, slow_ids: set[str]) -> None:
        self.slow_ids = slow_ids

    async def query(self, route: AgentRoute, intent: Intent) -> AgentResponse:
        if route.agent_id in self.slow_ids:
            await asyncio.sleep(1)
        return AgentResponse(
            agent_id=route.agent_id,
            agent_name=route.agent_name,
            response=f"answer from {route.agent_name}",
            confidence=route.confidence,
        )


def build_router(
    knowledge: InMemoryKnowledgeStore,
    store: ConversationStore,
    responder: BaseResponder | None = None,
    **config,
) -> AgentRouter:
    return AgentRouter(
        knowledge_store=knowledge,
        store=store,
        responder=responder or KnowledgeStoreResponder(knowledge),
        config=config,
    )


def test_dimension_routes_only_match_dimension(knowledge: InMemoryKnowledgeStore, store: ConversationStore) -> None:
    conversation = store.create()
    routes = build_router(knowledge, store).route_query(
        Intent(type="agent", question="What agents are in 4D?", filters={"dimension": "4D"}),
        conversation.id,
    )
    assert routes
    assert all(route.dimension == "4D" for route in routes)
    assert [route.agent_name for route in routes] == ["4D-Network-Agent"]
    assert routes[0].confidence == pytest.approx(0.8)


def test_direct_and_partial_entity_matches(knowledge: InMemoryKnowledgeStore, store: ConversationStore) -> None:
    conversation = store.create()
    router = build_router(knowledge, store)

    direct = router.route_query(Intent(type="agent", entity="4D-Network-Agent"), conversation.id)
    assert [(r.agent_id, r.confidence) for r in direct] == [("agent-4d-network", 0.9)]

    partial = router.route_query(Intent(type="agent", entity="Consensus"), conversation.id)
    assert [(r.agent_id, r.confidence) for r in partial] == [("agent-5d-consensus", 0.75)]

    prefix = router.route_query(Intent(type="agent", entity="4D-Network"), conversation.id)
    assert prefix[0].agent_id == "agent-4d-network"


def test_function_intents_reach_evaluation_agents(knowledge: InMemoryKnowledgeStore, store: ConversationStore) -> None:
    conversation = store.create()
    routes = build_router(knowledge, store).route_query(
        Intent(type="function", entity="r5rs:church-add", filters={"name": "r5rs:church-add"}),
        conversation.id,
    )
    ids = [route.agent_id for route in routes]
    assert ids[0] == GENERAL_ROUTE_ID
    assert "agent-0d-topology" in ids
    assert "agent-4d-network" not in ids


def test_rule_context_routes_to_matching_agents(knowledge: InMemoryKnowledgeStore, store: ConversationStore) -> None:
    conversation = store.create()
    routes = build_router(knowledge, store).route_query(
        Intent(type="rule", filters={"context": "network"}), conversation.id
    )
    assert "agent-4d-network" in {route.agent_id for route in routes}


def test_fallback_route_and_dedupe(knowledge: InMemoryKnowledgeStore, store: ConversationStore) -> None:
    conversation = store.create()
    router = build_router(knowledge, store)

    fallback = router.route_query(Intent(type="unknown", question="asdf"), conversation.id)
    assert [(r.agent_id, r.confidence) for r in fallback] == [(GENERAL_ROUTE_ID, 0.3)]

    merged = router.route_intents(
        [
            Intent(type="agent", entity="4D-Network-Agent"),
            Intent(type="agent", filters={"dimension": "4D"}),
        ],
        conversation.id,
    )
    assert [(r.agent_id, r.confidence) for r in merged] == [("agent-4d-network", 0.9)]


@pytest.mark.asyncio
async def test_all_routes_failing_returns_zero_confidence(
    knowledge: InMemoryKnowledgeStore, store: ConversationStore
) -> None:
    conversation = store.create()
    router = build_router(knowledge, store, responder=FailingResponder())
    routes = [
        AgentRoute(agent_id="agent-4d-network", agent_name="4D-Network-Agent", confidence=0.9),
        AgentRoute(agent_id="agent-5d-consensus", agent_name="5D-Consensus-Agent", confidence=0.8),
    ]

    coordinated = await router.coordinate_response(routes, Intent(type="agent"), conversation.id)

    assert coordinated.confidence == 0.0
    assert coordinated.agents_used == []
    assert coordinated.merged_answer == APOLOGY_ANSWER


@pytest.mark.asyncio
async def test_slow_route_is_dropped_and_merge_is_penalised(
    knowledge: InMemoryKnowledgeStore, store: ConversationStore
) -> None:
    conversation = store.create()
    router = build_router(
        knowledge,
        store,
        responder=SlowResponder({"agent-slow"}),
        route_timeout_seconds=0.05,
    )
    routes = [
        AgentRoute(agent_id="agent-4d-network", agent_name="4D-Network-Agent", confidence=0.8),
        AgentRoute(agent_id="agent-slow", agent_name="Slow-Agent", confidence=0.9),
        AgentRoute(agent_id="agent-5d-consensus", agent_name="5D-Consensus-Agent", confidence=0.6),
    ]

    coordinated = await router.coordinate_response(routes, Intent(type="agent"), conversation.id)

    assert coordinated.agents_used == ["agent-4d-network", "agent-5d-consensus"]
    assert coordinated.primary_response.agent_id == "agent-4d-network"
    assert "**From 4D-Network-Agent:**" in coordinated.merged_answer
    assert "**From 5D-Consensus-Agent:**" in coordinated.merged_answer
    assert coordinated.confidence == pytest.approx(0.8 * 0.9)


@pytest.mark.asyncio
async def test_single_response_keeps_its_confidence(
    knowledge: InMemoryKnowledgeStore, store: ConversationStore
) -> None:
    conversation = store.create()
    router = build_router(knowledge, store)
    intent = Intent(type="agent", entity="4D-Network-Agent", filters={"queryType": "dependencies"})

    coordinated = await router.coordinate_response(router.route_query(intent, conversation.id), intent, conversation.id)

    assert coordinated.confidence == pytest.approx(0.9)
    assert coordinated.agents_used == ["agent-4d-network"]
    assert "3D-Algebraic-Agent" in coordinated.merged_answer
    assert coordinated.primary_response.records[0]["record_type"] == "agent"


@pytest.mark.asyncio
async def test_fan_out_keeps_order_and_isolates_failures() -> None:
    async def ok(value: int) -> int:
        await asyncio.sleep(0)
        return value

    async def boom() -> int:
        raise RuntimeError("boom")

    async def hang() -> int:
        await asyncio.sleep(1)
        return -1

    results = await fan_out(
        [("a", lambda: ok(1)), ("b", boom), ("c", hang), ("d", lambda: ok(4))],
        timeout=0.05,
    )

    assert [r.key for r in results] == ["a", "b", "c", "d"]
    assert [r.ok for r in results] == [True, False, False, True]
    assert results[0].value == 1
    assert isinstance(results[1].error, RuntimeError)
    assert results[2].timed_out
    assert await fan_out([], timeout=1) == []
