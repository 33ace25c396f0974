"""Top-level application orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

from conversation.conversation_store import ConversationStore
from conversation.reference_resolver import ReferenceResolver
from conversation.stores.sql_store import SnapshotStore
from core.audit_logger import AuditLogger
from core.conversation_interface import ConversationInterface
from core.event_bus import EventBus
from core.policy_runtime import load_effective_config, resolve_paths
from dialogue.dialogue_manager import DialogueManager
from dialogue.response_generator import ResponseGenerator
from intent.classifier import BaseIntentClassifier, KeywordIntentClassifier
from intent.intent_parser import IntentParser
from knowledge.knowledge_store import BaseKnowledgeStore, InMemoryKnowledgeStore
from knowledge.responder import BaseResponder, KnowledgeStoreResponder
from routing.agent_router import AgentRouter


@dataclass
class RuntimeBundle:
    """Holds initialized runtime components."""

    config: dict[str, Any]
    paths: dict[str, Path]
    event_bus: EventBus
    store: ConversationStore
    knowledge: InMemoryKnowledgeStore
    interface: ConversationInterface
    snapshots: SnapshotStore
    audit: AuditLogger


def build_interface(
    knowledge: BaseKnowledgeStore,
    config: dict[str, Any] | None = None,
    event_bus: EventBus | None = None,
    classifier: BaseIntentClassifier | None = None,
    responder: BaseResponder | None = None,
) -> ConversationInterface:
    """Compose one engine around a knowledge store; every component shares one store."""
    config = config or {}
    conversation_cfg = config.get("conversation", {})
    store = ConversationStore(
        max_turns=int(conversation_cfg.get("max_turns", 100)),
        entity_ttl=timedelta(minutes=float(conversation_cfg.get("entity_ttl_minutes", 30))),
        default_user_id=str(conversation_cfg.get("default_user_id", "default")),
    )
    bus = event_bus or EventBus()
    parser = IntentParser(
        store=store,
        resolver=ReferenceResolver(store),
        classifier=classifier or KeywordIntentClassifier(knowledge),
    )
    router = AgentRouter(
        knowledge_store=knowledge,
        store=store,
        responder=responder or KnowledgeStoreResponder(knowledge),
        config=config.get("routing", {}),
    )
    dialogue = DialogueManager(
        store=store,
        parser=parser,
        router=router,
        generator=ResponseGenerator(store),
        event_bus=bus,
        max_suggestions=int(config.get("dialogue", {}).get("max_suggestions", 5)),
    )
    return ConversationInterface(store=store, dialogue=dialogue, event_bus=bus)


class Orchestrator:
    """Creates and wires runtime components for CLI use."""

    def __init__(self, root: Path | None = None, config_path: Path | None = None) -> None:
        default_root = Path(__file__).resolve().parents[1]
        self.root = (root or default_root).resolve()
        self.config_path = config_path

    def build(self) -> RuntimeBundle:
        config = load_effective_config(self.root, self.config_path)
        paths = resolve_paths(self.root, config)

        knowledge = InMemoryKnowledgeStore.from_path(paths["knowledge_base"])
        event_bus = EventBus()
        audit = AuditLogger(paths["audit_log_path"])
        audit.attach(event_bus)

        interface = build_interface(knowledge, config=config, event_bus=event_bus)

        snapshots = SnapshotStore(paths["snapshot_db_path"])
        snapshots.create_all()

        return RuntimeBundle(
            config=config,
            paths=paths,
            event_bus=event_bus,
            store=interface.store,
            knowledge=knowledge,
            interface=interface,
            snapshots=snapshots,
            audit=audit,
        )
