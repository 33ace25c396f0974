"""Shared fixtures: a small knowledge base and a wired engine."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conversation.conversation_store import ConversationStore
from core.conversation_interface import ConversationInterface
from core.orchestrator import build_interface
from knowledge.knowledge_store import InMemoryKnowledgeStore

SAMPLE_RECORDS = [
    {
        "type": "agent",
        "id": "agent-0d-topology",
        "name": "0D-Topology-Agent",
        "dimension": "0D",
        "purpose": "Maintains topology and identity processes",
        "capabilities": ["Topology validation", "R5RS evaluation of Church numerals"],
        "source": "AGENTS.md",
    },
    {
        "type": "agent",
        "id": "agent-3d-algebraic",
        "name": "3D-Algebraic-Agent",
        "dimension": "3D",
        "purpose": "Performs Church algebra",
        "capabilities": ["Church algebra"],
        "source": "AGENTS.md",
    },
    {
        "type": "agent",
        "id": "agent-4d-network",
        "name": "4D-Network-Agent",
        "dimension": "4D",
        "purpose": "Manages network topology and peer connectivity",
        "capabilities": ["Network topology management", "Peer discovery"],
        "dependencies": ["3D-Algebraic-Agent"],
        "source": "AGENTS.md",
        "metadata": {"line_number": 117},
    },
    {
        "type": "agent",
        "id": "agent-5d-consensus",
        "name": "5D-Consensus-Agent",
        "dimension": "5D",
        "purpose": "Coordinates distributed consensus",
        "capabilities": ["Distributed consensus"],
        "dependencies": ["4D-Network-Agent"],
        "source": "AGENTS.md",
    },
    {
        "type": "function",
        "id": "fn-church-add",
        "name": "r5rs:church-add",
        "signature": "(church-add m n)",
        "description": "Adds two Church numerals",
        "source": "grok_files/02-Grok.md",
    },
    {
        "type": "rule",
        "id": "rule-topology",
        "text": "Agents MUST validate topology before propagating changes",
        "rfc2119_keyword": "MUST",
        "context": "agent topology",
        "source": "AGENTS.md",
    },
    {
        "type": "rule",
        "id": "rule-cache",
        "text": "Network agents SHOULD cache peer routes",
        "rfc2119_keyword": "SHOULD",
        "context": "network",
        "source": "AGENTS.md",
    },
    {
        "type": "fact",
        "id": "fact-church",
        "statement": "Church encoding represents natural numbers as higher-order functions",
        "keywords": ["church", "encoding"],
        "source": "docs/church-encoding.md",
    },
    {
        "type": "example",
        "id": "ex-church-add",
        "function": "r5rs:church-add",
        "code": "(church-add 2 3)",
        "description": "Adding two and three",
        "source": "examples/church.scm",
    },
]


def sample_lines() -> list[str]:
    return [json.dumps(record) for record in SAMPLE_RECORDS]


def write_knowledge_base(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(sample_lines()) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def knowledge() -> InMemoryKnowledgeStore:
    store = InMemoryKnowledgeStore()
    store.load_jsonl(sample_lines())
    return store


@pytest.fixture
def store() -> ConversationStore:
    return ConversationStore()


@pytest.fixture
def interface(knowledge: InMemoryKnowledgeStore) -> ConversationInterface:
    return build_interface(knowledge)


@pytest.fixture
def kb_root(tmp_path: Path) -> Path:
    """A runtime root holding the sample knowledge base and a quiet config."""
    write_knowledge_base(tmp_path / "config" / "knowledge_base.jsonl")
    (tmp_path / "config" / "default.yaml").write_text("logging:\n  level: WARNING\n", encoding="utf-8")
    return tmp_path
