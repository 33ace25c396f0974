"""Configuration loading and runtime path bootstrapping."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG: dict[str, Any] = {
    "conversation": {
        "max_turns": 100,
        "entity_ttl_minutes": 30,
        "default_user_id": "default",
    },
    "routing": {
        "route_timeout_seconds": 5.0,
        "merge_penalty": 0.9,
        "fallback_confidence": 0.3,
        "direct_match_confidence": 0.9,
        "partial_match_confidence": 0.75,
        "dimension_confidence": 0.8,
        "capability_confidence": 0.7,
    },
    "dialogue": {
        "max_suggestions": 5,
    },
    "paths": {
        "knowledge_base": "config/knowledge_base.jsonl",
        "audit_log_path": "logs/turns.jsonl",
        "snapshot_db_path": "workspace/conversations.db",
    },
    "logging": {
        "level": "INFO",
    },
}


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML from file, returning empty mapping when missing."""
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return data


def merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge dictionaries."""
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def resolve_paths(root: Path, config: dict[str, Any]) -> dict[str, Path]:
    """Resolve configured paths against ``root``; create parent directories for outputs."""
    paths_cfg = config.get("paths", {})
    defaults = DEFAULT_CONFIG["paths"]
    knowledge_base = (root / paths_cfg.get("knowledge_base", defaults["knowledge_base"])).resolve()
    audit_log_path = (root / paths_cfg.get("audit_log_path", defaults["audit_log_path"])).resolve()
    snapshot_db_path = (root / paths_cfg.get("snapshot_db_path", defaults["snapshot_db_path"])).resolve()

    audit_log_path.parent.mkdir(parents=True, exist_ok=True)
    snapshot_db_path.parent.mkdir(parents=True, exist_ok=True)

    return {
        "knowledge_base": knowledge_base,
        "audit_log_path": audit_log_path,
        "snapshot_db_path": snapshot_db_path,
    }


def load_effective_config(root: Path, config_path: Path | None = None) -> dict[str, Any]:
    """Built-in defaults overlaid with ``config/default.yaml`` (or ``config_path``)."""
    path = config_path or root / "config" / "default.yaml"
    return merge_dicts(copy.deepcopy(DEFAULT_CONFIG), load_yaml(path))
