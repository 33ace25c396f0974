"""Structured JSONL audit log of completed turns."""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from core.event_bus import TURN_COMPLETED, EventBus


class AuditLogger:
    """Writes one JSON line per completed turn."""

    def __init__(self, log_path: Path) -> None:
        self.log_path = log_path
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger("nlq.audit")

    def attach(self, event_bus: EventBus) -> None:
        event_bus.subscribe(TURN_COMPLETED, self.on_turn_completed)

    def detach(self, event_bus: EventBus) -> None:
        event_bus.unsubscribe(TURN_COMPLETED, self.on_turn_completed)

    @staticmethod
    def _hash_question(question: str) -> str:
        return hashlib.sha256(question.encode("utf-8")).hexdigest()

    def on_turn_completed(self, payload: dict[str, Any]) -> None:
        self.log(
            conversation_id=str(payload.get("conversation_id", "")),
            question=str(payload.get("question", "")),
            intent_type=str(payload.get("intent_type", "unknown")),
            state=str(payload.get("state", "")),
            agents_used=list(payload.get("agents_used", [])),
            confidence=float(payload.get("confidence", 0.0)),
        )

    def log(
        self,
        conversation_id: str,
        question: str,
        intent_type: str,
        state: str,
        agents_used: list[str],
        confidence: float,
    ) -> None:
        """Append one JSONL audit event."""
        event = {
            "timestamp": datetime.now(UTC).isoformat(),
            "conversation_id": conversation_id,
            "question_hash": self._hash_question(question),
            "intent_type": intent_type,
            "state": state,
            "agents_used": agents_used,
            "confidence": round(confidence, 4),
        }
        with self.log_path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(event, ensure_ascii=True) + "\n")
        self.logger.debug(json.dumps(event, ensure_ascii=True))
