"""SQLite persistence for exported conversation snapshots."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from conversation.stores.schemas import Base, ConversationSnapshotRecord

logger = logging.getLogger("nlq.snapshots")


class SnapshotStore:
    """Saves and loads ``export_context`` snapshots keyed by conversation id."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(f"sqlite+pysqlite:///{self.db_path}", future=True)
        self._session_factory = sessionmaker(bind=self.engine, future=True)

    def create_all(self) -> None:
        """Create all schema tables if missing."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager that commits on success and rolls back on error."""
        sess = self._session_factory()
        try:
            yield sess
            sess.commit()
        except Exception:
            sess.rollback()
            raise
        finally:
            sess.close()

    def save(self, snapshot: dict[str, Any]) -> None:
        conversation_id = str(snapshot["id"])
        with self.session() as sess:
            row = sess.get(ConversationSnapshotRecord, conversation_id)
            if row is None:
                row = ConversationSnapshotRecord(conversation_id=conversation_id)
                sess.add(row)
            row.user_id = str(snapshot.get("user_id", "default"))
            row.turn_count = len(snapshot.get("turns", []))
            row.snapshot = snapshot
        logger.debug("Saved snapshot %s", conversation_id)

    def load(self, conversation_id: str) -> dict[str, Any] | None:
        with self.session() as sess:
            row = sess.get(ConversationSnapshotRecord, conversation_id)
            return dict(row.snapshot) if row is not None else None

    def load_all(self) -> list[dict[str, Any]]:
        with self.session() as sess:
            rows = sess.query(ConversationSnapshotRecord).order_by(ConversationSnapshotRecord.saved_at).all()
            return [dict(row.snapshot) for row in rows]

    def delete(self, conversation_id: str) -> bool:
        with self.session() as sess:
            row = sess.get(ConversationSnapshotRecord, conversation_id)
            if row is None:
                return False
            sess.delete(row)
            return True

    def list_ids(self) -> list[str]:
        with self.session() as sess:
            rows = (
                sess.query(ConversationSnapshotRecord.conversation_id)
                .order_by(ConversationSnapshotRecord.saved_at.desc())
                .all()
            )
            return [row[0] for row in rows]
