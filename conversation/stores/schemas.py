"""SQLAlchemy schemas for persisted conversation snapshots."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from conversation.types.entity import utc_now


class Base(DeclarativeBase):
    """Declarative base."""


class ConversationSnapshotRecord(Base):
    """One exported conversation, replaced wholesale on every save."""

    __tablename__ = "conversation_snapshots"

    conversation_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True, default="default")
    turn_count: Mapped[int] = mapped_column(Integer, default=0)
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    saved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
