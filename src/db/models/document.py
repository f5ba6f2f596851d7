"""
Document store model.

Every collection (questions, history, academic_state, profiles) lives in a
single table keyed by (collection, key). The record itself is kept as JSON
so the gateway can stay schema-free:

    questions:       {"id", "subject", "text", "options", "correct_answer", ...}
    history:         {"id", "timestamp", "subject", "score", ...}
    academic_state:  {"subject_id", "mastery", "attempts", "last_studied"}
    profiles:        {"user_id", "focus": {"value", "confidence"}, ...}
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Document(Base):
    """One stored record of a named collection."""

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(64), primary_key=True)
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    body: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (Index("ix_documents_collection", "collection"),)

    def __repr__(self) -> str:
        return f"<Document {self.collection}/{self.key}>"
