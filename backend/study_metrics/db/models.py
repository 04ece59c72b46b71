"""
SQLAlchemy Database Models for Activity Metrics

Tables:
- topic_check_history: Append-only log of topic check/uncheck toggles
- chat_sessions: Chat sessions started by a user
- chat_messages: Messages inside chat sessions (user and assistant)
- metric_snapshots: Persisted daily aggregates, one row per (user, date)

ARCHITECTURE NOTE:
    This file contains SQLALCHEMY models for database persistence.
    There is a corresponding Pydantic file: study_metrics/models/metrics.py

    Data flows: Database → SQLAlchemy → Event records → Aggregation → Pydantic
"""

from datetime import datetime, timezone
from typing import List, Optional


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


from sqlalchemy import (  # noqa: E402
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship  # noqa: E402

from study_metrics.db.base import Base  # noqa: E402


# ===========================================
# Topic Check History
# ===========================================


class TopicCheckHistory(Base):
    """
    Append-only log of topic check toggles.

    Rows are never updated or deleted. The checked state of a topic at any
    instant is the action of its latest row at or before that instant.

    Attributes:
        id: Primary key. Monotonically increasing, so it doubles as the
            insertion sequence used to order rows sharing a timestamp.
        user_id: Owner of the toggle.
        topic_id: Topic that was toggled.
        action: "checked" or "unchecked".
        checked_at: When the toggle happened.
    """

    __tablename__ = "topic_check_history"
    __table_args__ = (
        Index("ix_topic_check_history_user_checked_at", "user_id", "checked_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64))
    topic_id: Mapped[str] = mapped_column(String(64))
    action: Mapped[str] = mapped_column(String(20))
    checked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )


# ===========================================
# Chat Sessions & Messages
# ===========================================


class ChatSession(Base):
    """
    Chat session started by a user.

    Attributes:
        id: Primary key.
        user_id: Owner of the session.
        created_at: When the session was started.
        messages: Messages posted in this session.
    """

    __tablename__ = "chat_sessions"
    __table_args__ = (
        Index("ix_chat_sessions_user_created_at", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )

    messages: Mapped[List["ChatMessage"]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )


class ChatMessage(Base):
    """
    Single message inside a chat session.

    Attributes:
        id: Primary key.
        session_id: Parent session.
        role: "user" or "assistant".
        content: Message text.
        question_quality: "good" / "bad" rating of a user question, or null
            when not rated.
        created_at: When the message was posted.
    """

    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    session_id: Mapped[int] = mapped_column(ForeignKey("chat_sessions.id"))
    role: Mapped[str] = mapped_column(String(20))
    content: Mapped[str] = mapped_column(Text, default="")
    question_quality: Mapped[Optional[str]] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, index=True
    )

    session: Mapped["ChatSession"] = relationship(back_populates="messages")


# ===========================================
# Metric Snapshots
# ===========================================


class MetricSnapshot(Base):
    """
    Persisted daily aggregate.

    Holds the current best known aggregate for one user and local day.
    Upserts overwrite the counters in place; there is no history of
    recomputations.

    Attributes:
        id: Primary key (UUID string), stable across upserts.
        user_id: Owner of the metrics.
        date: Local calendar date, "YYYY-MM-DD".
        checked_topic_count: Topics checked as of the end of the day.
        session_count: Chat sessions started that day.
        message_count: User messages sent that day.
        good_question_count: Questions rated "good" that day.
        computed_at: When the counters were last written.
    """

    __tablename__ = "metric_snapshots"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_metric_snapshots_user_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    date: Mapped[str] = mapped_column(String(10))

    checked_topic_count: Mapped[int] = mapped_column(Integer, default=0)
    session_count: Mapped[int] = mapped_column(Integer, default=0)
    message_count: Mapped[int] = mapped_column(Integer, default=0)
    good_question_count: Mapped[int] = mapped_column(Integer, default=0)

    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )
