"""
Event Source

Reads the raw events the metrics engine aggregates: topic check toggles,
chat sessions and user messages.

The engine only depends on the EventSource protocol. SqlEventSource is the
production implementation over the application tables; tests may supply
any object with the same coroutines.

Failure semantics:
    Database errors are wrapped in EventSourceError and propagated. A failed
    read is never turned into an empty result.

Usage:
    from study_metrics.services.metrics.event_source import SqlEventSource

    source = SqlEventSource(db)
    events = await source.list_check_events("user-1", up_to=cutoff)
"""

import logging
from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from study_metrics.db.models import ChatMessage, ChatSession, TopicCheckHistory
from study_metrics.enums.metrics import (
    ActivityKind,
    CheckAction,
    MessageRole,
    QuestionQuality,
)
from study_metrics.errors import EventSourceError
from study_metrics.services.metrics.events import ActivityEvent, CheckEvent

logger = logging.getLogger(__name__)


class EventSource(Protocol):
    """Collaborator supplying a user's raw events."""

    async def list_check_events(
        self,
        user_id: str,
        up_to: Optional[datetime] = None,
        after: Optional[datetime] = None,
    ) -> list[CheckEvent]:
        """Check events with ``after < timestamp <= up_to``, ascending."""
        ...

    async def list_sessions(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[ActivityEvent]:
        """Sessions created in ``[start, end)``."""
        ...

    async def list_messages(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[ActivityEvent]:
        """User messages posted in ``[start, end)``."""
        ...


class SqlEventSource:
    """
    EventSource backed by the application database.

    Check events come back ordered by (checked_at, id); the autoincrement id
    is the insertion sequence that breaks timestamp ties.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the event source.

        Args:
            db: SQLAlchemy async database session.
        """
        self.db = db

    async def list_check_events(
        self,
        user_id: str,
        up_to: Optional[datetime] = None,
        after: Optional[datetime] = None,
    ) -> list[CheckEvent]:
        query = select(TopicCheckHistory).where(TopicCheckHistory.user_id == user_id)
        if up_to is not None:
            query = query.where(TopicCheckHistory.checked_at <= up_to)
        if after is not None:
            query = query.where(TopicCheckHistory.checked_at > after)
        query = query.order_by(
            TopicCheckHistory.checked_at.asc(), TopicCheckHistory.id.asc()
        )

        rows = await self._fetch_scalars(query, "check events", user_id)
        return [
            CheckEvent(
                user_id=row.user_id,
                topic_id=row.topic_id,
                action=CheckAction(row.action),
                timestamp=row.checked_at,
                sequence=row.id,
            )
            for row in rows
        ]

    async def list_sessions(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[ActivityEvent]:
        query = (
            select(ChatSession)
            .where(
                ChatSession.user_id == user_id,
                ChatSession.created_at >= start,
                ChatSession.created_at < end,
            )
            .order_by(ChatSession.created_at.asc())
        )

        rows = await self._fetch_scalars(query, "sessions", user_id)
        return [
            ActivityEvent(
                user_id=row.user_id,
                timestamp=row.created_at,
                kind=ActivityKind.SESSION_CREATED,
            )
            for row in rows
        ]

    async def list_messages(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[ActivityEvent]:
        """
        User-role messages posted in ``[start, end)``.

        Assistant messages are never returned, so a question-quality rating
        on an assistant message is not counted as a good question.
        """
        query = (
            select(ChatMessage.created_at, ChatMessage.question_quality)
            .join(ChatSession, ChatMessage.session_id == ChatSession.id)
            .where(
                ChatSession.user_id == user_id,
                ChatMessage.role == MessageRole.USER.value,
                ChatMessage.created_at >= start,
                ChatMessage.created_at < end,
            )
            .order_by(ChatMessage.created_at.asc())
        )

        try:
            result = await self.db.execute(query)
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch messages for user {user_id}: {e}")
            raise EventSourceError(
                "Failed to fetch messages", details={"user_id": user_id}
            ) from e

        return [
            ActivityEvent(
                user_id=user_id,
                timestamp=created_at,
                kind=ActivityKind.USER_MESSAGE,
                is_good_question=quality == QuestionQuality.GOOD.value,
            )
            for created_at, quality in rows
        ]

    async def list_active_user_ids(self, start: datetime, end: datetime) -> list[str]:
        """
        Get users with any check, session or message in ``[start, end)``.

        Used by the nightly archiving job to decide whom to snapshot.
        """
        queries = [
            select(TopicCheckHistory.user_id)
            .where(
                TopicCheckHistory.checked_at >= start,
                TopicCheckHistory.checked_at < end,
            )
            .distinct(),
            select(ChatSession.user_id)
            .where(ChatSession.created_at >= start, ChatSession.created_at < end)
            .distinct(),
            select(ChatSession.user_id)
            .join(ChatMessage, ChatMessage.session_id == ChatSession.id)
            .where(ChatMessage.created_at >= start, ChatMessage.created_at < end)
            .distinct(),
        ]

        user_ids: set[str] = set()
        for query in queries:
            user_ids.update(await self._fetch_scalars(query, "active users", None))
        return sorted(user_ids)

    async def _fetch_scalars(
        self, query: Select, what: str, user_id: Optional[str]
    ) -> list:
        """Execute ``query`` and return its scalars, wrapping database errors."""
        try:
            result = await self.db.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch {what} for user {user_id}: {e}")
            raise EventSourceError(
                f"Failed to fetch {what}", details={"user_id": user_id}
            ) from e
