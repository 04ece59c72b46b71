"""
Test helpers: event builders and in-memory collaborators.
"""

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import text

from study_metrics.enums.metrics import ActivityKind, CheckAction
from study_metrics.services.metrics.events import ActivityEvent, CheckEvent
from study_metrics.services.metrics.replay import ReplayCheckpoint

TOKYO = "Asia/Tokyo"
USER_ID = "user-1"


# ============================================================================
# Event Builders
# ============================================================================


def local_instant(
    zone: str, year: int, month: int, day: int, hour: int = 0, minute: int = 0
) -> datetime:
    """Build the UTC instant of a local wall-clock time in ``zone``."""
    local = datetime(year, month, day, hour, minute, tzinfo=ZoneInfo(zone))
    return local.astimezone(timezone.utc)


def check(
    topic_id: str,
    action: CheckAction,
    timestamp: datetime,
    user_id: str = USER_ID,
    sequence: int = 0,
) -> CheckEvent:
    return CheckEvent(
        user_id=user_id,
        topic_id=topic_id,
        action=action,
        timestamp=timestamp,
        sequence=sequence,
    )


def session_event(timestamp: datetime, user_id: str = USER_ID) -> ActivityEvent:
    return ActivityEvent(
        user_id=user_id, timestamp=timestamp, kind=ActivityKind.SESSION_CREATED
    )


def message_event(
    timestamp: datetime, good: bool = False, user_id: str = USER_ID
) -> ActivityEvent:
    return ActivityEvent(
        user_id=user_id,
        timestamp=timestamp,
        kind=ActivityKind.USER_MESSAGE,
        is_good_question=good,
    )


# ============================================================================
# In-Memory Collaborators
# ============================================================================


class InMemoryEventSource:
    """EventSource over Python lists, recording every call."""

    def __init__(
        self,
        check_events: Iterable[CheckEvent] = (),
        sessions: Iterable[ActivityEvent] = (),
        messages: Iterable[ActivityEvent] = (),
    ):
        self.check_events = list(check_events)
        self.sessions = list(sessions)
        self.messages = list(messages)
        self.calls: list[tuple] = []

    async def list_check_events(
        self,
        user_id: str,
        up_to: Optional[datetime] = None,
        after: Optional[datetime] = None,
    ) -> list[CheckEvent]:
        self.calls.append(("check_events", user_id, up_to, after))
        return [
            e
            for e in sorted(self.check_events, key=CheckEvent.sort_key)
            if e.user_id == user_id
            and (up_to is None or e.timestamp <= up_to)
            and (after is None or e.timestamp > after)
        ]

    async def list_sessions(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[ActivityEvent]:
        self.calls.append(("sessions", user_id, start, end))
        return [
            e for e in self.sessions if e.user_id == user_id and start <= e.timestamp < end
        ]

    async def list_messages(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[ActivityEvent]:
        self.calls.append(("messages", user_id, start, end))
        return [
            e for e in self.messages if e.user_id == user_id and start <= e.timestamp < end
        ]


class InMemoryCheckpointProvider:
    """CheckpointProvider holding one checkpoint per user."""

    def __init__(self, checkpoints: Optional[dict[str, ReplayCheckpoint]] = None):
        self.checkpoints = dict(checkpoints or {})
        self.requests: list[tuple[str, datetime]] = []

    async def get_checkpoint(
        self, user_id: str, not_after: datetime
    ) -> Optional[ReplayCheckpoint]:
        self.requests.append((user_id, not_after))
        checkpoint = self.checkpoints.get(user_id)
        if checkpoint is not None and checkpoint.watermark <= not_after:
            return checkpoint
        return None


# ============================================================================
# Database Fault Injection
# ============================================================================


async def reject_snapshot_inserts(db, user_id: str) -> None:
    """
    Make every metric_snapshots insert for ``user_id`` fail at flush time.

    The trigger body writes to a table that does not exist, so the insert
    fails with OperationalError rather than IntegrityError.
    """
    await db.execute(
        text(
            f"CREATE TRIGGER reject_{user_id} BEFORE INSERT ON metric_snapshots "
            f"WHEN NEW.user_id = '{user_id}' "
            "BEGIN INSERT INTO no_such_table VALUES (1); END"
        )
    )
    await db.commit()
