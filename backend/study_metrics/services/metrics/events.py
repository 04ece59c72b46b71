"""
Event records consumed by the metrics engine.

Collaborators translate their storage rows into these records. All
timestamps are timezone-aware UTC.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from study_metrics.enums.metrics import ActivityKind, CheckAction


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as aware UTC. Naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class CheckEvent:
    """
    One topic check/uncheck toggle from the append-only history.

    ``sequence`` is the row's insertion order and breaks ties between
    events of the same topic that share a timestamp. In-memory events may
    leave it at 0, in which case their input order decides.
    """

    user_id: str
    topic_id: str
    action: CheckAction
    timestamp: datetime
    sequence: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        object.__setattr__(self, "action", CheckAction(self.action))

    @property
    def is_checked(self) -> bool:
        return self.action == CheckAction.CHECKED

    def sort_key(self) -> tuple[datetime, int]:
        return self.timestamp, self.sequence


@dataclass(frozen=True)
class ActivityEvent:
    """A chat session start or a user message."""

    user_id: str
    timestamp: datetime
    kind: ActivityKind
    is_good_question: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        object.__setattr__(self, "kind", ActivityKind(self.kind))
