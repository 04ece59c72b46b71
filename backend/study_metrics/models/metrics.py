"""
Activity Metrics Models (Pydantic)

Schemas for the records returned by the metrics services:
- Daily aggregates (live series and single days)
- Today metrics
- Persisted metric snapshots

ARCHITECTURE NOTE:
    This file contains PYDANTIC models for the service boundary.
    There is a corresponding SQLAlchemy file: study_metrics/db/models.py

    Data flows: Event records → Aggregation → Pydantic → Caller
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from study_metrics.db.models import MetricSnapshot as MetricSnapshotRow


class DailyAggregate(BaseModel):
    """
    Activity metrics for one local calendar day.

    A pure function of the event log up to the day's local end: recomputing
    the same day over the same events always yields the same counters.
    """

    date: date
    checked_topic_count: int = Field(
        0, ge=0, description="Topics in checked state at the end of the day"
    )
    session_count: int = Field(0, ge=0, description="Chat sessions started")
    message_count: int = Field(0, ge=0, description="User messages sent")
    good_question_count: int = Field(
        0, ge=0, description="Messages rated as good questions"
    )

    def counters(self) -> dict[str, int]:
        """Return the four counters, keyed by field name."""
        return {
            "checked_topic_count": self.checked_topic_count,
            "session_count": self.session_count,
            "message_count": self.message_count,
            "good_question_count": self.good_question_count,
        }


class TodayMetrics(DailyAggregate):
    """
    Live metrics for the user's local today.

    Always computed from the event log; never read from snapshots because
    the current day is still accumulating.
    """

    timezone: str
    newly_checked_topic_count: int = Field(
        0, ge=0, description="Distinct topics with a checked action today"
    )


class MetricSnapshotResponse(BaseModel):
    """Persisted daily aggregate for one user and day."""

    id: str
    user_id: str
    date: str  # YYYY-MM-DD
    checked_topic_count: int = 0
    session_count: int = 0
    message_count: int = 0
    good_question_count: int = 0
    computed_at: datetime

    class Config:
        from_attributes = True

    @classmethod
    def from_db_record(cls, record: MetricSnapshotRow) -> MetricSnapshotResponse:
        """Build the response from a metric_snapshots row."""
        return cls.model_validate(record)
