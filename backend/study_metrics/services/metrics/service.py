"""
Activity Metrics Service

Facade over the aggregation engine and the snapshot store.

Operations:
- get_today: live metrics for the user's local today (never persisted)
- get_daily_series: live per-day metrics for a validated date range
- create_snapshot: compute one day and upsert it into the snapshot store
- list_snapshots: read persisted snapshots for a date range
- date_range_for_preset: dashboard presets (7/30/90 days) as date strings

Error handling:
    Bad input raises ValidationError; event or snapshot store failures
    propagate as CollaboratorError subclasses. Unknown timezones fall back
    to a fixed offset and are logged as warnings.

Usage:
    from study_metrics.services.metrics import MetricsService

    service = MetricsService.from_session(db)
    today = await service.get_today("user-1", "Asia/Tokyo")
    series = await service.get_daily_series("user-1", "2024-01-01", "2024-01-31", "Asia/Tokyo")
"""

import asyncio
import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from study_metrics.config import settings
from study_metrics.enums.metrics import DateRangePreset
from study_metrics.errors import AggregationTimeoutError, ValidationError
from study_metrics.models.metrics import (
    DailyAggregate,
    MetricSnapshotResponse,
    TodayMetrics,
)
from study_metrics.services.clock import Clock, SystemClock, server_today
from study_metrics.services.metrics.aggregation import RangeAggregator
from study_metrics.services.metrics.event_source import SqlEventSource
from study_metrics.services.metrics.replay import CheckpointProvider
from study_metrics.services.metrics.snapshot_store import SnapshotStore
from study_metrics.services.metrics.timezone import (
    is_valid_timezone,
    local_today,
    parse_date_string,
)

logger = logging.getLogger(__name__)


class MetricsService:
    """
    Service exposing today, daily series and snapshot operations.

    Holds no per-user state; every call computes from the event log as
    observed at call time.
    """

    def __init__(
        self,
        aggregator: RangeAggregator,
        snapshots: SnapshotStore,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the metrics service.

        Args:
            aggregator: Engine computing daily aggregates from events.
            snapshots: Store for persisted daily aggregates.
            clock: Source of "now"; defaults to the system clock.
        """
        self.aggregator = aggregator
        self.snapshots = snapshots
        self.clock = clock or SystemClock()

    @classmethod
    def from_session(
        cls,
        db: AsyncSession,
        clock: Optional[Clock] = None,
        checkpoints: Optional[CheckpointProvider] = None,
    ) -> "MetricsService":
        """Build a service wired to the SQL event source and snapshot table."""
        clock = clock or SystemClock()
        return cls(
            aggregator=RangeAggregator(SqlEventSource(db), checkpoints),
            snapshots=SnapshotStore(db, clock),
            clock=clock,
        )

    async def get_today(
        self,
        user_id: str,
        zone: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TodayMetrics:
        """
        Get live metrics for the user's local today.

        "Today" is resolved in the user's zone, not the server's. The
        snapshot store is neither read nor written.
        """
        zone = self._resolve_zone(zone)
        today = local_today(zone, self.clock.now())
        return await self.aggregator.aggregate_today(user_id, today, zone, cancel_event)

    async def get_daily_series(
        self,
        user_id: str,
        from_date: str,
        to_date: str,
        zone: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> list[DailyAggregate]:
        """
        Get live per-day metrics for ``[from_date, to_date]``.

        Args:
            user_id: User whose metrics are computed.
            from_date: First day, "YYYY-MM-DD".
            to_date: Last day, "YYYY-MM-DD".
            zone: User's IANA timezone; settings.DEFAULT_TIMEZONE if omitted.
            cancel_event: Optional cancellation signal.

        Returns:
            list[DailyAggregate]: One entry per day, ascending, zero-filled.

        Raises:
            ValidationError: Bad format, from after to, or range too long.
            AggregationTimeoutError: The query exceeded
                settings.METRICS_QUERY_TIMEOUT_SECONDS.
        """
        start, end = self._validate_range(from_date, to_date)
        zone = self._resolve_zone(zone)

        try:
            return await asyncio.wait_for(
                self.aggregator.aggregate_range(user_id, start, end, zone, cancel_event),
                timeout=settings.METRICS_QUERY_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                f"Daily series for user {user_id} ({from_date}..{to_date}) timed out"
            )
            raise AggregationTimeoutError(
                "Daily metrics query timed out",
                details={"user_id": user_id, "from": from_date, "to": to_date},
            ) from e

    async def create_snapshot(
        self,
        user_id: str,
        date: Optional[str] = None,
        zone: Optional[str] = None,
    ) -> MetricSnapshotResponse:
        """
        Compute one day's aggregate and upsert it as a snapshot.

        Intended for archiving days whose activity will not change further.

        Args:
            user_id: User whose metrics are archived.
            date: Day to archive, "YYYY-MM-DD". Defaults to the date observed
                on the server clock (not the user's local today).
            zone: User's IANA timezone for the day boundaries.

        Returns:
            MetricSnapshotResponse for the stored row.
        """
        target = date if date is not None else server_today(self.clock).isoformat()
        day = parse_date_string(target, "date")
        zone = self._resolve_zone(zone)

        aggregate = await self.aggregator.aggregate_day(user_id, day, zone)
        snapshot = await self.snapshots.upsert(user_id, day, aggregate)

        logger.info(
            f"Snapshot for user {user_id} on {snapshot.date}: "
            f"checked={snapshot.checked_topic_count}, sessions={snapshot.session_count}, "
            f"messages={snapshot.message_count}, good={snapshot.good_question_count}"
        )
        return snapshot

    async def list_snapshots(
        self, user_id: str, from_date: str, to_date: str
    ) -> list[MetricSnapshotResponse]:
        """Get persisted snapshots within a validated date range, ascending."""
        start, end = self._validate_range(from_date, to_date)
        return await self.snapshots.find_by_date_range(user_id, start, end)

    def date_range_for_preset(
        self, preset: DateRangePreset, zone: Optional[str] = None
    ) -> tuple[str, str]:
        """
        Get the ``(from, to)`` date strings for a dashboard preset.

        The range ends at the user's local today and spans ``preset.days`` days.
        """
        zone = self._resolve_zone(zone)
        today = local_today(zone, self.clock.now())
        start = today - timedelta(days=DateRangePreset(preset).days - 1)
        return start.isoformat(), today.isoformat()

    @staticmethod
    def _validate_range(from_date: str, to_date: str) -> tuple[date, date]:
        start = parse_date_string(from_date, "from")
        end = parse_date_string(to_date, "to")

        if start > end:
            raise ValidationError(
                "Invalid date range. 'from' must be before or equal to 'to'",
                details={"constraint": "date_order", "from": from_date, "to": to_date},
            )

        span = (end - start).days + 1
        if span > settings.METRICS_MAX_RANGE_DAYS:
            raise ValidationError(
                f"Date range too long: {span} days (max {settings.METRICS_MAX_RANGE_DAYS})",
                details={"constraint": "max_range", "from": from_date, "to": to_date},
            )

        return start, end

    @staticmethod
    def _resolve_zone(zone: Optional[str]) -> str:
        zone = zone or settings.DEFAULT_TIMEZONE
        if not is_valid_timezone(zone):
            logger.warning(
                f"Unknown timezone '{zone}', using fixed offset "
                f"{settings.FALLBACK_UTC_OFFSET_MINUTES} minutes"
            )
        return zone
