"""
Metric Snapshot Store

Persists daily aggregates that are considered final, one row per
(user, local date). The table holds the current best known aggregate per
day, not a history of recomputations.

Semantics:
- upsert() overwrites the counters of an existing row in place (keeping
  its id) or inserts a new row. Upserting identical counters is a no-op,
  so repeated calls leave identical state.
- Concurrent upserts for the same key are last-write-wins. A writer that
  loses the insert race falls back to updating the winner's row.
- A missing row is reported as None / an empty list, never as an error.
- Database failures roll back the session and raise SnapshotStoreError.

Usage:
    from study_metrics.services.metrics.snapshot_store import SnapshotStore

    store = SnapshotStore(db)
    snapshot = await store.upsert("user-1", "2024-01-15", aggregate)
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from study_metrics.db.models import MetricSnapshot
from study_metrics.errors import SnapshotStoreError
from study_metrics.models.metrics import DailyAggregate, MetricSnapshotResponse
from study_metrics.services.clock import Clock, SystemClock
from study_metrics.services.metrics.timezone import DateLike, coerce_date

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Idempotent upsert/read access to the metric_snapshots table."""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        """
        Initialize the snapshot store.

        Args:
            db: SQLAlchemy async database session.
            clock: Source of computed_at timestamps.
        """
        self.db = db
        self.clock = clock or SystemClock()

    async def upsert(
        self, user_id: str, day: DateLike, aggregate: DailyAggregate
    ) -> MetricSnapshotResponse:
        """
        Insert or overwrite the snapshot for ``(user_id, day)``.

        Args:
            user_id: Owner of the metrics.
            day: Local calendar date the aggregate belongs to.
            aggregate: Counters to persist.

        Returns:
            MetricSnapshotResponse for the stored row.

        Raises:
            SnapshotStoreError: If the database read or write fails.
        """
        date_str = coerce_date(day).isoformat()
        counters = aggregate.counters()

        try:
            existing = await self._get_row(user_id, date_str)
            if existing is None:
                try:
                    row = await self._insert_row(user_id, date_str, counters)
                except IntegrityError:
                    # Lost the insert race; overwrite the concurrent writer's row.
                    await self.db.rollback()
                    existing = await self._get_row(user_id, date_str)
                    if existing is None:
                        raise
                    row = await self._update_row(existing, counters)
            else:
                row = await self._update_row(existing, counters)
        except SQLAlchemyError as e:
            logger.error(f"Failed to upsert snapshot for user {user_id} on {date_str}: {e}")
            # Leave the shared session usable for the caller's next write.
            await self.db.rollback()
            raise SnapshotStoreError(
                "Failed to upsert metric snapshot",
                details={"user_id": user_id, "date": date_str},
            ) from e

        return MetricSnapshotResponse.from_db_record(row)

    async def find_by_date(
        self, user_id: str, day: DateLike
    ) -> Optional[MetricSnapshotResponse]:
        """Get the snapshot for one day, or None if it was never taken."""
        date_str = coerce_date(day).isoformat()
        try:
            row = await self._get_row(user_id, date_str)
        except SQLAlchemyError as e:
            logger.error(f"Failed to read snapshot for user {user_id} on {date_str}: {e}")
            await self.db.rollback()
            raise SnapshotStoreError(
                "Failed to read metric snapshot",
                details={"user_id": user_id, "date": date_str},
            ) from e
        return MetricSnapshotResponse.from_db_record(row) if row else None

    async def find_by_date_range(
        self, user_id: str, from_date: DateLike, to_date: DateLike
    ) -> list[MetricSnapshotResponse]:
        """Get the stored snapshots within ``[from_date, to_date]``, ascending by date."""
        start = coerce_date(from_date).isoformat()
        end = coerce_date(to_date).isoformat()
        query = (
            select(MetricSnapshot)
            .where(
                MetricSnapshot.user_id == user_id,
                MetricSnapshot.date >= start,
                MetricSnapshot.date <= end,
            )
            .order_by(MetricSnapshot.date.asc())
        )
        try:
            result = await self.db.execute(query)
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to read snapshots for user {user_id} ({start}..{end}): {e}")
            await self.db.rollback()
            raise SnapshotStoreError(
                "Failed to read metric snapshots",
                details={"user_id": user_id, "from": start, "to": end},
            ) from e
        return [MetricSnapshotResponse.from_db_record(row) for row in rows]

    async def _get_row(self, user_id: str, date_str: str) -> Optional[MetricSnapshot]:
        result = await self.db.execute(
            select(MetricSnapshot)
            .where(MetricSnapshot.user_id == user_id, MetricSnapshot.date == date_str)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _insert_row(
        self, user_id: str, date_str: str, counters: dict[str, int]
    ) -> MetricSnapshot:
        row = MetricSnapshot(
            id=str(uuid.uuid4()),
            user_id=user_id,
            date=date_str,
            computed_at=self.clock.now(),
            **counters,
        )
        self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)
        logger.info(f"Created metric snapshot {row.id} for user {user_id} on {date_str}")
        return row

    async def _update_row(
        self, row: MetricSnapshot, counters: dict[str, int]
    ) -> MetricSnapshot:
        if all(getattr(row, name) == value for name, value in counters.items()):
            return row

        for name, value in counters.items():
            setattr(row, name, value)
        row.computed_at = self.clock.now()
        await self.db.commit()
        await self.db.refresh(row)
        logger.info(f"Updated metric snapshot {row.id} for user {row.user_id} on {row.date}")
        return row
