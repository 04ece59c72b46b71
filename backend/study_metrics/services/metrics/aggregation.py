"""
Daily Activity Aggregation

Produces one DailyAggregate per local calendar day across a date range.

Algorithm (aggregate_range):
1. Resolve the UTC bounds of every requested local day. Fetch the user's
   check events up to the last day's local end, and sessions and messages
   within [local start of first day, local end of last day).
2. Bucket sessions and messages by local date, resolving the zone offset at
   each event's own instant (correct across DST changes).
3. Sweep the ascending check events once. For each day in order, apply every
   event up to that day's local end and record the running checked count.
   Total cost is O(events + days) instead of one replay per day.
4. Zip the counters with every requested date, zero-filling missing days.

The sweep is an optimization of replay.compute_checked_count(), never a
different semantics: for every day d,
    aggregate_range(d, d)[0].checked_topic_count
        == compute_checked_count(events, local_end(d))

Cancellation:
    An optional asyncio.Event is checked before every collaborator read.
    A set event raises AggregationCancelledError. The in-memory sweep is
    not interrupted.

Usage:
    from study_metrics.services.metrics.aggregation import RangeAggregator

    aggregator = RangeAggregator(SqlEventSource(db))
    days = await aggregator.aggregate_range("user-1", "2024-01-01", "2024-01-31", "Asia/Tokyo")
"""

import asyncio
import logging
from collections import Counter
from collections.abc import Iterable
from datetime import date, datetime
from typing import Optional

from study_metrics.enums.metrics import ActivityKind
from study_metrics.errors import AggregationCancelledError, ValidationError
from study_metrics.models.metrics import DailyAggregate, TodayMetrics
from study_metrics.services.metrics.event_source import EventSource
from study_metrics.services.metrics.events import ActivityEvent, CheckEvent
from study_metrics.services.metrics.replay import (
    CheckpointProvider,
    NullCheckpointProvider,
    ReplayCheckpoint,
    compute_checked_count,
    count_checked,
    ordered_events,
)
from study_metrics.services.metrics.timezone import (
    DateLike,
    coerce_date,
    iter_dates,
    local_date_for_instant,
    local_day_bounds_utc,
)

logger = logging.getLogger(__name__)


def bucket_activity(
    events: Iterable[ActivityEvent], zone: Optional[str]
) -> dict[str, Counter]:
    """
    Count sessions, messages and good questions per local date.

    Args:
        events: Session and message events in any order.
        zone: IANA zone used to derive each event's local date.

    Returns:
        dict[str, Counter]: Maps "session_count", "message_count" and
            "good_question_count" to counters keyed by "YYYY-MM-DD".
    """
    buckets: dict[str, Counter] = {
        "session_count": Counter(),
        "message_count": Counter(),
        "good_question_count": Counter(),
    }
    for event in events:
        local_date = local_date_for_instant(event.timestamp, zone)
        if event.kind == ActivityKind.SESSION_CREATED:
            buckets["session_count"][local_date] += 1
        elif event.kind == ActivityKind.USER_MESSAGE:
            buckets["message_count"][local_date] += 1
        if event.is_good_question:
            buckets["good_question_count"][local_date] += 1
    return buckets


def sweep_checked_counts(
    events: Iterable[CheckEvent],
    day_ends: list[tuple[date, datetime]],
    checkpoint: Optional[ReplayCheckpoint] = None,
) -> dict[date, int]:
    """
    Compute the checked-topic count at each day end in one pass.

    Args:
        events: Check events; sorted first if not already ascending.
        day_ends: (day, local end as UTC) pairs in ascending order.
        checkpoint: Optional starting state; events at or before its
            watermark are ignored.

    Returns:
        dict[date, int]: Checked-topic count as of each day's end.
    """
    states: dict[str, bool] = {}
    ordered = ordered_events(events)
    if checkpoint is not None:
        states = dict(checkpoint.topic_states)
        ordered = [e for e in ordered if e.timestamp > checkpoint.watermark]

    checked = count_checked(states)
    counts: dict[date, int] = {}
    cursor = 0

    for day, day_end in day_ends:
        while cursor < len(ordered) and ordered[cursor].timestamp <= day_end:
            event = ordered[cursor]
            was_checked = states.get(event.topic_id, False)
            if event.is_checked != was_checked:
                checked += 1 if event.is_checked else -1
            states[event.topic_id] = event.is_checked
            cursor += 1
        counts[day] = checked

    return counts


def count_newly_checked(
    events: Iterable[CheckEvent], start: datetime, end: datetime
) -> int:
    """Count distinct topics with a checked action in ``[start, end)``."""
    return len(
        {
            event.topic_id
            for event in events
            if event.is_checked and start <= event.timestamp < end
        }
    )


class RangeAggregator:
    """
    Computes daily aggregates from a user's raw events.

    Stateless between calls: the per-topic state map and day counters live
    only for one invocation.
    """

    def __init__(
        self,
        events: EventSource,
        checkpoints: Optional[CheckpointProvider] = None,
    ):
        """
        Initialize the aggregator.

        Args:
            events: Collaborator supplying check, session and message events.
            checkpoints: Optional provider of replay checkpoints.
        """
        self.events = events
        self.checkpoints = checkpoints or NullCheckpointProvider()

    async def aggregate_range(
        self,
        user_id: str,
        from_date: DateLike,
        to_date: DateLike,
        zone: Optional[str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> list[DailyAggregate]:
        """
        Aggregate every local day in ``[from_date, to_date]``.

        Args:
            user_id: User whose events are aggregated.
            from_date: First local day (inclusive).
            to_date: Last local day (inclusive).
            zone: User's IANA timezone.
            cancel_event: Optional cancellation signal.

        Returns:
            list[DailyAggregate]: One zero-filled entry per day, ascending.

        Raises:
            ValidationError: If from_date is after to_date.
            AggregationCancelledError: If cancel_event is set before a fetch.
            CollaboratorError: If the event source fails.
        """
        start_day = coerce_date(from_date)
        end_day = coerce_date(to_date)
        if start_day > end_day:
            raise ValidationError(
                "Invalid date range. 'from' must be before or equal to 'to'",
                details={"constraint": "date_order"},
            )

        days = list(iter_dates(start_day, end_day))
        bounds = [local_day_bounds_utc(day, zone) for day in days]
        range_start = bounds[0][0]
        cutoff = bounds[-1][1]

        checkpoint = await self._load_checkpoint(user_id, bounds[0][1], cancel_event)

        self._raise_if_cancelled(cancel_event, user_id)
        check_events = await self.events.list_check_events(
            user_id,
            up_to=cutoff,
            after=checkpoint.watermark if checkpoint else None,
        )
        self._raise_if_cancelled(cancel_event, user_id)
        sessions = await self.events.list_sessions(user_id, range_start, cutoff)
        self._raise_if_cancelled(cancel_event, user_id)
        messages = await self.events.list_messages(user_id, range_start, cutoff)

        activity = bucket_activity([*sessions, *messages], zone)
        checked_by_day = sweep_checked_counts(
            check_events,
            [(day, day_end) for day, (_, day_end) in zip(days, bounds)],
            checkpoint,
        )

        logger.debug(
            f"Aggregated {len(days)} days for user {user_id}: "
            f"{len(check_events)} check events, {len(sessions)} sessions, "
            f"{len(messages)} messages"
        )

        return [
            DailyAggregate(
                date=day,
                checked_topic_count=checked_by_day.get(day, 0),
                session_count=activity["session_count"].get(day.isoformat(), 0),
                message_count=activity["message_count"].get(day.isoformat(), 0),
                good_question_count=activity["good_question_count"].get(
                    day.isoformat(), 0
                ),
            )
            for day in days
        ]

    async def aggregate_day(
        self,
        user_id: str,
        day: DateLike,
        zone: Optional[str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> DailyAggregate:
        """
        Aggregate a single local day by direct replay.

        Returns the same record as ``aggregate_range(day, day)[0]``.
        """
        aggregate, _ = await self._aggregate_single_day(user_id, day, zone, cancel_event)
        return aggregate

    async def aggregate_today(
        self,
        user_id: str,
        today: DateLike,
        zone: Optional[str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TodayMetrics:
        """
        Aggregate the user's current local day.

        Adds the number of distinct topics checked during the day on top of
        the regular daily counters.
        """
        aggregate, check_events = await self._aggregate_single_day(
            user_id, today, zone, cancel_event
        )
        start, end = local_day_bounds_utc(aggregate.date, zone)
        return TodayMetrics(
            **aggregate.model_dump(),
            timezone=zone or "",
            newly_checked_topic_count=count_newly_checked(check_events, start, end),
        )

    async def _aggregate_single_day(
        self,
        user_id: str,
        day: DateLike,
        zone: Optional[str],
        cancel_event: Optional[asyncio.Event],
    ) -> tuple[DailyAggregate, list[CheckEvent]]:
        """
        Compute one day's aggregate and return it with the fetched check events.

        The checkpoint (if any) must precede the local start of the day so
        that every check event inside the day is fetched.
        """
        local_date = coerce_date(day)
        start, end = local_day_bounds_utc(local_date, zone)

        checkpoint = await self._load_checkpoint(user_id, start, cancel_event)

        self._raise_if_cancelled(cancel_event, user_id)
        check_events = await self.events.list_check_events(
            user_id,
            up_to=end,
            after=checkpoint.watermark if checkpoint else None,
        )
        self._raise_if_cancelled(cancel_event, user_id)
        sessions = await self.events.list_sessions(user_id, start, end)
        self._raise_if_cancelled(cancel_event, user_id)
        messages = await self.events.list_messages(user_id, start, end)

        activity = bucket_activity([*sessions, *messages], zone)
        key = local_date.isoformat()

        aggregate = DailyAggregate(
            date=local_date,
            checked_topic_count=compute_checked_count(check_events, end, checkpoint),
            session_count=activity["session_count"].get(key, 0),
            message_count=activity["message_count"].get(key, 0),
            good_question_count=activity["good_question_count"].get(key, 0),
        )
        return aggregate, check_events

    async def _load_checkpoint(
        self,
        user_id: str,
        not_after: datetime,
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[ReplayCheckpoint]:
        """Fetch a checkpoint usable for replays starting at ``not_after``."""
        self._raise_if_cancelled(cancel_event, user_id)
        checkpoint = await self.checkpoints.get_checkpoint(user_id, not_after)
        if checkpoint is not None and checkpoint.watermark > not_after:
            logger.debug(
                f"Ignoring checkpoint for user {user_id}: watermark "
                f"{checkpoint.watermark.isoformat()} is after {not_after.isoformat()}"
            )
            return None
        return checkpoint

    @staticmethod
    def _raise_if_cancelled(
        cancel_event: Optional[asyncio.Event], user_id: str
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise AggregationCancelledError(
                "Aggregation cancelled before fetching events",
                details={"user_id": user_id},
            )
