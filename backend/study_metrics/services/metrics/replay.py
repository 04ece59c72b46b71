"""
Checked-Topic State Replay

Reconstructs which topics are checked at a given instant by folding the
append-only check history. For a fixed topic the latest event at or before
the instant wins; events sharing a timestamp are ordered by their insertion
sequence.

This is the reference semantics for the checked-topic count. The range
sweep in aggregation.py must agree with it for every day.

Incremental replay:
    A ReplayCheckpoint stores the per-topic state after every event up to a
    watermark. A CheckpointProvider supplies one so that only later events
    have to be fetched and folded. The default NullCheckpointProvider never
    returns a checkpoint, which means a full replay.

Usage:
    from study_metrics.services.metrics.replay import compute_checked_count

    count = compute_checked_count(events, as_of=day_end)
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol

from study_metrics.services.metrics.events import CheckEvent, ensure_utc


@dataclass(frozen=True)
class ReplayCheckpoint:
    """Per-topic checked state after applying all events up to ``watermark``."""

    watermark: datetime
    topic_states: dict[str, bool] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "watermark", ensure_utc(self.watermark))
        object.__setattr__(self, "topic_states", dict(self.topic_states))

    def to_dict(self) -> dict[str, Any]:
        return {
            "watermark": self.watermark.isoformat(),
            "topic_states": dict(self.topic_states),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReplayCheckpoint":
        return cls(
            watermark=datetime.fromisoformat(data["watermark"]),
            topic_states={str(k): bool(v) for k, v in data.get("topic_states", {}).items()},
        )


class CheckpointProvider(Protocol):
    """Supplies replay checkpoints for a user."""

    async def get_checkpoint(
        self, user_id: str, not_after: datetime
    ) -> Optional[ReplayCheckpoint]:
        """Return a checkpoint whose watermark is at or before ``not_after``, if any."""
        ...


class NullCheckpointProvider:
    """Provider that never has a checkpoint; every replay starts from scratch."""

    async def get_checkpoint(
        self, user_id: str, not_after: datetime
    ) -> Optional[ReplayCheckpoint]:
        return None


def is_ascending(events: Sequence[CheckEvent]) -> bool:
    """Return True if events are ordered by (timestamp, sequence)."""
    return all(
        events[i - 1].sort_key() <= events[i].sort_key() for i in range(1, len(events))
    )


def ordered_events(events: Iterable[CheckEvent]) -> list[CheckEvent]:
    """
    Return events in replay order.

    Already-ascending input is returned as is (O(n)). Anything else is
    stably sorted by (timestamp, sequence), so events with equal keys keep
    their input order.
    """
    items = list(events)
    if is_ascending(items):
        return items
    return sorted(items, key=CheckEvent.sort_key)


def apply_events(
    states: dict[str, bool], events: Iterable[CheckEvent], until: datetime
) -> dict[str, bool]:
    """
    Fold ascending ``events`` with timestamp <= ``until`` into ``states``.

    Stops at the first later event. Mutates and returns ``states``.
    """
    until = ensure_utc(until)
    for event in events:
        if event.timestamp > until:
            break
        states[event.topic_id] = event.is_checked
    return states


def count_checked(states: dict[str, bool]) -> int:
    """Count topics whose latest state is checked."""
    return sum(1 for is_checked in states.values() if is_checked)


def compute_checked_count(
    events: Iterable[CheckEvent],
    as_of: datetime,
    checkpoint: Optional[ReplayCheckpoint] = None,
) -> int:
    """
    Count topics in checked state as of ``as_of``.

    Events should be ascending by timestamp; unsorted input is sorted
    first at O(n log n) extra cost.

    Args:
        events: Check events for one user.
        as_of: Cutoff instant (inclusive).
        checkpoint: Optional starting state. Events at or before its
            watermark are skipped.

    Returns:
        Number of topics whose latest action at or before ``as_of`` is checked.

    Raises:
        ValueError: If ``as_of`` precedes the checkpoint watermark.
    """
    replay = ordered_events(events)
    states: dict[str, bool] = {}
    if checkpoint is not None:
        if ensure_utc(as_of) < checkpoint.watermark:
            raise ValueError("as_of must not precede the checkpoint watermark")
        states = dict(checkpoint.topic_states)
        replay = [e for e in replay if e.timestamp > checkpoint.watermark]
    return count_checked(apply_events(states, replay, as_of))


def build_checkpoint(events: Iterable[CheckEvent], watermark: datetime) -> ReplayCheckpoint:
    """Replay ``events`` up to ``watermark`` and capture the resulting state."""
    states = apply_events({}, ordered_events(events), watermark)
    return ReplayCheckpoint(watermark=watermark, topic_states=states)
