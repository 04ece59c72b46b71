"""
Activity Metrics Services

Services computing per-user daily learning-activity metrics.

Modules:
- timezone: local-day boundaries and offsets for IANA zones
- events: check and activity event records
- replay: point-in-time checked-topic replay and checkpoints
- aggregation: single-sweep daily aggregation over date ranges
- event_source: SQL-backed event collaborator
- snapshot_store: idempotent persistence of daily aggregates
- service: MetricsService facade

Usage:
    from study_metrics.services.metrics import MetricsService

    service = MetricsService.from_session(db)
    series = await service.get_daily_series("user-1", "2024-01-01", "2024-01-07")
"""

from study_metrics.services.metrics.aggregation import RangeAggregator
from study_metrics.services.metrics.event_source import EventSource, SqlEventSource
from study_metrics.services.metrics.events import ActivityEvent, CheckEvent
from study_metrics.services.metrics.replay import (
    CheckpointProvider,
    NullCheckpointProvider,
    ReplayCheckpoint,
    build_checkpoint,
    compute_checked_count,
)
from study_metrics.services.metrics.service import MetricsService
from study_metrics.services.metrics.snapshot_store import SnapshotStore

__all__ = [
    # Records
    "ActivityEvent",
    "CheckEvent",
    # Replay
    "CheckpointProvider",
    "NullCheckpointProvider",
    "ReplayCheckpoint",
    "build_checkpoint",
    "compute_checked_count",
    # Collaborators
    "EventSource",
    "SqlEventSource",
    "SnapshotStore",
    # Services
    "RangeAggregator",
    "MetricsService",
]
