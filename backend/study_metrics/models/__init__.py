"""Pydantic models package."""

from study_metrics.models.metrics import (
    DailyAggregate,
    MetricSnapshotResponse,
    TodayMetrics,
)

__all__ = ["DailyAggregate", "MetricSnapshotResponse", "TodayMetrics"]
