"""Enums package."""

from study_metrics.enums.metrics import (
    ActivityKind,
    CheckAction,
    DateRangePreset,
    MessageRole,
    QuestionQuality,
)

__all__ = [
    "ActivityKind",
    "CheckAction",
    "DateRangePreset",
    "MessageRole",
    "QuestionQuality",
]
