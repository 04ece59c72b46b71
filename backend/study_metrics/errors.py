"""
Metrics Engine Exceptions

Provides the exception hierarchy raised by the metrics services.

Error kinds:
- ValidationError: malformed input (bad date string, inverted range)
- CollaboratorError: an event source or snapshot store read/write failed
- AggregationCancelledError / AggregationTimeoutError: a range query was
  stopped before its next collaborator read

The engine never translates these into transport status codes. Callers
branch on the exception class (or ``error_code``) to pick their handling.

Usage:
    from study_metrics.errors import ValidationError, CollaboratorError

    try:
        series = await service.get_daily_series(user_id, "2024-02-10", "2024-02-01")
    except ValidationError as e:
        ...  # client mistake
    except CollaboratorError as e:
        ...  # storage failure, never a zero result
"""

from typing import Optional


class ServiceError(Exception):
    """
    Base exception for metrics service errors.

    Provides consistent error handling with:
    - Error code for categorization
    - Optional details for debugging

    Example:
        raise ServiceError("Aggregation failed", details={"user_id": "u1"})
    """

    error_code: str = "service_error"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details


class ValidationError(ServiceError):
    """
    Input validation error.

    Raised when a date string or date range fails validation. ``details``
    carries the name of the violated constraint under ``"constraint"``.
    """

    error_code = "validation_error"

    @property
    def constraint(self) -> Optional[str]:
        return (self.details or {}).get("constraint")


class CollaboratorError(ServiceError):
    """
    Collaborator failure.

    Raised when an event or snapshot store is unreachable or errors.
    """

    error_code = "collaborator_error"


class EventSourceError(CollaboratorError):
    """Reading check or activity events failed."""

    error_code = "event_source_error"


class SnapshotStoreError(CollaboratorError):
    """Reading or writing metric snapshots failed."""

    error_code = "snapshot_store_error"


class AggregationCancelledError(ServiceError):
    """Raised when a range aggregation is cancelled between fetches."""

    error_code = "aggregation_cancelled"


class AggregationTimeoutError(ServiceError):
    """Raised when a range aggregation exceeds its time limit."""

    error_code = "aggregation_timeout"
