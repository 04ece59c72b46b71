"""
Activity Metrics Enums

Defines enums for topic check actions, chat activity, and the
date range presets offered by the metrics dashboard.
"""

from enum import Enum


class CheckAction(str, Enum):
    """
    Topic check toggle actions.

    Every toggle appends a row to the check history; the most recent
    action for a topic decides whether it counts as checked.
    """

    CHECKED = "checked"
    UNCHECKED = "unchecked"


class ActivityKind(str, Enum):
    """Kinds of chat activity counted per local day."""

    SESSION_CREATED = "session_created"
    USER_MESSAGE = "user_message"


class MessageRole(str, Enum):
    """Author of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"


class QuestionQuality(str, Enum):
    """Quality rating assigned to a user's question."""

    GOOD = "good"
    BAD = "bad"


class DateRangePreset(str, Enum):
    """
    Dashboard date range presets.

    Each preset ends at the user's local today and includes it.
    """

    LAST_7_DAYS = "7days"
    LAST_30_DAYS = "30days"
    LAST_90_DAYS = "90days"

    @property
    def days(self) -> int:
        return {
            DateRangePreset.LAST_7_DAYS: 7,
            DateRangePreset.LAST_30_DAYS: 30,
            DateRangePreset.LAST_90_DAYS: 90,
        }[self]
