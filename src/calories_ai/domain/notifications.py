"""Domain models for user-facing notifications."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class NotificationKind(StrEnum):
    """Severity of a notification."""

    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


@dataclass(frozen=True)
class Notification:
    """Represents the single active notification."""

    kind: NotificationKind
    message: str
    detail: str | None
    expires_at: datetime
