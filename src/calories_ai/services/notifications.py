"""Single-slot notification holder with expiry."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from calories_ai.domain.notifications import Notification, NotificationKind


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class NotificationCenter:
    """Holds at most one active notification; newer ones supersede older ones."""

    ttl_seconds: int = 5
    clock: Callable[[], datetime] = _utcnow
    _active: Notification | None = field(default=None, init=False)

    def notify(
        self, kind: NotificationKind, message: str, detail: str | None = None
    ) -> Notification:
        """Replace the active notification and return it."""
        expires_at = self.clock() + timedelta(seconds=self.ttl_seconds)
        self._active = Notification(
            kind=kind, message=message, detail=detail, expires_at=expires_at
        )
        return self._active

    def current(self) -> Notification | None:
        """Return the active notification if it hasn't expired."""
        if self._active is None:
            return None
        if self.clock() >= self._active.expires_at:
            self._active = None
            return None
        return self._active

    def dismiss(self) -> None:
        """Clear the active notification."""
        self._active = None
