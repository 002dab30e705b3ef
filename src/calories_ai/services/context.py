"""Explicit session context shared by the session flows."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from calories_ai.domain.models import HistoryEntry, UserRecord
from calories_ai.services.notifications import NotificationCenter
from calories_ai.services.storage import LoadedState, LocalStateStore

_logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """Single source of truth for the in-memory user and history.

    Mutations go through ``commit_*`` with a pure snapshot transform, and the
    new snapshot is persisted right after it is committed in memory. A failed
    write is logged and the in-memory snapshot stands. Async flows capture
    ``generation`` before suspending and drop their results when it has
    moved on.
    """

    store: LocalStateStore
    notifications: NotificationCenter
    history_limit: int = 50
    user: UserRecord | None = None
    history: list[HistoryEntry] = field(default_factory=list)
    authenticated: bool = False
    generation: int = 0
    syncing: int = 0
    analyzing: bool = False
    upgrading: bool = False

    def restore(self, loaded: LoadedState) -> None:
        """Adopt freshly loaded state."""
        self.user = loaded.user
        self.history = loaded.history[: self.history_limit]
        self.authenticated = loaded.user is not None

    def start(self, record: UserRecord) -> None:
        """Begin an authenticated session for a record."""
        self.generation += 1
        self.user = record
        self.authenticated = True
        self._persist("user", lambda: self.store.save_user(record))

    def is_current(self, generation: int) -> bool:
        """Return True if no login/logout happened since ``generation``."""
        return generation == self.generation and self.user is not None

    def commit_user(
        self, transform: Callable[[UserRecord], UserRecord]
    ) -> UserRecord | None:
        """Apply a transform to the current user snapshot and persist it."""
        if self.user is None:
            return None
        updated = transform(self.user)
        if updated == self.user:
            return self.user
        self.user = updated
        self._persist("user", lambda: self.store.save_user(updated))
        return updated

    def commit_history(
        self, transform: Callable[[list[HistoryEntry]], list[HistoryEntry]]
    ) -> list[HistoryEntry]:
        """Apply a transform to the history, bound it and persist it."""
        history = transform(list(self.history))[: self.history_limit]
        self.history = history
        self._persist("history", lambda: self.store.save_history(history))
        return history

    def end(self) -> None:
        """Forget the session in memory and on disk."""
        self.generation += 1
        self.user = None
        self.history = []
        self.authenticated = False
        self.analyzing = False
        self.upgrading = False
        self._persist("session", self.store.clear)

    def _persist(self, what: str, write: Callable[[], None]) -> None:
        try:
            write()
        except OSError:
            _logger.exception("Failed to persist %s", what)
