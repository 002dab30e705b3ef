"""Local persistence of the user profile and meal history."""

import json
import logging
import math
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Protocol
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from calories_ai.domain.models import (
    HistoryEntry,
    NutritionalData,
    UserPlan,
    UserRecord,
)
from calories_ai.services.plan_rules import normalize_plan

USER_KEY = "calories_ai_user"
HISTORY_KEY = "calories_ai_history"
STABLE_ID_KEY = "calories_ai_stable_id"

_logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Durable string key/value storage scoped to this device."""

    def get(self, key: str) -> str | None:
        """Return the stored value for a key, if present."""

    def set(self, key: str, value: str) -> None:
        """Store a value under a key, replacing any previous one."""

    def delete(self, key: str) -> None:
        """Remove a key if present."""


class StoredUser(BaseModel):
    """Persisted layout of the user profile; every field has a default."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str | None = None
    email: str = ""
    name: str = ""
    plan: UserPlan = UserPlan.FREE
    daily_usage_count: int = Field(default=0, alias="dailyUsageCount")
    last_usage_date: date | None = Field(default=None, alias="lastUsageDate")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> str | None:
        if isinstance(value, str) and value.strip():
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return None

    @field_validator("email", "name", mode="before")
    @classmethod
    def _coerce_text(cls, value: object) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("plan", mode="before")
    @classmethod
    def _coerce_plan(cls, value: object) -> UserPlan:
        return normalize_plan(value)

    @field_validator("daily_usage_count", mode="before")
    @classmethod
    def _coerce_count(cls, value: object) -> int:
        if isinstance(value, bool):
            return 0
        if isinstance(value, int):
            return max(0, value)
        if isinstance(value, float) and math.isfinite(value):
            return max(0, int(value))
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        return 0

    @field_validator("last_usage_date", mode="before")
    @classmethod
    def _coerce_date(cls, value: object) -> date | None:
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                return date.fromisoformat(value.strip()[:10])
            except ValueError:
                return None
        return None

    @classmethod
    def from_record(cls, record: UserRecord) -> "StoredUser":
        """Build the persisted layout from a domain record."""
        return cls(
            id=record.id,
            email=record.email,
            name=record.name,
            plan=record.plan,
            daily_usage_count=record.daily_usage_count,
            last_usage_date=record.last_usage_date,
        )


class StoredHistoryEntry(BaseModel):
    """Persisted layout of a history entry."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    timestamp: int
    text_input: str | None = Field(default=None, alias="textInput")
    image_url: str | None = Field(default=None, alias="imageUrl")
    data: NutritionalData

    def to_entry(self) -> HistoryEntry:
        """Convert to the domain entry."""
        return HistoryEntry(
            id=self.id,
            timestamp=datetime.fromtimestamp(self.timestamp / 1000, tz=UTC),
            text_input=self.text_input,
            image_url=self.image_url,
            data=self.data,
        )

    @classmethod
    def from_entry(cls, entry: HistoryEntry) -> "StoredHistoryEntry":
        """Build the persisted layout from a domain entry."""
        return cls(
            id=entry.id,
            timestamp=int(entry.timestamp.timestamp() * 1000),
            text_input=entry.text_input,
            image_url=entry.image_url,
            data=entry.data,
        )


@dataclass(frozen=True)
class LoadedState:
    """Result of restoring persisted state."""

    user: UserRecord | None
    history: list[HistoryEntry]
    repaired: bool = False


def new_stable_id() -> str:
    """Mint a device-scoped identity."""
    return f"google_uid_{uuid4().hex[:8]}"


def new_restored_id() -> str:
    """Mint an identity for a stored record that lost its own."""
    return f"usr_restored_{uuid4().hex[:8]}"


@dataclass
class LocalStateStore:
    """Reads and writes the two persisted records plus the stable identity."""

    store: KeyValueStore

    def load(self) -> LoadedState:
        """Restore the user and history; absent records mean a fresh install."""
        user: UserRecord | None = None
        repaired = False
        stored_user = self._load_user()
        if stored_user is not None:
            if stored_user.id is None:
                stored_user = stored_user.model_copy(update={"id": new_restored_id()})
                repaired = True
            user = UserRecord(
                id=str(stored_user.id),
                email=stored_user.email,
                name=stored_user.name,
                plan=stored_user.plan,
                daily_usage_count=stored_user.daily_usage_count,
                last_usage_date=stored_user.last_usage_date,
            )
            if repaired:
                _logger.warning("Stored user had no id; assigned %s", user.id)
                try:
                    self.save_user(user)
                    if self.store.get(STABLE_ID_KEY) is None:
                        self.store.set(STABLE_ID_KEY, user.id)
                except OSError:
                    _logger.exception("Failed to persist the repaired user")
        return LoadedState(user=user, history=self._load_history(), repaired=repaired)

    def save_user(self, record: UserRecord) -> None:
        """Persist the user profile."""
        stored = StoredUser.from_record(record)
        self.store.set(
            USER_KEY, json.dumps(stored.model_dump(mode="json", by_alias=True))
        )

    def save_history(self, entries: list[HistoryEntry]) -> None:
        """Persist the history list, newest first."""
        payload = [
            StoredHistoryEntry.from_entry(entry).model_dump(mode="json", by_alias=True)
            for entry in entries
        ]
        self.store.set(HISTORY_KEY, json.dumps(payload))

    def clear(self) -> None:
        """Remove the profile and history; the stable identity survives."""
        self.store.delete(USER_KEY)
        self.store.delete(HISTORY_KEY)

    def get_or_create_stable_id(self) -> str:
        """Return the device identity, minting it on first use."""
        existing = self.store.get(STABLE_ID_KEY)
        if existing:
            return existing
        stable_id = new_stable_id()
        try:
            self.store.set(STABLE_ID_KEY, stable_id)
        except OSError:
            _logger.exception("Failed to persist the stable identity")
        return stable_id

    def _load_user(self) -> StoredUser | None:
        raw = self._read_json(USER_KEY)
        if not isinstance(raw, dict):
            return None
        try:
            return StoredUser.model_validate(raw)
        except ValidationError:
            _logger.warning("Discarding unreadable stored user")
            return None

    def _load_history(self) -> list[HistoryEntry]:
        raw = self._read_json(HISTORY_KEY)
        if not isinstance(raw, list):
            return []
        entries: list[HistoryEntry] = []
        for item in raw:
            try:
                entries.append(StoredHistoryEntry.model_validate(item).to_entry())
            except (ValidationError, ValueError, OverflowError, OSError):
                _logger.warning("Skipping malformed history entry")
        return entries

    def _read_json(self, key: str) -> object:
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            _logger.warning("Stored %s is not valid JSON; ignoring it", key)
            return None
