"""Filesystem-backed key/value store."""

import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path

from calories_ai.services.storage import KeyValueStore

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


@dataclass
class FileKeyValueStore(KeyValueStore):
    """Stores each key in its own file under a state directory.

    Writes go through a temporary file and an atomic rename, so a crash
    leaves either the old value or the new one.
    """

    directory: Path

    def get(self, key: str) -> str | None:
        """Return the stored value for a key, if present."""
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        """Atomically replace the value stored under a key."""
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, self._path(key))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        """Remove a key if present."""
        self._path(key).unlink(missing_ok=True)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / key
