"""Key-value preference storage for persisted strings.

Preferences are a flat mapping of string keys to string values. The JSON
file backend keeps them in the same cache directory as other local state.
Writes take an exclusive file lock, merge into the current file contents and
replace the file atomically, so concurrent bnlink processes do not drop each
other's keys and a crash mid-write leaves the previous file intact.
"""

from __future__ import annotations

import json
import logging
import os
import stat
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Protocol

logger = logging.getLogger(__name__)

# File locking support
if sys.platform != "win32":
    import fcntl

    @contextmanager
    def _file_lock(filepath: Path, exclusive: bool = True) -> Generator[None, None, None]:
        """Hold an flock on a sidecar lock file next to `filepath`."""
        lock_path = filepath.with_name(filepath.name + ".lock")
        lock_path.touch(exist_ok=True)

        with open(lock_path, "r") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
else:
    import msvcrt

    @contextmanager
    def _file_lock(filepath: Path, exclusive: bool = True) -> Generator[None, None, None]:
        """Lock the first byte of a sidecar lock file (msvcrt has no shared locks)."""
        lock_path = filepath.with_name(filepath.name + ".lock")
        lock_path.touch(exist_ok=True)

        with open(lock_path, "r+") as lock_file:
            msvcrt.locking(lock_file.fileno(), msvcrt.LK_LOCK, 1)
            try:
                yield
            finally:
                try:
                    msvcrt.locking(lock_file.fileno(), msvcrt.LK_UNLCK, 1)
                except OSError:
                    pass


# Environment variable overriding the state directory
ENV_HOME = "BINANCE_LINK_HOME"

# File name inside the state directory
PREFERENCES_FILE = "preferences.json"


class PreferenceStoreError(Exception):
    """Error writing preferences."""

    pass


class PreferenceStore(Protocol):
    """String key-value store. Unset keys read as ""."""

    def get(self, key: str) -> str: ...

    def set(self, key: str, value: str) -> None: ...

    def set_many(self, values: dict[str, str]) -> None:
        """Write several keys at once; either all of them land or none do."""
        ...


def default_state_dir() -> Path:
    """Get the directory holding persisted state."""
    override = os.environ.get(ENV_HOME)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".cache" / "binance-link"


class MemoryPreferenceStore:
    """Dict-backed preference store."""

    def __init__(self, values: dict[str, str] | None = None):
        self.values: dict[str, str] = dict(values or {})

    def get(self, key: str) -> str:
        return self.values.get(key, "")

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def set_many(self, values: dict[str, str]) -> None:
        self.values.update(values)


class JsonPreferenceStore:
    """Preference store persisted as a JSON object on disk."""

    def __init__(self, preferences_file: Path | None = None):
        self.preferences_file = preferences_file or default_state_dir() / PREFERENCES_FILE
        self._values: dict[str, str] | None = None

    def _ensure_dir(self) -> None:
        """Ensure preferences directory exists with owner-only access."""
        directory = self.preferences_file.parent
        directory.mkdir(parents=True, exist_ok=True)
        try:
            directory.chmod(stat.S_IRWXU)
        except OSError as e:
            logger.warning(f"Could not set directory permissions: {e}")

    def _read_file(self) -> dict[str, str]:
        """Read the file as it is on disk; missing or corrupt reads as empty."""
        if not self.preferences_file.exists():
            return {}

        try:
            with open(self.preferences_file) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable preferences file {self.preferences_file}: {e}")
            return {}

        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write_file(self, values: dict[str, str]) -> None:
        """Write to a sibling temp file, then swap it into place."""
        tmp_path = self.preferences_file.with_name(self.preferences_file.name + ".tmp")
        try:
            with open(tmp_path, "w") as f:
                json.dump(values, f, indent=2)
            tmp_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0600
            os.replace(tmp_path, self.preferences_file)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

    def load(self) -> dict[str, str]:
        """Load preferences from file, empty if missing or unreadable."""
        if self._values is not None:
            return self._values

        if not self.preferences_file.exists():
            self._values = {}
            return self._values

        try:
            with _file_lock(self.preferences_file, exclusive=False):
                self._values = self._read_file()
        except OSError as e:
            logger.warning(f"Could not lock preferences file {self.preferences_file}: {e}")
            self._values = {}
        return self._values

    def get(self, key: str) -> str:
        return self.load().get(key, "")

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def set_many(self, values: dict[str, str]) -> None:
        """Merge `values` into the file in a single locked write.

        The cached values only change once the write has succeeded.

        Raises:
            PreferenceStoreError: If the file cannot be written
        """
        try:
            self._ensure_dir()
            with _file_lock(self.preferences_file, exclusive=True):
                merged = self._read_file()
                merged.update(values)
                self._write_file(merged)
        except OSError as e:
            raise PreferenceStoreError(
                f"Could not write preferences to {self.preferences_file}: {e}"
            ) from e

        self._values = merged
