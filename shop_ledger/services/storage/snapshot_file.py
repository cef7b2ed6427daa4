"""
Snapshot Blob Files

A tiny key/value store of JSON blobs on local disk, the Python
counterpart of browser local storage. Each key is one file.

Writes go to a temporary file in the same directory and are moved
into place with os.replace, so a reader sees either the old blob or
the new one, never a truncated file.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from shop_ledger.logger import get_logger
from shop_ledger.services.storage.interface import PersistenceError


logger = get_logger(__name__)

_DIRECTORY_LOCKS: dict[Path, threading.RLock] = {}
_DIRECTORY_LOCKS_GUARD = threading.Lock()


def _lock_for(directory: Path) -> threading.RLock:
    """One lock per data directory, shared by every SnapshotFile on it."""
    key = directory.resolve()
    with _DIRECTORY_LOCKS_GUARD:
        return _DIRECTORY_LOCKS.setdefault(key, threading.RLock())


class SnapshotFile:
    """JSON blobs keyed by name inside one directory."""

    def __init__(self, data_dir: str | Path):
        self._dir = Path(data_dir)
        # Callers hold it across read-modify-write sequences
        self.lock = _lock_for(self._dir)

    def path_for(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def read(self, key: str, default: Any = None) -> Any:
        """Read a blob, or return default if it was never written."""
        path = self.path_for(key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return default
        except OSError as e:
            raise PersistenceError(f"Failed to read {path.name}: {e}")

        if not text.strip():
            return default
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            # Refuse to continue: writing now would destroy the blob
            raise PersistenceError(f"Snapshot {path.name} is corrupt: {e}")

    def write(self, key: str, value: Any) -> None:
        """Atomically replace a blob."""
        path = self.path_for(key)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._dir, prefix=f".{key}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(value, fh, ensure_ascii=False)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(f"Failed to write {path.name}: {e}")

        logger.debug("snapshot_written", key=key)

    def remove(self, key: str) -> None:
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to remove {key}: {e}")
