"""
JSON File Storage Implementation

Each key is one file, `<data_dir>/<key>.json`, holding the JSON text the
store wrote.

TRADEOFFS:
- Writes go to a temp file and are moved into place with os.replace,
  so a reader never sees half a record.
- There are no locks. Two processes writing the same key race and the
  last os.replace wins. This matches the store's consistency policy.
- Changes made by other processes are picked up by polling file stamps
  (poll() or watch_forever()). Our own writes are never reported back.
"""

import asyncio
import os
import re
import tempfile
from pathlib import Path
from typing import Optional, Union

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from spendwise.audit import get_logger
from spendwise.services.storage.interface import (
    KeyListener,
    KeyValueBackend,
    PersistenceError,
    Unwatch,
)


_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")

# (inode, mtime_ns, size); None when the file does not exist
FileStamp = Optional[tuple[int, int, int]]


class JsonFileBackend(KeyValueBackend):
    """
    File-per-key storage in a local directory.

    Args:
        data_dir: Directory for the record files (created if missing)
        write_attempts: Attempts for a write or remove before the
                        OSError is turned into a PersistenceError
    """

    def __init__(self, data_dir: Union[str, Path], write_attempts: int = 3):
        self._data_dir = Path(data_dir)
        self._write_attempts = write_attempts
        self._watchers: dict[int, KeyListener] = {}
        self._next_watch_id = 0
        self._logger = get_logger("spendwise.storage.json_files")

        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(
                f"Cannot create data directory {self._data_dir}: {e}",
                original_error=e,
            ) from e

        # Files already on disk are the baseline, not changes
        self._stamps: dict[str, FileStamp] = {
            path.stem: self._stamp(path) for path in self._data_dir.glob("*.json")
        }

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._data_dir / f"{key}.json"

    @staticmethod
    def _stamp(path: Path) -> FileStamp:
        try:
            st = path.stat()
        except FileNotFoundError:
            return None
        return (st.st_ino, st.st_mtime_ns, st.st_size)

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self._write_attempts),
            wait=wait_exponential(multiplier=0.05, max=1),
            retry=retry_if_exception_type(OSError),
            reraise=True,
        )

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Failed to read '{key}': {e}", key=key, original_error=e) from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self._retrying()(self._write_atomically, path, value)
        except OSError as e:
            raise PersistenceError(f"Failed to write '{key}': {e}", key=key, original_error=e) from e
        self._stamps[key] = self._stamp(path)

    def _write_atomically(self, path: Path, value: str) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self._data_dir, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            self._retrying()(path.unlink, missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to remove '{key}': {e}", key=key, original_error=e) from e
        self._stamps[key] = None

    def watch(self, listener: KeyListener) -> Unwatch:
        watch_id = self._next_watch_id
        self._next_watch_id += 1
        self._watchers[watch_id] = listener

        def unwatch() -> None:
            self._watchers.pop(watch_id, None)

        return unwatch

    def close(self) -> None:
        self._watchers.clear()

    def poll(self) -> list[str]:
        """
        Check for record files changed by other processes.

        Notifies watchers once per changed key and returns the keys.
        """
        keys = set(self._stamps)
        keys.update(path.stem for path in self._data_dir.glob("*.json"))

        changed = []
        for key in sorted(keys):
            if not _KEY_PATTERN.match(key):
                continue
            current = self._stamp(self._data_dir / f"{key}.json")
            if current != self._stamps.get(key):
                self._stamps[key] = current
                changed.append(key)

        for key in changed:
            self._logger.debug("external_change_detected", key=key)
            for listener in list(self._watchers.values()):
                listener(key)
        return changed

    async def watch_forever(self, interval: float = 1.0) -> None:
        """Poll until cancelled."""
        while True:
            self.poll()
            await asyncio.sleep(interval)
