"""
In-memory key-value backend.

Forks of one MemoryBackend share the same data and behave like separate
browser tabs over one localStorage: a write through one fork is reported
to the watchers of every OTHER fork, never to the writer.
A fork drops out of the shared state when closed or garbage collected.
"""

import weakref
from typing import Optional

from spendwise.services.storage.interface import (
    KeyListener,
    KeyValueBackend,
    PersistenceError,
    Unwatch,
)


class _SharedState:
    def __init__(self, quota_bytes: Optional[int]):
        self.data: dict[str, str] = {}
        self.quota_bytes = quota_bytes
        self.contexts: "weakref.WeakSet[MemoryBackend]" = weakref.WeakSet()


class MemoryBackend(KeyValueBackend):
    """
    Dict-backed storage.

    Args:
        quota_bytes: Optional cap on the total size of all stored values.
                    A write that would exceed it fails with
                    PersistenceError, the way a browser quota does.
    """

    def __init__(self, quota_bytes: Optional[int] = None, _shared: Optional[_SharedState] = None):
        self._shared = _shared or _SharedState(quota_bytes)
        self._shared.contexts.add(self)
        self._watchers: dict[int, KeyListener] = {}
        self._next_watch_id = 0

    def fork(self) -> "MemoryBackend":
        """A new context over the same data."""
        return MemoryBackend(_shared=self._shared)

    @property
    def open_contexts(self) -> int:
        """Live forks (this one included) over the shared data."""
        return len(self._shared.contexts)

    def get(self, key: str) -> Optional[str]:
        return self._shared.data.get(key)

    def set(self, key: str, value: str) -> None:
        quota = self._shared.quota_bytes
        if quota is not None:
            others = sum(
                len(v.encode("utf-8"))
                for k, v in self._shared.data.items()
                if k != key
            )
            if others + len(value.encode("utf-8")) > quota:
                raise PersistenceError(
                    f"Storage quota of {quota} bytes exceeded writing '{key}'",
                    key=key,
                )
        self._shared.data[key] = value
        self._broadcast(key)

    def remove(self, key: str) -> None:
        if self._shared.data.pop(key, None) is not None:
            self._broadcast(key)

    def watch(self, listener: KeyListener) -> Unwatch:
        watch_id = self._next_watch_id
        self._next_watch_id += 1
        self._watchers[watch_id] = listener

        def unwatch() -> None:
            self._watchers.pop(watch_id, None)

        return unwatch

    def close(self) -> None:
        """Leave the shared state; other forks stop notifying this one."""
        self._shared.contexts.discard(self)
        self._watchers.clear()

    def _broadcast(self, key: str) -> None:
        for context in list(self._shared.contexts):
            if context is self:
                continue
            for listener in list(context._watchers.values()):
                listener(key)
