"""
Abstract Storage Interface

DESIGN DECISION: The store sits on a plain key-value backend.
This allows us to:
1. Keep everything in memory for tests (and model several "tabs")
2. Persist to JSON files on disk for real use
3. Swap in any other key-value store without touching the store logic

The interface is intentionally tiny: get/set/remove by key, plus a way
for the backend to report writes made by OTHER contexts. Writes made
through a backend instance are never reported back to that instance.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional


# Called with the key that another context changed
KeyListener = Callable[[str], None]
Unwatch = Callable[[], None]


class KeyValueBackend(ABC):
    """
    Abstract interface for the key-value storage backend.

    Values are opaque strings (the store writes JSON arrays).
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read the value stored under key.

        Returns:
            The stored string, or None if the key is absent

        Raises:
            PersistenceError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Store value under key, replacing any previous value.

        The write is all-or-nothing: on failure the previous value
        is still what get() returns.

        Raises:
            PersistenceError: If the write fails (e.g. quota, disk full)
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """
        Remove key. Removing an absent key is not an error.

        Raises:
            PersistenceError: If the removal fails
        """
        pass

    @abstractmethod
    def watch(self, listener: KeyListener) -> Unwatch:
        """
        Register a listener for changes made by other contexts.

        Returns:
            A callable that deregisters the listener (idempotent)
        """
        pass

    def close(self) -> None:
        """Drop every listener and release resources. Idempotent."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class PersistenceError(StorageError):
    """
    A record could not be read, decoded or written.

    Always surfaced to the caller: it means the user's data is at risk.
    """

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.key = key
        self.original_error = original_error
