"""Services package."""

from spendwise.services.storage import (
    ChangeChannel,
    DuplicateError,
    FinanceStore,
    JsonFileBackend,
    KeyValueBackend,
    MemoryBackend,
    PersistenceError,
    StorageError,
)

__all__ = [
    "ChangeChannel",
    "DuplicateError",
    "FinanceStore",
    "JsonFileBackend",
    "KeyValueBackend",
    "MemoryBackend",
    "PersistenceError",
    "StorageError",
]
