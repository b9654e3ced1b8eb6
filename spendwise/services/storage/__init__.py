"""
Storage Services Package

Provides the key-value backend interface, two backends (in-memory and
JSON files), the change channel, and the FinanceStore built on them.
"""

from spendwise.services.storage.interface import (
    KeyValueBackend,
    PersistenceError,
    StorageError,
)
from spendwise.services.storage.channel import ChangeChannel
from spendwise.services.storage.memory import MemoryBackend
from spendwise.services.storage.json_files import JsonFileBackend
from spendwise.services.storage.repository import (
    DEFAULT_BUDGETS_KEY,
    DEFAULT_EXPENSES_KEY,
    DuplicateError,
    FinanceStore,
)

__all__ = [
    # Interfaces
    "KeyValueBackend",
    # Exceptions
    "DuplicateError",
    "PersistenceError",
    "StorageError",
    # Backends
    "JsonFileBackend",
    "MemoryBackend",
    # Store
    "ChangeChannel",
    "DEFAULT_BUDGETS_KEY",
    "DEFAULT_EXPENSES_KEY",
    "FinanceStore",
]
