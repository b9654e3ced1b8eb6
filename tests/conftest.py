"""
Shared fixtures.

No test talks to Gemini: the API key is removed from the environment
for every test, and online agents are built with stub models.
"""

import datetime as dt
from decimal import Decimal
from types import SimpleNamespace
from typing import Optional

import pytest

from spendwise.audit import AuditLogger
from spendwise.config import get_settings
from spendwise.models.expense import Category, Expense
from spendwise.services.storage import FinanceStore, MemoryBackend, PersistenceError


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Fresh settings per test, no real key, data under tmp_path."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("SPENDWISE_STORAGE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class RecordingBackend(MemoryBackend):
    """MemoryBackend that counts writes and can be told to fail them."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.writes: list[str] = []
        self.fail_writes = False

    def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise PersistenceError("simulated write failure", key=key)
        super().set(key, value)
        self.writes.append(key)


class StubModel:
    """Stands in for genai.GenerativeModel."""

    def __init__(self, text: Optional[str] = None, error: Optional[BaseException] = None):
        self.text = text
        self.error = error
        self.calls: list[str] = []

    async def generate_content_async(self, prompt):
        self.calls.append(prompt)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


def make_expense(
    amount="100",
    category=Category.FOOD,
    day=dt.date(2024, 1, 1),
    description="test expense",
    expense_id=None,
) -> Expense:
    fields = dict(
        amount=Decimal(str(amount)),
        category=category,
        date=day,
        description=description,
    )
    if expense_id is not None:
        fields["id"] = expense_id
    return Expense(**fields)


@pytest.fixture
def audit_logger():
    return AuditLogger()


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def store(backend, audit_logger):
    store = FinanceStore(backend, audit_logger=audit_logger)
    yield store
    store.close()
