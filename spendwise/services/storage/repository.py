"""
Finance Store

The reactive repository for the two collections (expenses, budgets).

FLOW for every mutation:
1. Read the stored collection (strictly - a corrupt record aborts)
2. Build the new collection in memory
3. Write it back in one backend call
4. Publish a ChangeNotice; every subscriber of that collection re-reads

If step 3 fails nothing was written, no notice goes out, and the caller
gets a PersistenceError.

CONSISTENCY POLICY: read-modify-write is NOT atomic across contexts.
Two contexts (tabs, processes) writing the same collection at the same
time overwrite each other and the last write wins. Notices are lossy:
a missed one leaves a stale view until the next read. There is no
per-record versioning and no merge. This is accepted behavior.
"""

import json
from decimal import Decimal
from itertools import count
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ValidationError

from spendwise.analytics.aggregator import sort_by_date_desc
from spendwise.audit import AuditLogger
from spendwise.models.events import ChangeNotice, ChangeReason, Collection
from spendwise.models.expense import Budget, Category, Expense, default_budgets
from spendwise.services.storage.channel import ChangeChannel
from spendwise.services.storage.interface import (
    KeyValueBackend,
    PersistenceError,
    StorageError,
)


DEFAULT_EXPENSES_KEY = "student_expenses_data"
DEFAULT_BUDGETS_KEY = "student_budgets_data"

Snapshot = list
SnapshotCallback = Callable[[Snapshot], Any]
Unsubscribe = Callable[[], None]


class DuplicateError(StorageError):
    """An expense with the same id is already stored."""
    pass


class _Reconciliation(BaseModel):
    """Outcome of checking the budget collection against the enum."""

    budgets: list[Budget]
    added: list[Category] = []
    dropped: int = 0
    seeded: bool = False
    corrupt: bool = False

    @property
    def changed(self) -> bool:
        return self.seeded or bool(self.added) or self.dropped > 0


class FinanceStore:
    """
    Repository for expenses and budgets with change notification.

    Construct once per context and pass it to whoever needs it.

    Args:
        backend: Key-value storage (also bridges cross-context changes)
        channel: Change channel; a private one is created if omitted
        audit_logger: Audit sink; a local one is created if omitted
        expenses_key: Storage key of the expense record
        budgets_key: Storage key of the budget record
        owns_backend: Close the backend too when the store is closed
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        channel: Optional[ChangeChannel] = None,
        audit_logger: Optional[AuditLogger] = None,
        expenses_key: str = DEFAULT_EXPENSES_KEY,
        budgets_key: str = DEFAULT_BUDGETS_KEY,
        owns_backend: bool = False,
    ):
        if expenses_key == budgets_key:
            raise ValueError("Expense and budget records need distinct keys")

        self._backend = backend
        self._owns_backend = owns_backend
        self._channel = channel or ChangeChannel()
        self._audit = audit_logger or AuditLogger()
        self._keys = {
            Collection.EXPENSES: expenses_key,
            Collection.BUDGETS: budgets_key,
        }
        self._subscribers: dict[Collection, dict[int, SnapshotCallback]] = {
            collection: {} for collection in Collection
        }
        self._subscription_ids = count()

        self._unwatch = backend.watch(self._on_backend_change)
        self._unlisten = self._channel.subscribe(self._on_notice)

    @property
    def channel(self) -> ChangeChannel:
        return self._channel

    def close(self) -> None:
        """
        Detach from the backend and channel and drop every subscriber.

        The backend is closed as well only when the store owns it.
        """
        self._unwatch()
        self._unlisten()
        if self._owns_backend:
            self._backend.close()
        for registry in self._subscribers.values():
            registry.clear()

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    def subscribe(
        self,
        collection: Union[Collection, str],
        callback: SnapshotCallback,
    ) -> Unsubscribe:
        """
        Deliver the current snapshot now and again after every change.

        Returns:
            Handle that deregisters this callback only; calling it
            more than once is harmless
        """
        collection = Collection(collection)
        registry = self._subscribers[collection]
        subscription_id = next(self._subscription_ids)
        registry[subscription_id] = callback

        def unsubscribe() -> None:
            registry.pop(subscription_id, None)

        try:
            callback(self._tolerant_snapshot(collection))
        except Exception:
            unsubscribe()
            raise

        return unsubscribe

    def subscribe_expenses(self, callback: Callable[[list[Expense]], Any]) -> Unsubscribe:
        return self.subscribe(Collection.EXPENSES, callback)

    def subscribe_budgets(self, callback: Callable[[list[Budget]], Any]) -> Unsubscribe:
        return self.subscribe(Collection.BUDGETS, callback)

    def subscriber_count(self, collection: Union[Collection, str]) -> int:
        return len(self._subscribers[Collection(collection)])

    def _on_backend_change(self, key: str) -> None:
        for collection, collection_key in self._keys.items():
            if collection_key == key:
                self._channel.notify(collection, ChangeReason.EXTERNAL)

    def _on_notice(self, notice: ChangeNotice) -> None:
        registry = self._subscribers[notice.collection]
        if not registry:
            return

        snapshot = self._tolerant_snapshot(notice.collection)
        for callback in list(registry.values()):
            try:
                callback(list(snapshot))
            except Exception as e:
                self._audit.log_subscriber_failed(notice.collection.value, str(e))

    def _tolerant_snapshot(self, collection: Collection) -> Snapshot:
        """Snapshot for subscribers: failures are logged, never raised."""
        if collection is Collection.EXPENSES:
            try:
                return sort_by_date_desc(self._read_expenses(strict=False))
            except PersistenceError as e:
                self._audit.log_persistence_failed(self._keys[collection], "read", str(e))
                return []

        try:
            reconciliation = self._reconcile_budgets(strict=False)
        except PersistenceError as e:
            self._audit.log_persistence_failed(self._keys[collection], "read", str(e))
            return [Budget(category=category, limit=0) for category in Category]

        # Never write back over entries we could not decode
        if reconciliation.changed and not reconciliation.corrupt:
            try:
                self._write_reconciled(reconciliation)
            except PersistenceError:
                pass  # already audited; the snapshot itself is still whole
        return reconciliation.budgets

    # =========================================================================
    # EXPENSES
    # =========================================================================

    def load_expenses(self) -> list[Expense]:
        """
        Current expenses, most recent first (ties in insertion order).

        Raises:
            PersistenceError: If the record cannot be read or decoded
        """
        return sort_by_date_desc(self._read_expenses(strict=True))

    def add_expense(self, expense: Expense) -> Expense:
        """
        Append an expense, persist, and notify expense subscribers.

        Raises:
            PersistenceError: If the write fails; nothing was stored
            DuplicateError: If an expense with this id already exists
        """
        expenses = self._read_expenses(strict=True)
        if any(existing.id == expense.id for existing in expenses):
            raise DuplicateError(f"Expense {expense.id} already exists")

        self._write(Collection.EXPENSES, expenses + [expense])
        self._audit.log_expense_added(expense.id, expense.category.value, str(expense.amount))
        self._channel.notify(Collection.EXPENSES, ChangeReason.ADDED)
        return expense

    def delete_expense(self, expense_id: str) -> bool:
        """
        Remove the expense with this id, persist, and notify.

        An unknown id is not an error: the record is left untouched
        and subscribers still get a (no-change) update.

        Returns:
            True if an expense was removed
        """
        expenses = self._read_expenses(strict=True)
        remaining = [expense for expense in expenses if expense.id != expense_id]
        removed = len(expenses) - len(remaining)

        if removed:
            self._write(Collection.EXPENSES, remaining)
        self._audit.log_expense_deleted(expense_id, removed)
        self._channel.notify(
            Collection.EXPENSES,
            ChangeReason.DELETED if removed else ChangeReason.NOOP,
        )
        return removed > 0

    def _read_expenses(self, strict: bool) -> list[Expense]:
        return self._decode(Collection.EXPENSES, Expense, strict)

    # =========================================================================
    # BUDGETS
    # =========================================================================

    def load_budgets(self) -> list[Budget]:
        """
        Read budgets, reconcile them against the category enum, and
        write back anything that had to be synthesized.

        Returns:
            Exactly one budget per category

        Raises:
            PersistenceError: If the record cannot be read, decoded or
                              the reconciled collection cannot be written
        """
        reconciliation = self._reconcile_budgets(strict=True)
        if reconciliation.changed:
            self._write_reconciled(reconciliation)
            self._channel.notify(Collection.BUDGETS, ChangeReason.RECONCILED)
        return reconciliation.budgets

    def upsert_budget(self, category: Union[Category, str], limit: Union[Decimal, int, str]) -> Budget:
        """
        Set the limit for a category, persist, and notify.

        Raises:
            PersistenceError: If the write fails; nothing was stored
            ValidationError: If the category or limit is invalid
        """
        budget = Budget(category=category, limit=limit)
        reconciliation = self._reconcile_budgets(strict=True)

        budgets = [
            budget if existing.category == budget.category else existing
            for existing in reconciliation.budgets
        ]
        self._write(Collection.BUDGETS, budgets)

        self._audit.log_budget_upserted(
            budget.category.value,
            str(budget.limit),
            created=budget.category in reconciliation.added,
        )
        self._channel.notify(Collection.BUDGETS, ChangeReason.UPSERTED)
        return budget

    def _reconcile_budgets(self, strict: bool) -> _Reconciliation:
        raw = self._backend.get(self._keys[Collection.BUDGETS])
        items = self._parse_array(Collection.BUDGETS, raw, strict)

        if not items:
            # First access, or an empty/unreadable record
            if raw is not None and items is None:
                return _Reconciliation(
                    budgets=[Budget(category=category, limit=0) for category in Category],
                    added=list(Category),
                    corrupt=True,
                )
            return _Reconciliation(budgets=default_budgets(), seeded=True)

        known = {category.value for category in Category}
        budgets: list[Budget] = []
        seen: set[Category] = set()
        dropped = 0
        corrupt = False

        for item in items:
            if isinstance(item, dict):
                category = item.get("category")
                if category is not None and not isinstance(category, str):
                    self._handle_corrupt(
                        Collection.BUDGETS,
                        f"category must be a string, got {type(category).__name__}",
                        strict,
                    )
                    corrupt = True
                    continue
                if category not in known:
                    dropped += 1
                    continue
            try:
                budget = Budget.model_validate(item)
            except ValidationError as e:
                self._handle_corrupt(Collection.BUDGETS, str(e), strict)
                corrupt = True
                continue
            if budget.category in seen:
                dropped += 1
                continue
            seen.add(budget.category)
            budgets.append(budget)

        added = [category for category in Category if category not in seen]
        budgets.extend(Budget(category=category, limit=0) for category in added)

        return _Reconciliation(budgets=budgets, added=added, dropped=dropped, corrupt=corrupt)

    def _write_reconciled(self, reconciliation: _Reconciliation) -> None:
        self._write(Collection.BUDGETS, reconciliation.budgets)
        self._audit.log_budgets_reconciled(
            added=[category.value for category in reconciliation.added],
            dropped=reconciliation.dropped,
            seeded=reconciliation.seeded,
        )

    # =========================================================================
    # ENCODING
    # =========================================================================

    def _decode(self, collection: Collection, model: type[BaseModel], strict: bool) -> list:
        raw = self._backend.get(self._keys[collection])
        items = self._parse_array(collection, raw, strict)
        if not items:
            return []

        records = []
        for item in items:
            try:
                records.append(model.model_validate(item))
            except ValidationError as e:
                self._handle_corrupt(collection, str(e), strict)
        return records

    def _parse_array(self, collection: Collection, raw: Optional[str], strict: bool) -> Optional[list]:
        """
        Decode a stored JSON array.

        Returns [] for an absent record and None for a corrupt one
        (when not strict).
        """
        if raw is None or not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            self._handle_corrupt(collection, f"invalid JSON: {e}", strict)
            return None
        if not isinstance(data, list):
            self._handle_corrupt(collection, f"expected a JSON array, got {type(data).__name__}", strict)
            return None
        return data

    def _handle_corrupt(self, collection: Collection, message: str, strict: bool) -> None:
        key = self._keys[collection]
        self._audit.log_corrupt_record(key, message)
        if strict:
            raise PersistenceError(f"Stored record '{key}' is corrupt: {message}", key=key)

    def _write(self, collection: Collection, records: list[BaseModel]) -> None:
        key = self._keys[collection]
        payload = json.dumps(
            [record.model_dump(mode="json") for record in records],
            ensure_ascii=False,
        )
        try:
            self._backend.set(key, payload)
        except PersistenceError as e:
            self._audit.log_persistence_failed(key, "write", str(e))
            raise
        except Exception as e:
            self._audit.log_persistence_failed(key, "write", str(e))
            raise PersistenceError(f"Failed to write '{key}': {e}", key=key, original_error=e) from e
