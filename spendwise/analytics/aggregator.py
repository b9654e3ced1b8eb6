"""
Spending aggregation.

DESIGN DECISION: Everything here is a pure function over a snapshot.
No I/O, no state, no clock. The store hands out snapshots; the view
feeds them through these functions.

Budgets with a limit of 0 (or less) mean "no budget set". They are
filtered out before any percentage is computed, so a zero limit never
reaches a division.
"""

import datetime as dt
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from spendwise.models.expense import (
    BUDGET_WARNING_PERCENT,
    Budget,
    BudgetProgress,
    BudgetStatus,
    Category,
    CategoryTotal,
    Expense,
)


HUNDRED = Decimal("100")


def sort_by_date_desc(expenses: Iterable[Expense]) -> list[Expense]:
    """Most recent first; same-day expenses keep their input order."""
    return sorted(expenses, key=lambda expense: expense.date, reverse=True)


def total_spent(expenses: Iterable[Expense]) -> Decimal:
    return sum((expense.amount for expense in expenses), Decimal("0"))


def _totals_by_category(expenses: Iterable[Expense]) -> dict[Category, Decimal]:
    totals = {category: Decimal("0") for category in Category}
    for expense in expenses:
        totals[expense.category] += expense.amount
    return totals


def category_breakdown(expenses: Iterable[Expense]) -> list[CategoryTotal]:
    """
    Total per category, largest first.

    Categories with nothing spent are left out. Equal totals keep
    the enum order.
    """
    totals = _totals_by_category(expenses)
    breakdown = [
        CategoryTotal(category=category, total=total)
        for category, total in totals.items()
        if total > 0
    ]
    return sorted(breakdown, key=lambda entry: entry.total, reverse=True)


def budget_progress(
    expenses: Iterable[Expense],
    budgets: Iterable[Budget],
) -> list[BudgetProgress]:
    """
    Budget-vs-actual for every budget with a positive limit.

    percent = min(spent / limit * 100, 100), sorted by percent,
    highest first. Use `spent > limit` (or over_budget_count) to find
    overspending; percent is clamped for display.
    """
    spent_by_category = _totals_by_category(expenses)

    progress = []
    for budget in (b for b in budgets if b.limit > 0):
        spent = spent_by_category[budget.category]
        percent = min(spent / budget.limit * HUNDRED, HUNDRED)
        progress.append(
            BudgetProgress(
                category=budget.category,
                spent=spent,
                limit=budget.limit,
                percent=percent,
            )
        )
    return sorted(progress, key=lambda entry: entry.percent, reverse=True)


def over_budget_count(progress: Iterable[BudgetProgress]) -> int:
    """Number of budgets where spending strictly exceeds the limit."""
    return sum(1 for entry in progress if entry.spent > entry.limit)


def total_budget(budgets: Iterable[Budget]) -> Decimal:
    """Overall monthly cap: the sum of every category limit."""
    return sum((budget.limit for budget in budgets), Decimal("0"))


def overall_progress(expenses: Iterable[Expense], budgets: Iterable[Budget]) -> Decimal:
    """
    Total spent against the overall cap, clamped to [0, 100].

    0 when no budget is set at all.
    """
    cap = total_budget(budgets)
    if cap <= 0:
        return Decimal("0")
    return min(total_spent(expenses) / cap * HUNDRED, HUNDRED)


def top_category(expenses: Iterable[Expense]) -> Optional[Category]:
    """Category with the largest total, or None if nothing was spent."""
    breakdown = category_breakdown(expenses)
    return breakdown[0].category if breakdown else None


def filter_expenses(
    expenses: Sequence[Expense],
    category: Optional[Category] = None,
    search: str = "",
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
) -> list[Expense]:
    """
    Filter an expense snapshot for the expense list.

    Args:
        category: Keep only this category (None keeps all)
        search: Case-insensitive substring of the description
        start: Keep expenses on or after this date
        end: Keep expenses on or before this date

    Returns:
        Matching expenses, most recent first
    """
    needle = search.strip().lower()

    def matches(expense: Expense) -> bool:
        if category is not None and expense.category != category:
            return False
        if needle and needle not in expense.description.lower():
            return False
        if start is not None and expense.date < start:
            return False
        if end is not None and expense.date > end:
            return False
        return True

    return sort_by_date_desc(expense for expense in expenses if matches(expense))


def budget_alerts(
    progress: Iterable[BudgetProgress],
    warning_percent: Decimal = BUDGET_WARNING_PERCENT,
) -> list[tuple[BudgetProgress, BudgetStatus]]:
    """Entries that need attention (warning or over), in the given order."""
    alerts = []
    for entry in progress:
        status = entry.status_for(warning_percent)
        if status is not BudgetStatus.OK:
            alerts.append((entry, status))
    return alerts
