"""
Core Data Models for Spendwise

These models define the strict schemas for everything the store persists
and the aggregator and insight client hand back.

DESIGN DECISION: We use Pydantic v2 with frozen models for stored records.
Expenses are never mutated in place, so a snapshot handed to one
subscriber can be shared with every other subscriber safely.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Category(str, Enum):
    """
    Supported expense categories.

    DESIGN DECISION: The enum is the closed source of truth. Free text
    coming back from the LLM is coerced onto it, never added to it.
    """
    FOOD = "Food & Drink"
    TRANSPORT = "Transportation"
    HOUSING = "Housing & Utilities"
    ENTERTAINMENT = "Entertainment"
    EDUCATION = "Education"
    SHOPPING = "Shopping"
    HEALTH = "Health"
    OTHER = "Other"

    @classmethod
    def coerce(cls, value: Any) -> "Category":
        """
        Map any value onto a category.

        Exact value match first, then a case-insensitive match on the
        value or the member name. Anything else is OTHER.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return cls.OTHER

        try:
            return cls(value)
        except ValueError:
            pass

        wanted = value.strip().lower()
        for member in cls:
            if wanted in (member.value.lower(), member.name.lower()):
                return member
        return cls.OTHER


class BudgetStatus(str, Enum):
    """Where a budget stands against its limit."""
    OK = "ok"
    WARNING = "warning"
    OVER = "over"


# Seeded the first time the budget collection is read
DEFAULT_BUDGET_LIMITS: dict[Category, Decimal] = {
    Category.FOOD: Decimal("5000"),
    Category.ENTERTAINMENT: Decimal("1500"),
}

BUDGET_WARNING_PERCENT = Decimal("85")


# =============================================================================
# STORED RECORDS
# =============================================================================

class Expense(BaseModel):
    """
    A single recorded expense.

    Immutable once created. Replacing an expense means deleting it and
    adding a new one.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        min_length=1,
        description="Opaque unique identifier"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount spent"
    )
    category: Category
    description: str = Field(
        default="",
        description="Free text description"
    )
    date: dt.date = Field(
        ...,
        description="Calendar date of the expense"
    )


class Budget(BaseModel):
    """Monthly spending cap for one category."""
    model_config = ConfigDict(frozen=True)

    category: Category
    limit: Decimal = Field(
        ...,
        ge=0,
        description="Spending cap; 0 means no budget set"
    )


def default_budgets() -> list[Budget]:
    """One budget per category, in enum order, with the seeded limits."""
    return [
        Budget(category=category, limit=DEFAULT_BUDGET_LIMITS.get(category, Decimal("0")))
        for category in Category
    ]


# =============================================================================
# INSIGHT CLIENT MODELS
# =============================================================================

class ParsedExpense(BaseModel):
    """
    Best-effort structured guess from a free-text description.

    CRITICAL: This is PROPOSED data. The caller decides whether to turn
    it into a stored Expense.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(..., ge=0)
    category: Category = Category.OTHER
    description: str = ""
    date: dt.date

    def to_expense(self, expense_id: Optional[str] = None) -> Expense:
        """Promote to a stored expense with a fresh (or given) id."""
        fields = self.model_dump()
        if expense_id is not None:
            fields["id"] = expense_id
        return Expense(**fields)


class SpendingAnalysis(BaseModel):
    """Narrative spending insight."""

    summary: str
    tips: list[str] = Field(default_factory=list)
    is_fallback: bool = Field(
        default=False,
        description="True when this is the fixed offline/error payload"
    )


# =============================================================================
# AGGREGATION RESULTS
# =============================================================================

class CategoryTotal(BaseModel):
    """Total spent in one category."""
    model_config = ConfigDict(frozen=True)

    category: Category
    total: Decimal


class BudgetProgress(BaseModel):
    """
    Budget-vs-actual for one category.

    `percent` is the clamped display value. Overspending is still
    recoverable through `spent > limit`.
    """
    model_config = ConfigDict(frozen=True)

    category: Category
    spent: Decimal
    limit: Decimal
    percent: Decimal = Field(..., ge=0, le=100)

    @property
    def is_over_budget(self) -> bool:
        return self.spent > self.limit

    @property
    def remaining(self) -> Decimal:
        """Negative when over budget."""
        return self.limit - self.spent

    def status_for(self, warning_percent: Decimal = BUDGET_WARNING_PERCENT) -> BudgetStatus:
        if self.is_over_budget:
            return BudgetStatus.OVER
        if self.percent > warning_percent:
            return BudgetStatus.WARNING
        return BudgetStatus.OK

    @property
    def status(self) -> BudgetStatus:
        return self.status_for()
