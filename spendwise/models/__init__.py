"""
Data Models Package

This package contains all Pydantic models used in Spendwise.
All data flowing through the system must conform to these schemas.
"""

from spendwise.models.expense import (
    BUDGET_WARNING_PERCENT,
    DEFAULT_BUDGET_LIMITS,
    Budget,
    BudgetProgress,
    BudgetStatus,
    Category,
    CategoryTotal,
    Expense,
    ParsedExpense,
    SpendingAnalysis,
    default_budgets,
)
from spendwise.models.events import (
    ChangeNotice,
    ChangeReason,
    Collection,
)
from spendwise.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Expense models
    "BUDGET_WARNING_PERCENT",
    "DEFAULT_BUDGET_LIMITS",
    "Budget",
    "BudgetProgress",
    "BudgetStatus",
    "Category",
    "CategoryTotal",
    "Expense",
    "ParsedExpense",
    "SpendingAnalysis",
    "default_budgets",
    # Change notices
    "ChangeNotice",
    "ChangeReason",
    "Collection",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
