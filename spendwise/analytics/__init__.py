"""Spending aggregation package."""

from spendwise.analytics.aggregator import (
    budget_alerts,
    budget_progress,
    category_breakdown,
    filter_expenses,
    over_budget_count,
    overall_progress,
    sort_by_date_desc,
    top_category,
    total_budget,
    total_spent,
)

__all__ = [
    "budget_alerts",
    "budget_progress",
    "category_breakdown",
    "filter_expenses",
    "over_budget_count",
    "overall_progress",
    "sort_by_date_desc",
    "top_category",
    "total_budget",
    "total_spent",
]
