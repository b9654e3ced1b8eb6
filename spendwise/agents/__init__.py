"""AI Agents package."""

from spendwise.agents.insight_agent import (
    ERROR_SUMMARY,
    ERROR_TIPS,
    OFFLINE_SUMMARY,
    OFFLINE_TIPS,
    InsightAgent,
    build_budget_digest,
    build_expense_digest,
    coerce_parsed_expense,
    error_analysis,
    extract_json_object,
    offline_analysis,
)
from spendwise.agents.sequencing import LatestRequestGuard

__all__ = [
    "ERROR_SUMMARY",
    "ERROR_TIPS",
    "OFFLINE_SUMMARY",
    "OFFLINE_TIPS",
    "InsightAgent",
    "LatestRequestGuard",
    "build_budget_digest",
    "build_expense_digest",
    "coerce_parsed_expense",
    "error_analysis",
    "extract_json_object",
    "offline_analysis",
]
