"""
Main Orchestrator for Spendwise

Ties the components together for a view layer:
- one FinanceStore per context (subscribe / add / delete / upsert)
- the pure aggregation functions (imported directly)
- an InsightFlow wrapping the InsightAgent

DESIGN DECISION: The view never talks to the agent directly. InsightFlow
stamps every request so a slow, superseded answer can never overwrite a
newer one.
"""

import datetime as dt
from decimal import Decimal
from typing import Iterable, Optional

from spendwise.agents import InsightAgent, LatestRequestGuard
from spendwise.analytics import budget_alerts, budget_progress
from spendwise.audit import AuditLogger
from spendwise.config import get_settings
from spendwise.models.expense import (
    Budget,
    BudgetProgress,
    BudgetStatus,
    Expense,
    ParsedExpense,
    SpendingAnalysis,
)
from spendwise.services.storage import (
    ChangeChannel,
    FinanceStore,
    JsonFileBackend,
    KeyValueBackend,
)


class InsightFlow:
    """
    Orchestrates insight requests for one consumer.

    Only the most recently issued request of each kind is allowed to
    produce a result. Earlier requests that finish late return None and
    leave `latest_analysis` untouched.
    """

    def __init__(
        self,
        agent: InsightAgent,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._agent = agent
        self._audit = audit_logger or AuditLogger()
        self._analysis_guard = LatestRequestGuard()
        self._parse_guard = LatestRequestGuard()
        self._latest_analysis: Optional[SpendingAnalysis] = None

    @property
    def latest_analysis(self) -> Optional[SpendingAnalysis]:
        return self._latest_analysis

    async def refresh_analysis(
        self,
        expenses: Iterable[Expense],
        budgets: Iterable[Budget],
    ) -> Optional[SpendingAnalysis]:
        """
        Request a new analysis.

        Returns:
            The analysis, or None if a newer request was issued (or the
            flow was reset) while this one was in flight
        """
        token = self._analysis_guard.issue()
        analysis = await self._agent.analyze_spending(list(expenses), list(budgets))

        if not self._analysis_guard.is_current(token):
            self._audit.log_result_superseded("analysis", token, self._analysis_guard.latest)
            return None

        self._latest_analysis = analysis
        return analysis

    async def parse_expense(
        self,
        text: str,
        today: Optional[dt.date] = None,
    ) -> Optional[ParsedExpense]:
        """
        Parse free text into a proposed expense.

        Returns None when the text could not be parsed and when a newer
        parse request superseded this one. Either way the caller shows
        its manual-entry guidance.
        """
        token = self._parse_guard.issue()
        parsed = await self._agent.parse_natural_language_expense(text, today=today)

        if not self._parse_guard.is_current(token):
            self._audit.log_result_superseded("parse", token, self._parse_guard.latest)
            return None
        return parsed

    def reset(self) -> None:
        """Discard any in-flight results; the consumer has moved on."""
        self._analysis_guard.invalidate()
        self._parse_guard.invalidate()
        self._latest_analysis = None


def budget_alerts_for(
    expenses: Iterable[Expense],
    budgets: Iterable[Budget],
) -> list[tuple[BudgetProgress, BudgetStatus]]:
    """Budgets past the configured warning threshold, most used first."""
    warning_percent = Decimal(str(get_settings().app.budget_warning_percent))
    return budget_alerts(budget_progress(expenses, budgets), warning_percent)


def create_app_components(
    backend: Optional[KeyValueBackend] = None,
    insight_agent: Optional[InsightAgent] = None,
) -> tuple[FinanceStore, InsightFlow]:
    """
    Factory function to create all application components.

    Args:
        backend: Storage backend. Defaults to JSON files in the
                 configured data directory.
        insight_agent: Insight client. Defaults to one built from settings
                       (offline when no Gemini key is configured).

    Returns:
        (store, insight_flow)
    """
    settings = get_settings()
    storage_settings = settings.storage
    audit_logger = AuditLogger()

    owns_backend = backend is None
    if backend is None:
        backend = JsonFileBackend(
            storage_settings.data_dir,
            write_attempts=storage_settings.write_attempts,
        )

    store = FinanceStore(
        backend,
        channel=ChangeChannel(),
        audit_logger=audit_logger,
        expenses_key=storage_settings.expenses_key,
        budgets_key=storage_settings.budgets_key,
        owns_backend=owns_backend,
    )

    agent = insight_agent or InsightAgent(audit_logger=audit_logger)
    insight_flow = InsightFlow(agent, audit_logger=audit_logger)

    return store, insight_flow
