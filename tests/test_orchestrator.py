"""Tests for InsightFlow and the component factory."""

import asyncio
import datetime as dt

import pytest

from conftest import make_expense
from spendwise.models import AuditEventType, Budget, BudgetStatus, Category, ParsedExpense, SpendingAnalysis
from spendwise.agents import OFFLINE_SUMMARY, LatestRequestGuard
from spendwise.audit import AuditLogger
from spendwise.orchestrator import InsightFlow, budget_alerts_for, create_app_components
from spendwise.services.storage import FinanceStore, JsonFileBackend, MemoryBackend


class GatedAgent:
    """Agent whose answers are released by the test, one gate per call."""

    def __init__(self):
        self.gates: list[asyncio.Event] = []

    async def _wait(self):
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        return len(self.gates)

    async def analyze_spending(self, expenses, budgets):
        await self._wait()
        return SpendingAnalysis(summary=f"analysis for {len(expenses)} expenses", tips=[])

    async def parse_natural_language_expense(self, text, today=None):
        await self._wait()
        return ParsedExpense(
            amount=10,
            category=Category.OTHER,
            description=text,
            date=today or dt.date(2024, 1, 1),
        )


async def started(agent, count):
    while len(agent.gates) < count:
        await asyncio.sleep(0)


class TestLatestRequestGuard:
    def test_only_latest_token_is_current(self):
        guard = LatestRequestGuard()
        first = guard.issue()
        second = guard.issue()
        assert not guard.is_current(first)
        assert guard.is_current(second)
        assert guard.latest == second

    def test_invalidate_makes_everything_stale(self):
        guard = LatestRequestGuard()
        token = guard.issue()
        guard.invalidate()
        assert not guard.is_current(token)


class TestInsightFlow:
    @pytest.mark.asyncio
    async def test_late_result_does_not_overwrite_newer_one(self):
        agent = GatedAgent()
        audit_logger = AuditLogger()
        flow = InsightFlow(agent, audit_logger=audit_logger)

        older = asyncio.create_task(flow.refresh_analysis([make_expense()], []))
        await started(agent, 1)
        newer = asyncio.create_task(flow.refresh_analysis([make_expense(), make_expense()], []))
        await started(agent, 2)

        agent.gates[1].set()
        newer_result = await newer
        agent.gates[0].set()
        older_result = await older

        assert newer_result.summary == "analysis for 2 expenses"
        assert older_result is None
        assert flow.latest_analysis == newer_result
        assert audit_logger.recent_events[-1].event_type is AuditEventType.RESULT_SUPERSEDED

    @pytest.mark.asyncio
    async def test_reset_discards_in_flight_analysis(self):
        agent = GatedAgent()
        flow = InsightFlow(agent)

        pending = asyncio.create_task(flow.refresh_analysis([], []))
        await started(agent, 1)
        flow.reset()
        agent.gates[0].set()

        assert await pending is None
        assert flow.latest_analysis is None

    @pytest.mark.asyncio
    async def test_superseded_parse_returns_none(self):
        agent = GatedAgent()
        flow = InsightFlow(agent)

        older = asyncio.create_task(flow.parse_expense("first"))
        await started(agent, 1)
        newer = asyncio.create_task(flow.parse_expense("second"))
        await started(agent, 2)

        agent.gates[0].set()
        agent.gates[1].set()

        assert await older is None
        assert (await newer).description == "second"

    @pytest.mark.asyncio
    async def test_sequential_requests_both_apply(self):
        agent = GatedAgent()
        flow = InsightFlow(agent)

        for count in (1, 2):
            task = asyncio.create_task(flow.refresh_analysis([make_expense()] * count, []))
            await started(agent, count)
            agent.gates[-1].set()
            assert (await task).summary == f"analysis for {count} expenses"


class TestBudgetAlerts:
    def test_uses_configured_threshold(self, monkeypatch):
        from spendwise.config import get_settings

        expenses = [make_expense(60, Category.FOOD)]
        budgets = [Budget(category=Category.FOOD, limit=100)]
        assert budget_alerts_for(expenses, budgets) == []

        monkeypatch.setenv("SPENDWISE_BUDGET_WARNING_PERCENT", "50")
        get_settings.cache_clear()
        [(progress, status)] = budget_alerts_for(expenses, budgets)
        assert progress.category is Category.FOOD
        assert status is BudgetStatus.WARNING


class TestCreateAppComponents:
    @pytest.mark.asyncio
    async def test_with_memory_backend_runs_offline(self):
        store, flow = create_app_components(backend=MemoryBackend())
        try:
            assert isinstance(store, FinanceStore)
            store.add_expense(make_expense())
            analysis = await flow.refresh_analysis(store.load_expenses(), store.load_budgets())
            assert analysis.summary == OFFLINE_SUMMARY
            assert analysis.is_fallback is True
        finally:
            store.close()

    def test_default_backend_uses_configured_data_dir(self, tmp_path):
        store, _ = create_app_components()
        try:
            store.add_expense(make_expense())
        finally:
            store.close()

        data_dir = tmp_path / "data"
        assert (data_dir / "student_expenses_data.json").exists()
        reopened = FinanceStore(JsonFileBackend(data_dir))
        assert len(reopened.load_expenses()) == 1

    def test_custom_keys_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SPENDWISE_STORAGE_EXPENSES_KEY", "my_expenses")
        store, _ = create_app_components()
        try:
            store.add_expense(make_expense())
        finally:
            store.close()
        assert (tmp_path / "data" / "my_expenses.json").exists()
