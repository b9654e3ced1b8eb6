"""
Tests for the Gemini insight agent.

Every online agent here uses a StubModel; the real SDK is never called.
"""

import asyncio
import datetime as dt
import json
from decimal import Decimal

import pytest

from conftest import StubModel, make_expense
from spendwise.agents import (
    ERROR_SUMMARY,
    ERROR_TIPS,
    OFFLINE_SUMMARY,
    OFFLINE_TIPS,
    InsightAgent,
    build_budget_digest,
    coerce_parsed_expense,
    extract_json_object,
)
from spendwise.agents import insight_agent
from spendwise.audit import AuditLogger
from spendwise.config import GeminiSettings
from spendwise.models import AuditEventType, Budget, Category


TODAY = dt.date(2024, 3, 15)


def online_agent(model, audit_logger=None, max_expenses=50):
    return InsightAgent(
        settings=GeminiSettings(api_key="test-key"),
        audit_logger=audit_logger or AuditLogger(),
        model=model,
        max_expenses=max_expenses,
        currency="INR",
    )


@pytest.fixture
def offline_agent(monkeypatch):
    def no_network(*args, **kwargs):
        raise AssertionError("Gemini SDK must not be touched without a key")

    monkeypatch.setattr(insight_agent.genai, "configure", no_network)
    monkeypatch.setattr(insight_agent.genai, "GenerativeModel", no_network)
    model = StubModel(text="{}")
    agent = InsightAgent(
        settings=GeminiSettings(api_key=None),
        model=model,
        max_expenses=50,
        currency="INR",
    )
    return agent, model


class TestOffline:
    """No credential: fixed fallbacks and no network I/O."""

    @pytest.mark.asyncio
    async def test_analyze_returns_offline_fallback(self, offline_agent):
        agent, model = offline_agent
        result = await agent.analyze_spending([make_expense()], [])

        assert result.summary == OFFLINE_SUMMARY
        assert result.tips == list(OFFLINE_TIPS)
        assert result.is_fallback is True
        assert model.calls == []
        assert agent.is_online is False

    @pytest.mark.asyncio
    async def test_parse_returns_none(self, offline_agent):
        agent, model = offline_agent
        assert await agent.parse_natural_language_expense("coffee 50") is None
        assert model.calls == []

    def test_blank_key_counts_as_missing(self):
        assert GeminiSettings(api_key="   ").has_credentials is False


class TestParse:
    @pytest.mark.asyncio
    async def test_parse_structured_response(self):
        model = StubModel(text=json.dumps({
            "amount": 60,
            "category": "Food & Drink",
            "description": "Chai and samosa",
            "date": "2024-03-14",
        }))
        parsed = await online_agent(model).parse_natural_language_expense(
            "chai and samosa 60 yesterday", today=TODAY
        )

        assert parsed.amount == Decimal("60")
        assert parsed.category is Category.FOOD
        assert parsed.description == "Chai and samosa"
        assert parsed.date == dt.date(2024, 3, 14)
        assert len(model.calls) == 1
        assert TODAY.isoformat() in model.calls[0]

    @pytest.mark.asyncio
    async def test_unknown_category_becomes_other(self):
        model = StubModel(text=json.dumps({
            "amount": 999, "category": "Groceries", "description": "Veg", "date": "2024-03-01",
        }))
        parsed = await online_agent(model).parse_natural_language_expense("veg 999", today=TODAY)
        assert parsed.category is Category.OTHER

    @pytest.mark.asyncio
    async def test_missing_date_defaults_to_today(self):
        model = StubModel(text='{"amount": 20, "category": "Transportation", "description": "Bus"}')
        parsed = await online_agent(model).parse_natural_language_expense("bus 20", today=TODAY)
        assert parsed.date == TODAY

    @pytest.mark.asyncio
    async def test_json_wrapped_in_prose(self):
        model = StubModel(text='Sure! ```json\n{"amount": "1,250.50", "category": "Shopping"}\n```')
        parsed = await online_agent(model).parse_natural_language_expense("shoes", today=TODAY)
        assert parsed.amount == Decimal("1250.50")
        assert parsed.description == "shoes"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", [
        "not json at all",
        '{"category": "Health"}',
        '{"amount": -5, "category": "Health"}',
        '{"amount": "lots", "category": "Health"}',
        "[1, 2, 3]",
    ])
    async def test_unusable_response_is_none(self, text):
        audit_logger = AuditLogger()
        agent = online_agent(StubModel(text=text), audit_logger=audit_logger)
        assert await agent.parse_natural_language_expense("something", today=TODAY) is None
        assert audit_logger.recent_events[-1].event_type is AuditEventType.PARSE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_network_error_is_none(self):
        agent = online_agent(StubModel(error=ConnectionError("offline")))
        assert await agent.parse_natural_language_expense("tea 10", today=TODAY) is None

    @pytest.mark.asyncio
    async def test_blank_text_skips_the_call(self):
        model = StubModel(text="{}")
        assert await online_agent(model).parse_natural_language_expense("   ") is None
        assert model.calls == []


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_successful_analysis(self):
        model = StubModel(text=json.dumps({
            "summary": "You mostly spend on food.",
            "tips": ["Cook at home.", "", "Carry a bottle."],
        }))
        result = await online_agent(model).analyze_spending(
            [make_expense()], [Budget(category=Category.FOOD, limit=5000)]
        )
        assert result.summary == "You mostly spend on food."
        assert result.tips == ["Cook at home.", "Carry a bottle."]
        assert result.is_fallback is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("model", [
        StubModel(error=TimeoutError("slow")),
        StubModel(text="garbage"),
        StubModel(text='{"tips": ["no summary"]}'),
        StubModel(text='{"summary": "ok", "tips": "not a list"}'),
        StubModel(text=None),
    ])
    async def test_failures_return_error_fallback(self, model):
        audit_logger = AuditLogger()
        result = await online_agent(model, audit_logger=audit_logger).analyze_spending([], [])

        assert result.summary == ERROR_SUMMARY
        assert result.tips == list(ERROR_TIPS)
        assert result.is_fallback is True
        assert audit_logger.recent_events[-1].event_type is AuditEventType.INSIGHT_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_payload_capped_at_most_recent_expenses(self):
        model = StubModel(text='{"summary": "ok", "tips": []}')
        expenses = [
            make_expense(description=f"item-{i:02d}", day=dt.date(2024, 1, 1) + dt.timedelta(days=i))
            for i in range(60)
        ]
        await online_agent(model).analyze_spending(expenses, [])

        prompt = model.calls[0]
        assert prompt.count("(INR ") == 50
        assert "item-59" in prompt
        assert "item-10" in prompt
        assert "item-09" not in prompt

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        release = asyncio.Event()

        class HangingModel:
            async def generate_content_async(self, prompt):
                await release.wait()

        task = asyncio.create_task(online_agent(HangingModel()).analyze_spending([], []))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestHelpers:
    def test_budget_digest_skips_unset_budgets(self):
        digest = build_budget_digest([
            Budget(category=Category.FOOD, limit=5000),
            Budget(category=Category.HEALTH, limit=0),
        ])
        assert digest == "Food & Drink: INR 5000"

    def test_extract_json_object_rejects_empty(self):
        with pytest.raises(ValueError):
            extract_json_object("")

    def test_coerce_parsed_expense_bad_date_falls_back(self):
        parsed = coerce_parsed_expense(
            {"amount": 5, "category": "health", "date": "next tuesday"}, "pills", TODAY
        )
        assert parsed.date == TODAY
        assert parsed.category is Category.HEALTH


class TestLimits:
    @pytest.mark.asyncio
    async def test_long_description_kept_whole(self):
        text = "y" * 700
        model = StubModel(text=json.dumps({"amount": 5, "category": "Other", "description": text}))
        parsed = await online_agent(model).parse_natural_language_expense("long one", today=TODAY)
        assert parsed.description == text

    @pytest.mark.asyncio
    async def test_zero_expense_cap_is_respected(self):
        model = StubModel(text='{"summary": "ok", "tips": []}')
        await online_agent(model, max_expenses=0).analyze_spending([make_expense()], [])
        assert "(INR " not in model.calls[0]
        assert "No expenses recorded." in model.calls[0]
