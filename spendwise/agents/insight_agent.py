"""
Insight Agent for Spendwise

The LLM boundary. Two calls:

1. PARSE: free text ("chai and samosa 60 yesterday") -> ParsedExpense
   - CAN: guess amount, category, description, date
   - CANNOT: invent categories (unknown values become Other)
   - Returns None when nothing usable comes back

2. ANALYZE: recent expenses + budgets -> SpendingAnalysis
   - Always returns something: on any failure, a fixed fallback

CRITICAL BOUNDARIES:
- No API key means no network call at all. The agent runs offline.
- One attempt per call. No retries here; the caller decides.
- Failures are absorbed at this boundary and audited, never raised.
  The one exception is asyncio cancellation, which always propagates.
"""

import datetime as dt
import json
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

import google.generativeai as genai

from spendwise.analytics.aggregator import sort_by_date_desc
from spendwise.audit import AuditLogger
from spendwise.config import GeminiSettings, get_settings
from spendwise.models.expense import (
    Budget,
    Category,
    Expense,
    ParsedExpense,
    SpendingAnalysis,
)


OFFLINE_SUMMARY = "Add your API Key to enable AI insights for your finances."
OFFLINE_TIPS = (
    "Track every rupee spent.",
    "Set strict monthly limits.",
    "Avoid impulse buying.",
)
ERROR_SUMMARY = "Could not analyze data at this time."
ERROR_TIPS = (
    "Check your internet connection.",
    "Ensure API key is valid.",
)


def offline_analysis() -> SpendingAnalysis:
    """Fixed payload used when no API key is configured."""
    return SpendingAnalysis(summary=OFFLINE_SUMMARY, tips=list(OFFLINE_TIPS), is_fallback=True)


def error_analysis() -> SpendingAnalysis:
    """Fixed payload used when the analysis call fails."""
    return SpendingAnalysis(summary=ERROR_SUMMARY, tips=list(ERROR_TIPS), is_fallback=True)


def build_expense_digest(
    expenses: Iterable[Expense],
    max_expenses: int = 50,
    currency: str = "INR",
) -> str:
    """One line per expense, most recent first, capped at max_expenses."""
    recent = sort_by_date_desc(expenses)[:max_expenses]
    return "\n".join(
        f"{e.date.isoformat()}: {e.description} ({currency} {e.amount}) - {e.category.value}"
        for e in recent
    )


def build_budget_digest(budgets: Iterable[Budget], currency: str = "INR") -> str:
    """Only budgets that are actually set (limit > 0)."""
    return "\n".join(
        f"{b.category.value}: {currency} {b.limit}"
        for b in budgets
        if b.limit > 0
    )


def extract_json_object(text: Optional[str]) -> dict:
    """
    Pull the first JSON object out of a model response.

    Raises:
        ValueError: If there is no JSON object in the text
    """
    if not text:
        raise ValueError("Empty response")
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise ValueError("No JSON object in response")
    data = json.loads(text[start:end])
    if not isinstance(data, dict):
        raise ValueError("Response JSON is not an object")
    return data


def _coerce_amount(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).replace(",", "").strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


def _coerce_date(value: Any, today: dt.date) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if not isinstance(value, str) or not value.strip():
        return today
    try:
        return dt.date.fromisoformat(value.strip()[:10])
    except ValueError:
        return today


def coerce_parsed_expense(data: Any, text: str, today: dt.date) -> Optional[ParsedExpense]:
    """
    Turn raw model output into a ParsedExpense, or None if unusable.

    Category falls back to Other, date falls back to today, description
    falls back to the original text. A missing or invalid amount makes
    the whole result unusable.
    """
    if not isinstance(data, dict):
        return None

    amount = _coerce_amount(data.get("amount"))
    if amount is None:
        return None

    description = data.get("description")
    if not isinstance(description, str) or not description.strip():
        description = text
    return ParsedExpense(
        amount=amount,
        category=Category.coerce(data.get("category")),
        description=description.strip(),
        date=_coerce_date(data.get("date"), today),
    )


class InsightAgent:
    """
    Gemini-backed insight client.

    Args:
        settings: Gemini settings (defaults to the cached app settings)
        audit_logger: Audit sink for degraded calls
        model: Pre-built model object exposing generate_content_async.
               Only used when an API key is configured.
        max_expenses: Cap on expenses sent for analysis
        currency: Currency label used in prompts and digests
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        model: Any = None,
        max_expenses: Optional[int] = None,
        currency: Optional[str] = None,
    ):
        app_settings = None
        if settings is None or max_expenses is None or currency is None:
            app_settings = get_settings()
        self._settings = settings or app_settings.gemini
        self._audit = audit_logger or AuditLogger()
        self._max_expenses = (
            app_settings.app.insight_max_expenses if max_expenses is None else max_expenses
        )
        self._currency = app_settings.app.currency if currency is None else currency

        self._model = None
        if self._settings.has_credentials:
            self._model = model or self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
                "response_mime_type": "application/json",
            }
        )

    @property
    def is_online(self) -> bool:
        return self._model is not None

    async def parse_natural_language_expense(
        self,
        text: str,
        today: Optional[dt.date] = None,
    ) -> Optional[ParsedExpense]:
        """
        Best-effort structured guess from free text.

        Args:
            text: What the user typed
            today: The caller's local date (defaults to date.today())

        Returns:
            ParsedExpense, or None if parsing is not possible/available
        """
        today = today or dt.date.today()

        if not text or not text.strip():
            self._audit.log_parse_unavailable("empty_input")
            return None
        if self._model is None:
            self._audit.log_parse_unavailable("no_credentials")
            return None

        categories = ", ".join(category.value for category in Category)
        prompt = f"""Extract expense details from this text: "{text.strip()}"

Today is {today.isoformat()}. If the date is not specified, use today.
Amounts are in {self._currency}; return the amount as a plain number without a currency symbol.
Map the category to exactly one of: {categories}.

Respond with ONLY a JSON object in this exact format:
{{"amount": 250, "category": "Food & Drink", "description": "short description", "date": "YYYY-MM-DD"}}"""

        try:
            response = await self._model.generate_content_async(prompt)
            data = extract_json_object(response.text)
        except Exception as e:
            self._audit.log_parse_unavailable(f"request_failed: {type(e).__name__}")
            return None

        parsed = coerce_parsed_expense(data, text.strip(), today)
        if parsed is None:
            self._audit.log_parse_unavailable("unusable_response")
            return None

        self._audit.log_expense_parsed(parsed.category.value, str(parsed.amount))
        return parsed

    async def analyze_spending(
        self,
        expenses: Iterable[Expense],
        budgets: Iterable[Budget],
    ) -> SpendingAnalysis:
        """
        Narrative summary plus tips.

        Never raises (except on cancellation): without a key the offline
        payload comes back, on any failure the error payload does.
        """
        if self._model is None:
            self._audit.log_insight_unavailable("no_credentials")
            return offline_analysis()

        expenses = list(expenses)
        expense_digest = build_expense_digest(expenses, self._max_expenses, self._currency)
        budget_digest = build_budget_digest(budgets, self._currency)

        prompt = f"""You are a financial advisor for a student.
Analyze these recent expenses (in {self._currency}) and monthly budgets.
Give a brief summary of their spending habits (max 2 sentences) and 3 specific,
actionable tips to save money or stay on budget.

Expenses:
{expense_digest or "No expenses recorded."}

Budgets:
{budget_digest or "No budgets set."}

Respond with ONLY a JSON object in this exact format:
{{"summary": "...", "tips": ["...", "...", "..."]}}"""

        try:
            response = await self._model.generate_content_async(prompt)
            data = extract_json_object(response.text)
            analysis = self._coerce_analysis(data)
        except Exception as e:
            self._audit.log_insight_unavailable("request_failed", f"{type(e).__name__}: {e}")
            return error_analysis()

        self._audit.log_analysis_generated(
            expense_count=min(len(expenses), self._max_expenses),
            tip_count=len(analysis.tips),
        )
        return analysis

    @staticmethod
    def _coerce_analysis(data: dict) -> SpendingAnalysis:
        summary = data.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            raise ValueError("Response has no summary")

        tips = data.get("tips") or []
        if not isinstance(tips, list):
            raise ValueError("Response tips is not a list")

        return SpendingAnalysis(
            summary=summary.strip(),
            tips=[str(tip).strip() for tip in tips if tip is not None and str(tip).strip()],
        )
