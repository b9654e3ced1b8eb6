"""
Audit Logger

Every significant action in the system is logged:
- store mutations and budget reconciliation
- persistence failures (these are also raised to the caller)
- insight calls that fell back or were superseded

The audit logger never raises. A broken log sink must not turn a
successful save into a failed one.
"""

from typing import Optional

import structlog

from spendwise.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def get_logger(name: Optional[str] = None):
    """Structured logger for modules that log outside the audit trail."""
    return structlog.get_logger(name)


class AuditLogger:
    """
    Central audit logging service.

    Renders AuditEvents to the structured local log. Keeps the most
    recent events in memory so callers (and tests) can inspect them.
    """

    def __init__(self, history_size: int = 200):
        self._logger = structlog.get_logger("spendwise.audit")
        self._history: list[AuditEvent] = []
        self._history_size = history_size

    @property
    def recent_events(self) -> list[AuditEvent]:
        """Most recent events, oldest first."""
        return list(self._history)

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns False if the log sink failed (the failure is swallowed).
        """
        self._history.append(event)
        if len(self._history) > self._history_size:
            del self._history[: len(self._history) - self._history_size]

        log_dict = event.to_log_dict()
        try:
            if event.severity == AuditSeverity.ERROR:
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception:
            return False
        return True

    def log_expense_added(self, expense_id: str, category: str, amount: str) -> None:
        self.log(AuditEventBuilder.expense_added(expense_id, category, amount))

    def log_expense_deleted(self, expense_id: str, removed: int) -> None:
        self.log(AuditEventBuilder.expense_deleted(expense_id, removed))

    def log_budget_upserted(self, category: str, limit: str, created: bool) -> None:
        self.log(AuditEventBuilder.budget_upserted(category, limit, created))

    def log_budgets_reconciled(self, added: list[str], dropped: int, seeded: bool) -> None:
        self.log(AuditEventBuilder.budgets_reconciled(added, dropped, seeded))

    def log_persistence_failed(self, key: str, operation: str, error_message: str) -> None:
        self.log(AuditEventBuilder.persistence_failed(key, operation, error_message))

    def log_corrupt_record(self, key: str, error_message: str) -> None:
        self.log(AuditEventBuilder.corrupt_record(key, error_message))

    def log_subscriber_failed(self, collection: str, error_message: str) -> None:
        self.log(AuditEventBuilder.subscriber_failed(collection, error_message))

    def log_expense_parsed(self, category: str, amount: str) -> None:
        self.log(AuditEventBuilder.expense_parsed(category, amount))

    def log_parse_unavailable(self, reason: str) -> None:
        self.log(AuditEventBuilder.parse_unavailable(reason))

    def log_analysis_generated(self, expense_count: int, tip_count: int) -> None:
        self.log(AuditEventBuilder.analysis_generated(expense_count, tip_count))

    def log_insight_unavailable(self, reason: str, error_message: Optional[str] = None) -> None:
        self.log(AuditEventBuilder.insight_unavailable(reason, error_message))

    def log_result_superseded(self, request: str, token: int, latest: int) -> None:
        self.log(AuditEventBuilder.result_superseded(request, token, latest))
