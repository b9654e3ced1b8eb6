"""
Audit Models for Spendwise

Every store mutation and every degraded insight call is recorded as an
audit event. Events go to the structured log only; they are not persisted
alongside the user's data.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Store mutations
    EXPENSE_ADDED = "expense_added"
    EXPENSE_DELETED = "expense_deleted"
    EXPENSE_DELETE_NOOP = "expense_delete_noop"
    BUDGET_UPSERTED = "budget_upserted"
    BUDGETS_RECONCILED = "budgets_reconciled"

    # Store failures
    PERSISTENCE_FAILED = "persistence_failed"
    CORRUPT_RECORD = "corrupt_record"
    SUBSCRIBER_FAILED = "subscriber_failed"

    # Insight client
    EXPENSE_PARSED = "expense_parsed"
    PARSE_UNAVAILABLE = "parse_unavailable"
    ANALYSIS_GENERATED = "analysis_generated"
    INSIGHT_UNAVAILABLE = "insight_unavailable"
    RESULT_SUPERSEDED = "result_superseded"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What the event is about: 'expense', 'budget', 'insight'
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_added(expense_id="...", amount="250")
    """

    @staticmethod
    def expense_added(expense_id: str, category: str, amount: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            entity_type="expense",
            entity_id=expense_id,
            description=f"Expense of {amount} added to {category}",
            details={"category": category, "amount": amount},
        )

    @staticmethod
    def expense_deleted(expense_id: str, removed: int) -> AuditEvent:
        if removed == 0:
            return AuditEvent(
                event_type=AuditEventType.EXPENSE_DELETE_NOOP,
                entity_type="expense",
                entity_id=expense_id,
                description="Delete requested for an expense that does not exist",
            )
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            description="Expense deleted",
            details={"removed": removed},
        )

    @staticmethod
    def budget_upserted(category: str, limit: str, created: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_UPSERTED,
            entity_type="budget",
            entity_id=category,
            description=f"Budget for {category} set to {limit}",
            details={"limit": limit, "created": created},
        )

    @staticmethod
    def budgets_reconciled(added: list[str], dropped: int, seeded: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGETS_RECONCILED,
            entity_type="budget",
            description=(
                "Budget collection seeded with defaults" if seeded
                else f"Budget collection reconciled ({len(added)} added, {dropped} dropped)"
            ),
            details={"added": added, "dropped": dropped, "seeded": seeded},
        )

    @staticmethod
    def persistence_failed(key: str, operation: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="record",
            entity_id=key,
            description=f"Could not {operation} record '{key}'",
            error_message=error_message,
        )

    @staticmethod
    def corrupt_record(key: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CORRUPT_RECORD,
            severity=AuditSeverity.ERROR,
            entity_type="record",
            entity_id=key,
            description=f"Stored record '{key}' could not be fully decoded",
            error_message=error_message,
        )

    @staticmethod
    def subscriber_failed(collection: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIBER_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="subscription",
            entity_id=collection,
            description=f"A {collection} subscriber raised during delivery",
            error_message=error_message,
        )

    @staticmethod
    def expense_parsed(category: str, amount: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_PARSED,
            entity_type="insight",
            description="Free text parsed into an expense",
            details={"category": category, "amount": amount},
        )

    @staticmethod
    def parse_unavailable(reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARSE_UNAVAILABLE,
            severity=AuditSeverity.WARNING,
            entity_type="insight",
            description="Free text could not be parsed into an expense",
            details={"reason": reason},
        )

    @staticmethod
    def analysis_generated(expense_count: int, tip_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_GENERATED,
            entity_type="insight",
            description="Spending analysis generated",
            details={"expense_count": expense_count, "tip_count": tip_count},
        )

    @staticmethod
    def insight_unavailable(reason: str, error_message: Optional[str] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSIGHT_UNAVAILABLE,
            severity=AuditSeverity.WARNING,
            entity_type="insight",
            description="Spending analysis fell back to the fixed payload",
            details={"reason": reason},
            error_message=error_message,
        )

    @staticmethod
    def result_superseded(request: str, token: int, latest: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RESULT_SUPERSEDED,
            severity=AuditSeverity.DEBUG,
            entity_type="insight",
            description=f"Late {request} result discarded",
            details={"token": token, "latest": latest},
        )
