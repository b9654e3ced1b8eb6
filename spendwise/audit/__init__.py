"""Audit logging package."""

from spendwise.audit.logger import AuditLogger, get_logger

__all__ = ["AuditLogger", "get_logger"]
