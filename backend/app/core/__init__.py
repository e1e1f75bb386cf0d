"""Core application configuration and utilities."""

from app.core.audit import (
    AuditAction,
    AuditEvent,
    AuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
    log_audit,
    log_billing_decision,
    log_billing_issue,
    log_phi_access,
)
from app.core.config import settings
from app.core.database import Base, get_db
from app.core.exceptions import BillingEngineError, InvalidPatternError, ReferenceDataError

__all__ = [
    # Config
    "settings",
    # Database
    "Base",
    "get_db",
    # Audit
    "AuditAction",
    "AuditEvent",
    "AuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "log_audit",
    "log_billing_decision",
    "log_billing_issue",
    "log_phi_access",
    # Errors
    "BillingEngineError",
    "InvalidPatternError",
    "ReferenceDataError",
]
