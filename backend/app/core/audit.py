"""Audit trail for billing decisions and PHI access.

Every billing run emits:
- A PHI access event when patient data is read for claim generation
- One decision event per decision tree node
- One event per warning and per validation error

Events are handed to an AuditSink. The default sink writes to the
dedicated ``audit`` logger; production deployments should point it at a
secure, append-only store.
"""

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

# Separate audit logger for compliance-relevant events
audit_logger = logging.getLogger("audit")


class AuditAction(str, Enum):
    """Types of auditable actions."""

    PHI_ACCESS = "phi_access"
    BILLING_DECISION = "billing_decision"
    BILLING_WARNING = "billing_warning"
    BILLING_ERROR = "billing_error"
    ERROR = "error"


class AuditEvent(BaseModel):
    """Audit event record.

    Contains all relevant context for an auditable action.
    """

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    action: AuditAction = Field(..., description="Type of action performed")
    resource_type: str = Field(..., description="Type of resource touched (Claim, Eligibility, ...)")
    resource_id: str | None = Field(None, description="ID of specific resource, e.g. encounter id")
    patient_id: str | None = Field(None, description="Patient ID if applicable")
    operation: str | None = Field(None, description="Engine operation that produced the event")
    details: dict | None = Field(None, description="Additional context")
    success: bool = Field(True, description="Whether action succeeded")


class AuditSink(ABC):
    """Destination for audit events."""

    @abstractmethod
    def emit(self, event: AuditEvent) -> None:
        """Record a single audit event."""
        pass  # pragma: no cover


class LoggingAuditSink(AuditSink):
    """Writes audit events to the ``audit`` logger."""

    def emit(self, event: AuditEvent) -> None:
        log_level = logging.INFO if event.success else logging.WARNING
        audit_logger.log(
            log_level,
            f"AUDIT: {event.action.value} {event.resource_type}"
            f"{f'/{event.resource_id}' if event.resource_id else ''}"
            f"{f' patient={event.patient_id}' if event.patient_id else ''}"
            f" success={event.success}",
            extra={"audit_event": event.model_dump(mode="json")},
        )


class InMemoryAuditSink(AuditSink):
    """Keeps events in a list. Used by tests and local tooling."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    def emit(self, event: AuditEvent) -> None:
        self.events.append(event)

    def by_action(self, action: AuditAction) -> list[AuditEvent]:
        return [e for e in self.events if e.action == action]


default_audit_sink: AuditSink = LoggingAuditSink()


def log_audit(
    action: AuditAction,
    resource_type: str,
    resource_id: str | None = None,
    patient_id: str | None = None,
    operation: str | None = None,
    details: dict | None = None,
    success: bool = True,
    sink: AuditSink | None = None,
) -> AuditEvent:
    """Create an audit event and hand it to a sink.

    Args:
        action: Type of action being audited
        resource_type: The type of resource being accessed
        resource_id: Specific resource identifier
        patient_id: Patient ID if this is patient data
        operation: Engine operation producing the event
        details: Additional context
        success: Whether the action succeeded
        sink: Destination; defaults to the logging sink

    Returns:
        The created AuditEvent
    """
    event = AuditEvent(
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        patient_id=patient_id,
        operation=operation,
        details=details,
        success=success,
    )
    (sink or default_audit_sink).emit(event)
    return event


def log_phi_access(
    patient_id: str,
    resource_type: str,
    operation: str,
    details: dict | None = None,
    sink: AuditSink | None = None,
) -> AuditEvent:
    """Log that patient data was read for billing purposes."""
    return log_audit(
        action=AuditAction.PHI_ACCESS,
        resource_type=resource_type,
        patient_id=patient_id,
        operation=operation,
        details=details,
        sink=sink,
    )


def log_billing_decision(
    encounter_id: str,
    patient_id: str,
    node_id: str,
    result: str,
    rationale: str,
    sink: AuditSink | None = None,
) -> AuditEvent:
    """Log one decision tree node outcome."""
    return log_audit(
        action=AuditAction.BILLING_DECISION,
        resource_type="Claim",
        resource_id=encounter_id,
        patient_id=patient_id,
        operation=node_id,
        details={"result": result, "rationale": rationale},
        sink=sink,
    )


def log_billing_issue(
    encounter_id: str,
    patient_id: str,
    code: str,
    message: str,
    blocking: bool,
    sink: AuditSink | None = None,
) -> AuditEvent:
    """Log a warning (non-blocking) or validation error (blocking)."""
    return log_audit(
        action=AuditAction.BILLING_ERROR if blocking else AuditAction.BILLING_WARNING,
        resource_type="Claim",
        resource_id=encounter_id,
        patient_id=patient_id,
        operation=code,
        details={"message": message},
        success=not blocking,
        sink=sink,
    )
