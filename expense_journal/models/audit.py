"""
Audit Models for Expense Journal

Every change to the user's money data is logged for audit purposes.
This provides:
1. Traceability of every expense and budget change
2. Debugging information when things go wrong
3. A record of best-effort cleanups that did not succeed (orphaned photos)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Images
    IMAGE_STORED = "image_stored"
    IMAGE_DISCARDED = "image_discarded"

    # Expenses
    EXPENSE_CREATED = "expense_created"
    EXPENSE_CREATE_FAILED = "expense_create_failed"
    EXPENSE_DELETED = "expense_deleted"
    ARTIFACT_DELETE_FAILED = "artifact_delete_failed"

    # Budget
    DEFAULT_BUDGET_UPDATED = "default_budget_updated"
    BUDGET_OVERRIDE_SET = "budget_override_set"

    # Backends
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    One entry in the journal's audit trail.

    entity_type is one of "expense", "image" or "budget" (or None for
    backend failures). Events that belong to one user action share a
    correlation_id.
    """

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="UTC"
    )
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    entity_type: Optional[str] = None
    entity_id: Optional[UUID] = None
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Flat, JSON-friendly form for structlog."""
        data = self.model_dump(mode="json")
        data["event_type"] = self.event_type.value
        data["severity"] = self.severity.value
        return data

    def to_sheets_row(self) -> list:
        """
        Row for the audit worksheet, in AUDIT_COLUMNS order.

        Optional values become empty cells and details are stored as a
        JSON string.
        """
        data = self.model_dump(mode="json")
        return [
            data["event_id"],
            data["timestamp"],
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            data["entity_id"] or "",
            data["correlation_id"] or "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_created(expense_id, amount, label, correlation_id)
        event = AuditEventBuilder.budget_override_set(6, 2024, "1000.00")
    """

    @staticmethod
    def image_stored(
        image_ref: str,
        thumbnail_ref: Optional[str],
        size_bytes: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMAGE_STORED,
            entity_type="image",
            correlation_id=correlation_id,
            description=f"Photo stored: {image_ref}",
            details={
                "image_ref": image_ref,
                "thumbnail_ref": thumbnail_ref,
                "size_bytes": size_bytes,
            },
        )

    @staticmethod
    def image_discarded(
        image_ref: str,
        reason: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMAGE_DISCARDED,
            severity=AuditSeverity.WARNING,
            entity_type="image",
            correlation_id=correlation_id,
            description=f"Photo discarded: {image_ref}",
            details={
                "image_ref": image_ref,
                "reason": reason,
            },
        )

    @staticmethod
    def expense_created(
        expense_id: UUID,
        amount: str,
        label: str,
        expense_date: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_CREATED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense saved: {label} - {amount}",
            details={
                "amount": amount,
                "label": label,
                "expense_date": expense_date,
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_create_failed(
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_CREATE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="expense",
            correlation_id=correlation_id,
            description="Expense could not be saved",
            error_message=error_message,
        )

    @staticmethod
    def expense_deleted(
        expense_id: UUID,
        amount: str,
        label: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense deleted: {label} - {amount}",
            details={
                "amount": amount,
                "label": label,
            },
            is_user_action=True,
        )

    @staticmethod
    def artifact_delete_failed(
        expense_id: UUID,
        image_ref: str,
        thumbnail_ref: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ARTIFACT_DELETE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description="Photo files of a deleted expense could not be removed",
            details={
                "image_ref": image_ref,
                "thumbnail_ref": thumbnail_ref,
            },
            error_message=error_message,
        )

    @staticmethod
    def default_budget_updated(
        amount: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEFAULT_BUDGET_UPDATED,
            entity_type="budget",
            correlation_id=correlation_id,
            description=f"Default monthly budget set to {amount}",
            details={
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def budget_override_set(
        month: int,
        year: int,
        amount: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_OVERRIDE_SET,
            entity_type="budget",
            correlation_id=correlation_id,
            description=f"Budget for {year:04d}-{month:02d} set to {amount}",
            details={
                "month": month,
                "year": year,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
