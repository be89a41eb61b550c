"""
Audit Logger

DESIGN DECISION: Every change to expenses or budgets is logged.
This provides:
1. Complete traceability of the user's money data
2. Debugging capability
3. A record of photo files that could not be cleaned up

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_journal.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from expense_journal.services.storage import AuditStorageInterface


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


_LEVELS = {
    AuditSeverity.DEBUG: "debug",
    AuditSeverity.INFO: "info",
    AuditSeverity.WARNING: "warning",
    AuditSeverity.ERROR: "error",
    AuditSeverity.CRITICAL: "critical",
}


class AuditLogger:
    """
    Writes journal events to the structured log and, when a backend
    is configured, to audit storage.

    A failing audit backend never fails the expense or budget change
    that produced the event.
    """

    def __init__(self, storage: Optional[AuditStorageInterface] = None):
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Record one event.

        Returns False only when a configured backend did not accept it.
        """
        emit = getattr(self._logger, _LEVELS[event.severity])
        emit("audit_event", **event.to_log_dict())

        if self._storage is None:
            return True

        try:
            return await self._storage.append_event(event)
        except Exception as e:
            self._logger.error(
                "audit_storage_failed",
                error=str(e),
                event_type=event.event_type.value,
                event_id=str(event.event_id),
            )
            return False

    async def log_image_stored(
        self,
        image_ref: str,
        thumbnail_ref: Optional[str],
        size_bytes: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.image_stored(
            image_ref=image_ref,
            thumbnail_ref=thumbnail_ref,
            size_bytes=size_bytes,
            correlation_id=correlation_id,
        ))

    async def log_image_discarded(
        self,
        image_ref: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a stored photo that was thrown away because its expense failed."""
        await self.log(AuditEventBuilder.image_discarded(
            image_ref=image_ref,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_expense_created(
        self,
        expense_id: UUID,
        amount: Decimal,
        label: str,
        expense_date: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_created(
            expense_id=expense_id,
            amount=str(amount),
            label=label,
            expense_date=expense_date,
            correlation_id=correlation_id,
        ))

    async def log_expense_create_failed(
        self,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_create_failed(
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_expense_deleted(
        self,
        expense_id: UUID,
        amount: Decimal,
        label: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_deleted(
            expense_id=expense_id,
            amount=str(amount),
            label=label,
            correlation_id=correlation_id,
        ))

    async def log_artifact_delete_failed(
        self,
        expense_id: UUID,
        image_ref: str,
        thumbnail_ref: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log photo files left behind by a deleted expense."""
        await self.log(AuditEventBuilder.artifact_delete_failed(
            expense_id=expense_id,
            image_ref=image_ref,
            thumbnail_ref=thumbnail_ref,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_default_budget_updated(
        self,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.default_budget_updated(
            amount=str(amount),
            correlation_id=correlation_id,
        ))

    async def log_budget_override_set(
        self,
        month: int,
        year: int,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_override_set(
            month=month,
            year=year,
            amount=str(amount),
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., saving an expense).
    Pass it through all subsequent operations.
    """
    return uuid4()
