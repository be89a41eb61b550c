"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep expenses in Google Sheets without the journal knowing it
2. Use in-memory storage for testing and local runs
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the operations the journal needs: expenses are created, read and
deleted (never edited), budgets are read and replaced.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from expense_journal.models.audit import AuditEvent
from expense_journal.models.budget import BudgetConfiguration
from expense_journal.models.expense import ExpenseRecord


class ExpenseStorageInterface(ABC):
    """
    Abstract interface for expense record storage.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def create_expense(self, record: ExpenseRecord) -> ExpenseRecord:
        """
        Persist a new expense record.

        Returns:
            The stored record

        Raises:
            DuplicateError: If a record with the same id exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_expense(self, expense_id: UUID) -> Optional[ExpenseRecord]:
        """
        Retrieve an expense by its ID.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_expenses(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[ExpenseRecord]:
        """
        List expenses, optionally restricted by expense_date (inclusive).

        Order is not guaranteed; callers sort.
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: UUID) -> bool:
        """
        Delete an expense by ID.

        Returns:
            True if a record was deleted, False if none existed
        """
        pass


class BudgetStorageInterface(ABC):
    """
    Abstract interface for budget configuration storage.

    There is exactly one configuration per journal.
    """

    @abstractmethod
    async def get_budget_config(self) -> BudgetConfiguration:
        """
        Load the budget configuration.

        Returns the default configuration if nothing was saved yet.
        """
        pass

    @abstractmethod
    async def set_default_budget(self, amount: Decimal) -> BudgetConfiguration:
        """Replace the default monthly amount."""
        pass

    @abstractmethod
    async def set_budget_override(
        self,
        month: int,
        year: int,
        amount: Decimal,
    ) -> BudgetConfiguration:
        """Set or replace the amount for one month."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity, in chronological order.
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
