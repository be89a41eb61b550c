"""
In-Memory Storage Implementation

Default backend for local runs and tests. Data lives as long as the
process; nothing is written anywhere.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from expense_journal.models.audit import AuditEvent
from expense_journal.models.budget import BudgetConfiguration
from expense_journal.models.expense import ExpenseRecord
from expense_journal.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    DuplicateError,
    ExpenseStorageInterface,
)


class InMemoryExpenseStorage(ExpenseStorageInterface):
    """Expense records keyed by id."""

    def __init__(self, records: Optional[list[ExpenseRecord]] = None):
        self._records: dict[UUID, ExpenseRecord] = {}
        for record in records or []:
            self._records[record.id] = record

    async def create_expense(self, record: ExpenseRecord) -> ExpenseRecord:
        if record.id in self._records:
            raise DuplicateError(f"Expense already exists: {record.id}")
        self._records[record.id] = record
        return record

    async def get_expense(self, expense_id: UUID) -> Optional[ExpenseRecord]:
        return self._records.get(expense_id)

    async def list_expenses(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[ExpenseRecord]:
        return [
            record for record in self._records.values()
            if (date_from is None or record.expense_date >= date_from)
            and (date_to is None or record.expense_date <= date_to)
        ]

    async def delete_expense(self, expense_id: UUID) -> bool:
        return self._records.pop(expense_id, None) is not None


class InMemoryBudgetStorage(BudgetStorageInterface):
    """A single BudgetConfiguration held in memory."""

    def __init__(self, config: Optional[BudgetConfiguration] = None):
        self._config = config or BudgetConfiguration()

    async def get_budget_config(self) -> BudgetConfiguration:
        return self._config

    async def set_default_budget(self, amount: Decimal) -> BudgetConfiguration:
        self._config = BudgetConfiguration(
            default_amount=amount,
            overrides=self._config.overrides,
        )
        return self._config

    async def set_budget_override(
        self,
        month: int,
        year: int,
        amount: Decimal,
    ) -> BudgetConfiguration:
        self._config = self._config.with_override(month, year, amount)
        return self._config


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
