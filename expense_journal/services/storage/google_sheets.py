"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the persistent backend because:
1. The user can look at their expenses directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for one person's journal)
- No transactions (we handle this with careful ordering)
- Limited query capabilities (we filter in Python)

Budgets live in their own worksheet: one "default" row plus one
"override" row per month.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
)

from expense_journal.config import get_settings
from expense_journal.models.audit import AuditEvent, AuditEventType, AuditSeverity
from expense_journal.models.budget import BudgetConfiguration, BudgetOverride
from expense_journal.models.expense import ExpenseRecord
from expense_journal.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column mappings for Expenses sheet
EXPENSE_COLUMNS = [
    "id",
    "amount",
    "label",
    "image_ref",
    "thumbnail_ref",
    "expense_date",
    "created_at",
]

# Column mappings for Budgets sheet
BUDGET_COLUMNS = [
    "kind",
    "month",
    "year",
    "amount",
    "updated_at",
]

BUDGET_DEFAULT_ROW = "default"
BUDGET_OVERRIDE_ROW = "override"

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows and empty values."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_expenses_sheet(self) -> gspread.Worksheet:
        """Get or create the Expenses worksheet."""
        return self._get_or_create_sheet(
            self._settings.expenses_sheet_name, EXPENSE_COLUMNS, rows=1000
        )

    def get_budgets_sheet(self) -> gspread.Worksheet:
        """Get or create the Budgets worksheet."""
        return self._get_or_create_sheet(
            self._settings.budgets_sheet_name, BUDGET_COLUMNS, rows=200
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        # More rows for audit log
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsExpenseStorage(ExpenseStorageInterface):
    """
    Google Sheets implementation of expense storage.

    One expense per row. Amounts are stored as strings so no
    precision is lost to spreadsheet number formatting.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _expense_to_row(self, record: ExpenseRecord) -> list:
        """Convert an ExpenseRecord to a spreadsheet row."""
        return [
            str(record.id),
            str(record.amount),
            record.label,
            record.image_ref,
            record.thumbnail_ref or "",
            record.expense_date.isoformat(),
            record.created_at.isoformat(),
        ]

    def _row_to_expense(self, row: list) -> ExpenseRecord:
        """Convert a spreadsheet row to an ExpenseRecord."""
        return ExpenseRecord(
            id=UUID(_cell(row, 0)),
            amount=Decimal(_cell(row, 1)),
            label=_cell(row, 2),
            image_ref=_cell(row, 3),
            thumbnail_ref=_cell(row, 4) or None,
            expense_date=date.fromisoformat(_cell(row, 5)),
            created_at=datetime.fromisoformat(_cell(row, 6)),
        )

    def _find_row_index(self, all_rows: list, expense_id: UUID) -> Optional[int]:
        # Row 1 is the header; sheet rows are 1-based
        for idx, row in enumerate(all_rows[1:], start=2):
            if row and row[0] == str(expense_id):
                return idx
        return None

    async def create_expense(self, record: ExpenseRecord) -> ExpenseRecord:
        """Append an expense row."""
        try:
            sheet = self._client.get_expenses_sheet()
            existing = sheet.get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}")

        if self._find_row_index(existing, record.id) is not None:
            raise DuplicateError(f"Expense already exists: {record.id}")

        try:
            await self._append_expense(record)
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}")
        return record

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _append_expense(self, record: ExpenseRecord) -> None:
        # An earlier attempt may have written the row before failing
        sheet = self._client.get_expenses_sheet()
        if self._find_row_index(sheet.get_all_values(), record.id) is not None:
            logger.info("sheets_expense_already_written", expense_id=str(record.id))
            return
        sheet.append_row(self._expense_to_row(record), value_input_option="RAW")

    async def get_expense(self, expense_id: UUID) -> Optional[ExpenseRecord]:
        """Retrieve an expense by its ID."""
        try:
            sheet = self._client.get_expenses_sheet()
            for row in sheet.get_all_values()[1:]:
                if row and row[0] == str(expense_id):
                    return self._row_to_expense(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get expense: {e}")

    async def list_expenses(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[ExpenseRecord]:
        """List expenses, filtered by expense_date."""
        try:
            sheet = self._client.get_expenses_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list expenses: {e}")

        records = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue

            try:
                record = self._row_to_expense(row)
            except (ValueError, ArithmeticError) as e:
                logger.warning("sheets_expense_row_skipped", expense_id=row[0], error=str(e))
                continue

            if date_from and record.expense_date < date_from:
                continue
            if date_to and record.expense_date > date_to:
                continue

            records.append(record)

        return records

    async def delete_expense(self, expense_id: UUID) -> bool:
        """Delete an expense row."""
        try:
            sheet = self._client.get_expenses_sheet()
            idx = self._find_row_index(sheet.get_all_values(), expense_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}")


class GoogleSheetsBudgetStorage(BudgetStorageInterface):
    """
    Google Sheets implementation of budget storage.

    Missing default row means the configured default applies.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        default_amount: Optional[Decimal] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._default_amount = (
            default_amount
            if default_amount is not None
            else get_settings().budget.default_monthly_budget
        )

    def _rows_to_config(self, rows: list) -> BudgetConfiguration:
        default_amount = self._default_amount
        overrides: dict[tuple[int, int], BudgetOverride] = {}

        for row in rows:
            kind = _cell(row, 0)
            if kind == BUDGET_DEFAULT_ROW:
                default_amount = Decimal(_cell(row, 3))
            elif kind == BUDGET_OVERRIDE_ROW:
                override = BudgetOverride(
                    month=int(_cell(row, 1)),
                    year=int(_cell(row, 2)),
                    amount=Decimal(_cell(row, 3)),
                    updated_at=datetime.fromisoformat(_cell(row, 4)),
                )
                # Later rows win if the sheet was edited by hand
                overrides[(override.year, override.month)] = override

        return BudgetConfiguration(
            default_amount=default_amount,
            overrides=list(overrides.values()),
        )

    async def get_budget_config(self) -> BudgetConfiguration:
        try:
            sheet = self._client.get_budgets_sheet()
            rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to load budget: {e}")

        try:
            return self._rows_to_config(rows)
        except (ValueError, ArithmeticError) as e:
            raise StorageError(f"Budget sheet is malformed: {e}")

    def _upsert(self, match: list[str], row: list) -> None:
        sheet = self._client.get_budgets_sheet()
        all_rows = sheet.get_all_values()
        for idx, existing in enumerate(all_rows[1:], start=2):
            if existing[:len(match)] == match:
                for col_idx, value in enumerate(row, start=1):
                    sheet.update_cell(idx, col_idx, value)
                return
        sheet.append_row(row, value_input_option="RAW")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def set_default_budget(self, amount: Decimal) -> BudgetConfiguration:
        try:
            self._upsert(
                [BUDGET_DEFAULT_ROW],
                [BUDGET_DEFAULT_ROW, "", "", str(amount), datetime.utcnow().isoformat()],
            )
        except Exception as e:
            raise StorageError(f"Failed to save default budget: {e}")
        return await self.get_budget_config()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def set_budget_override(
        self,
        month: int,
        year: int,
        amount: Decimal,
    ) -> BudgetConfiguration:
        override = BudgetOverride(month=month, year=year, amount=amount)
        try:
            self._upsert(
                [BUDGET_OVERRIDE_ROW, str(month), str(year)],
                [
                    BUDGET_OVERRIDE_ROW,
                    str(month),
                    str(year),
                    str(override.amount),
                    override.updated_at.isoformat(),
                ],
            )
        except Exception as e:
            raise StorageError(f"Failed to save budget override: {e}")
        return await self.get_budget_config()


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            entity_type=_cell(row, 4) or None,
            entity_id=UUID(_cell(row, 5)) if _cell(row, 5) else None,
            correlation_id=UUID(_cell(row, 6)) if _cell(row, 6) else None,
            description=_cell(row, 7),
            details=json.loads(_cell(row, 8)) if _cell(row, 8) else {},
            error_message=_cell(row, 9) or None,
            is_user_action=_cell(row, 10).lower() == "true",
        )

    def _read_events(self, predicate) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0] or not predicate(row):
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError as e:
                logger.warning("sheets_audit_row_skipped", event_id=row[0], error=str(e))
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._append_row(event.to_sheets_row())
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning("audit_sheet_write_failed", event_type=event.event_type.value, error=str(e))
            return False

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append_row(self, row: list) -> None:
        sheet = self._client.get_audit_sheet()
        sheet.append_row(row, value_input_option="RAW")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        events = self._read_events(
            lambda row: _cell(row, 4) == entity_type and _cell(row, 5) == str(entity_id)
        )
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        events = self._read_events(lambda row: True)
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
