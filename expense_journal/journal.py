"""
Expense Journal Service

This module ties together photo storage, expense storage, budgets and
the aggregator, and defines the end-to-end flows for:
1. Adding an expense (photo → stored image → record)
2. Deleting an expense (record → photo files)
3. Budget views (records + configuration → snapshot / history / groups)

DESIGN DECISION: The journal enforces the boundaries:
- Amounts are validated before anything is uploaded
- No record exists without its photo: if the record cannot be saved,
  the photo that was just stored is discarded again
- Deletion removes the record first; photo cleanup is best-effort and
  a failure is audited, never rolled back
- Every change is audited

Views are computed on every call from the stored data, so they are
never stale.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from expense_journal.audit import AuditLogger, create_correlation_id
from expense_journal.budget import aggregator
from expense_journal.config import BudgetSettings, get_settings
from expense_journal.models.budget import (
    BudgetConfiguration,
    BudgetHistoryItem,
    BudgetOverride,
    BudgetPeriod,
    BudgetSnapshot,
    DailyExpenseGroup,
    MonthlyExpenseGroup,
)
from expense_journal.models.capture import CapturedPhoto
from expense_journal.models.expense import ExpenseDraft, ExpenseRecord
from expense_journal.services.image import (
    CloudinaryImageStorage,
    ImageStorageError,
    ImageStorageInterface,
    ImageUploadError,
    InvalidImageError,
    LocalImageStorage,
    StoredImage,
)
from expense_journal.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ExpenseStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsExpenseStorage,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryExpenseStorage,
    NotFoundError,
)


logger = structlog.get_logger(__name__)

AmountInput = Union[Decimal, str, int, float]


class JournalError(Exception):
    """Base exception for journal operations."""
    pass


class InvalidExpenseError(JournalError):
    """The expense input was rejected before anything was stored."""
    pass


class InvalidBudgetError(JournalError):
    """A budget amount or period was rejected."""
    pass


def _describe(error: ValidationError) -> str:
    """Flatten pydantic errors into one user-facing sentence."""
    parts = []
    for err in error.errors():
        field = ".".join(str(p) for p in err["loc"])
        parts.append(f"{field}: {err['msg']}" if field else err["msg"])
    return "; ".join(parts)


def _to_decimal(amount: AmountInput) -> Decimal:
    # floats go through str so 12.3 stays 12.3
    try:
        return Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"Not a number: {amount!r}")


class ExpenseJournal:
    """
    The user's expense journal.

    Storage backends are injected, so the same flows run against
    Google Sheets in production and in-memory storage in tests.
    """

    def __init__(
        self,
        expense_storage: ExpenseStorageInterface,
        budget_storage: BudgetStorageInterface,
        image_storage: ImageStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[BudgetSettings] = None,
        fallbacks: Optional[list[str]] = None,
    ):
        self._expenses = expense_storage
        self._budgets = budget_storage
        self._images = image_storage
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().budget
        self._fallbacks = list(fallbacks or [])

    @property
    def image_storage(self) -> ImageStorageInterface:
        return self._images

    @property
    def fallbacks(self) -> list[str]:
        """Configured backends that could not be used, with the reason."""
        return list(self._fallbacks)

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    def _draft(
        self,
        amount: AmountInput,
        label: Optional[str],
        expense_date: Optional[date],
    ) -> ExpenseDraft:
        if label is None or not label.strip():
            label = self._settings.default_label
        try:
            return ExpenseDraft(
                amount=_to_decimal(amount),
                label=label,
                expense_date=expense_date,
            )
        except ValueError as e:
            # ValidationError is a ValueError
            if isinstance(e, ValidationError):
                raise InvalidExpenseError(_describe(e))
            raise InvalidExpenseError(str(e))

    async def add_expense(
        self,
        image_bytes: bytes,
        amount: AmountInput,
        label: Optional[str] = None,
        expense_date: Optional[date] = None,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ExpenseRecord:
        """
        Store a photo and create the expense that points at it.

        Args:
            image_bytes: The photo. Required.
            amount: Positive amount, at most two decimal places
            label: Short description; blank means the default label
            expense_date: Date to attribute the expense to
            today: Fallback for expense_date (defaults to the local date)

        Returns:
            The saved ExpenseRecord

        Raises:
            InvalidExpenseError: Bad amount, missing or unreadable photo
            ImageUploadError: The photo could not be stored
            StorageError: The record could not be saved (photo discarded)
        """
        correlation_id = correlation_id or create_correlation_id()

        draft = self._draft(amount, label, expense_date)
        if not image_bytes:
            raise InvalidExpenseError("An expense needs a photo")

        try:
            stored = await self._images.store(image_bytes)
        except InvalidImageError as e:
            raise InvalidExpenseError(str(e))
        except ImageUploadError as e:
            await self._audit_logger.log_external_service_error(
                service="image_storage",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log_image_stored(
            image_ref=stored.image_ref,
            thumbnail_ref=stored.thumbnail_ref,
            size_bytes=stored.size_bytes,
            correlation_id=correlation_id,
        )

        try:
            record = ExpenseRecord(
                amount=draft.amount,
                label=draft.label,
                image_ref=stored.image_ref,
                thumbnail_ref=stored.thumbnail_ref,
                expense_date=draft.expense_date or today or date.today(),
            )
            record = await self._expenses.create_expense(record)
        except Exception as e:
            await self._audit_logger.log_expense_create_failed(
                error_message=str(e),
                correlation_id=correlation_id,
            )
            await self._discard_image(stored, str(e), correlation_id)
            raise

        await self._audit_logger.log_expense_created(
            expense_id=record.id,
            amount=record.amount,
            label=record.label,
            expense_date=record.expense_date.isoformat(),
            correlation_id=correlation_id,
        )
        return record

    async def add_captured_expense(
        self,
        photo: CapturedPhoto,
        amount: AmountInput,
        label: Optional[str] = None,
        expense_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> ExpenseRecord:
        """Save a still taken by a CaptureSession as an expense."""
        return await self.add_expense(
            photo.data,
            amount,
            label=label,
            expense_date=expense_date,
            today=today,
        )

    async def _discard_image(
        self,
        stored: StoredImage,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        try:
            await self._images.delete_artifacts(stored.image_ref, stored.thumbnail_ref)
        except ImageStorageError as e:
            logger.warning(
                "image_discard_failed",
                image_ref=stored.image_ref,
                error=str(e),
            )
        await self._audit_logger.log_image_discarded(
            image_ref=stored.image_ref,
            reason=reason,
            correlation_id=correlation_id,
        )

    async def delete_expense(
        self,
        expense_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> ExpenseRecord:
        """
        Delete an expense, then its photo files.

        Returns:
            The deleted record

        Raises:
            NotFoundError: No expense with that id
        """
        correlation_id = correlation_id or create_correlation_id()

        record = await self._expenses.get_expense(expense_id)
        if record is None or not await self._expenses.delete_expense(expense_id):
            raise NotFoundError(f"Expense not found: {expense_id}")

        await self._audit_logger.log_expense_deleted(
            expense_id=record.id,
            amount=record.amount,
            label=record.label,
            correlation_id=correlation_id,
        )

        try:
            await self._images.delete_artifacts(record.image_ref, record.thumbnail_ref)
        except ImageStorageError as e:
            await self._audit_logger.log_artifact_delete_failed(
                expense_id=record.id,
                image_ref=record.image_ref,
                thumbnail_ref=record.thumbnail_ref,
                error_message=str(e),
                correlation_id=correlation_id,
            )

        return record

    async def get_expense(self, expense_id: UUID) -> Optional[ExpenseRecord]:
        return await self._expenses.get_expense(expense_id)

    async def list_expenses(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[ExpenseRecord]:
        """Expenses in the date range, newest expense_date first."""
        records = await self._expenses.list_expenses(date_from=date_from, date_to=date_to)
        return sorted(records, key=lambda r: (r.expense_date, r.created_at), reverse=True)

    # -------------------------------------------------------------------------
    # Budget views
    # -------------------------------------------------------------------------

    async def budget_config(self) -> BudgetConfiguration:
        return await self._budgets.get_budget_config()

    async def current_budget(self, today: Optional[date] = None) -> BudgetSnapshot:
        today = today or date.today()
        period = BudgetPeriod.of(today)
        records = await self._expenses.list_expenses(
            date_from=period.first_day,
            date_to=period.last_day,
        )
        config = await self._budgets.get_budget_config()
        return aggregator.current_snapshot(records, config, today)

    async def budget_history(
        self,
        today: Optional[date] = None,
        months: Optional[int] = None,
    ) -> list[BudgetHistoryItem]:
        today = today or date.today()
        months = months if months is not None else self._settings.history_months
        records = await self._expenses.list_expenses()
        config = await self._budgets.get_budget_config()
        return aggregator.history(records, config, today, months)

    async def daily_view(self, today: Optional[date] = None) -> list[DailyExpenseGroup]:
        records = await self._expenses.list_expenses()
        return aggregator.group_by_day(records, today or date.today())

    async def monthly_view(self) -> list[MonthlyExpenseGroup]:
        records = await self._expenses.list_expenses()
        return aggregator.group_by_month(records)

    # -------------------------------------------------------------------------
    # Budget settings
    # -------------------------------------------------------------------------

    async def set_default_budget(self, amount: AmountInput) -> BudgetConfiguration:
        """
        Replace the default monthly budget.

        Raises:
            InvalidBudgetError: Negative or malformed amount
        """
        try:
            value = BudgetConfiguration(default_amount=_to_decimal(amount)).default_amount
        except ValueError as e:
            raise InvalidBudgetError(
                _describe(e) if isinstance(e, ValidationError) else str(e)
            )

        config = await self._budgets.set_default_budget(value)
        await self._audit_logger.log_default_budget_updated(amount=value)
        return config

    async def set_budget_override(
        self,
        month: int,
        year: int,
        amount: AmountInput,
    ) -> BudgetConfiguration:
        """
        Set the budget for one month, replacing any earlier override.

        Raises:
            InvalidBudgetError: Bad month/year or negative amount
        """
        try:
            override = BudgetOverride(month=month, year=year, amount=_to_decimal(amount))
        except ValueError as e:
            raise InvalidBudgetError(
                _describe(e) if isinstance(e, ValidationError) else str(e)
            )

        config = await self._budgets.set_budget_override(
            override.month, override.year, override.amount
        )
        await self._audit_logger.log_budget_override_set(
            month=override.month,
            year=override.year,
            amount=override.amount,
        )
        return config


def _create_storage(fallbacks: list[str]) -> tuple[
    ExpenseStorageInterface,
    BudgetStorageInterface,
    AuditStorageInterface,
]:
    settings = get_settings()
    if settings.app.storage_backend == "google_sheets":
        try:
            client = GoogleSheetsClient()
            return (
                GoogleSheetsExpenseStorage(client),
                GoogleSheetsBudgetStorage(client),
                GoogleSheetsAuditStorage(client),
            )
        except Exception as e:
            # Data kept in memory is lost on restart; the UI shows this
            logger.warning("storage_not_configured", backend="google_sheets", error=str(e))
            fallbacks.append(
                f"Google Sheets is selected but unusable ({e}). "
                "Expenses are kept in memory and will be lost on restart."
            )

    return (
        InMemoryExpenseStorage(),
        InMemoryBudgetStorage(
            BudgetConfiguration(default_amount=settings.budget.default_monthly_budget)
        ),
        InMemoryAuditStorage(),
    )


def _create_image_storage(fallbacks: list[str]) -> ImageStorageInterface:
    settings = get_settings()
    if settings.images.backend == "cloudinary":
        try:
            return CloudinaryImageStorage()
        except Exception as e:
            logger.warning("image_storage_not_configured", backend="cloudinary", error=str(e))
            fallbacks.append(
                f"Cloudinary is selected but unusable ({e}). "
                "Photos are saved to local files."
            )
    return LocalImageStorage()


def create_app_components() -> ExpenseJournal:
    """
    Factory function to create the journal with configured backends.

    Falls back to in-memory storage and local photo files when the
    configured backends are not usable. Each fallback is listed in
    ExpenseJournal.fallbacks so the UI can show it.
    """
    fallbacks: list[str] = []
    expense_storage, budget_storage, audit_storage = _create_storage(fallbacks)
    return ExpenseJournal(
        expense_storage=expense_storage,
        budget_storage=budget_storage,
        image_storage=_create_image_storage(fallbacks),
        audit_logger=AuditLogger(audit_storage),
        fallbacks=fallbacks,
    )
