"""
Data Models Package

This package contains all Pydantic models used in the Expense Journal.
All data flowing through the system must conform to these schemas.
"""

from expense_journal.models.expense import (
    DEFAULT_EXPENSE_LABEL,
    ExpenseDraft,
    ExpenseRecord,
)
from expense_journal.models.budget import (
    DEFAULT_MONTHLY_BUDGET,
    BudgetConfiguration,
    BudgetHistoryItem,
    BudgetOverride,
    BudgetPeriod,
    BudgetSnapshot,
    DailyExpenseGroup,
    DayBucket,
    MonthlyExpenseGroup,
)
from expense_journal.models.capture import (
    CapturedPhoto,
    CaptureError,
    CaptureErrorKind,
    CaptureState,
    CaptureStatus,
    FacingMode,
    MediaConstraints,
)
from expense_journal.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Expense models
    "DEFAULT_EXPENSE_LABEL",
    "ExpenseDraft",
    "ExpenseRecord",
    # Budget models
    "DEFAULT_MONTHLY_BUDGET",
    "BudgetConfiguration",
    "BudgetHistoryItem",
    "BudgetOverride",
    "BudgetPeriod",
    "BudgetSnapshot",
    "DailyExpenseGroup",
    "DayBucket",
    "MonthlyExpenseGroup",
    # Capture models
    "CapturedPhoto",
    "CaptureError",
    "CaptureErrorKind",
    "CaptureState",
    "CaptureStatus",
    "FacingMode",
    "MediaConstraints",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
