"""
Expense Models for Expense Journal

An expense is one photographed purchase: an amount, a short label,
the photo and the calendar date it is attributed to.

These models are designed to:
1. Reject invalid amounts at the boundary (zero and negative never get in)
2. Keep expense_date (attribution) separate from created_at (ordering)
3. Be serializable for storage and logging

DESIGN DECISION: expense_date is a plain calendar date.
There is no time-zone component, so a record never moves between days
or months depending on where or when it is read.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


DEFAULT_EXPENSE_LABEL = "groceries"


def _label_or_default(value: Optional[str]) -> str:
    if value is None or not str(value).strip():
        return DEFAULT_EXPENSE_LABEL
    return value


class ExpenseDraft(BaseModel):
    """
    User input for a new expense, before an image is attached.

    Validation happens here so a bad amount is rejected before
    anything is uploaded.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(
        ...,
        gt=0,
        max_digits=10,
        decimal_places=2,
        description="Amount spent (must be positive)"
    )
    label: str = Field(
        default=DEFAULT_EXPENSE_LABEL,
        max_length=100,
        description="Short description"
    )
    expense_date: Optional[date] = Field(
        default=None,
        description="Date to attribute the expense to (defaults to today)"
    )

    @field_validator('label', mode='before')
    @classmethod
    def default_blank_label(cls, v: Optional[str]) -> str:
        return _label_or_default(v)


class ExpenseRecord(BaseModel):
    """
    A persisted expense.

    CRITICAL: Every record has an image. Records are immutable;
    the only change allowed after creation is deletion.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique expense ID"
    )

    amount: Decimal = Field(
        ...,
        gt=0,
        max_digits=10,
        decimal_places=2,
        description="Amount spent"
    )
    label: str = Field(
        default=DEFAULT_EXPENSE_LABEL,
        min_length=1,
        max_length=100,
        description="Short description"
    )

    # Photo references
    image_ref: str = Field(
        ...,
        min_length=1,
        description="Reference to the full-size photo"
    )
    thumbnail_ref: Optional[str] = Field(
        default=None,
        description="Reference to the reduced-size photo, if one was made"
    )

    # Dates
    expense_date: date = Field(
        default_factory=date.today,
        description="Calendar date used for budget periods and grouping"
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the expense was logged; only used for ordering"
    )

    @field_validator('label', mode='before')
    @classmethod
    def default_blank_label(cls, v: Optional[str]) -> str:
        return _label_or_default(v)

    @field_validator('thumbnail_ref', mode='before')
    @classmethod
    def blank_thumbnail_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not str(v).strip():
            return None
        return v

    @property
    def display_thumbnail(self) -> str:
        """Thumbnail reference, falling back to the full-size photo."""
        return self.thumbnail_ref or self.image_ref
