"""
Budget Models for Expense Journal

A budget is measured per calendar month. The user has one default
monthly amount and may override it for individual months.

DESIGN DECISION: Snapshots and history items are DERIVED.
They are computed from expenses + configuration every time and are
never persisted, so they can never drift from the underlying data.
"""

import calendar
from datetime import date, datetime
from decimal import Decimal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from expense_journal.models.expense import ExpenseRecord


DEFAULT_MONTHLY_BUDGET = Decimal("2500.00")


# =============================================================================
# PERIODS
# =============================================================================

class BudgetPeriod(BaseModel):
    """A calendar month/year pair."""
    model_config = ConfigDict(frozen=True)

    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1, le=9999)

    @classmethod
    def of(cls, day: date) -> "BudgetPeriod":
        return cls(month=day.month, year=day.year)

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    def contains(self, day: date) -> bool:
        """Inclusive first-to-last-day check."""
        return self.first_day <= day <= self.last_day

    def previous(self) -> "BudgetPeriod":
        if self.month == 1:
            return BudgetPeriod(month=12, year=self.year - 1)
        return BudgetPeriod(month=self.month - 1, year=self.year)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


# =============================================================================
# CONFIGURATION
# =============================================================================

class BudgetOverride(BaseModel):
    """
    Budget amount for one specific month.

    Overrides can only be set for 2000-3000, a narrower range than
    BudgetPeriod allows. Periods outside it (old history rows) always
    resolve to the default amount.
    """

    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=3000)
    amount: Decimal = Field(
        ...,
        ge=0,
        decimal_places=2,
        description="Budget for this month"
    )
    updated_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    @property
    def period(self) -> BudgetPeriod:
        return BudgetPeriod(month=self.month, year=self.year)


class BudgetConfiguration(BaseModel):
    """
    The user's budget settings.

    Resolution rule: an override for the queried period wins,
    otherwise the default applies.
    """

    default_amount: Decimal = Field(
        default=DEFAULT_MONTHLY_BUDGET,
        ge=0,
        decimal_places=2,
        description="Default monthly budget"
    )
    overrides: list[BudgetOverride] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_unique_periods(self) -> 'BudgetConfiguration':
        """At most one override per (month, year)."""
        seen = set()
        for override in self.overrides:
            key = (override.year, override.month)
            if key in seen:
                raise ValueError(
                    f"Duplicate budget override for {override.period}"
                )
            seen.add(key)
        return self

    def override_for(self, period: BudgetPeriod):
        for override in self.overrides:
            if override.month == period.month and override.year == period.year:
                return override
        return None

    def resolve_total(self, period: BudgetPeriod) -> Decimal:
        override = self.override_for(period)
        if override is not None:
            return override.amount
        return self.default_amount

    def with_override(self, month: int, year: int, amount: Decimal) -> 'BudgetConfiguration':
        """Return a copy with the override for (month, year) set or replaced."""
        overrides = [
            o for o in self.overrides
            if not (o.month == month and o.year == year)
        ]
        overrides.append(BudgetOverride(month=month, year=year, amount=amount))
        return BudgetConfiguration(default_amount=self.default_amount, overrides=overrides)


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class BudgetSnapshot(BaseModel):
    """Spend against budget for one period."""

    period: BudgetPeriod
    total: Decimal
    spent: Decimal
    remaining: Decimal = Field(
        ...,
        description="total - spent; negative when over budget"
    )
    percentage: float = Field(
        ...,
        ge=0.0,
        le=100.0,
        description="Share of the budget used, capped at 100"
    )

    @property
    def is_over_budget(self) -> bool:
        return self.remaining < 0


class BudgetHistoryItem(BaseModel):
    """Spend for one past period."""

    period: BudgetPeriod
    spent: Decimal
    total: Decimal = Field(
        ...,
        description="Budget that applied to this period"
    )
    expense_count: int = Field(ge=0)

    @property
    def month(self) -> int:
        return self.period.month

    @property
    def year(self) -> int:
        return self.period.year

    @property
    def has_data(self) -> bool:
        """False when no expense was logged in the period at all."""
        return self.expense_count > 0


class DailyExpenseGroup(BaseModel):
    """All expenses attributed to one calendar date."""

    date: date
    is_today: bool = False
    records: list[ExpenseRecord] = Field(default_factory=list)

    @property
    def total_amount(self) -> Decimal:
        return sum((r.amount for r in self.records), Decimal("0"))


class DayBucket(BaseModel):
    """Expenses for one day inside a month card."""

    day: int = Field(..., ge=1, le=31)
    total_amount: Decimal = Decimal("0")
    records: list[ExpenseRecord] = Field(default_factory=list)


class MonthlyExpenseGroup(BaseModel):
    """Expenses for one month, split into days."""

    period: BudgetPeriod
    day_groups: list[DayBucket] = Field(default_factory=list)

    @property
    def month(self) -> int:
        return self.period.month

    @property
    def year(self) -> int:
        return self.period.year

    @property
    def total_amount(self) -> Decimal:
        return sum((d.total_amount for d in self.day_groups), Decimal("0"))
