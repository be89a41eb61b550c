"""
Budget Aggregation

DESIGN DECISION: Aggregation is DETERMINISTIC and PURE.
Every function here takes plain data in and returns plain data out.
There is no storage access, no clock and no logging, so the same
inputs always give the same answer and the functions can be called
from anywhere, repeatedly, without coordination.

TWO DATES, TWO JOBS:
- expense_date decides WHICH period/day a record belongs to
- created_at only decides the ORDER of records inside a day
Mixing them up moves records between buckets depending on when they
were logged rather than the day they were logged for.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable

from expense_journal.models.budget import (
    BudgetConfiguration,
    BudgetHistoryItem,
    BudgetPeriod,
    BudgetSnapshot,
    DailyExpenseGroup,
    DayBucket,
    MonthlyExpenseGroup,
)
from expense_journal.models.expense import ExpenseRecord


ZERO = Decimal("0")
HUNDRED = Decimal("100")


def spent_in_period(
    records: Iterable[ExpenseRecord],
    period: BudgetPeriod,
) -> tuple[Decimal, int]:
    """
    Sum amounts of records attributed to a period.

    Returns: (total_spent, record_count)
    """
    spent = ZERO
    count = 0
    for record in records:
        if period.contains(record.expense_date):
            spent += record.amount
            count += 1
    return spent, count


def compute_percentage(spent: Decimal, total: Decimal) -> float:
    """
    Share of the budget used, in [0, 100].

    A zero budget is defined as 0% rather than an error.
    """
    if total <= 0:
        return 0.0
    percentage = spent / total * HUNDRED
    return float(max(ZERO, min(HUNDRED, percentage)))


def current_snapshot(
    records: Iterable[ExpenseRecord],
    config: BudgetConfiguration,
    today: date,
) -> BudgetSnapshot:
    """
    Spend against budget for the month containing `today`.

    remaining is never clamped: it goes negative when over budget.
    """
    period = BudgetPeriod.of(today)
    total = config.resolve_total(period)
    spent, _ = spent_in_period(records, period)

    return BudgetSnapshot(
        period=period,
        total=total,
        spent=spent,
        remaining=total - spent,
        percentage=compute_percentage(spent, total),
    )


def history(
    records: Iterable[ExpenseRecord],
    config: BudgetConfiguration,
    today: date,
    period_count: int = 12,
) -> list[BudgetHistoryItem]:
    """
    Spend for the `period_count` months ending with today's month.

    Most recent period first. Months without expenses are included
    with spent=0 and expense_count=0; hiding them is up to the UI.
    """
    records = list(records)
    items = []
    period = BudgetPeriod.of(today)

    for _ in range(max(0, period_count)):
        spent, count = spent_in_period(records, period)
        items.append(BudgetHistoryItem(
            period=period,
            spent=spent,
            total=config.resolve_total(period),
            expense_count=count,
        ))
        period = period.previous()

    return items


def _intra_day_order(record: ExpenseRecord):
    # Newest logged first; id breaks ties so input order never matters
    return (record.created_at, str(record.id))


def group_by_day(
    records: Iterable[ExpenseRecord],
    today: date,
) -> list[DailyExpenseGroup]:
    """
    Partition records by expense_date, newest date first.

    `today` is the caller's reference date for the is_today flag.
    """
    by_date: dict[date, list[ExpenseRecord]] = defaultdict(list)
    for record in records:
        by_date[record.expense_date].append(record)

    groups = []
    for day in sorted(by_date, reverse=True):
        groups.append(DailyExpenseGroup(
            date=day,
            is_today=day == today,
            records=sorted(by_date[day], key=_intra_day_order, reverse=True),
        ))
    return groups


def group_by_month(records: Iterable[ExpenseRecord]) -> list[MonthlyExpenseGroup]:
    """
    Partition records by (year, month), then by day of month.

    Months newest first, days within a month newest first.
    Each day carries the sum of its amounts.
    """
    by_month: dict[tuple[int, int], dict[int, list[ExpenseRecord]]] = defaultdict(
        lambda: defaultdict(list)
    )
    for record in records:
        key = (record.expense_date.year, record.expense_date.month)
        by_month[key][record.expense_date.day].append(record)

    groups = []
    for year, month in sorted(by_month, reverse=True):
        days = by_month[(year, month)]
        day_groups = []
        for day in sorted(days, reverse=True):
            day_records = sorted(days[day], key=_intra_day_order, reverse=True)
            day_groups.append(DayBucket(
                day=day,
                total_amount=sum((r.amount for r in day_records), ZERO),
                records=day_records,
            ))
        groups.append(MonthlyExpenseGroup(
            period=BudgetPeriod(month=month, year=year),
            day_groups=day_groups,
        ))
    return groups
