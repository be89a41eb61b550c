"""Budget aggregation package."""

from expense_journal.budget.aggregator import (
    compute_percentage,
    current_snapshot,
    group_by_day,
    group_by_month,
    history,
    spent_in_period,
)

__all__ = [
    "compute_percentage",
    "current_snapshot",
    "group_by_day",
    "group_by_month",
    "history",
    "spent_in_period",
]
