"""
Expense Journal - Source Package

A personal expense journal: photograph a purchase, enter the amount,
and see spending against a monthly budget.

DESIGN PRINCIPLES:
1. Every expense has a photo
2. Fail early, fail visibly
3. Budget views are derived, never stored
4. Every change must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Journal Team"
