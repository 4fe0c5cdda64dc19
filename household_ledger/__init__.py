"""
Household Ledger - Source Package

The attribution core of a household finance tracker: links income
events to the payments they pay for, and divides income across
budget categories.

DESIGN PRINCIPLES:
1. Money is fixed-point, never a float
2. Validate everything before the first write
3. No silent corrections
4. Every mutation must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Household Ledger Team"
