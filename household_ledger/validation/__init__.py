"""Budget allocation validation package."""

from household_ledger.validation.allocation import BudgetAllocationValidator

__all__ = ["BudgetAllocationValidator"]
