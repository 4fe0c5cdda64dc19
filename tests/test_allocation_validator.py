"""
Tests for the Budget Allocation Validator
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from household_ledger.errors import InvalidArgumentError
from household_ledger.models.ledger import BudgetCategory
from household_ledger.validation import BudgetAllocationValidator


@pytest.fixture
def validator():
    return BudgetAllocationValidator()


def category(percentage, is_active=True, family_id=None):
    return BudgetCategory(
        family_id=family_id or uuid4(),
        name="Category",
        target_percentage=Decimal(str(percentage)),
        is_active=is_active,
    )


class TestValidatePercentages:
    """Tests for validate_percentages."""

    def test_under_allocated_suggests_rescale(self, validator):
        """Test 50 + 30 is rescaled to 62.5 + 37.5."""
        first, second = uuid4(), uuid4()

        report = validator.validate_percentages([
            {"id": first, "target_percentage": 50},
            {"id": second, "target_percentage": 30},
        ])

        assert report.is_valid is False
        assert report.total_percentage == Decimal("80")
        assert report.difference == Decimal("-20")
        assert [s.category_id for s in report.suggestions] == [first, second]
        assert [s.current_percentage for s in report.suggestions] == [Decimal("50"), Decimal("30")]
        assert [s.suggested_percentage for s in report.suggestions] == [
            Decimal("62.5"),
            Decimal("37.5"),
        ]

    def test_single_category_at_100(self, validator):
        """Test a lone 100% category is valid with no suggestions."""
        report = validator.validate_percentages([category(100)])

        assert report.is_valid is True
        assert report.difference == Decimal("0")
        assert report.suggestions == []

    def test_within_tolerance_is_valid(self, validator):
        """Test 33.33 * 3 = 99.99 counts as 100."""
        report = validator.validate_percentages([category("33.33") for _ in range(3)])
        assert report.is_valid is True

    def test_rounding_drift_settled_on_largest(self, validator):
        """Test three equal shares of an over-allocation still sum to 100."""
        report = validator.validate_percentages([category(40) for _ in range(3)])

        suggested = [s.suggested_percentage for s in report.suggestions]
        assert sum(suggested) == Decimal("100")
        assert sorted(suggested) == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]

    def test_all_zero_splits_evenly(self, validator):
        """Test that a zero total gets an even split."""
        report = validator.validate_percentages([category(0) for _ in range(4)])

        assert report.is_valid is False
        assert [s.suggested_percentage for s in report.suggestions] == [Decimal("25.00")] * 4

    def test_empty_list_rejected(self, validator):
        """Test that at least one category is required."""
        with pytest.raises(InvalidArgumentError, match="at least one"):
            validator.validate_percentages([])

    def test_duplicate_ids_rejected(self, validator):
        """Test that a category may appear only once."""
        duplicated = uuid4()
        with pytest.raises(InvalidArgumentError, match="duplicate"):
            validator.validate_percentages([
                {"id": duplicated, "target_percentage": 50},
                {"id": duplicated, "target_percentage": 50},
            ])

    @pytest.mark.parametrize("percentage", [-1, "100.5", "half"])
    def test_malformed_percentage_rejected(self, validator, percentage):
        """Test out-of-range and non-numeric percentages."""
        with pytest.raises(InvalidArgumentError):
            validator.validate_percentages([
                {"id": uuid4(), "target_percentage": percentage},
            ])


class TestValidateBudgetAllocations:
    """Tests for validate_budget_allocations."""

    def test_consistent_allocations(self, validator):
        """Test allocations matching the income and their percentages."""
        income_id = uuid4()
        report = validator.validate_budget_allocations(income_id, "3000", [
            {"budget_category_id": uuid4(), "amount": "1500", "percentage": "50"},
            {"budget_category_id": uuid4(), "amount": "1500", "percentage": "50"},
        ])

        assert report.is_valid is True
        assert report.income_event_id == income_id
        assert report.total_amount == Decimal("3000")

    def test_collects_every_issue(self, validator):
        """Test totals and per-line problems are all reported."""
        report = validator.validate_budget_allocations(uuid4(), "1000", [
            {"budget_category_id": uuid4(), "amount": "600", "percentage": "50"},
            {"budget_category_id": uuid4(), "amount": "-10", "percentage": "120"},
        ])

        assert report.is_valid is False
        issues = {(e.field, e.issue_type) for e in report.errors}
        assert ("percentage", "total_mismatch") in issues
        assert ("amount", "total_mismatch") in issues
        assert ("allocations[0].amount", "inconsistent") in issues
        assert ("allocations[1].percentage", "out_of_range") in issues
        assert ("allocations[1].amount", "negative") in issues

    def test_rounded_amounts_accepted(self, validator):
        """Test cent rounding stays within tolerance."""
        report = validator.validate_budget_allocations(uuid4(), "100", [
            {"budget_category_id": uuid4(), "amount": "33.33", "percentage": "33.33"},
            {"budget_category_id": uuid4(), "amount": "33.33", "percentage": "33.33"},
            {"budget_category_id": uuid4(), "amount": "33.34", "percentage": "33.34"},
        ])
        assert report.is_valid is True


class TestGenerateAllocations:
    """Tests for generate_allocations."""

    def test_amounts_sum_to_income(self, validator):
        """Test largest-remainder rounding gives exact totals."""
        income_id = uuid4()
        categories = [category("33.33"), category("33.33"), category("33.34")]

        allocations = validator.generate_allocations(income_id, "100.00", categories)

        assert sum(a.amount for a in allocations) == Decimal("100.00")
        assert all(a.income_event_id == income_id for a in allocations)
        report = validator.validate_budget_allocations(income_id, "100.00", allocations)
        assert report.is_valid is True

    def test_leftover_cent_goes_to_largest_remainder(self, validator):
        """Test 10.00 split 3 ways gets one extra cent."""
        categories = [category("33.33"), category("33.34"), category("33.33")]

        allocations = validator.generate_allocations(uuid4(), "10.00", categories)

        assert [a.amount for a in allocations] == [
            Decimal("3.33"),
            Decimal("3.34"),
            Decimal("3.33"),
        ]

    def test_inactive_categories_skipped_and_overrides_win(self, validator):
        """Test overrides replace targets for active categories only."""
        savings = category(20)
        spending = category(80)
        retired = category(50, is_active=False)

        allocations = validator.generate_allocations(
            uuid4(), "2000", [savings, spending, retired], overrides={savings.id: 30, spending.id: 70}
        )

        assert [a.budget_category_id for a in allocations] == [savings.id, spending.id]
        assert [a.amount for a in allocations] == [Decimal("600.00"), Decimal("1400.00")]
        assert allocations[0].percentage == Decimal("30.00")

    def test_no_active_category(self, validator):
        """Test that generating without active categories is rejected."""
        with pytest.raises(InvalidArgumentError):
            validator.generate_allocations(uuid4(), "100", [category(100, is_active=False)])

    def test_bad_override(self, validator):
        """Test override percentages are range checked."""
        savings = category(100)
        with pytest.raises(InvalidArgumentError):
            validator.generate_allocations(uuid4(), "100", [savings], overrides={savings.id: 101})
