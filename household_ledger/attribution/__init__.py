"""Attribution engine and advisor package."""

from household_ledger.attribution.advisor import AttributionAdvisor, confidence_for
from household_ledger.attribution.engine import AttributionEngine

__all__ = ["AttributionAdvisor", "AttributionEngine", "confidence_for"]
