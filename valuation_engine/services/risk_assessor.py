"""
Risk Assessor

Checks the comparables, the subject and the computed value against fixed
rules. Every rule that fires adds one flag; flags never cancel each other.
"""

from datetime import date
from typing import List, Optional

import numpy as np

from ..core.utils import mean
from ..schemas import ComparableProperty, Property, PropertyType, RiskFlag, Severity, ValueResult

RECENT_SALE_DAYS = 180      # "within 6 months", counted as 30-day months


def recent_comp_count(comps: List[ComparableProperty], today: date) -> int:
    return sum(1 for c in comps if (today - c.sale_date).days <= RECENT_SALE_DAYS)


def mean_similarity(comps: List[ComparableProperty]) -> Optional[float]:
    return mean([c.similarity_score for c in comps])


def coefficient_of_variation(values: List[float]) -> float:
    arr = np.array(values, dtype=float)
    m = arr.mean()
    return float(arr.std() / m) if m > 0 else 0.0


def _flag(type_: str, severity: Severity, description: str, recommendation: str) -> RiskFlag:
    return RiskFlag(type=type_, severity=severity, description=description, recommendation=recommendation)


class RiskAssessor:
    def __init__(self, reference_date: Optional[date] = None):
        self._reference_date = reference_date

    @property
    def today(self) -> date:
        return self._reference_date or date.today()

    def assess(self, prop: Property, comps: List[ComparableProperty],
               value_result: ValueResult) -> List[RiskFlag]:
        flags: List[RiskFlag] = []
        flags += self.comp_risks(comps)
        flags += self.property_risks(prop)
        flags += self.market_risks(value_result)
        flags += self.data_quality_risks(comps)
        return flags

    def comp_risks(self, comps: List[ComparableProperty]) -> List[RiskFlag]:
        flags: List[RiskFlag] = []
        n = len(comps)

        if n < 3:
            flags.append(_flag(
                "INSUFFICIENT_COMPS", Severity.HIGH,
                f"Only {n} comparable sales found",
                "Consider ordering on-site inspection for additional verification",
            ))
        elif n < 5:
            flags.append(_flag(
                "LIMITED_COMPS", Severity.MEDIUM,
                f"Only {n} comparable sales found",
                "Value estimate may have wider variance than typical",
            ))

        if recent_comp_count(comps, self.today) < 2:
            flags.append(_flag(
                "STALE_COMPS", Severity.MEDIUM,
                "Most comparable sales are older than 6 months",
                "Market conditions may have changed since comparable sales",
            ))

        avg_similarity = mean_similarity(comps)
        if avg_similarity is not None:
            if avg_similarity < 70:
                flags.append(_flag(
                    "LOW_SIMILARITY", Severity.HIGH,
                    "Comparable properties have low similarity scores",
                    "Property may be unique in the area; consider certified appraisal",
                ))
            elif avg_similarity < 80:
                flags.append(_flag(
                    "MODERATE_SIMILARITY", Severity.LOW,
                    "Comparable properties have moderate similarity scores",
                    "Review comparables carefully before making decisions",
                ))

        if n >= 3 and coefficient_of_variation([c.adjusted_price for c in comps]) > 0.15:
            flags.append(_flag(
                "HIGH_COMP_VARIANCE", Severity.MEDIUM,
                "Significant price variation among comparable sales",
                "Value estimate has higher uncertainty; consider the full range",
            ))

        return flags

    def property_risks(self, prop: Property) -> List[RiskFlag]:
        flags: List[RiskFlag] = []
        year = self.today.year

        if prop.year_built and year - prop.year_built > 50:
            flags.append(_flag(
                "OLDER_PROPERTY", Severity.LOW,
                f"Property built in {prop.year_built} ({year - prop.year_built} years old)",
                "Consider on-site inspection to verify condition and updates",
            ))

        if prop.year_built and year - prop.year_built < 2:
            flags.append(_flag(
                "NEW_CONSTRUCTION", Severity.LOW,
                "Recently constructed property with limited sales history",
                "Value based on similar new construction in the area",
            ))

        if prop.property_type == PropertyType.LAND:
            flags.append(_flag(
                "LAND_VALUATION", Severity.MEDIUM,
                "Land valuation has higher uncertainty than improved property",
                "Consider soil studies, zoning verification, and development potential",
            ))

        if prop.property_type == PropertyType.COMMERCIAL:
            flags.append(_flag(
                "COMMERCIAL_COMPLEXITY", Severity.MEDIUM,
                "Commercial property valuation requires income analysis",
                "AI report is preliminary; certified appraisal recommended for lending",
            ))

        if not prop.sqft:
            flags.append(_flag(
                "MISSING_SQFT", Severity.HIGH,
                "Property square footage not available",
                "Value estimate less reliable without accurate size data",
            ))

        if not prop.year_built:
            flags.append(_flag(
                "MISSING_YEAR_BUILT", Severity.MEDIUM,
                "Year built not available",
                "Age-related adjustments may not be accurate",
            ))

        return flags

    def market_risks(self, value_result: ValueResult) -> List[RiskFlag]:
        flags: List[RiskFlag] = []
        ppsf = value_result.price_per_sqft

        if ppsf > 300:
            flags.append(_flag(
                "HIGH_PRICE_PER_SQFT", Severity.LOW,
                f"Price per sqft (${ppsf:,.0f}) is above typical range",
                "Verify property features justify premium pricing",
            ))

        if ppsf < 100:
            flags.append(_flag(
                "LOW_PRICE_PER_SQFT", Severity.MEDIUM,
                f"Price per sqft (${ppsf:,.0f}) is below typical range",
                "May indicate condition issues or limited market demand",
            ))

        if value_result.estimate > 0:
            spread = (value_result.range_max - value_result.range_min) / value_result.estimate
            if spread > 0.15:
                flags.append(_flag(
                    "WIDE_VALUE_RANGE", Severity.MEDIUM,
                    "Value range is wider than typical",
                    "Higher uncertainty in estimate; use conservative value for lending",
                ))

        return flags

    def data_quality_risks(self, comps: List[ComparableProperty]) -> List[RiskFlag]:
        flags: List[RiskFlag] = []

        sale_months = {c.sale_date.strftime("%Y-%m") for c in comps}
        if len(comps) > 3 and len(sale_months) < 3:
            flags.append(_flag(
                "CONCENTRATED_SALES", Severity.LOW,
                "Most comparable sales occurred in a short timeframe",
                "May not reflect current market conditions if market has shifted",
            ))

        avg_distance = mean([c.distance for c in comps])
        if avg_distance is not None and avg_distance > 3:
            flags.append(_flag(
                "DISTANT_COMPS", Severity.MEDIUM,
                f"Average comparable distance is {avg_distance:.1f} miles",
                "Location differences may not be fully captured in adjustments",
            ))

        return flags
