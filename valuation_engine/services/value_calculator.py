"""
Value Calculator

Blends a similarity-weighted sales comparison with a price-per-sqft check.
With no comparables it falls back to a rate table by property type.
"""

from datetime import date
from typing import List, Optional

import numpy as np

from ..schemas import ComparableProperty, Property, PropertyType, ValueResult

SALES_COMPARISON_WEIGHT = 0.7
PRICE_PER_SQFT_WEIGHT = 0.3
MAX_RANGE_FRACTION = 0.10
FAST_SALE_FACTOR = 0.88
DEFAULT_SQFT = 1800
DEFAULT_YEAR_BUILT = 2000

# Rate-table fallback ($/sqft), used only when no comparables exist
FALLBACK_RATES = {
    PropertyType.SINGLE_FAMILY: 175,
    PropertyType.CONDO: 195,
    PropertyType.TOWNHOUSE: 185,
    PropertyType.MULTI_FAMILY: 145,
    PropertyType.COMMERCIAL: 225,
}
FALLBACK_DEFAULT_RATE = 170
FALLBACK_RANGE = 0.15
FALLBACK_FAST_SALE = 0.82
LAND_RATE = 4               # per lot sqft
LAND_RANGE = 0.20
LAND_FAST_SALE = 0.75

METHODOLOGY_COMPS = "Sales Comparison Approach with Price Per Sqft Validation"
METHODOLOGY_RATE_TABLE = "Automated Valuation Model (Limited Comparable Data)"
METHODOLOGY_LAND = "Land Value Estimation (Limited Data)"


def iqr_filter(values: np.ndarray) -> np.ndarray:
    """Drop points outside 1.5x the interquartile range (quartiles by sorted index)."""
    ordered = np.sort(values)
    n = len(ordered)
    q1 = ordered[int(n * 0.25)]
    q3 = ordered[int(n * 0.75)]
    iqr = q3 - q1
    return ordered[(ordered >= q1 - 1.5 * iqr) & (ordered <= q3 + 1.5 * iqr)]


class ValueCalculator:
    def __init__(self, reference_date: Optional[date] = None):
        self._reference_date = reference_date

    @property
    def today(self) -> date:
        return self._reference_date or date.today()

    def calculate(self, prop: Property, comps: List[ComparableProperty]) -> ValueResult:
        if not comps:
            return self.fallback_estimate(prop)

        weighted_value = self.weighted_value(comps)
        price_per_sqft = self.price_per_sqft(comps)
        sqft_value = price_per_sqft * (prop.sqft or DEFAULT_SQFT)

        estimate = round(weighted_value * SALES_COMPARISON_WEIGHT + sqft_value * PRICE_PER_SQFT_WEIGHT)
        fraction = self.range_fraction(comps)

        return ValueResult(
            estimate=estimate,
            range_min=round(estimate * (1 - fraction)),
            range_max=round(estimate * (1 + fraction)),
            fast_sale=round(estimate * FAST_SALE_FACTOR),
            price_per_sqft=price_per_sqft,
            methodology=METHODOLOGY_COMPS,
        )

    @staticmethod
    def weighted_value(comps: List[ComparableProperty]) -> int:
        """Adjusted prices weighted by similarity (plain mean if every weight is 0)."""
        prices = np.array([c.adjusted_price for c in comps], dtype=float)
        weights = np.array([c.similarity_score for c in comps], dtype=float)
        if weights.sum() <= 0:
            return round(float(prices.mean()))
        return round(float((prices * weights).sum() / weights.sum()))

    @staticmethod
    def price_per_sqft(comps: List[ComparableProperty]) -> float:
        ppsf = np.array([c.sale_price / c.sqft for c in comps if c.sqft > 0], dtype=float)
        if ppsf.size == 0:
            return 0
        return round(float(iqr_filter(ppsf).mean()))

    @staticmethod
    def range_fraction(comps: List[ComparableProperty]) -> float:
        """Half-width of the value range as a fraction of the estimate, at most 10%."""
        prices = np.array([c.adjusted_price for c in comps], dtype=float)
        mean = prices.mean()
        if mean <= 0:
            return MAX_RANGE_FRACTION
        return min(MAX_RANGE_FRACTION, float(prices.std() / mean))

    def fallback_estimate(self, prop: Property) -> ValueResult:
        if prop.property_type == PropertyType.LAND:
            land_value = (prop.lot_size_sqft or 10_000) * LAND_RATE
            return ValueResult(
                estimate=land_value,
                range_min=round(land_value * (1 - LAND_RANGE)),
                range_max=round(land_value * (1 + LAND_RANGE)),
                fast_sale=round(land_value * LAND_FAST_SALE),
                price_per_sqft=LAND_RATE,
                methodology=METHODOLOGY_LAND,
            )

        rate = FALLBACK_RATES.get(prop.property_type, FALLBACK_DEFAULT_RATE)
        age = self.today.year - (prop.year_built or DEFAULT_YEAR_BUILT)
        # 0.5% per year, never more than 25% off
        price_per_sqft = round(rate * max(0.75, 1 - age * 0.005))
        estimate = round((prop.sqft or DEFAULT_SQFT) * price_per_sqft)

        return ValueResult(
            estimate=estimate,
            range_min=round(estimate * (1 - FALLBACK_RANGE)),
            range_max=round(estimate * (1 + FALLBACK_RANGE)),
            fast_sale=round(estimate * FALLBACK_FAST_SALE),
            price_per_sqft=price_per_sqft,
            methodology=METHODOLOGY_RATE_TABLE,
        )
