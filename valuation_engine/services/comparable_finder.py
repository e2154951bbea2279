"""
Comparable Finder

Retrieves comparable sales from the configured provider, scores how similar
each one is to the subject and prices the differences. When the provider is
missing, fails, or returns too few sales, synthetic comparables anchored to
local rate tables take their place so the caller always receives 3-10 comps.
"""

import logging
from datetime import date, timedelta
from typing import List, Optional, Tuple

import numpy as np

from ..core.config import settings
from ..core.metrics import FALLBACK_COUNT
from ..core.outcome import Outcome, attempt
from ..core.utils import fnv1a_32, normalize_address
from ..data.base import CompsClient, CompSearch, RawComparable
from ..schemas import Adjustment, ComparableProperty, Property, PropertyType

logger = logging.getLogger(__name__)

# =============================================================================
# Configuration
# =============================================================================

COMP_CONFIG = {
    "max_radius": 5,        # miles
    "max_comps": 10,
    "min_comps": 3,
    "max_age_days": 365,
    "max_synthetic": 8,
}

# Subject values assumed when the property record leaves a field empty
SUBJECT_DEFAULTS = {"sqft": 1800, "bedrooms": 3, "bathrooms": 2, "year_built": 2000}

# Dollar weights per unit of difference. Hand-tuned, pending calibration
# against closed sales.
ADJUSTMENT_WEIGHTS = {
    "sqft_price_share": 0.5,    # share of the comp's $/sqft applied to the size delta
    "sqft_threshold": 50,
    "bedroom": 10_000,
    "bathroom": 8_000,
    "year_built": 1_500,
    "year_threshold": 5,
    "distance_per_mile": 2_000,
    "distance_threshold": 2,
}

# Synthetic comparable anchors
SYNTHETIC_RATES = {
    PropertyType.SINGLE_FAMILY: 180,
    PropertyType.CONDO: 200,
    PropertyType.TOWNHOUSE: 190,
    PropertyType.MULTI_FAMILY: 150,
    PropertyType.COMMERCIAL: 250,
}
SYNTHETIC_DEFAULT_RATE = 175
SYNTHETIC_LAND_RATE = 5     # per lot sqft

COUNTY_MULTIPLIERS = {
    "Travis": 1.4,
    "Harris": 1.0,
    "Dallas": 1.1,
    "Tarrant": 1.0,
    "Collin": 1.3,
    "Denton": 1.2,
    "Bexar": 0.9,
    "Fort Bend": 1.15,
    "Hidalgo": 0.7,
    "El Paso": 0.75,
    "Williamson": 1.25,
    "Montgomery": 1.1,
    "Brazoria": 0.95,
    "Galveston": 1.0,
    "Nueces": 0.85,
}

STREETS = [
    "Oak Lane", "Maple Street", "Cedar Drive", "Pine Avenue",
    "Elm Court", "Birch Road", "Willow Way", "Cherry Lane",
]


def _subject(prop: Property, field: str):
    value = getattr(prop, field)
    return value if value else SUBJECT_DEFAULTS[field]


def similarity_score(prop: Property, comp: RawComparable, today: date) -> int:
    """
    0-100 similarity. Starts at 100 and deducts for size, rooms, age,
    distance and how long ago the comp sold.
    """
    score = 100.0
    subject_sqft = _subject(prop, "sqft")

    sqft_diff_pct = abs((comp.sqft - subject_sqft) / subject_sqft * 100)
    score -= min(25, sqft_diff_pct * 0.5)
    # Facts the comp does not report cost nothing
    if comp.bedrooms is not None:
        score -= abs(comp.bedrooms - _subject(prop, "bedrooms")) * 5
    if comp.bathrooms is not None:
        score -= abs(comp.bathrooms - _subject(prop, "bathrooms")) * 5
    if comp.year_built is not None:
        score -= min(15, abs(comp.year_built - _subject(prop, "year_built")) * 0.5)
    score -= min(20, comp.distance * 5)
    score -= min(10, max(0, (today - comp.sale_date).days) / 30)

    return max(0, min(100, round(score)))


def price_adjustments(prop: Property, comp: RawComparable) -> List[Adjustment]:
    """Dollar adjustments that move the comp's sale price toward the subject."""
    w = ADJUSTMENT_WEIGHTS
    adjustments: List[Adjustment] = []

    sqft_diff = _subject(prop, "sqft") - comp.sqft
    if abs(sqft_diff) > w["sqft_threshold"] and comp.sqft > 0:
        comp_ppsf = comp.sale_price / comp.sqft
        adjustments.append(Adjustment(
            factor="Square Footage",
            amount=round(sqft_diff * comp_ppsf * w["sqft_price_share"]),
            reason=f"Subject is {'larger' if sqft_diff > 0 else 'smaller'} by {abs(sqft_diff)} sqft",
        ))

    bed_diff = _subject(prop, "bedrooms") - comp.bedrooms if comp.bedrooms is not None else 0
    if bed_diff != 0:
        adjustments.append(Adjustment(
            factor="Bedrooms",
            amount=round(bed_diff * w["bedroom"]),
            reason=f"Subject has {abs(bed_diff)} {'more' if bed_diff > 0 else 'fewer'} bedroom(s)",
        ))

    bath_diff = _subject(prop, "bathrooms") - comp.bathrooms if comp.bathrooms is not None else 0
    if bath_diff != 0:
        adjustments.append(Adjustment(
            factor="Bathrooms",
            amount=round(bath_diff * w["bathroom"]),
            reason=f"Subject has {abs(bath_diff):g} {'more' if bath_diff > 0 else 'fewer'} bathroom(s)",
        ))

    year_diff = comp.year_built - _subject(prop, "year_built") if comp.year_built is not None else 0
    if abs(year_diff) > w["year_threshold"]:
        adjustments.append(Adjustment(
            factor="Year Built",
            amount=round(year_diff * w["year_built"]),
            reason=f"Comp is {abs(year_diff)} years {'newer' if year_diff > 0 else 'older'}",
        ))

    if comp.distance > w["distance_threshold"]:
        adjustments.append(Adjustment(
            factor="Location",
            amount=round(-comp.distance * w["distance_per_mile"]),
            reason=f"Comp is {comp.distance:.1f} miles away",
        ))

    return adjustments


def score_comparable(prop: Property, raw: RawComparable, today: date) -> ComparableProperty:
    adjustments = price_adjustments(prop, raw)
    return ComparableProperty(
        id=raw.id,
        address=raw.address,
        sale_price=raw.sale_price,
        sale_date=raw.sale_date,
        sqft=raw.sqft,
        bedrooms=raw.bedrooms,
        bathrooms=raw.bathrooms,
        year_built=raw.year_built,
        distance=raw.distance,
        similarity_score=similarity_score(prop, raw, today),
        adjustments=adjustments,
        adjusted_price=raw.sale_price + sum(a.amount for a in adjustments),
    )


def rank(comps: List[ComparableProperty]) -> List[ComparableProperty]:
    ranked = sorted(comps, key=lambda c: c.similarity_score, reverse=True)
    return ranked[: COMP_CONFIG["max_comps"]]


class ComparableFinder:
    """
    Finds and ranks comparable sales for a subject property.

    ``find_comparables`` always succeeds: provider problems are folded into an
    ``Outcome`` by ``try_remote`` and answered with ``local_fallback``.
    """

    def __init__(self, client: Optional[CompsClient] = None,
                 reference_date: Optional[date] = None,
                 rng: Optional[np.random.Generator] = None,
                 timeout: Optional[float] = None):
        self.client = client
        self._reference_date = reference_date
        self._rng = rng
        self.timeout = timeout if timeout is not None else settings.COMPS_TIMEOUT_SECONDS

    @property
    def today(self) -> date:
        return self._reference_date or date.today()

    async def find_comparables(self, prop: Property) -> List[ComparableProperty]:
        comps, _ = await self.find_comparables_with_source(prop)
        return comps

    async def find_comparables_with_source(self, prop: Property) -> Tuple[List[ComparableProperty], str]:
        """Comparables plus where they came from: provider, mixed or synthetic."""
        outcome = await self.try_remote(prop)
        if not outcome.ok:
            logger.warning("Comparable provider unavailable, using synthetic comps: %s", outcome.error)
            FALLBACK_COUNT.labels(component="comps").inc()
            return self.local_fallback(prop, COMP_CONFIG["max_comps"]), "synthetic"

        comps = outcome.value
        if len(comps) >= COMP_CONFIG["min_comps"]:
            return comps, "provider"

        logger.info("Provider returned %d comps, topping up with synthetic comps", len(comps))
        FALLBACK_COUNT.labels(component="comps_topup").inc()
        synthetic = self.local_fallback(prop, COMP_CONFIG["min_comps"] - len(comps))
        return rank(comps + synthetic), "mixed" if comps else "synthetic"

    async def try_remote(self, prop: Property) -> Outcome[List[ComparableProperty]]:
        if self.client is None:
            return Outcome.failure(RuntimeError("no comparable-sales provider configured"))

        search = CompSearch(
            address=prop.address, city=prop.city, state=prop.state, zip_code=prop.zip_code or None,
            radius=COMP_CONFIG["max_radius"], max_results=COMP_CONFIG["max_comps"],
        )
        outcome = await attempt(self.client.comparable_sales(search), self.timeout)
        if not outcome.ok:
            return outcome

        cutoff = self.today - timedelta(days=COMP_CONFIG["max_age_days"])
        usable = [
            raw for raw in outcome.value
            if raw.sale_price > 0 and raw.sqft > 0 and raw.sale_date >= cutoff
        ]
        return Outcome.success(rank([score_comparable(prop, raw, self.today) for raw in usable]))

    def local_fallback(self, prop: Property, count: int) -> List[ComparableProperty]:
        """
        Synthetic comparables around a rate-table price for the subject.
        Seeded from the address so repeated runs for a property agree.
        """
        rng = self._rng or np.random.default_rng(fnv1a_32(normalize_address(prop.full_address)))
        base_price = self.estimate_base_price(prop)
        subject_sqft = _subject(prop, "sqft")

        raws: List[RawComparable] = []
        for i in range(min(count, COMP_CONFIG["max_synthetic"])):
            price_variance = float(rng.uniform(0.85, 1.15))
            sqft_variance = float(rng.uniform(0.8, 1.2))
            days_ago = int(rng.integers(30, 210))
            street_number = 100 + i * 100 + int(rng.integers(0, 50))
            street = STREETS[i % len(STREETS)]
            raws.append(RawComparable(
                id=f"synthetic-{i + 1}",
                address=f"{street_number} {street}, {prop.city}, {prop.state} {prop.zip_code}".strip(),
                sale_price=round(base_price * price_variance),
                sale_date=self.today - timedelta(days=days_ago),
                sqft=round(subject_sqft * sqft_variance),
                bedrooms=_subject(prop, "bedrooms"),
                bathrooms=_subject(prop, "bathrooms"),
                year_built=_subject(prop, "year_built") + int(rng.integers(-5, 5)),  # -5..+4
                distance=round(float(rng.uniform(0.2, 3.2)), 2),
            ))

        return rank([score_comparable(prop, raw, self.today) for raw in raws])

    def estimate_base_price(self, prop: Property) -> int:
        if prop.property_type == PropertyType.LAND:
            return (prop.lot_size_sqft or 10_000) * SYNTHETIC_LAND_RATE

        rate = SYNTHETIC_RATES.get(prop.property_type, SYNTHETIC_DEFAULT_RATE)
        age = self.today.year - _subject(prop, "year_built")
        age_factor = max(0.7, 1 - age * 0.005)
        county_factor = COUNTY_MULTIPLIERS.get(prop.county_name or "", 1.0)
        return round(_subject(prop, "sqft") * rate * age_factor * county_factor)
