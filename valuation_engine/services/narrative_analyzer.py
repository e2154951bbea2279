"""
Narrative Analyzer

Produces the written analysis attached to a valuation: summary, strengths,
concerns, market position and investment potential. A remote language model
is tried first; whatever goes wrong there, the rule-based generator answers
instead, so ``analyze`` never raises on account of the remote side.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..core.config import settings
from ..core.metrics import FALLBACK_COUNT
from ..core.outcome import Outcome, attempt
from ..core.utils import mean, money
from ..models.base import NarrativeModel
from ..schemas import AIAnalysis, ComparableProperty, Property, PropertyType, ValueResult
from .risk_assessor import mean_similarity, recent_comp_count

logger = logging.getLogger(__name__)

HIGH_DEMAND_COUNTIES = ["Travis", "Collin", "Denton", "Fort Bend"]
HIGH_GROWTH_COUNTIES = HIGH_DEMAND_COUNTIES + ["Williamson"]
MAX_STRENGTHS = 5
MAX_CONCERNS = 4


def _lower_first(text: str) -> str:
    return text[:1].lower() + text[1:]


class NarrativeAnalyzer:
    def __init__(self, model: Optional[NarrativeModel] = None,
                 reference_date: Optional[date] = None,
                 timeout: Optional[float] = None):
        self.model = model
        self._reference_date = reference_date
        self.timeout = timeout if timeout is not None else settings.NARRATIVE_TIMEOUT_SECONDS

    @property
    def today(self) -> date:
        return self._reference_date or date.today()

    async def analyze(self, prop: Property, comps: List[ComparableProperty],
                      value_result: ValueResult) -> AIAnalysis:
        analysis, _ = await self.analyze_with_source(prop, comps, value_result)
        return analysis

    async def analyze_with_source(self, prop: Property, comps: List[ComparableProperty],
                                  value_result: ValueResult) -> Tuple[AIAnalysis, str]:
        """Analysis plus which path produced it: "remote" or "rules"."""
        outcome = await self.try_remote(prop, comps, value_result)
        if outcome.ok:
            return outcome.value, "remote"
        if self.model is not None:
            logger.warning("Narrative model failed, using rule-based analysis: %s", outcome.error)
            FALLBACK_COUNT.labels(component="narrative").inc()
        return self.local_fallback(prop, comps, value_result), "rules"

    # ----- remote path -----

    async def try_remote(self, prop: Property, comps: List[ComparableProperty],
                         value_result: ValueResult) -> Outcome[AIAnalysis]:
        if self.model is None:
            return Outcome.failure(RuntimeError("no narrative model configured"))

        outcome = await attempt(
            self.model.analyze_property(self.remote_payload(prop, comps, value_result)),
            self.timeout,
        )
        if not outcome.ok:
            return outcome
        try:
            data: Dict[str, Any] = outcome.value
            return Outcome.success(AIAnalysis(
                summary=data["summary"],
                strengths=data["strengths"],
                concerns=data["concerns"],
                market_position=data["marketPosition"],
                investment_potential=data["investmentPotential"],
            ))
        except (KeyError, TypeError, ValidationError) as exc:
            return Outcome.failure(exc)

    @staticmethod
    def remote_payload(prop: Property, comps: List[ComparableProperty],
                       value_result: ValueResult) -> Dict[str, Any]:
        return {
            "address": prop.address,
            "city": prop.city,
            "state": prop.state,
            "zipCode": prop.zip_code,
            "propertyType": prop.property_type.value,
            "sqft": prop.sqft,
            "bedrooms": prop.bedrooms,
            "bathrooms": prop.bathrooms,
            "yearBuilt": prop.year_built,
            "lotSize": prop.lot_size_sqft,
            "estimatedValue": value_result.estimate,
            "comparables": [
                {
                    "address": c.address,
                    "salePrice": c.sale_price,
                    "sqft": c.sqft,
                    "bedrooms": c.bedrooms,
                    "bathrooms": c.bathrooms,
                    "yearBuilt": c.year_built,
                    "distance": c.distance,
                }
                for c in comps
            ],
        }

    # ----- rule-based path -----

    def local_fallback(self, prop: Property, comps: List[ComparableProperty],
                       value_result: ValueResult) -> AIAnalysis:
        strengths = self.strengths(prop, comps, value_result)
        concerns = self.concerns(prop, comps, value_result)
        return AIAnalysis(
            summary=self.summary(prop, value_result, strengths, concerns),
            strengths=strengths,
            concerns=concerns,
            market_position=self.market_position(comps, value_result),
            investment_potential=self.investment_potential(prop, value_result),
        )

    def _age(self, prop: Property) -> Optional[int]:
        return self.today.year - prop.year_built if prop.year_built else None

    def strengths(self, prop: Property, comps: List[ComparableProperty],
                  value_result: ValueResult) -> List[str]:
        out: List[str] = []
        age = self._age(prop)
        avg_price = mean([c.adjusted_price for c in comps])
        avg_similarity = mean_similarity(comps)

        if prop.county_name in HIGH_DEMAND_COUNTIES:
            out.append(f"Located in {prop.county_name} County, a high-demand market")
        if age is not None and age < 10:
            out.append("Newer construction with modern features and systems")
        if prop.sqft and prop.sqft > 2500:
            out.append("Above-average square footage for the area")
        if prop.bedrooms and prop.bedrooms >= 4:
            out.append("4+ bedrooms appeals to families with broader buyer pool")
        if avg_price is not None and value_result.estimate < avg_price * 0.95:
            out.append("Priced competitively relative to comparable sales")
        if len(comps) >= 5:
            out.append("Strong comparable sales data supports valuation")
        if avg_similarity is not None and avg_similarity >= 85:
            out.append("Highly comparable properties found nearby")
        if prop.lot_size_sqft and prop.lot_size_sqft > 10_000:
            out.append("Larger than typical lot size for the area")

        return out[:MAX_STRENGTHS]

    def concerns(self, prop: Property, comps: List[ComparableProperty],
                 value_result: ValueResult) -> List[str]:
        out: List[str] = []
        age = self._age(prop)
        avg_similarity = mean_similarity(comps)

        if age is not None and age > 40:
            out.append("Older property may require updates to major systems")
        if len(comps) < 4:
            out.append("Limited comparable sales increases valuation uncertainty")
        if recent_comp_count(comps, self.today) < 2:
            out.append("Most comparable sales are over 6 months old")
        if value_result.estimate > 0 and \
                (value_result.range_max - value_result.range_min) / value_result.estimate > 0.12:
            out.append("Higher than typical valuation uncertainty")
        if avg_similarity is not None and avg_similarity < 75:
            out.append("Property characteristics differ from area norms")
        if not prop.sqft or not prop.year_built:
            out.append("Missing property data limits valuation accuracy")
        if prop.lot_size_sqft and prop.lot_size_sqft < 5000:
            out.append("Smaller lot size may limit buyer appeal")

        return out[:MAX_CONCERNS]

    @staticmethod
    def market_position(comps: List[ComparableProperty], value_result: ValueResult) -> str:
        avg_price = mean([c.adjusted_price for c in comps])
        if not avg_price or avg_price <= 0:
            return ("Too few comparable sales were available to position this property "
                    "against the local market; the estimate relies on regional rate tables.")

        pct = (value_result.estimate - avg_price) / avg_price * 100
        if pct < -5:
            return (f"This property is positioned approximately {abs(pct):.0f}% below the average "
                    "comparable sale price, suggesting potential value opportunity or reflecting "
                    "condition/feature differences.")
        if pct > 5:
            return (f"This property is positioned approximately {pct:.0f}% above the average "
                    "comparable sale price, reflecting premium features, condition, or location advantages.")
        return (f"This property is competitively positioned within the market, with value within "
                f"{abs(pct):.0f}% of the average comparable sale price in the area.")

    def investment_potential(self, prop: Property, value_result: ValueResult) -> str:
        factors: List[str] = []

        if prop.county_name in HIGH_GROWTH_COUNTIES:
            factors.append("strong market growth potential")

        if value_result.fast_sale > 0:
            upside = (value_result.estimate - value_result.fast_sale) / value_result.fast_sale * 100
            if upside > 12:
                factors.append(f"{upside:.0f}% potential upside from distressed purchase price")

        if prop.property_type == PropertyType.SINGLE_FAMILY:
            factors.append("single-family homes maintain consistent demand")
        elif prop.property_type == PropertyType.MULTI_FAMILY:
            factors.append("multi-family offers rental income potential")

        age = self._age(prop)
        if age is not None and 25 < age < 50:
            factors.append("renovation opportunity for value-add strategy")

        if not factors:
            return "Standard investment profile with typical market characteristics."
        return f"Investment considerations include {', '.join(factors)}."

    @staticmethod
    def summary(prop: Property, value_result: ValueResult,
                strengths: List[str], concerns: List[str]) -> str:
        text = (
            f"This {prop.property_type.label} property at {prop.full_address} has an estimated "
            f"market value of {money(value_result.estimate)}, with a likely range of "
            f"{money(value_result.range_min)} to {money(value_result.range_max)}."
        )
        if strengths:
            text += f" Key strengths include {_lower_first(strengths[0])}."
        if concerns:
            text += f" Note that {_lower_first(concerns[0])}."
        text += (f" For a quick sale (90 days or less), a price point around "
                 f"{money(value_result.fast_sale)} is recommended.")
        return text
