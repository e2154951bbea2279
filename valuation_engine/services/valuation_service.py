import asyncio
import logging
import time
from datetime import date
from typing import List, Optional

from ..core.config import settings
from ..core.metrics import VALUATION_COUNT, VALUATION_LATENCY
from ..data.base import TrendsClient
from ..data.comps_client import comps_client
from ..data.report_store import Report, ReportStore, risk_score
from ..data.trends_client import trends_client
from ..models.openai_model import narrative_model
from ..schemas import (
    ComparableProperty, Property, ReportType, RiskFlag, Severity, ValuationInput,
    ValuationResult, ValueResult,
)
from .comparable_finder import ComparableFinder
from .narrative_analyzer import NarrativeAnalyzer
from .risk_assessor import RiskAssessor, mean_similarity, recent_comp_count
from .value_calculator import ValueCalculator

logger = logging.getLogger(__name__)

METHODOLOGY = "Sales Comparison Approach with AI-Enhanced Adjustments"


class ValuationService:
    """
    Orchestrates:
      property → comparables → value → {risk flags, narrative} → market trends → scores
    and persists the outcome against the appraisal request that asked for it.
    Holds no per-request state, so one instance can serve concurrent requests.
    """
    def __init__(self,
                 finder: Optional[ComparableFinder] = None,
                 calculator: Optional[ValueCalculator] = None,
                 assessor: Optional[RiskAssessor] = None,
                 analyzer: Optional[NarrativeAnalyzer] = None,
                 trends: Optional[TrendsClient] = None,
                 store: Optional[ReportStore] = None,
                 reference_date: Optional[date] = None):
        self._reference_date = reference_date
        self.finder = finder or ComparableFinder(client=comps_client(), reference_date=reference_date)
        self.calculator = calculator or ValueCalculator(reference_date=reference_date)
        self.assessor = assessor or RiskAssessor(reference_date=reference_date)
        self.analyzer = analyzer or NarrativeAnalyzer(model=narrative_model(), reference_date=reference_date)
        self.trends = trends or trends_client()
        self.store = store or ReportStore()

    @property
    def today(self) -> date:
        return self._reference_date or date.today()

    async def generate_valuation(self, valuation_input: ValuationInput) -> ValuationResult:
        prop = valuation_input.property
        start = time.perf_counter()

        # 1) Comparables, then value: hard dependency
        comps, comps_source = await self.finder.find_comparables_with_source(prop)
        value = self.calculator.calculate(prop, comps)

        # 2) Risk flags and narrative only need comps + value: run side by side
        risk_flags, (analysis, narrative_source) = await asyncio.gather(
            self._assess(prop, comps, value),
            self.analyzer.analyze_with_source(prop, comps, value),
        )

        # 3) Market trends (static stub for now)
        market_trends = await self.trends.snapshot(prop)

        # 4) Scores
        confidence = self.confidence_score(comps, risk_flags)
        price_per_sqft = round(value.estimate / prop.sqft, 2) if prop.sqft else 0

        VALUATION_LATENCY.observe(time.perf_counter() - start)
        logger.info(
            "Valued %s at %d (confidence %d, %d comps from %s, %d risk flags, narrative %s)",
            prop.full_address, value.estimate, confidence, len(comps), comps_source,
            len(risk_flags), narrative_source,
        )

        return ValuationResult(
            value_estimate=value.estimate,
            value_range_min=value.range_min,
            value_range_max=value.range_max,
            fast_sale_estimate=value.fast_sale,
            confidence_score=confidence,
            price_per_sqft=price_per_sqft,
            methodology=METHODOLOGY,
            comps=comps,
            risk_flags=risk_flags,
            ai_analysis=analysis,
            market_trends=market_trends,
            comps_source=comps_source,
            narrative_source=narrative_source,
        )

    async def _assess(self, prop: Property, comps: List[ComparableProperty],
                      value: ValueResult) -> List[RiskFlag]:
        return self.assessor.assess(prop, comps, value)

    def confidence_score(self, comps: List[ComparableProperty], risk_flags: List[RiskFlag]) -> int:
        score = 100

        if len(comps) < 3:
            score -= 20
        elif len(comps) < 5:
            score -= 10

        if recent_comp_count(comps, self.today) < 2:
            score -= 15

        avg_similarity = mean_similarity(comps)
        if avg_similarity is not None:
            if avg_similarity < 70:
                score -= 15
            elif avg_similarity < 80:
                score -= 8

        score -= 10 * sum(1 for f in risk_flags if f.severity == Severity.HIGH)
        score -= 5 * sum(1 for f in risk_flags if f.severity == Severity.MEDIUM)

        return max(0, min(100, score))

    @staticmethod
    def risk_score(risk_flags: List[RiskFlag]) -> int:
        return risk_score(risk_flags)

    async def create_report(self, request_id: str, valuation: ValuationResult,
                            report_type: ReportType) -> Report:
        """Store the report and mark the request READY, both or neither."""
        return await asyncio.to_thread(self.store.create_report, request_id, valuation, report_type)

    async def process_request(self, request_id: str, valuation_input: ValuationInput,
                              timeout: Optional[float] = None) -> tuple[ValuationResult, Report]:
        """
        Value the property under the overall time budget and persist the report.
        Any failure leaves the request FAILED and is re-raised to the caller.
        """
        budget = timeout if timeout is not None else settings.VALUATION_TIMEOUT_SECONDS
        await asyncio.to_thread(self.store.mark_in_progress, request_id)
        try:
            valuation = await asyncio.wait_for(self.generate_valuation(valuation_input), budget)
            report = await self.create_report(request_id, valuation, valuation_input.requested_type)
        except Exception as exc:
            VALUATION_COUNT.labels(outcome="failed").inc()
            logger.error("Valuation for request %s failed: %s", request_id, exc)
            reason = f"valuation timed out after {budget:g}s" if isinstance(exc, asyncio.TimeoutError) else str(exc)
            await self._mark_failed(request_id, reason)
            raise
        VALUATION_COUNT.labels(outcome="ready").inc()
        return valuation, report

    async def _mark_failed(self, request_id: str, reason: str) -> None:
        try:
            await asyncio.to_thread(self.store.mark_failed, request_id, reason)
        except Exception:
            logger.exception("Could not mark request %s as failed", request_id)
