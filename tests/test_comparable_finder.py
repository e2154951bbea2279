"""
Tests for the Comparable Finder

Verifies:
- Provider results are filtered, scored and ranked
- Too few provider results are topped up to the minimum
- Provider failure or timeout degrades to 3-10 synthetic comps
- adjusted_price always equals sale_price plus the adjustments
- Similarity and adjustment arithmetic
- The HTTP provider client against a mocked transport
"""

import asyncio

import httpx
import pytest

from valuation_engine.core.cache import Cache
from valuation_engine.data.base import CompSearch
from valuation_engine.data.comps_client import HttpComps, normalize_comparable
from valuation_engine.schemas import Property
from valuation_engine.services.comparable_finder import (
    COMP_CONFIG,
    ComparableFinder,
    price_adjustments,
    similarity_score,
)
from valuation_engine.services.value_calculator import ValueCalculator


class FakeComps:
    """In-memory comparable-sales provider."""

    def __init__(self, rows=None, error=None, delay=0.0):
        self.rows = rows or []
        self.error = error
        self.delay = delay
        self.searches = []

    async def comparable_sales(self, search):
        self.searches.append(search)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.rows)


def _find(finder, prop):
    return asyncio.run(finder.find_comparables_with_source(prop))


# =============================================================================
# Provider path
# =============================================================================

class TestProviderResults:

    def test_provider_comps_are_ranked_by_similarity(self, subject, create_raw, reference_date):
        rows = [
            create_raw(sale_price=390_000, sqft=2600, distance=2.5, comp_id="far-big"),
            create_raw(sale_price=405_000, sqft=2000, distance=0.3, comp_id="close-match"),
            create_raw(sale_price=380_000, sqft=1800, distance=1.0, comp_id="near"),
            create_raw(sale_price=420_000, sqft=2100, distance=0.8, comp_id="next-door"),
        ]
        finder = ComparableFinder(client=FakeComps(rows), reference_date=reference_date)

        comps, source = _find(finder, subject)

        assert source == "provider"
        assert len(comps) == 4
        scores = [c.similarity_score for c in comps]
        assert scores == sorted(scores, reverse=True)
        assert comps[0].id == "close-match"

    def test_search_uses_radius_and_max_results(self, subject, create_raw, reference_date):
        client = FakeComps([create_raw(comp_id=f"c{i}") for i in range(3)])
        finder = ComparableFinder(client=client, reference_date=reference_date)

        _find(finder, subject)

        search = client.searches[0]
        assert search.address == subject.address
        assert search.radius == COMP_CONFIG["max_radius"]
        assert search.max_results == COMP_CONFIG["max_comps"]

    def test_unusable_rows_are_discarded(self, subject, create_raw, reference_date):
        rows = [
            create_raw(comp_id="good-1"),
            create_raw(comp_id="good-2", days_ago=90),
            create_raw(comp_id="good-3", days_ago=200),
            create_raw(comp_id="too-old", days_ago=400),
            create_raw(comp_id="no-price", sale_price=0),
            create_raw(comp_id="no-sqft", sqft=0),
        ]
        finder = ComparableFinder(client=FakeComps(rows), reference_date=reference_date)

        comps, source = _find(finder, subject)

        assert source == "provider"
        assert {c.id for c in comps} == {"good-1", "good-2", "good-3"}

    def test_results_capped_at_max_comps(self, subject, create_raw, reference_date):
        rows = [create_raw(comp_id=f"c{i}", sale_price=400_000 + i * 1000) for i in range(15)]
        finder = ComparableFinder(client=FakeComps(rows), reference_date=reference_date)

        comps, _ = _find(finder, subject)

        assert len(comps) == COMP_CONFIG["max_comps"]

    def test_under_return_is_topped_up(self, subject, create_raw, reference_date):
        finder = ComparableFinder(client=FakeComps([create_raw(comp_id="only")]),
                                  reference_date=reference_date)

        comps, source = _find(finder, subject)

        assert source == "mixed"
        assert len(comps) == COMP_CONFIG["min_comps"]
        assert "only" in {c.id for c in comps}
        assert sum(1 for c in comps if c.id.startswith("synthetic-")) == 2
        scores = [c.similarity_score for c in comps]
        assert scores == sorted(scores, reverse=True)

    def test_empty_provider_result_is_all_synthetic(self, subject, reference_date):
        finder = ComparableFinder(client=FakeComps([]), reference_date=reference_date)

        comps, source = _find(finder, subject)

        assert source == "synthetic"
        assert len(comps) == COMP_CONFIG["min_comps"]


# =============================================================================
# Fallback path
# =============================================================================

class TestSyntheticFallback:

    def test_provider_error_falls_back(self, subject, reference_date):
        finder = ComparableFinder(client=FakeComps(error=httpx.ConnectError("refused")),
                                  reference_date=reference_date)

        comps, source = _find(finder, subject)

        assert source == "synthetic"
        assert 3 <= len(comps) <= 10
        assert all(c.id.startswith("synthetic-") for c in comps)

    def test_provider_timeout_falls_back(self, subject, create_raw, reference_date):
        client = FakeComps([create_raw(comp_id=f"c{i}") for i in range(5)], delay=1.0)
        finder = ComparableFinder(client=client, reference_date=reference_date, timeout=0.01)

        comps, source = _find(finder, subject)

        assert source == "synthetic"
        assert 3 <= len(comps) <= 10

    def test_no_provider_configured(self, subject, reference_date):
        finder = ComparableFinder(client=None, reference_date=reference_date)

        comps = asyncio.run(finder.find_comparables(subject))

        assert len(comps) == COMP_CONFIG["max_synthetic"]

    def test_try_remote_reports_failure_without_raising(self, subject, reference_date):
        finder = ComparableFinder(client=FakeComps(error=ValueError("bad payload")),
                                  reference_date=reference_date)

        outcome = asyncio.run(finder.try_remote(subject))

        assert not outcome.ok
        assert isinstance(outcome.error, ValueError)

    def test_synthetic_count_is_bounded(self, subject, reference_date):
        finder = ComparableFinder(reference_date=reference_date)

        assert len(finder.local_fallback(subject, 50)) == COMP_CONFIG["max_synthetic"]

    def test_synthetic_comps_are_deterministic_per_address(self, subject, reference_date):
        first = ComparableFinder(reference_date=reference_date).local_fallback(subject, 8)
        second = ComparableFinder(reference_date=reference_date).local_fallback(subject, 8)

        assert [c.model_dump() for c in first] == [c.model_dump() for c in second]

    def test_synthetic_comps_are_recent_and_nearby(self, subject, reference_date):
        comps = ComparableFinder(reference_date=reference_date).local_fallback(subject, 8)

        for comp in comps:
            assert 30 <= (reference_date - comp.sale_date).days < 210
            assert 0.2 <= comp.distance <= 3.2

    def test_land_base_price_uses_lot_size(self, reference_date):
        land = Property(address="FM 1431", city="Marble Falls", property_type="LAND", lot_size_sqft=43_560)

        assert ComparableFinder(reference_date=reference_date).estimate_base_price(land) == 217_800

    def test_fallback_does_not_mutate_subject(self, subject, reference_date):
        before = subject.model_dump()

        _find(ComparableFinder(reference_date=reference_date), subject)

        assert subject.model_dump() == before


# =============================================================================
# Scoring arithmetic
# =============================================================================

class TestScoring:

    def test_adjusted_price_equals_sale_price_plus_adjustments(self, subject, create_raw, reference_date):
        rows = [
            create_raw(comp_id="a", sqft=1700, bedrooms=4, year_built=1985, distance=2.6),
            create_raw(comp_id="b", sqft=2300, bathrooms=3, distance=0.4),
            create_raw(comp_id="c"),
        ]
        finder = ComparableFinder(client=FakeComps(rows), reference_date=reference_date)
        provider_comps, _ = _find(finder, subject)
        synthetic_comps = finder.local_fallback(subject, 8)

        for comp in provider_comps + synthetic_comps:
            assert comp.adjusted_price == comp.sale_price + sum(a.amount for a in comp.adjustments)
            assert 0 <= comp.similarity_score <= 100

    def test_identical_same_day_comp_scores_100(self, subject, create_raw, reference_date):
        raw = create_raw(days_ago=0, distance=0)

        assert similarity_score(subject, raw, reference_date) == 100

    def test_similarity_deductions(self, subject, create_raw, reference_date):
        # 20% larger (-10), 1 mile (-5), 60 days (-2)
        raw = create_raw(sqft=2400, distance=1.0, days_ago=60)

        assert similarity_score(subject, raw, reference_date) == 83

    def test_similarity_floors_at_zero(self, subject, create_raw, reference_date):
        raw = create_raw(sqft=8000, bedrooms=9, bathrooms=8, year_built=1900, distance=10, days_ago=360)

        assert similarity_score(subject, raw, reference_date) == 0

    def test_missing_subject_fields_use_defaults(self, create_raw, reference_date):
        bare = Property(address="1 Unknown Rd")
        raw = create_raw(sqft=1800, bedrooms=3, bathrooms=2, year_built=2000, distance=0, days_ago=0)

        assert similarity_score(bare, raw, reference_date) == 100
        assert price_adjustments(bare, raw) == []

    def test_adjustment_amounts(self, subject, create_raw):
        raw = create_raw(sale_price=400_000, sqft=1800, bedrooms=4, bathrooms=2.5,
                         year_built=1990, distance=3.0)

        amounts = {a.factor: a.amount for a in price_adjustments(subject, raw)}

        assert amounts == {
            "Square Footage": 22_222,   # 200 sqft * $222.22 * 0.5
            "Bedrooms": -10_000,
            "Bathrooms": -4_000,
            "Year Built": -22_500,      # comp 15 years older
            "Location": -6_000,
        }

    def test_unreported_facts_are_not_scored(self, subject, create_raw, reference_date):
        raw = create_raw(bedrooms=None, bathrooms=None, year_built=None, distance=0, days_ago=0)

        assert similarity_score(subject, raw, reference_date) == 100
        assert price_adjustments(subject, raw) == []

    def test_small_differences_are_not_adjusted(self, subject, create_raw):
        raw = create_raw(sqft=1970, year_built=2008, distance=1.9)

        assert price_adjustments(subject, raw) == []


# =============================================================================
# HTTP provider client
# =============================================================================

def _attom_row(comp_id=1, amount=410_000, trans_date="2024-04-15"):
    return {
        "identifier": {"Id": comp_id},
        "address": {"oneLine": f"{comp_id} Provider Ln, Austin, TX 78704"},
        "sale": {
            "amount": {"saleAmt": amount},
            "saleTransDate": trans_date,
            "calculation": {"pricePerSizeUnit": 205.0},
        },
        "building": {"size": {"livingSize": 2000}, "rooms": {"beds": 3, "bathsTotal": 2}},
        "summary": {"yearbuilt": 2004},
        "location": {"distance": 0.8},
    }


@pytest.fixture
def search():
    return CompSearch(address="1204 Barton Hills Dr", city="Austin", state="TX",
                      zip_code="78704", radius=5, max_results=10)


class TestHttpComps:

    def test_normalize_row(self):
        raw = normalize_comparable(_attom_row())

        assert raw.id == "1"
        assert raw.sale_price == 410_000
        assert raw.sale_date.isoformat() == "2024-04-15"
        assert (raw.sqft, raw.bedrooms, raw.bathrooms, raw.year_built) == (2000, 3, 2.0, 2004)
        assert raw.distance == 0.8

    def test_normalize_row_without_building_facts(self):
        row = _attom_row()
        del row["summary"]
        row["building"]["rooms"] = {}

        raw = normalize_comparable(row)

        assert (raw.bedrooms, raw.bathrooms, raw.year_built) == (None, None, None)
        assert raw.sqft == 2000

    def test_sparse_rows_keep_value_invariants(self, subject, reference_date):
        sparse = _attom_row(3, amount=420_000, trans_date="2024-02-01")
        del sparse["summary"]
        sparse["building"]["rooms"] = {}
        rows = [
            _attom_row(1, amount=410_000, trans_date="2024-04-15"),
            _attom_row(2, amount=395_000, trans_date="2024-03-10"),
            sparse,
        ]
        client = HttpComps("https://comps.example.com", cache=Cache(use_redis=False),
                           transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"property": rows})))
        finder = ComparableFinder(client=client, reference_date=reference_date)

        comps, source = _find(finder, subject)
        result = ValueCalculator(reference_date=reference_date).calculate(subject, comps)

        assert source == "provider"
        sparse_comp = next(c for c in comps if c.id == "3")
        assert sparse_comp.year_built is None
        assert sparse_comp.adjustments == []
        assert all(abs(a.amount) < 50_000 for c in comps for a in c.adjustments)
        assert 0 < result.range_min <= result.estimate <= result.range_max
        assert result.fast_sale < result.estimate
        assert 395_000 <= result.estimate <= 420_000

    def test_request_shape_and_malformed_rows(self, search):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"property": [_attom_row(1), {"identifier": {"Id": 2}}]})

        client = HttpComps("https://comps.example.com/v1/", api_key="k-123",
                           cache=Cache(use_redis=False), transport=httpx.MockTransport(handler))

        rows = asyncio.run(client.comparable_sales(search))

        assert [r.id for r in rows] == ["1"]
        request = seen[0]
        assert request.url.path == "/v1/salescomps/address"
        assert request.url.params["address1"] == "1204 Barton Hills Dr"
        assert request.url.params["address2"] == "Austin, TX 78704"
        assert request.url.params["maxComps"] == "10"
        assert request.headers["apikey"] == "k-123"

    def test_responses_are_cached_per_address(self, search):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"property": [_attom_row(1), _attom_row(2)]})

        client = HttpComps("https://comps.example.com", cache=Cache(use_redis=False),
                           transport=httpx.MockTransport(handler))

        first = asyncio.run(client.comparable_sales(search))
        second = asyncio.run(client.comparable_sales(search))

        assert len(calls) == 1
        assert first == second

    def test_http_error_raises(self, search):
        client = HttpComps("https://comps.example.com", cache=Cache(use_redis=False),
                           transport=httpx.MockTransport(lambda r: httpx.Response(503)))

        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(client.comparable_sales(search))

    def test_non_list_payload_raises(self, search):
        client = HttpComps("https://comps.example.com", cache=Cache(use_redis=False),
                           transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"property": "x"})))

        with pytest.raises(ValueError):
            asyncio.run(client.comparable_sales(search))

    def test_provider_failure_degrades_in_finder(self, subject, search, reference_date):
        client = HttpComps("https://comps.example.com", cache=Cache(use_redis=False),
                           transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        finder = ComparableFinder(client=client, reference_date=reference_date)

        comps, source = _find(finder, subject)

        assert source == "synthetic"
        assert 3 <= len(comps) <= 10
