"""Shared fixtures: a fixed clock, property/comp factories and an in-memory database."""

from datetime import date, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from valuation_engine.core.cache import cache
from valuation_engine.core.database import build_engine, init_db
from valuation_engine.data.base import RawComparable
from valuation_engine.schemas import Adjustment, ComparableProperty, Property, PropertyType


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear_local()
    yield
    cache.clear_local()


@pytest.fixture
def reference_date():
    """Fixed reference date for deterministic tests."""
    return date(2024, 6, 1)


@pytest.fixture
def subject():
    """Standard subject property for testing."""
    return Property(
        address="1204 Barton Hills Dr",
        city="Austin",
        state="TX",
        zip_code="78704",
        county="Travis County",
        property_type=PropertyType.SINGLE_FAMILY,
        sqft=2000,
        bedrooms=3,
        bathrooms=2,
        year_built=2005,
        lot_size_sqft=7500,
    )


@pytest.fixture
def create_comp(reference_date):
    """Factory fixture for scored comparables."""
    def _create(
        adjusted_price: int = 400_000,
        similarity_score: int = 90,
        days_ago: int = 30,
        sale_price: int | None = None,
        sqft: int = 2000,
        distance: float = 0.5,
        comp_id: str | None = None,
    ) -> ComparableProperty:
        sale_price = sale_price if sale_price is not None else adjusted_price
        adjustments = []
        if adjusted_price != sale_price:
            adjustments.append(Adjustment(
                factor="Square Footage", amount=adjusted_price - sale_price, reason="test",
            ))
        return ComparableProperty(
            id=comp_id or f"comp-{adjusted_price}-{days_ago}",
            address="100 Test Street, Austin, TX 78704",
            sale_price=sale_price,
            sale_date=reference_date - timedelta(days=days_ago),
            sqft=sqft,
            bedrooms=3,
            bathrooms=2,
            year_built=2005,
            distance=distance,
            similarity_score=similarity_score,
            adjustments=adjustments,
            adjusted_price=adjusted_price,
        )
    return _create


@pytest.fixture
def create_raw(reference_date):
    """Factory fixture for provider rows before scoring."""
    def _create(
        sale_price: int = 400_000,
        sqft: int = 2000,
        days_ago: int = 30,
        bedrooms: int | None = 3,
        bathrooms: float | None = 2,
        year_built: int | None = 2005,
        distance: float = 0.5,
        comp_id: str | None = None,
    ) -> RawComparable:
        return RawComparable(
            id=comp_id or f"raw-{sale_price}-{days_ago}",
            address="200 Provider Ave, Austin, TX 78704",
            sale_price=sale_price,
            sale_date=reference_date - timedelta(days=days_ago),
            sqft=sqft,
            bedrooms=bedrooms,
            bathrooms=bathrooms,
            year_built=year_built,
            distance=distance,
        )
    return _create


@pytest.fixture
def session_factory():
    """Fresh in-memory SQLite database with the service tables created."""
    engine = build_engine("sqlite://")
    init_db(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()
