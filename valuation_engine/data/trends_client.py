"""
Market-trend snapshot.

Placeholder until a real market-data feed is wired in: figures come from a
static table of Texas county estimates (Q4 2024) with a property-based
estimate for counties not in the table. Swap in another ``TrendsClient``
implementation to integrate live data.
"""

from .base import TrendsClient
from ..schemas import MarketTrends, Property, PropertyType

# county: (median price, 30d %, 90d %, days on market, inventory, demand)
COUNTY_TRENDS: dict[str, tuple[int, float, float, int, int, str]] = {
    # Major metros
    "Harris": (320_000, 0.3, 1.8, 32, 4500, "HIGH"),
    "Travis": (485_000, -0.2, 0.5, 45, 2800, "MODERATE"),
    "Dallas": (380_000, 0.4, 2.1, 28, 3200, "HIGH"),
    "Bexar": (285_000, 0.5, 2.5, 35, 2100, "HIGH"),
    "Tarrant": (340_000, 0.3, 1.9, 30, 2400, "HIGH"),
    "Collin": (520_000, 0.1, 1.2, 38, 1800, "MODERATE"),
    "Denton": (450_000, 0.2, 1.5, 35, 1600, "HIGH"),
    "Fort Bend": (395_000, 0.4, 2.0, 30, 1400, "HIGH"),
    "Montgomery": (365_000, 0.4, 2.0, 33, 1200, "HIGH"),
    "Williamson": (445_000, -0.1, 0.8, 42, 1500, "MODERATE"),
    # Secondary metros
    "El Paso": (245_000, 0.6, 2.8, 38, 800, "HIGH"),
    "Hidalgo": (220_000, 0.5, 2.4, 42, 650, "MODERATE"),
    "Cameron": (195_000, 0.4, 2.2, 48, 520, "MODERATE"),
    "Nueces": (265_000, 0.3, 1.6, 40, 600, "MODERATE"),
    "Galveston": (310_000, 0.5, 2.2, 36, 580, "HIGH"),
    "Brazoria": (325_000, 0.4, 2.1, 34, 720, "HIGH"),
    "Bell": (275_000, 0.3, 1.8, 38, 550, "MODERATE"),
    "Lubbock": (235_000, 0.4, 2.0, 35, 420, "MODERATE"),
    "McLennan": (245_000, 0.3, 1.7, 40, 380, "MODERATE"),
    "Webb": (215_000, 0.2, 1.4, 52, 340, "LOW"),
    # Suburban/exurban growth areas
    "Hays": (420_000, 0.1, 0.9, 44, 680, "MODERATE"),
    "Kaufman": (335_000, 0.5, 2.4, 32, 480, "HIGH"),
    "Rockwall": (475_000, 0.2, 1.3, 36, 320, "MODERATE"),
    "Johnson": (295_000, 0.4, 2.0, 34, 420, "HIGH"),
    "Ellis": (340_000, 0.3, 1.8, 35, 380, "MODERATE"),
    "Comal": (385_000, 0.3, 1.6, 40, 520, "MODERATE"),
    "Guadalupe": (310_000, 0.4, 2.0, 36, 380, "HIGH"),
    "Brazos": (285_000, 0.3, 1.5, 42, 340, "MODERATE"),
    "Smith": (265_000, 0.4, 2.1, 38, 420, "MODERATE"),
    "Randall": (255_000, 0.3, 1.7, 40, 280, "MODERATE"),
}

# Statewide medians by property type
TYPE_MEDIANS = {
    PropertyType.SINGLE_FAMILY: 320_000,
    PropertyType.CONDO: 265_000,
    PropertyType.TOWNHOUSE: 295_000,
    PropertyType.MULTI_FAMILY: 450_000,
    PropertyType.LAND: 180_000,
    PropertyType.COMMERCIAL: 520_000,
}

class StaticTrends(TrendsClient):
    async def snapshot(self, prop: Property) -> MarketTrends:
        row = COUNTY_TRENDS.get(prop.county_name or "")
        if row:
            median, d30, d90, dom, inventory, demand = row
            return MarketTrends(
                median_price=median, price_change_30d=d30, price_change_90d=d90,
                days_on_market=dom, inventory=inventory, demand_level=demand,
            )
        return self.estimate(prop)

    @staticmethod
    def estimate(prop: Property) -> MarketTrends:
        """Trend figures for counties missing from the table."""
        median = float(TYPE_MEDIANS.get(prop.property_type, 320_000))
        if prop.bedrooms and prop.bedrooms > 3:
            median *= 1 + (prop.bedrooms - 3) * 0.08
        if prop.sqft and prop.sqft > 2000:
            median *= 1 + (prop.sqft - 2000) / 10_000

        # West Texas zips and unnamed localities behave like rural markets
        rural = (
            not prop.city
            or "rural" in prop.city.lower()
            or prop.zip_code.startswith("79")
        )
        return MarketTrends(
            median_price=round(median),
            price_change_30d=0.3,
            price_change_90d=1.5,
            days_on_market=52 if rural else 38,
            inventory=200 if rural else 550,
            demand_level="LOW" if rural else "MODERATE",
            source="estimate",
        )

def trends_client() -> TrendsClient:
    return StaticTrends()
