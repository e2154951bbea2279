from typing import Protocol, List, Optional
from dataclasses import dataclass
from datetime import date

from ..schemas import MarketTrends, Property

# ----- Data shapes (thin & explicit) -----

@dataclass
class CompSearch:
    address: str
    city: str
    state: str
    zip_code: Optional[str]
    radius: float          # miles
    max_results: int

@dataclass
class RawComparable:
    """
    A provider sale normalized into our field names, before scoring.
    Building facts the provider did not report are None.
    """
    id: str
    address: str
    sale_price: int
    sale_date: date
    sqft: int
    bedrooms: Optional[int]
    bathrooms: Optional[float]
    year_built: Optional[int]
    distance: float        # miles from the subject

# ----- Protocols (interfaces) -----

class CompsClient(Protocol):
    async def comparable_sales(self, search: CompSearch) -> List[RawComparable]: ...

class TrendsClient(Protocol):
    async def snapshot(self, prop: Property) -> MarketTrends: ...
