import logging
from datetime import date
from typing import Any, List, Optional

import httpx

from .base import CompsClient, CompSearch, RawComparable
from ..core.cache import Cache, cache as default_cache
from ..core.config import settings
from ..core.utils import normalize_address

logger = logging.getLogger(__name__)

def _known(value: Any, cast):
    return cast(value) if value else None

def normalize_comparable(item: dict[str, Any]) -> RawComparable:
    """
    Map one ATTOM-style ``salescomps`` row into our field names.
    Missing rooms and year built become None and are left out of scoring;
    missing living size becomes 0 and the row is discarded by the finder.
    Raises KeyError/TypeError/ValueError when the sale itself is unusable.
    """
    building = item.get("building") or {}
    size = building.get("size") or {}
    rooms = building.get("rooms") or {}
    location = item.get("location") or {}
    sale = item["sale"]
    return RawComparable(
        id=str(item["identifier"]["Id"]),
        address=item["address"]["oneLine"],
        sale_price=int(sale["amount"]["saleAmt"]),
        sale_date=date.fromisoformat(str(sale["saleTransDate"])[:10]),
        sqft=int(size.get("livingSize") or 0),
        bedrooms=_known(rooms.get("beds"), int),
        bathrooms=_known(rooms.get("bathsTotal"), float),
        year_built=_known((item.get("summary") or {}).get("yearbuilt"), int),
        distance=float(location.get("distance") or 0),
    )

class HttpComps(CompsClient):
    """
    Client for an ATTOM-compatible comparable-sales API.
    Raw rows are cached per subject address; normalization runs on every read.
    """
    def __init__(self, base_url: str, api_key: Optional[str] = None,
                 timeout: float = 15, cache: Cache = default_cache,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.cache = cache
        self.transport = transport

    async def _fetch(self, search: CompSearch) -> list[dict]:
        address2 = f"{search.city}, {search.state}" + (f" {search.zip_code}" if search.zip_code else "")
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            r = await client.get(
                f"{self.base_url}/salescomps/address",
                params={"address1": search.address, "address2": address2,
                        "searchType": "Radius", "radius": search.radius,
                        "minComps": 3, "maxComps": search.max_results},
                headers=headers,
            )
            r.raise_for_status()
            body = r.json()
        items = body.get("property") if isinstance(body, dict) else None
        if items is None:
            return []
        if not isinstance(items, list):
            raise ValueError("comparable-sales payload: 'property' is not a list")
        return items

    async def comparable_sales(self, search: CompSearch) -> List[RawComparable]:
        key = "comps:" + normalize_address(
            f"{search.address} {search.city} {search.state} {search.zip_code or ''}"
        ) + f":{search.radius:g}:{search.max_results}"
        items = self.cache.get_json(key)
        if items is None:
            items = await self._fetch(search)
            self.cache.set_json(key, items)

        out: List[RawComparable] = []
        for item in items:
            try:
                out.append(normalize_comparable(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed comparable row: %r", exc)
        return out

def comps_client() -> CompsClient | None:
    """
    Factory picks the HTTP provider when configured; None means
    callers go straight to synthetic comparables.
    """
    if settings.COMPS_PROVIDER == "http" and settings.COMPS_BASE_URL:
        return HttpComps(settings.COMPS_BASE_URL, settings.COMPS_API_KEY,
                         timeout=settings.COMPS_TIMEOUT_SECONDS)
    return None
