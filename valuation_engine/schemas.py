from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

class PropertyType(str, Enum):
    SINGLE_FAMILY = "SINGLE_FAMILY"
    CONDO = "CONDO"
    TOWNHOUSE = "TOWNHOUSE"
    MULTI_FAMILY = "MULTI_FAMILY"
    COMMERCIAL = "COMMERCIAL"
    LAND = "LAND"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").lower()

class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

class ReportType(str, Enum):
    AI_REPORT = "AI_REPORT"
    AI_REPORT_WITH_ONSITE = "AI_REPORT_WITH_ONSITE"
    CERTIFIED_APPRAISAL = "CERTIFIED_APPRAISAL"

class Property(BaseModel):
    """Subject property. Owned by the caller, never mutated here."""
    model_config = ConfigDict(frozen=True)

    address: str = Field(min_length=1)
    city: str = ""
    state: str = "TX"
    zip_code: str = ""
    county: str | None = None
    property_type: PropertyType = PropertyType.SINGLE_FAMILY
    sqft: int | None = Field(default=None, ge=0)
    bedrooms: int | None = Field(default=None, ge=0)
    bathrooms: float | None = Field(default=None, ge=0)
    year_built: int | None = Field(default=None, ge=1600)
    lot_size_sqft: int | None = Field(default=None, ge=0)

    @property
    def full_address(self) -> str:
        locality = " ".join(p for p in (self.state, self.zip_code) if p)
        return ", ".join(p for p in (self.address, self.city, locality) if p)

    @property
    def county_name(self) -> str | None:
        """County without a trailing 'County', as used by the lookup tables."""
        if not self.county:
            return None
        return self.county.replace(" County", "").strip()

# ----- Persisted record types (stored verbatim as JSON blobs) -----

class Adjustment(BaseModel):
    factor: str
    amount: int
    reason: str

class ComparableProperty(BaseModel):
    id: str
    address: str
    sale_price: int
    sale_date: date
    sqft: int
    bedrooms: int | None = None        # None when the provider did not report it
    bathrooms: float | None = None
    year_built: int | None = None
    distance: float = Field(ge=0)
    similarity_score: int = Field(ge=0, le=100)
    adjustments: list[Adjustment] = []
    adjusted_price: int

class ValueResult(BaseModel):
    estimate: int
    range_min: int
    range_max: int
    fast_sale: int
    price_per_sqft: float
    methodology: str

class RiskFlag(BaseModel):
    type: str
    severity: Severity
    description: str
    recommendation: str

class AIAnalysis(BaseModel):
    summary: str = Field(min_length=1)
    strengths: list[str]
    concerns: list[str]
    market_position: str
    investment_potential: str

class MarketTrends(BaseModel):
    median_price: int
    price_change_30d: float
    price_change_90d: float
    days_on_market: int
    inventory: int
    demand_level: str  # LOW | MODERATE | HIGH
    source: str = "static"

# ----- API shapes -----

class ValuationInput(BaseModel):
    property: Property
    purpose: str = "general"
    requested_type: ReportType = ReportType.AI_REPORT

class ValuationResult(BaseModel):
    value_estimate: int
    value_range_min: int
    value_range_max: int
    fast_sale_estimate: int
    confidence_score: int = Field(ge=0, le=100)
    price_per_sqft: float
    methodology: str
    comps: list[ComparableProperty]
    risk_flags: list[RiskFlag]
    ai_analysis: AIAnalysis
    market_trends: MarketTrends
    comps_source: str = "provider"      # provider | mixed | synthetic
    narrative_source: str = "rules"     # remote | rules

class ReportResponse(BaseModel):
    request_id: str
    report_id: str
    status: str
    risk_score: int = Field(ge=0, le=100)
    valuation: ValuationResult
