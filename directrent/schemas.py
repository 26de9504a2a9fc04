from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Requests keep required inputs Optional so the services can name every
# missing field in one 400 instead of pydantic's per-field errors.

class PriceEstimateRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    postcode: str | None = None
    city: str | None = None
    property_type: str | None = None
    bedrooms: int | None = Field(default=None, ge=0)
    bathrooms: int | None = Field(default=None, ge=0)
    furnishing_status: str | None = None
    square_feet: float | None = Field(default=None, ge=0)

class FraudCheckRequest(BaseModel):
    property_data: dict[str, Any] | None = None
    landlord_id: str | None = None

class Preferences(BaseModel):
    model_config = ConfigDict(extra="allow")

    preferred_postcode: str | None = None
    price_min: float | None = Field(default=None, ge=0)
    price_max: float | None = Field(default=None, ge=0)
    property_type: str | None = None
    min_bedrooms: int | None = Field(default=None, ge=0)
    max_bedrooms: int | None = Field(default=None, ge=0)
    bedrooms: int | None = Field(default=None, ge=0)
    bathrooms: int | None = Field(default=None, ge=0)
    furnishing_status: str | None = None
    city: str | None = None

class RecommendationRequest(BaseModel):
    user_id: str | None = None
    preferences: Preferences | None = None
    limit: int = Field(default=10, ge=1, le=50)

class PriceRange(BaseModel):
    min: int
    max: int

class MarketInsights(BaseModel):
    average_price: int
    median_price: int
    comparable_properties: int = Field(ge=0)

class PriceEstimateResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    estimated_price: int
    confidence: float = Field(ge=0, le=1)
    price_range: PriceRange
    market_insights: MarketInsights
    currency: str = "GBP"
    model_status: str
    market_source: str
    message: str | None = None
    cached: bool = False

class RiskFactors(BaseModel):
    price_deviation: float
    content_analysis: float
    posting_frequency: float
    image_authenticity: float | None = None

class FraudCheckResponse(BaseModel):
    fraud_score: float = Field(ge=0, le=1)
    is_fraudulent: bool
    risk_level: str
    reasons: list[str]
    risk_factors: RiskFactors
    ml_model_used: bool
    report_stored: bool = False

class RecommendationResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    properties: list[dict[str, Any]]
    scores: list[float]
    reasoning: list[str]
    model_status: str
    message: str | None = None

class ModelHealth(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    status: str
    model: str
    metadata: dict[str, Any] = {}
    suspicious_keywords_count: int | None = None

class MLHealthResponse(BaseModel):
    status: str
    models: dict[str, ModelHealth]
    healthy_ratio: str

class MarketStatsResponse(BaseModel):
    city: str | None = None
    property_type: str | None = None
    average_price: float
    median_price: float
    min_price: float
    max_price: float
    std_price: float
    sample_count: int
    avg_bedrooms: float
    avg_bathrooms: float
    source: str
