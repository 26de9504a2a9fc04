from fastapi import APIRouter, Depends, Query, Request
from ..schemas import (
    PriceEstimateRequest, PriceEstimateResponse,
    FraudCheckRequest, FraudCheckResponse,
    RecommendationRequest, RecommendationResponse,
    ModelHealth, MLHealthResponse, MarketStatsResponse,
)
from ..services.price_service import PriceService
from ..services.fraud_service import FraudService
from ..services.recommendation_service import RecommendationService
from ..data.market_stats import MarketStatisticsProvider
from ..core.security import require_api_key, rate_limit

router = APIRouter()

# Services are built once in create_app and live on app.state
def price_service_dep(request: Request) -> PriceService:
    return request.app.state.price_service

def fraud_service_dep(request: Request) -> FraudService:
    return request.app.state.fraud_service

def recommendation_service_dep(request: Request) -> RecommendationService:
    return request.app.state.recommendation_service

def market_dep(request: Request) -> MarketStatisticsProvider:
    return request.app.state.market

def overall_status(active: float, total: int) -> str:
    if active == 0:
        return "critical"
    if active < total / 2:
        return "degraded"
    if active < total:
        return "warning"
    return "healthy"

@router.post("/ml/price-estimate", response_model=PriceEstimateResponse)
async def post_price_estimate(
    body: PriceEstimateRequest,
    _auth = Depends(require_api_key),
    _lim  = Depends(rate_limit),
    svc: PriceService = Depends(price_service_dep),
):
    return svc.estimate(body.model_dump(exclude_none=True))

@router.get("/ml/price-estimate", response_model=ModelHealth)
async def price_model_health(svc: PriceService = Depends(price_service_dep)):
    return svc.health()

@router.post("/ml/fraud-check", response_model=FraudCheckResponse)
async def post_fraud_check(
    body: FraudCheckRequest,
    _auth = Depends(require_api_key),
    _lim  = Depends(rate_limit),
    svc: FraudService = Depends(fraud_service_dep),
):
    outcome = await svc.check(body.property_data, body.landlord_id)
    return {**outcome.result, "report_stored": outcome.report.succeeded}

@router.get("/ml/fraud-check", response_model=ModelHealth)
async def fraud_model_health(svc: FraudService = Depends(fraud_service_dep)):
    return svc.health()

@router.post("/ml/recommendations", response_model=RecommendationResponse)
async def post_recommendations(
    body: RecommendationRequest,
    _auth = Depends(require_api_key),
    _lim  = Depends(rate_limit),
    svc: RecommendationService = Depends(recommendation_service_dep),
):
    preferences = body.preferences.model_dump(exclude_none=True) if body.preferences is not None else None
    outcome = await svc.recommend(body.user_id, preferences, body.limit)
    return outcome.payload()

@router.get("/ml/recommendations", response_model=ModelHealth)
async def recommender_health(svc: RecommendationService = Depends(recommendation_service_dep)):
    return svc.health()

@router.get("/ml/health", response_model=MLHealthResponse)
async def ml_health(
    price: PriceService = Depends(price_service_dep),
    fraud: FraudService = Depends(fraud_service_dep),
    recs: RecommendationService = Depends(recommendation_service_dep),
):
    models = {
        "price_model": price.health(),
        "fraud_model": fraud.health(),
        "recommendation": recs.health(),
    }
    active = sum(1 for m in models.values() if m["status"] == "active")
    return {
        "status": overall_status(active, len(models)),
        "models": models,
        "healthy_ratio": f"{active}/{len(models)}",
    }

@router.get("/market-stats", response_model=MarketStatsResponse)
async def market_stats(
    city: str | None = Query(default=None),
    property_type: str | None = Query(default=None),
    _auth = Depends(require_api_key),
    market: MarketStatisticsProvider = Depends(market_dep),
):
    stats = market.get_market_statistics(city, property_type)
    return {"city": city, "property_type": property_type, **stats.to_dict()}
