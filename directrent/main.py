import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Routers
from .routers.ml import router as ml_router

# Core modules
from .core.config import settings, Settings
from .core.errors import ValidationError
from .core.logging import configure_logging, log_context, CorrelationIdMiddleware
from .core.metrics import PromMiddleware, metrics_endpoint

# Engines, data and services
from .data.base import PropertyStore
from .data.market_stats import MarketStatisticsProvider
from .data.store_client import store_client
from .models.base import PriceEstimator, FraudScorer, Recommender
from .models.price_model import price_estimator as build_price_estimator
from .models.fraud_model import fraud_scorer as build_fraud_scorer
from .models.recommender import recommender as build_recommender
from .services.price_service import PriceService
from .services.fraud_service import FraudService
from .services.recommendation_service import RecommendationService

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        body = {"error": exc.message}
        if exc.missing_fields:
            body["missing_fields"] = exc.missing_fields
        return JSONResponse(status_code=400, content=body)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.error(
            "Unhandled error",
            exc_info=(type(exc), exc, exc.__traceback__),
            extra=log_context(path=request.url.path, method=request.method),
        )
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

def create_app(
    config: Settings = settings,
    *,
    market: MarketStatisticsProvider | None = None,
    store: PropertyStore | None = None,
    price_estimator: PriceEstimator | None = None,
    fraud_scorer: FraudScorer | None = None,
    recommender: Recommender | None = None,
) -> FastAPI:
    """
    App factory so tests and ASGI servers can instantiate cleanly.
    Anything not passed in is built from `config`.
    """
    configure_logging(config.LOG_LEVEL)  # Set up JSON logs + correlation-id filter

    app = FastAPI(
        title="DirectRent ML Service",
        version="1.0.0",
        description="Rent estimation, fraud scoring and recommendations over UK market data.",
    )

    # One market provider per process; engines and services share it
    market = market or MarketStatisticsProvider.from_path(config.DATASET_PATH)
    store = store or store_client(config)
    app.state.config = config
    app.state.market = market
    app.state.store = store
    app.state.price_service = PriceService(market, price_estimator or build_price_estimator(config))
    app.state.fraud_service = FraudService(
        market, fraud_scorer or build_fraud_scorer(config), store,
        storage_threshold=config.FRAUD_STORAGE_THRESHOLD,
    )
    app.state.recommendation_service = RecommendationService(
        market, recommender or build_recommender(config), store,
        candidate_limit=config.RECOMMENDATION_CANDIDATE_LIMIT,
    )

    allow_origins = [o.strip() for o in config.ALLOW_ORIGINS.split(",")] if config.ALLOW_ORIGINS else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )

    # Observability middlewares
    app.add_middleware(CorrelationIdMiddleware)  # Adds/propagates X-Request-Id
    if config.PROMETHEUS_ENABLED:
        app.add_middleware(PromMiddleware)       # Records req/latency metrics

    register_exception_handlers(app)

    # Meta routes
    @app.get("/v1/health", tags=["meta"])
    def health():
        return {"status": "ok"}

    @app.get("/v1/ping", tags=["meta"])
    def ping():
        return {"pong": True}

    if config.PROMETHEUS_ENABLED:
        app.add_route("/v1/metrics", metrics_endpoint, methods=["GET"])

    # Business routes
    app.include_router(ml_router, prefix="/v1", tags=["ml"])

    return app

app = create_app()
