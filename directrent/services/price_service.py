import logging

from ..core.cache import Cache, cache as default_cache
from ..core.config import settings
from ..core.errors import ValidationError
from ..core.metrics import record_model_loaded, record_prediction, time_inference
from ..core.utils import cache_key, missing_fields
from ..data.market_stats import MarketStatisticsProvider
from ..models.base import PriceEstimator
from ..models.price_model import RuleBasedPriceEstimator

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("postcode", "property_type", "bedrooms", "bathrooms", "furnishing_status")
# Inputs that influence the estimate; anything else in the body is ignored for caching
KEY_FIELDS = REQUIRED_FIELDS + ("city", "square_feet")
FALLBACK_MESSAGE = "Price model unavailable; returned a rule-based estimate with reduced confidence."

class PriceService:
    """
    Orchestrates:
      validate -> market statistics -> estimator (or rule-based fallback)
    and caches the assembled payload by its feature key.
    """
    def __init__(self, market: MarketStatisticsProvider, estimator: PriceEstimator,
                 fallback: PriceEstimator | None = None, cache: Cache | None = None):
        self.market = market
        self.estimator = estimator
        self.fallback = fallback or RuleBasedPriceEstimator()
        self.cache = cache or default_cache

    def health(self) -> dict:
        loaded = self.estimator.load_model() and self.estimator.name != self.fallback.name
        record_model_loaded("price", loaded)
        return {
            "status": "active" if loaded else "not_found",
            "model": self.estimator.name if loaded else self.fallback.name,
            "metadata": getattr(self.estimator, "metadata", {}) if loaded else {},
        }

    def estimate(self, features: dict) -> dict:
        missing = missing_fields(features, REQUIRED_FIELDS)
        if missing:
            raise ValidationError.missing(missing)

        key = cache_key("price", {k: features.get(k) for k in KEY_FIELDS})
        payload = self.cache.get_json(key)
        if payload:
            payload["cached"] = True
            return payload

        market = self.market.get_market_statistics(features.get("city"), features.get("property_type"))

        engine = self.estimator
        with time_inference("price"):
            try:
                result = engine.predict_price(features, market)
            except Exception as exc:
                logger.warning(
                    "Price estimator failed; using rule-based fallback",
                    extra={"context": {"estimator": engine.name, "error": str(exc)}},
                )
                engine = self.fallback
                result = engine.predict_price(features, market)

        degraded = engine.name == self.fallback.name
        payload = {
            **result,
            "currency": settings.DEFAULT_CURRENCY,
            "model_status": "fallback" if degraded else "primary",
            "market_source": market.source,
            "cached": False,
        }
        if degraded:
            payload["message"] = FALLBACK_MESSAGE
        record_prediction("price", payload["model_status"])

        if not degraded:
            # Only primary estimates are cached
            self.cache.set_json(key, payload)
        return payload
