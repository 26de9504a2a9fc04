from typing import Dict, Any, List
import logging
import math

import numpy as np

from .base import PriceEstimator
from .artifacts import safe_load, bundle_metadata
from ..data.base import MarketStatistics
from ..core.config import settings
from ..core.constants import (
    PROPERTY_TYPES,
    BASE_PRICE_BY_TYPE,
    DEFAULT_BASE_PRICE,
    BEDROOM_PREMIUM,
    BATHROOM_PREMIUM,
    FURNISHING_PREMIUM,
)
from ..core.errors import ModelNotFoundError, PredictionError
from ..core.utils import (
    canonical_property_type,
    canonical_furnishing,
    postcode_district,
    price_band,
    round_half_up,
    stable_code,
    to_float,
)

logger = logging.getLogger(__name__)

PRICE_SPREAD = 0.15
REGION_BUCKETS = 200
CITY_BUCKETS = 100
FURNISHING_CODES = {"Unfurnished": 0, "Part-Furnished": 1, "Furnished": 2}

# Order matters: the regressor is trained on vectors in exactly this layout
FEATURE_NAMES = [
    "region_code",
    "city_code",
    "property_type_code",
    "furnishing_code",
    "bedrooms",
    "bathrooms",
    "square_feet",
]

def encode_features(features: Dict[str, Any]) -> List[float]:
    """
    Structured listing -> numeric vector (see FEATURE_NAMES).
    Postcode district and city are hashed into fixed bucket ranges so unseen
    values still encode deterministically.
    """
    ptype = canonical_property_type(features.get("property_type"))
    type_code = PROPERTY_TYPES.index(ptype) if ptype in PROPERTY_TYPES else len(PROPERTY_TYPES)
    return [
        float(stable_code(postcode_district(features.get("postcode")), REGION_BUCKETS)),
        float(stable_code(features.get("city"), CITY_BUCKETS)),
        float(type_code),
        float(FURNISHING_CODES.get(canonical_furnishing(features.get("furnishing_status")), 0)),
        to_float(features.get("bedrooms"), 1.0),
        to_float(features.get("bathrooms"), 1.0),
        to_float(features.get("square_feet"), 0.0),
    ]

def market_insights(market: MarketStatistics, estimate: int) -> Dict[str, Any]:
    """Real comparables when the market lookup found any, else echo the estimate."""
    if market.sample_count > 0:
        return {
            "average_price": round_half_up(market.average_price),
            "median_price": round_half_up(market.median_price),
            "comparable_properties": int(market.sample_count),
        }
    return {"average_price": estimate, "median_price": estimate, "comparable_properties": 0}

def _payload(estimate: int, confidence: float, market: MarketStatistics) -> Dict[str, Any]:
    low, high = price_band(estimate, PRICE_SPREAD)
    return {
        "estimated_price": estimate,
        "confidence": round(confidence, 2),
        "price_range": {"min": low, "max": high},
        "market_insights": market_insights(market, estimate),
    }

class SklearnPriceEstimator(PriceEstimator):
    """
    Loads a pre-trained sklearn regressor bundle ({model, feature_names, metadata}).
    The point estimate is pulled 40% toward the local market average when the
    market lookup has comparables.
    """
    name = "gradient_boosting"

    def __init__(self, model_path: str):
        self.model_path = model_path
        self.bundle: dict | None = None

    def load_model(self) -> bool:
        if self.bundle is None:
            self.bundle = safe_load(self.model_path)
        return self.bundle is not None

    @property
    def metadata(self) -> dict:
        return bundle_metadata(self.bundle)

    def predict_price(self, features: Dict[str, Any], market: MarketStatistics) -> Dict[str, Any]:
        if not self.load_model():
            raise ModelNotFoundError(self.model_path)

        X = np.array([encode_features(features)], dtype="float64")
        try:
            y = float(self.bundle["model"].predict(X)[0])
        except Exception as exc:
            raise PredictionError(f"Price model failed to predict: {exc}") from exc
        if not math.isfinite(y):
            raise PredictionError("Price model returned a non-finite estimate")

        comparables = market.sample_count
        if comparables > 0:
            y = 0.6 * y + 0.4 * market.average_price
            confidence = min(0.9, 0.5 + 0.08 * min(comparables, 5))
        else:
            confidence = 0.85

        return _payload(max(0, round_half_up(y)), confidence, market)

class RuleBasedPriceEstimator(PriceEstimator):
    """
    Deterministic formula: base rent by property type plus bedroom, bathroom
    and furnishing premiums. Needs no artifact, so it can always run.
    """
    name = "rule_based"
    confidence = 0.5

    def load_model(self) -> bool:
        return True

    def estimate(self, features: Dict[str, Any]) -> int:
        base = BASE_PRICE_BY_TYPE.get(canonical_property_type(features.get("property_type")), DEFAULT_BASE_PRICE)
        bedrooms = to_float(features.get("bedrooms"), 1.0)
        bathrooms = to_float(features.get("bathrooms"), 1.0)
        furnishing = FURNISHING_PREMIUM.get(canonical_furnishing(features.get("furnishing_status")), 0)
        value = base + BEDROOM_PREMIUM * (bedrooms - 1) + BATHROOM_PREMIUM * (bathrooms - 1) + furnishing
        return max(0, round_half_up(value))

    def predict_price(self, features: Dict[str, Any], market: MarketStatistics) -> Dict[str, Any]:
        return _payload(self.estimate(features), self.confidence, market)

def price_estimator(config=settings) -> PriceEstimator:
    if config.MODEL_PROVIDER == "ml":
        return SklearnPriceEstimator(config.PRICE_MODEL_PATH)
    return RuleBasedPriceEstimator()
