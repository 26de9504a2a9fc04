"""
Fraud scoring.

Rule sub-scores (each in [0, 1]) are combined into a weighted composite:

    content   0.35   suspicious keywords in title/description
    price     0.35   deviation from the local market average
    landlord  0.15   how many active listings the landlord holds
    images    0.15   only when the listing says which images it has

A trained classifier, when present, is blended in at 60%.
"""
from typing import Dict, Any, List
import logging
import math

import numpy as np

from .base import FraudScorer
from .artifacts import safe_load, bundle_metadata
from ..core.config import settings
from ..core.utils import clamp, to_float

logger = logging.getLogger(__name__)

WEIGHTS = {"content": 0.35, "price": 0.35, "landlord": 0.15, "images": 0.15}
RULE_BLEND = 0.4
MODEL_BLEND = 0.6
MODEL_REASON_THRESHOLD = 0.7
KEYWORD_INCREMENT = 0.25
PRICE_REASON_THRESHOLD = 0.5
LANDLORD_SCALE = 10.0
LANDLORD_REASON_COUNT = 20
MIN_IMAGES = 3

# Columns of the classifier's training matrix, in order
FRAUD_FEATURE_NAMES = [
    "price_per_month",
    "bedrooms",
    "bathrooms",
    "price_deviation",
    "suspicious_keyword_count",
    "description_length",
    "image_count",
    "landlord_listing_count",
]

def risk_level(score: float) -> str:
    if score < 0.3:
        return "low"
    if score < 0.6:
        return "medium"
    if score < 0.8:
        return "high"
    return "critical"

def listing_text(property_data: Dict[str, Any]) -> str:
    return f"{property_data.get('title') or ''} {property_data.get('description') or ''}".lower()

def price_deviation(property_data: Dict[str, Any]) -> float | None:
    """(price - market_average) / market_average, or None when either is unknown."""
    price = to_float(property_data.get("price_per_month"))
    average = to_float(property_data.get("market_average"))
    if price is None or not average or average <= 0:
        return None
    return (price - average) / average

def price_score(deviation: float | None) -> float:
    # Underpricing is the stronger signal: -50% saturates, +100% only reaches 0.5
    if deviation is None:
        return 0.0
    if deviation < 0:
        return min(1.0, -deviation / 0.5)
    return 0.5 * min(1.0, deviation / 1.0)

def matched_keywords(text: str, keywords: List[str]) -> List[str]:
    return [k for k in keywords if k in text]

def content_score(matches: List[str]) -> float:
    return min(1.0, KEYWORD_INCREMENT * len(matches))

def landlord_score(count: float) -> float:
    """Saturating and non-decreasing in the listing count."""
    return 1.0 - math.exp(-max(0.0, count) / LANDLORD_SCALE)

def image_score(images: Any) -> float | None:
    if images is None:
        return None
    n = len(images) if isinstance(images, (list, tuple)) else 0
    if n == 0:
        return 1.0
    if n < MIN_IMAGES:
        return 0.5
    return 0.0

def extract_features(property_data: Dict[str, Any], keywords: List[str]) -> List[float]:
    """Numeric row in FRAUD_FEATURE_NAMES order, shared by training and scoring."""
    images = property_data.get("images")
    deviation = price_deviation(property_data)
    return [
        to_float(property_data.get("price_per_month"), 0.0),
        to_float(property_data.get("bedrooms"), 0.0),
        to_float(property_data.get("bathrooms"), 0.0),
        deviation if deviation is not None else 0.0,
        float(len(matched_keywords(listing_text(property_data), keywords))),
        float(len(str(property_data.get("description") or ""))),
        float(len(images)) if isinstance(images, (list, tuple)) else 0.0,
        to_float(property_data.get("landlord_listing_count"), 0.0),
    ]

class RuleBasedFraudScorer(FraudScorer):
    name = "rule_based"

    def __init__(self, keywords: List[str] | None = None, threshold: float | None = None):
        self.suspicious_keywords = list(keywords if keywords is not None else settings.fraud_keywords)
        self.threshold = settings.FRAUD_CLASSIFICATION_THRESHOLD if threshold is None else threshold

    def load_model(self) -> bool:
        return True

    def model_probability(self, property_data: Dict[str, Any]) -> float | None:
        return None

    def detect_fraud(self, property_data: Dict[str, Any]) -> Dict[str, Any]:
        reasons: List[str] = []

        matches = matched_keywords(listing_text(property_data), self.suspicious_keywords)
        content = content_score(matches)
        reasons.extend(f"Contains suspicious keyword: {k}" for k in matches)

        deviation = price_deviation(property_data)
        price = price_score(deviation)
        if price >= PRICE_REASON_THRESHOLD:
            direction = "below" if deviation < 0 else "above"
            reasons.append(f"Price significantly {direction} market average")

        count = to_float(property_data.get("landlord_listing_count"), 0.0)
        landlord = landlord_score(count)
        if count > LANDLORD_REASON_COUNT:
            reasons.append("Unusually high number of listings by this landlord")

        images = image_score(property_data.get("images"))
        if images == 1.0:
            reasons.append("No images provided")
        elif images == 0.5:
            reasons.append("Very few images provided")

        parts = {"content": content, "price": price, "landlord": landlord}
        if images is not None:
            parts["images"] = images
        total_weight = sum(WEIGHTS[k] for k in parts)
        score = sum(WEIGHTS[k] * v for k, v in parts.items()) / total_weight

        probability = self.model_probability(property_data)
        if probability is not None:
            score = RULE_BLEND * score + MODEL_BLEND * probability
            if probability > MODEL_REASON_THRESHOLD:
                reasons.append("ML model detected high fraud probability")

        fraud_score = round(clamp(score), 2)
        return {
            "fraud_score": fraud_score,
            "is_fraudulent": fraud_score >= self.threshold,
            "risk_level": risk_level(fraud_score),
            "reasons": reasons,
            "risk_factors": {
                "price_deviation": round(price, 3),
                "content_analysis": round(content, 3),
                "posting_frequency": round(landlord, 3),
                "image_authenticity": round(images, 3) if images is not None else None,
            },
            "ml_model_used": probability is not None,
        }

class ModelFraudScorer(RuleBasedFraudScorer):
    """
    Rules plus a pickled classifier bundle ({model, feature_names, metadata}).
    Without a readable bundle it scores exactly like the rules alone.
    """
    name = "random_forest"

    def __init__(self, model_path: str, keywords: List[str] | None = None, threshold: float | None = None):
        super().__init__(keywords, threshold)
        self.model_path = model_path
        self.bundle: dict | None = None

    def load_model(self) -> bool:
        if self.bundle is None:
            self.bundle = safe_load(self.model_path)
        return self.bundle is not None

    @property
    def metadata(self) -> dict:
        return bundle_metadata(self.bundle)

    def model_probability(self, property_data: Dict[str, Any]) -> float | None:
        if not self.load_model():
            return None
        model = self.bundle["model"]
        classes = list(getattr(model, "classes_", [0, 1]))
        if 1 not in classes:
            # Trained without fraudulent examples: no usable fraud probability
            logger.warning("Fraud classifier has no positive class; scoring with rules only")
            return None
        try:
            X = np.array([extract_features(property_data, self.suspicious_keywords)], dtype="float64")
            p = float(model.predict_proba(X)[0][classes.index(1)])
        except Exception as exc:
            logger.warning(
                "Fraud classifier failed; scoring with rules only",
                extra={"context": {"error": str(exc)}},
            )
            return None
        return clamp(p) if math.isfinite(p) else None

def fraud_scorer(config=settings) -> FraudScorer:
    if config.MODEL_PROVIDER == "ml":
        return ModelFraudScorer(config.FRAUD_MODEL_PATH, config.fraud_keywords, config.FRAUD_CLASSIFICATION_THRESHOLD)
    return RuleBasedFraudScorer(config.fraud_keywords, config.FRAUD_CLASSIFICATION_THRESHOLD)
