"""
Property recommendations.

Hard filters always run first; a property that fails a stated preference is
dropped, never just ranked lower. Survivors are ranked by a blend of content
similarity (how close each listing is to what the user asked for) and a
collaborative score from matrix-factorization factors learned on past
interactions.
"""
from typing import Dict, Any, List
import logging

import numpy as np

from .base import Recommender, Recommendation
from .artifacts import safe_load, bundle_metadata
from ..data.base import Interaction
from ..core.config import settings
from ..core.constants import INTERACTION_RATINGS, MAX_INTERACTION_RATING
from ..core.errors import ModelNotFoundError
from ..core.utils import (
    canonical_furnishing,
    canonical_property_type,
    postcode_area,
    to_float,
)

logger = logging.getLogger(__name__)

CONTENT_WEIGHT = 0.6
COLLABORATIVE_WEIGHT = 0.4
FALLBACK_SCORE = 0.5
FALLBACK_REASON = "Matches your search criteria"
DEFAULT_REASON = "Similar to properties you have searched for"
STRONG_SIGNAL = 0.8
COLLABORATIVE_REASON_THRESHOLD = 0.6

# Used when the artifact carries no scales of its own
DEFAULT_FEATURE_SCALES = {"price_per_month": 600.0, "bedrooms": 1.2, "bathrooms": 0.7}

SIGNAL_REASONS = {
    "price": "Within your budget",
    "bedrooms": "Has the number of bedrooms you want",
    "bathrooms": "Has the number of bathrooms you want",
    "property_type": "Matches your preferred property type",
    "furnishing_status": "Matches your furnishing preference",
    "city": "In your preferred city",
    "area": "In your preferred postcode area",
}

def property_id(p: Dict[str, Any]) -> str:
    return str(p.get("id") or p.get("property_id") or "")

def _passes(p: Dict[str, Any], prefs: Dict[str, Any]) -> bool:
    price = to_float(p.get("price_per_month"))
    bedrooms = to_float(p.get("bedrooms"))

    price_min = to_float(prefs.get("price_min"))
    if price_min is not None and (price is None or price < price_min):
        return False
    price_max = to_float(prefs.get("price_max"))
    if price_max is not None and (price is None or price > price_max):
        return False

    min_bedrooms = to_float(prefs.get("min_bedrooms"))
    if min_bedrooms is not None and (bedrooms is None or bedrooms < min_bedrooms):
        return False
    max_bedrooms = to_float(prefs.get("max_bedrooms"))
    if max_bedrooms is not None and (bedrooms is None or bedrooms > max_bedrooms):
        return False

    if prefs.get("property_type"):
        if canonical_property_type(p.get("property_type")) != canonical_property_type(prefs["property_type"]):
            return False
    if prefs.get("furnishing_status"):
        if canonical_furnishing(p.get("furnishing_status")) != canonical_furnishing(prefs["furnishing_status"]):
            return False
    if prefs.get("city"):
        wanted = str(prefs["city"]).strip().lower()
        if wanted not in str(p.get("city") or "").lower():
            return False
    return True

def apply_hard_filters(candidates: List[Dict[str, Any]], preferences: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Keep candidates that satisfy every stated preference, in their original order."""
    prefs = preferences or {}
    return [p for p in candidates if _passes(p, prefs)]

def interaction_rating(interaction_type: str) -> int:
    return INTERACTION_RATINGS.get((interaction_type or "").lower(), 1)

def _closeness(values: np.ndarray, target: float, scale: float) -> np.ndarray:
    # 1.0 at the target, decaying with distance in units of the feature scale;
    # missing values (NaN) score 0
    out = np.exp(-np.abs(values - target) / max(scale, 1e-6))
    return np.nan_to_num(out, nan=0.0)

def _column(candidates: List[Dict[str, Any]], key: str) -> np.ndarray:
    return np.array([to_float(p.get(key), np.nan) for p in candidates], dtype="float64")

def content_signals(candidates: List[Dict[str, Any]], preferences: Dict[str, Any],
                    scales: Dict[str, float]) -> Dict[str, np.ndarray]:
    """One array per preference the user actually stated; each value in [0, 1]."""
    prefs = preferences or {}
    signals: Dict[str, np.ndarray] = {}

    price_min = to_float(prefs.get("price_min"))
    price_max = to_float(prefs.get("price_max"))
    bounds = [b for b in (price_min, price_max) if b is not None]
    if bounds:
        signals["price"] = _closeness(
            _column(candidates, "price_per_month"), sum(bounds) / len(bounds), scales["price_per_month"]
        )

    bed_target = to_float(prefs.get("bedrooms"))
    if bed_target is None:
        bed_bounds = [b for b in (to_float(prefs.get("min_bedrooms")), to_float(prefs.get("max_bedrooms"))) if b is not None]
        bed_target = sum(bed_bounds) / len(bed_bounds) if bed_bounds else None
    if bed_target is not None:
        signals["bedrooms"] = _closeness(_column(candidates, "bedrooms"), bed_target, scales["bedrooms"])

    bath_target = to_float(prefs.get("bathrooms"))
    if bath_target is not None:
        signals["bathrooms"] = _closeness(_column(candidates, "bathrooms"), bath_target, scales["bathrooms"])

    if prefs.get("property_type"):
        wanted = canonical_property_type(prefs["property_type"])
        signals["property_type"] = np.array(
            [canonical_property_type(p.get("property_type")) == wanted for p in candidates], dtype="float64"
        )
    if prefs.get("furnishing_status"):
        wanted = canonical_furnishing(prefs["furnishing_status"])
        signals["furnishing_status"] = np.array(
            [canonical_furnishing(p.get("furnishing_status")) == wanted for p in candidates], dtype="float64"
        )
    if prefs.get("city"):
        wanted = str(prefs["city"]).strip().lower()
        signals["city"] = np.array(
            [wanted in str(p.get("city") or "").lower() for p in candidates], dtype="float64"
        )
    if prefs.get("preferred_postcode"):
        wanted = postcode_area(prefs["preferred_postcode"])
        signals["area"] = np.array(
            [bool(wanted) and postcode_area(p.get("postcode")) == wanted for p in candidates], dtype="float64"
        )
    return signals

class CollaborativeModel:
    """
    Matrix-factorization factors: ratings ~ user_factors @ item_factors.T,
    on the implicit 1..5 interaction scale.
    """
    def __init__(self, user_index: Dict[str, int], item_index: Dict[str, int],
                 user_factors: np.ndarray, item_factors: np.ndarray):
        self.user_index = user_index
        self.item_index = item_index
        self.user_factors = np.asarray(user_factors, dtype="float64")
        self.item_factors = np.asarray(item_factors, dtype="float64")

    def user_vector(self, user_id: str, interactions: List[Interaction]) -> np.ndarray | None:
        if user_id in self.user_index:
            return self.user_factors[self.user_index[user_id]]
        # Fold in a user the model has not seen: rating-weighted mean of the item factors they touched
        rows, weights = [], []
        for i in interactions:
            if i.property_id in self.item_index:
                rows.append(self.item_factors[self.item_index[i.property_id]])
                weights.append(interaction_rating(i.interaction_type))
        if not rows:
            return None
        return np.average(np.vstack(rows), axis=0, weights=weights)

    def scores(self, vector: np.ndarray, ids: List[str]) -> np.ndarray:
        """Predicted affinity in [0, 1] per id; unknown items get the user's mean."""
        all_scores = np.clip(self.item_factors @ vector / MAX_INTERACTION_RATING, 0.0, 1.0)
        mean = float(all_scores.mean()) if all_scores.size else 0.0
        return np.array(
            [all_scores[self.item_index[i]] if i in self.item_index else mean for i in ids],
            dtype="float64",
        )

class HybridRecommender(Recommender):
    """
    Loads a pickled bundle:
        {"model": {user_index, item_index, user_factors, item_factors} | None,
         "feature_scales": {...}, "metadata": {...}}
    A bundle trained without interactions ranks on content alone.
    """
    name = "hybrid"

    def __init__(self, model_path: str):
        self.model_path = model_path
        self.bundle: dict | None = None
        self.collaborative: CollaborativeModel | None = None
        self.scales = dict(DEFAULT_FEATURE_SCALES)

    def load_model(self) -> bool:
        if self.bundle is None:
            bundle = safe_load(self.model_path)
            if bundle is not None:
                try:
                    factors = bundle.get("model")
                    collaborative = CollaborativeModel(**factors) if factors else None
                    scales = {k: float(v) for k, v in (bundle.get("feature_scales") or {}).items()}
                except Exception as exc:
                    logger.warning(
                        "Recommender artifact unusable",
                        extra={"context": {"path": str(self.model_path), "error": str(exc)}},
                    )
                    return False
                self.scales.update(scales)
                self.collaborative = collaborative
                self.bundle = bundle
        return self.bundle is not None

    @property
    def metadata(self) -> dict:
        return bundle_metadata(self.bundle)

    def get_hybrid_recommendations(
        self,
        user_id: str,
        preferences: Dict[str, Any],
        candidates: List[Dict[str, Any]],
        limit: int,
        interactions: List[Interaction],
    ) -> List[Recommendation]:
        if not self.load_model():
            raise ModelNotFoundError(self.model_path)

        filtered = apply_hard_filters(candidates, preferences)
        if not filtered or limit <= 0:
            return []

        signals = content_signals(filtered, preferences, self.scales)
        if signals:
            content = np.mean(np.vstack(list(signals.values())), axis=0)
        else:
            content = np.full(len(filtered), FALLBACK_SCORE)

        ids = [property_id(p) for p in filtered]
        vector = self.collaborative.user_vector(user_id, interactions) if self.collaborative else None
        if vector is None:
            # Cold start: nothing known about this user
            collaborative = np.zeros(len(filtered))
            w_content, w_collab = 1.0, 0.0
        else:
            collaborative = self.collaborative.scores(vector, ids)
            w_content, w_collab = CONTENT_WEIGHT, COLLABORATIVE_WEIGHT

        scores = w_content * content + w_collab * collaborative
        # Stable sort keeps original order among ties
        order = np.argsort(-scores, kind="stable")[:limit]

        out: List[Recommendation] = []
        for idx in order:
            strong = [SIGNAL_REASONS[k] for k, arr in signals.items() if arr[idx] >= STRONG_SIGNAL]
            if w_collab and collaborative[idx] >= COLLABORATIVE_REASON_THRESHOLD:
                strong.append("Popular with renters like you")
            reason = ", ".join(strong[:2]) if strong else DEFAULT_REASON
            out.append(Recommendation(
                property_id=ids[idx],
                property=filtered[idx],
                score=round(float(scores[idx]), 4),
                reason=reason,
            ))
        return out

class FilterRecommender(Recommender):
    """Preference filtering only: first `limit` survivors in their original order."""
    name = "filter"

    def load_model(self) -> bool:
        return True

    def get_hybrid_recommendations(
        self,
        user_id: str,
        preferences: Dict[str, Any],
        candidates: List[Dict[str, Any]],
        limit: int,
        interactions: List[Interaction],
    ) -> List[Recommendation]:
        filtered = apply_hard_filters(candidates, preferences)[:max(0, limit)]
        return [
            Recommendation(property_id=property_id(p), property=p, score=FALLBACK_SCORE, reason=FALLBACK_REASON)
            for p in filtered
        ]

def recommender(config=settings) -> Recommender:
    if config.MODEL_PROVIDER == "ml":
        return HybridRecommender(config.RECOMMENDER_MODEL_PATH)
    return FilterRecommender()
