from typing import Protocol, Dict, Any, List
from dataclasses import dataclass, field, asdict

from ..data.base import MarketStatistics, Interaction

@dataclass(frozen=True)
class Recommendation:
    property_id: str
    property: Dict[str, Any] = field(hash=False, compare=False)
    score: float
    reason: str

    def to_dict(self) -> dict:
        return asdict(self)

class PriceEstimator(Protocol):
    name: str

    def load_model(self) -> bool:
        """True when the estimator can run (artifact present and readable)."""
        ...

    def predict_price(self, features: Dict[str, Any], market: MarketStatistics) -> Dict[str, Any]:
        """
        Returns a payload with keys:
        estimated_price, confidence, price_range{min,max},
        market_insights{average_price, median_price, comparable_properties}.
        """
        ...

class FraudScorer(Protocol):
    name: str
    suspicious_keywords: List[str]

    def load_model(self) -> bool: ...

    def detect_fraud(self, property_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        `property_data` carries the listing plus `market_average` and
        `landlord_listing_count`. Returns fraud_score, is_fraudulent,
        risk_level, reasons, risk_factors, ml_model_used.
        """
        ...

class Recommender(Protocol):
    name: str

    def load_model(self) -> bool: ...

    def get_hybrid_recommendations(
        self,
        user_id: str,
        preferences: Dict[str, Any],
        candidates: List[Dict[str, Any]],
        limit: int,
        interactions: List[Interaction],
    ) -> List[Recommendation]:
        ...
