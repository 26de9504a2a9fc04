import logging

from ..core.config import settings
from ..core.errors import ValidationError
from ..core.metrics import record_model_loaded, record_prediction, record_side_effect, time_inference
from ..core.utils import missing_fields
from ..data.base import PropertyStore
from ..data.market_stats import MarketStatisticsProvider
from ..models.base import FraudScorer
from ..models.fraud_model import RuleBasedFraudScorer
from .outcomes import FraudCheckOutcome, SideEffectOutcome

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("property_data", "landlord_id")

class FraudService:
    """
    Enriches a listing with its market average and the landlord's active
    listing count, scores it, and files a fraud report for anything above
    the storage threshold.
    """
    def __init__(self, market: MarketStatisticsProvider, scorer: FraudScorer, store: PropertyStore,
                 storage_threshold: float | None = None, fallback: FraudScorer | None = None):
        self.market = market
        self.scorer = scorer
        self.fallback = fallback or RuleBasedFraudScorer(
            scorer.suspicious_keywords, getattr(scorer, "threshold", None)
        )
        self.store = store
        self.storage_threshold = (
            settings.FRAUD_STORAGE_THRESHOLD if storage_threshold is None else storage_threshold
        )

    def health(self) -> dict:
        loaded = self.scorer.load_model() and self.scorer.name != RuleBasedFraudScorer.name
        record_model_loaded("fraud", loaded)
        return {
            "status": "active" if loaded else "not_found",
            "model": self.scorer.name if loaded else RuleBasedFraudScorer.name,
            "suspicious_keywords_count": len(self.scorer.suspicious_keywords),
            "metadata": getattr(self.scorer, "metadata", {}) if loaded else {},
        }

    async def landlord_listing_count(self, landlord_id: str) -> int:
        try:
            return await self.store.count_landlord_listings(landlord_id)
        except Exception as exc:
            logger.warning(
                "Landlord listing count unavailable; assuming 0",
                extra={"context": {"landlord_id": landlord_id, "error": str(exc)}},
            )
            return 0

    async def file_report(self, property_data: dict, landlord_id: str, result: dict) -> SideEffectOutcome:
        row = {
            "property_id": property_data.get("id"),
            "landlord_id": landlord_id,
            "fraud_score": result["fraud_score"],
            "is_fraudulent": result["is_fraudulent"],
            "reasons": result["reasons"],
            "risk_factors": result["risk_factors"],
            "report_type": "ml_detection",
        }
        try:
            await self.store.insert_fraud_report(row)
        except Exception as exc:
            logger.error(
                "Failed to store fraud report",
                extra={"context": {"landlord_id": landlord_id, "fraud_score": result["fraud_score"], "error": str(exc)}},
            )
            record_side_effect("fraud_report", stored=False)
            return SideEffectOutcome.failed(str(exc))
        record_side_effect("fraud_report", stored=True)
        return SideEffectOutcome.ok()

    async def check(self, property_data: dict | None, landlord_id: str | None) -> FraudCheckOutcome:
        missing = missing_fields({"property_data": property_data, "landlord_id": landlord_id}, REQUIRED_FIELDS)
        if missing:
            raise ValidationError.missing(missing)
        if not isinstance(property_data, dict):
            raise ValidationError("property_data must be an object")

        market = self.market.get_market_statistics(property_data.get("city"), property_data.get("property_type"))
        enriched = {
            "market_average": market.average_price,
            "landlord_listing_count": await self.landlord_listing_count(str(landlord_id)),
            # Non-null values supplied by the caller take precedence
            **{k: v for k, v in property_data.items() if v is not None},
        }

        with time_inference("fraud"):
            try:
                result = self.scorer.detect_fraud(enriched)
            except Exception as exc:
                logger.warning(
                    "Fraud scorer failed; using rule-based fallback",
                    extra={"context": {"scorer": self.scorer.name, "error": str(exc)}},
                )
                result = self.fallback.detect_fraud(enriched)
        record_prediction("fraud", "primary" if result["ml_model_used"] else "fallback")
        if result["is_fraudulent"]:
            logger.warning(
                "High fraud risk detected",
                extra={"context": {"landlord_id": landlord_id, "fraud_score": result["fraud_score"],
                                   "reasons": result["reasons"]}},
            )

        if result["fraud_score"] > self.storage_threshold:
            report = await self.file_report(property_data, str(landlord_id), result)
        else:
            report = SideEffectOutcome.skipped()
        return FraudCheckOutcome(result=result, report=report)
