import logging

from ..core.config import settings
from ..core.errors import ValidationError
from ..core.metrics import record_model_loaded, record_prediction, record_side_effect, time_inference
from ..core.utils import missing_fields
from ..data.base import PropertyStore, Interaction
from ..data.market_stats import MarketStatisticsProvider
from ..models.base import Recommender
from ..models.recommender import FilterRecommender
from .outcomes import RecommendationOutcome, SideEffectOutcome

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("user_id", "preferences")
DEFAULT_LIMIT = 10
MAX_LIMIT = 50
FALLBACK_MESSAGE = "Recommendation model unavailable; results are filtered but not ranked."

class RecommendationService:
    """
    Fetches candidates and the user's interaction history from the store,
    ranks with the configured recommender (filter-only fallback on failure)
    and remembers the user's preferences.
    """
    def __init__(self, market: MarketStatisticsProvider, recommender: Recommender, store: PropertyStore,
                 fallback: Recommender | None = None, candidate_limit: int | None = None):
        self.market = market
        self.recommender = recommender
        self.store = store
        self.fallback = fallback or FilterRecommender()
        self.candidate_limit = candidate_limit or settings.RECOMMENDATION_CANDIDATE_LIMIT

    def health(self) -> dict:
        loaded = self.recommender.load_model() and self.recommender.name != self.fallback.name
        record_model_loaded("recommendation", loaded)
        return {
            "status": "active" if loaded else "not_found",
            "model": self.recommender.name if loaded else self.fallback.name,
            "metadata": getattr(self.recommender, "metadata", {}) if loaded else {},
        }

    async def candidates(self) -> tuple[list[dict], str]:
        try:
            return await self.store.list_active_properties(self.candidate_limit), "store"
        except Exception as exc:
            logger.warning(
                "Candidate fetch failed; using dataset listings",
                extra={"context": {"error": str(exc)}},
            )
            return self.market.candidate_records(self.candidate_limit), "dataset"

    async def interactions(self, user_id: str) -> list[Interaction]:
        try:
            return await self.store.list_user_interactions(user_id)
        except Exception as exc:
            logger.warning(
                "Interaction history unavailable; treating user as cold start",
                extra={"context": {"user_id": user_id, "error": str(exc)}},
            )
            return []

    async def save_preferences(self, user_id: str, preferences: dict) -> SideEffectOutcome:
        try:
            await self.store.upsert_user_preferences(user_id, preferences)
        except Exception as exc:
            logger.error(
                "Failed to store user preferences",
                extra={"context": {"user_id": user_id, "error": str(exc)}},
            )
            record_side_effect("user_preferences", stored=False)
            return SideEffectOutcome.failed(str(exc))
        record_side_effect("user_preferences", stored=True)
        return SideEffectOutcome.ok()

    async def recommend(self, user_id: str | None, preferences: dict | None,
                        limit: int | None = None) -> RecommendationOutcome:
        missing = missing_fields({"user_id": user_id, "preferences": preferences}, REQUIRED_FIELDS)
        if missing:
            raise ValidationError.missing(missing)
        if not isinstance(preferences, dict):
            raise ValidationError("preferences must be an object")
        limit = DEFAULT_LIMIT if limit is None else limit
        if not 1 <= limit <= MAX_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}")

        user_id = str(user_id)
        candidates, source = await self.candidates()
        history = await self.interactions(user_id)

        engine = self.recommender
        with time_inference("recommendation"):
            try:
                recs = engine.get_hybrid_recommendations(user_id, preferences, candidates, limit, history)
            except Exception as exc:
                logger.warning(
                    "Recommender failed; using filter fallback",
                    extra={"context": {"recommender": engine.name, "error": str(exc)}},
                )
                engine = self.fallback
                recs = engine.get_hybrid_recommendations(user_id, preferences, candidates, limit, history)

        degraded = engine.name == self.fallback.name
        status = "fallback" if degraded else "primary"
        record_prediction("recommendation", status)

        saved = await self.save_preferences(user_id, preferences)
        return RecommendationOutcome(
            recommendations=recs,
            model_status=status,
            preferences=saved,
            candidate_source=source,
            message=FALLBACK_MESSAGE if degraded else None,
        )
