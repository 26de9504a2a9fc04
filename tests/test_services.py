# tests/test_services.py
import asyncio

import pytest

from directrent.core.errors import StoreError, ValidationError
from directrent.data.base import Interaction
from directrent.data.store_client import MemoryStore
from directrent.models.fraud_model import RuleBasedFraudScorer
from directrent.models.recommender import FilterRecommender, HybridRecommender
from directrent.services.fraud_service import FraudService
from directrent.services.recommendation_service import RecommendationService


class FailingStore(MemoryStore):
    """Every call fails the way an unreachable backend would."""

    async def count_landlord_listings(self, landlord_id):
        raise StoreError("connection refused", table="properties")

    async def list_active_properties(self, limit):
        raise StoreError("connection refused", table="properties")

    async def list_user_interactions(self, user_id):
        raise StoreError("connection refused", table="property_interactions")

    async def insert_fraud_report(self, row):
        raise StoreError("insert rejected", table="fraud_reports", status_code=500)

    async def upsert_user_preferences(self, user_id, preferences):
        raise StoreError("upsert rejected", table="user_preferences", status_code=500)


class CountingScorer(RuleBasedFraudScorer):
    def __init__(self):
        super().__init__(["urgent", "cash only"], threshold=0.6)
        self.calls = 0

    def detect_fraud(self, property_data):
        self.calls += 1
        return super().detect_fraud(property_data)


def run(coro):
    return asyncio.run(coro)


# ----- fraud -----

def test_low_score_is_not_persisted(market, store):
    svc = FraudService(market, CountingScorer(), store)
    outcome = run(svc.check({"title": "Nice flat", "city": "London", "property_type": "Flat",
                             "price_per_month": 2200}, "L9"))
    assert outcome.result["fraud_score"] <= 0.3
    assert outcome.report.attempted is False
    assert store.fraud_reports == []


def test_high_score_is_persisted(market, store):
    svc = FraudService(market, CountingScorer(), store)
    data = {"id": "p1", "title": "Flat", "city": "London", "property_type": "Flat", "price_per_month": 500}
    outcome = run(svc.check(data, "L9"))
    # London flats average 2200, so 500 is far below market
    assert outcome.result["reasons"] == ["Price significantly below market average"]
    assert outcome.result["fraud_score"] > 0.3
    assert outcome.report.succeeded is True
    assert len(store.fraud_reports) == 1
    row = store.fraud_reports[0]
    assert row["report_type"] == "ml_detection"
    assert row["property_id"] == "p1"
    assert row["landlord_id"] == "L9"


def test_storage_failure_does_not_fail_scoring(market):
    svc = FraudService(market, CountingScorer(), FailingStore())
    data = {"title": "urgent cash only", "city": "London", "property_type": "Flat", "price_per_month": 500}
    outcome = run(svc.check(data, "L9"))
    assert outcome.result["fraud_score"] > 0.3
    assert outcome.report.attempted is True
    assert outcome.report.succeeded is False
    assert outcome.report.error == "insert rejected"


def test_landlord_count_comes_from_store(market):
    many = MemoryStore(properties=[{"id": f"x{i}", "landlord_id": "busy"} for i in range(25)])
    svc = FraudService(market, CountingScorer(), many)
    outcome = run(svc.check({"title": "Flat", "city": "London", "property_type": "Flat",
                             "price_per_month": 2200}, "busy"))
    assert "Unusually high number of listings by this landlord" in outcome.result["reasons"]


def test_missing_fields_never_reach_scorer(market, store):
    scorer = CountingScorer()
    svc = FraudService(market, scorer, store)
    with pytest.raises(ValidationError) as err:
        run(svc.check({"title": "Flat"}, None))
    assert err.value.missing_fields == ["landlord_id"]
    with pytest.raises(ValidationError):
        run(svc.check(None, "L1"))
    assert scorer.calls == 0


def test_fraud_health_reports_keywords(market, store):
    svc = FraudService(market, CountingScorer(), store)
    health = svc.health()
    assert health["status"] == "not_found"
    assert health["suspicious_keywords_count"] == 2


# ----- recommendations -----

def test_fallback_when_model_missing(market, store, tmp_path):
    svc = RecommendationService(market, HybridRecommender(str(tmp_path / "absent.pkl")), store)
    outcome = run(svc.recommend("u1", {"price_min": 1500}, 10))
    assert outcome.model_status == "fallback"
    assert [r.property_id for r in outcome.recommendations] == ["p1", "p2", "p3", "p4"]
    assert outcome.message
    assert outcome.preferences.succeeded is True
    assert store.user_preferences["u1"] == {"price_min": 1500}


def test_preferences_are_replaced_on_write(market, store):
    svc = RecommendationService(market, FilterRecommender(), store)
    run(svc.recommend("u1", {"city": "London"}))
    run(svc.recommend("u1", {"city": "Leeds"}))
    assert store.user_preferences == {"u1": {"city": "Leeds"}}


def test_store_outage_uses_dataset_candidates(market):
    svc = RecommendationService(market, FilterRecommender(), FailingStore())
    outcome = run(svc.recommend("u1", {"city": "Manchester"}, 5))
    assert outcome.candidate_source == "dataset"
    assert [r.property_id for r in outcome.recommendations] == ["p5", "p6"]
    assert outcome.preferences.attempted is True
    assert outcome.preferences.succeeded is False


def test_interactions_feed_the_recommender(market):
    seen = {}

    class Spy(FilterRecommender):
        name = "spy"

        def get_hybrid_recommendations(self, user_id, preferences, candidates, limit, interactions):
            seen["interactions"] = interactions
            return super().get_hybrid_recommendations(user_id, preferences, candidates, limit, interactions)

    history = [Interaction("u1", "p2", "save"), Interaction("u2", "p3", "view")]
    svc = RecommendationService(market, Spy(), MemoryStore(interactions=history))
    outcome = run(svc.recommend("u1", {}))
    assert seen["interactions"] == [history[0]]
    assert outcome.model_status == "primary"


def test_payload_arrays_have_equal_length(market, store):
    svc = RecommendationService(market, FilterRecommender(), store)
    payload = run(svc.recommend("u1", {}, 3)).payload()
    assert len(payload["properties"]) == len(payload["scores"]) == len(payload["reasoning"]) == 3


def test_recommendation_validation(market, store):
    svc = RecommendationService(market, FilterRecommender(), store)
    with pytest.raises(ValidationError) as err:
        run(svc.recommend("u1", None))
    assert err.value.missing_fields == ["preferences"]
    with pytest.raises(ValidationError):
        run(svc.recommend("", {}))
    with pytest.raises(ValidationError):
        run(svc.recommend("u1", {}, 0))
    with pytest.raises(ValidationError):
        run(svc.recommend("u1", {}, 51))
    assert store.user_preferences == {}


class FixedScoreScorer(RuleBasedFraudScorer):
    def __init__(self, score):
        super().__init__(["urgent"], threshold=0.6)
        self.score = score

    def detect_fraud(self, property_data):
        out = super().detect_fraud(property_data)
        return {**out, "fraud_score": self.score}


@pytest.mark.parametrize("score,stored", [(0.30, False), (0.31, True)])
def test_storage_boundary_is_strictly_above_threshold(market, store, score, stored):
    svc = FraudService(market, FixedScoreScorer(score), store)
    outcome = run(svc.check({"title": "Flat", "city": "London"}, "L9"))
    assert outcome.report.attempted is stored
    assert len(store.fraud_reports) == (1 if stored else 0)


def test_failing_scorer_degrades_to_rules(market, store):
    class Broken(RuleBasedFraudScorer):
        name = "broken"

        def detect_fraud(self, property_data):
            raise TypeError("bad dtype")

    svc = FraudService(market, Broken(["urgent"], threshold=0.6), store)
    outcome = run(svc.check({"title": "urgent", "city": "London", "property_type": "Flat",
                             "price_per_month": 2200}, "L1"))
    assert outcome.result["ml_model_used"] is False
    assert outcome.result["reasons"] == ["Contains suspicious keyword: urgent"]
