# tests/test_training.py
import numpy as np
import pandas as pd
import pytest

from directrent.data.base import DEFAULT_MARKET_STATISTICS
from directrent.data.dataset import clean_dataset, engineer_features, synthetic_dataset
from directrent.models.artifacts import load_artifact, save_artifact
from directrent.models.fraud_model import ModelFraudScorer
from directrent.models.price_model import SklearnPriceEstimator
from directrent.models.recommender import HybridRecommender
from directrent.training import (
    factorize,
    main,
    train_fraud_model,
    train_price_model,
    train_recommender,
)

KEYWORDS = ["urgent", "cash only", "western union"]


@pytest.fixture(scope="module")
def small_dataset():
    return engineer_features(clean_dataset(synthetic_dataset(300, seed=7)))


def test_price_model_trains_and_serves(small_dataset, tmp_path):
    bundle = train_price_model(small_dataset, seed=1)
    assert set(bundle["metadata"]["metrics"]) == {"mae", "rmse", "r2", "train_size", "test_size"}
    assert bundle["metadata"]["metrics"]["test_size"] == 60

    path = save_artifact(bundle, tmp_path / "price_model.pkl")
    estimator = SklearnPriceEstimator(str(path))
    assert estimator.load_model() is True
    out = estimator.predict_price(
        {"postcode": "M1 1AE", "city": "Manchester", "property_type": "Flat",
         "bedrooms": 2, "bathrooms": 1, "furnishing_status": "Furnished"},
        DEFAULT_MARKET_STATISTICS,
    )
    assert out["estimated_price"] > 0
    assert out["price_range"]["min"] <= out["estimated_price"] <= out["price_range"]["max"]


def test_price_model_needs_enough_rows(small_dataset):
    with pytest.raises(ValueError):
        train_price_model(small_dataset.head(5))


def labelled_listings():
    genuine = [
        {"title": "Bright flat near the park", "city": "London", "property_type": "Flat",
         "price_per_month": 2100 + 10 * i, "images": "a.jpg|b.jpg|c.jpg|d.jpg", "is_fraud": 0}
        for i in range(20)
    ]
    fraud = [
        {"title": "URGENT cash only", "city": "London", "property_type": "Flat",
         "price_per_month": 400 + 10 * i, "images": "", "is_fraud": 1}
        for i in range(20)
    ]
    return pd.DataFrame(genuine + fraud)


def test_fraud_model_trains_and_serves(market, tmp_path):
    bundle = train_fraud_model(labelled_listings(), market, KEYWORDS, seed=3)
    assert bundle["metadata"]["metrics"]["test_size"] == 10

    path = save_artifact(bundle, tmp_path / "fraud_model.pkl")
    scorer = ModelFraudScorer(str(path), KEYWORDS, threshold=0.6)
    assert scorer.load_model() is True
    out = scorer.detect_fraud({"title": "urgent cash only", "price_per_month": 450,
                               "market_average": 2200, "images": []})
    assert out["ml_model_used"] is True
    assert out["is_fraudulent"] is True


def test_fraud_model_needs_both_classes(market):
    only_genuine = labelled_listings().assign(is_fraud=0)
    with pytest.raises(ValueError):
        train_fraud_model(only_genuine, market, KEYWORDS)
    with pytest.raises(ValueError):
        train_fraud_model(labelled_listings().drop(columns=["is_fraud"]), market, KEYWORDS)


def test_factorize_fits_observed_ratings():
    ratings = np.array([[0, 0, 5.0], [0, 1, 1.0], [1, 0, 3.0]])
    P, Q, rmse = factorize(ratings, n_users=2, n_items=2, factors=4, epochs=300, seed=0)
    assert P.shape == (2, 4) and Q.shape == (2, 4)
    assert rmse < 0.5


def test_recommender_without_interactions_is_content_only(small_dataset):
    bundle = train_recommender(small_dataset)
    assert bundle["model"] is None
    assert bundle["metadata"]["collaborative"] is False
    assert bundle["feature_scales"]["price_per_month"] > 0


def test_recommender_learns_from_interactions(small_dataset, tmp_path):
    interactions = pd.DataFrame([
        {"user_id": "u1", "property_id": "a", "interaction_type": "contact"},
        {"user_id": "u1", "property_id": "b", "interaction_type": "view"},
        {"user_id": "u2", "property_id": "a", "interaction_type": "save"},
    ])
    bundle = train_recommender(small_dataset, interactions, factors=4, epochs=300, seed=0)
    assert bundle["metadata"]["users"] == 2
    assert bundle["metadata"]["items"] == 2

    path = save_artifact(bundle, tmp_path / "recommender.pkl")
    recs = HybridRecommender(str(path)).get_hybrid_recommendations(
        "u1", {}, [{"id": "b"}, {"id": "a"}], 10, []
    )
    assert [r.property_id for r in recs] == ["a", "b"]


def test_cli_trains_recommender(tmp_path):
    out = tmp_path / "recommender.pkl"
    code = main(["--dataset", str(tmp_path / "missing.csv"), "recommender", "--output", str(out)])
    assert code == 0
    assert load_artifact(out)["metadata"]["algorithm"] == "hybrid"


def test_cli_reports_bad_labels(tmp_path):
    labels = tmp_path / "labels.csv"
    labels.write_text("title,price_per_month\nflat,1000\n")
    code = main(["--dataset", str(tmp_path / "missing.csv"), "fraud", "--labels", str(labels),
                 "--output", str(tmp_path / "fraud.pkl")])
    assert code == 1
    assert not (tmp_path / "fraud.pkl").exists()
