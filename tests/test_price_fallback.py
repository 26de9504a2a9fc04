# tests/test_price_fallback.py
import itertools

import pytest

from directrent.data.base import DEFAULT_MARKET_STATISTICS, MarketStatistics
from directrent.models.price_model import RuleBasedPriceEstimator


@pytest.fixture
def estimator():
    return RuleBasedPriceEstimator()


def _features(property_type, bedrooms, bathrooms, furnishing):
    return {
        "postcode": "SW1A 1AA",
        "property_type": property_type,
        "bedrooms": bedrooms,
        "bathrooms": bathrooms,
        "furnishing_status": furnishing,
    }


def test_furnished_two_bed_flat(estimator):
    out = estimator.predict_price(_features("Flat", 2, 1, "Furnished"), DEFAULT_MARKET_STATISTICS)
    assert out["estimated_price"] == 1700
    assert out["price_range"] == {"min": 1445, "max": 1955}
    assert out["confidence"] == 0.5


def test_unfurnished_studio(estimator):
    out = estimator.predict_price(_features("Studio", 1, 1, "Unfurnished"), DEFAULT_MARKET_STATISTICS)
    assert out["estimated_price"] == 900
    assert out["price_range"] == {"min": 765, "max": 1035}


def test_unknown_type_uses_default_base(estimator):
    assert estimator.estimate(_features("Castle", 1, 1, "Unfurnished")) == 1200


def test_furnishing_spellings_are_normalized(estimator):
    assert estimator.estimate(_features("flat", 1, 1, "part furnished")) == 1300
    assert estimator.estimate(_features("apartment", 1, 1, "FURNISHED")) == 1400


def test_same_input_same_output(estimator):
    features = _features("House", 3, 2, "Part-Furnished")
    first = estimator.predict_price(features, DEFAULT_MARKET_STATISTICS)
    for _ in range(5):
        assert estimator.predict_price(features, DEFAULT_MARKET_STATISTICS) == first


def test_insights_echo_estimate_without_comparables(estimator):
    out = estimator.predict_price(_features("Flat", 2, 1, "Furnished"), DEFAULT_MARKET_STATISTICS)
    assert out["market_insights"] == {
        "average_price": 1700,
        "median_price": 1700,
        "comparable_properties": 0,
    }


def test_insights_use_real_market_when_available(estimator):
    market = MarketStatistics(
        average_price=1523.4, median_price=1490.6, min_price=900, max_price=2600,
        std_price=300, sample_count=12, avg_bedrooms=2, avg_bathrooms=1,
    )
    out = estimator.predict_price(_features("Flat", 2, 1, "Furnished"), market)
    assert out["estimated_price"] == 1700
    assert out["market_insights"] == {
        "average_price": 1523,
        "median_price": 1491,
        "comparable_properties": 12,
    }


def test_range_always_brackets_estimate(estimator):
    types = ["Studio", "Flat", "House", "Bungalow", "Maisonette", "Houseboat"]
    furnishing = ["Furnished", "Unfurnished", "Part-Furnished", "unknown"]
    for ptype, beds, baths, furn in itertools.product(types, range(0, 7), range(0, 5), furnishing):
        out = estimator.predict_price(_features(ptype, beds, baths, furn), DEFAULT_MARKET_STATISTICS)
        low, high = out["price_range"]["min"], out["price_range"]["max"]
        assert low <= out["estimated_price"] <= high
        assert out["market_insights"]["comparable_properties"] >= 0
