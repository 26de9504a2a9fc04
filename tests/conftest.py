# tests/conftest.py
import pandas as pd
import pytest
from fastapi.testclient import TestClient

from directrent.core.cache import Cache, cache
from directrent.core.security import rate_limit, require_api_key
from directrent.data.market_stats import MarketStatisticsProvider
from directrent.data.store_client import MemoryStore
from directrent.main import create_app
from directrent.models.fraud_model import ModelFraudScorer
from directrent.models.price_model import SklearnPriceEstimator
from directrent.models.recommender import HybridRecommender

# Small fixed market: 3 London flats, 1 London house, 2 Manchester flats, 1 Leeds studio
LISTINGS = [
    {"id": "p1", "landlord_id": "L1", "status": "active", "city": "London", "postcode": "SW1A 1AA",
     "property_type": "Flat", "bedrooms": 2, "bathrooms": 1, "furnishing_status": "Furnished",
     "price_per_month": 2000},
    {"id": "p2", "landlord_id": "L1", "status": "active", "city": "London", "postcode": "SW1A 2BB",
     "property_type": "Flat", "bedrooms": 2, "bathrooms": 1, "furnishing_status": "Unfurnished",
     "price_per_month": 2200},
    {"id": "p3", "landlord_id": "L2", "status": "active", "city": "London", "postcode": "E1 6AN",
     "property_type": "Flat", "bedrooms": 3, "bathrooms": 2, "furnishing_status": "Furnished",
     "price_per_month": 2400},
    {"id": "p4", "landlord_id": "L2", "status": "active", "city": "London", "postcode": "N1 9GU",
     "property_type": "House", "bedrooms": 4, "bathrooms": 2, "furnishing_status": "Part-Furnished",
     "price_per_month": 3000},
    {"id": "p5", "landlord_id": "L3", "status": "active", "city": "Manchester", "postcode": "M1 1AE",
     "property_type": "Flat", "bedrooms": 1, "bathrooms": 1, "furnishing_status": "Furnished",
     "price_per_month": 1000},
    {"id": "p6", "landlord_id": "L3", "status": "active", "city": "Manchester", "postcode": "M4 5JD",
     "property_type": "Flat", "bedrooms": 2, "bathrooms": 1, "furnishing_status": "Unfurnished",
     "price_per_month": 1200},
    {"id": "p7", "landlord_id": "L4", "status": "active", "city": "Leeds", "postcode": "LS1 4AP",
     "property_type": "Studio", "bedrooms": 1, "bathrooms": 1, "furnishing_status": "Furnished",
     "price_per_month": 700},
]


@pytest.fixture(autouse=True)
def _clear_cache():
    namespaces = [cache, Cache(namespace="rate")]
    for c in namespaces:
        c.clear()
    yield
    for c in namespaces:
        c.clear()


@pytest.fixture
def listings():
    return [dict(p) for p in LISTINGS]


@pytest.fixture
def market(listings):
    return MarketStatisticsProvider.from_frame(pd.DataFrame(listings))


@pytest.fixture
def store(listings):
    return MemoryStore(properties=listings)


@pytest.fixture
def app(tmp_path, market, store):
    # Artifact paths that do not exist: every engine runs its fallback
    app = create_app(
        market=market,
        store=store,
        price_estimator=SklearnPriceEstimator(str(tmp_path / "price_model.pkl")),
        fraud_scorer=ModelFraudScorer(str(tmp_path / "fraud_model.pkl")),
        recommender=HybridRecommender(str(tmp_path / "recommender.pkl")),
    )
    app.dependency_overrides[rate_limit] = lambda: None
    app.dependency_overrides[require_api_key] = lambda: None
    return app


@pytest.fixture
def client(app):
    return TestClient(app)
