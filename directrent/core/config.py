import os
from pydantic import BaseModel

DEFAULT_FRAUD_KEYWORDS = (
    "urgent,cash only,no viewings,overseas,western union,money transfer,"
    "discount,immediate,no questions,no contract,no background check,"
    "no references,no credit check,pay upfront,avoid fees,direct only,"
    "no agents,no paperwork"
)

class Settings(BaseModel):
    # Basic
    ENV: str = os.getenv("ENV", "dev")
    DEFAULT_CURRENCY: str = os.getenv("CURRENCY", "GBP")
    CACHE_TTL_SECONDS: int = int(os.getenv("CACHE_TTL_SECONDS", "3600"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Models
    MODEL_PROVIDER: str = os.getenv("MODEL_PROVIDER", "ml")  # ml | rules
    PRICE_MODEL_PATH: str = os.getenv("PRICE_MODEL_PATH", "./ml/models/price_model.pkl")
    FRAUD_MODEL_PATH: str = os.getenv("FRAUD_MODEL_PATH", "./ml/models/fraud_model.pkl")
    RECOMMENDER_MODEL_PATH: str = os.getenv("RECOMMENDER_MODEL_PATH", "./ml/models/recommender.pkl")

    # Market dataset
    DATASET_PATH: str = os.getenv("DATASET_PATH", "./public/datasets/uk_housing_rentals.csv")

    # Backing store
    STORE_PROVIDER: str = os.getenv("STORE_PROVIDER", "memory")  # memory | http
    STORE_URL: str | None = os.getenv("STORE_URL")
    STORE_KEY: str | None = os.getenv("STORE_KEY")
    STORE_TIMEOUT_SECONDS: float = float(os.getenv("STORE_TIMEOUT_SECONDS", "10"))

    # Fraud scoring
    FRAUD_CLASSIFICATION_THRESHOLD: float = float(os.getenv("FRAUD_CLASSIFICATION_THRESHOLD", "0.6"))
    FRAUD_STORAGE_THRESHOLD: float = float(os.getenv("FRAUD_STORAGE_THRESHOLD", "0.3"))
    FRAUD_KEYWORDS: str = os.getenv("FRAUD_KEYWORDS", DEFAULT_FRAUD_KEYWORDS)

    # Recommendations
    RECOMMENDATION_CANDIDATE_LIMIT: int = int(os.getenv("RECOMMENDATION_CANDIDATE_LIMIT", "500"))

    # Security
    API_KEY: str | None = os.getenv("API_KEY")
    RATE_LIMIT_RPM: int = int(os.getenv("RATE_LIMIT_RPM", "120"))

    # CORS
    ALLOW_ORIGINS: str = os.getenv("ALLOW_ORIGINS", "*")

    # Cache
    USE_REDIS: bool = os.getenv("USE_REDIS", "false").lower() == "true"
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Metrics
    PROMETHEUS_ENABLED: bool = os.getenv("PROMETHEUS_ENABLED", "true").lower() == "true"

    @property
    def fraud_keywords(self) -> list[str]:
        return [k.strip().lower() for k in self.FRAUD_KEYWORDS.split(",") if k.strip()]

settings = Settings()
