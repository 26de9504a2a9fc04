"""
UK rental dataset processing.

Loads the historical listings CSV, cleans it and derives the features that
the market statistics, price model and recommender consume. When the CSV is
missing or unusable a deterministic synthetic dataset stands in, so the
service can always boot and produce sane market baselines.
"""
import logging
from pathlib import Path

import numpy as np
import pandas as pd

from ..core.constants import (
    BASE_PRICE_BY_TYPE,
    COUNCIL_TAX_SCORES,
    EPC_SCORES,
    FURNISHING_STATUSES,
    PROPERTY_TYPE_ALIASES,
    PROPERTY_TYPES,
)
from ..core.utils import normalize_postcode, postcode_area

logger = logging.getLogger(__name__)

UK_CITIES = [
    "London", "Manchester", "Birmingham", "Leeds", "Liverpool",
    "Bristol", "Edinburgh", "Glasgow", "Sheffield", "Newcastle",
]
POSTCODE_PREFIXES = ["SW", "W", "E", "N", "S", "M", "B", "L", "LS", "NE"]

# Relative rent level per city for the synthetic dataset
CITY_PRICE_FACTOR = {
    "London": 1.8, "Edinburgh": 1.2, "Bristol": 1.2, "Manchester": 1.05,
    "Birmingham": 1.0, "Leeds": 0.95, "Glasgow": 0.95, "Liverpool": 0.9,
    "Newcastle": 0.85, "Sheffield": 0.85,
}

NUMERIC_COLUMNS = ["bedrooms", "bathrooms", "price_per_month", "latitude", "longitude"]
CATEGORICAL_COLUMNS = ["property_type", "furnishing_status", "city", "postcode"]
AMENITY_COLUMNS = ["parking", "garden", "pets_allowed"]
MAX_MONTHLY_PRICE = 20_000


def synthetic_dataset(n_samples: int = 10_000, seed: int = 42) -> pd.DataFrame:
    """Plausible UK lettings, identical for a given seed."""
    rng = np.random.default_rng(seed)
    n = n_samples

    cities = rng.choice(UK_CITIES, n)
    types = rng.choice(PROPERTY_TYPES, n)
    bedrooms = rng.integers(1, 6, n)
    bathrooms = rng.integers(1, 4, n)
    furnishing = rng.choice(FURNISHING_STATUSES, n)
    prefixes = rng.choice(POSTCODE_PREFIXES, n)
    districts = rng.integers(1, 21, n)
    sectors = rng.integers(1, 10, n)
    letters = rng.integers(0, 26, (n, 2))

    base = pd.Series(types).map(BASE_PRICE_BY_TYPE).to_numpy(dtype=float)
    factor = pd.Series(cities).map(CITY_PRICE_FACTOR).to_numpy(dtype=float)
    price = (base + 300 * (bedrooms - 1) + 150 * (bathrooms - 1)) * factor
    price = np.clip(price + rng.normal(0, 150, n), 300, 8000).round()

    created = pd.Timestamp("2020-01-01") + pd.to_timedelta(np.arange(n), unit="D")

    return pd.DataFrame({
        "property_id": [f"prop_{i:06d}" for i in range(n)],
        "title": [f"{b} bed {t.lower()} in {c}" for b, t, c in zip(bedrooms, types, cities)],
        "city": cities,
        "postcode": [
            f"{p}{d} {s}{chr(65 + a)}{chr(65 + b)}"
            for p, d, s, (a, b) in zip(prefixes, districts, sectors, letters)
        ],
        "property_type": types,
        "bedrooms": bedrooms,
        "bathrooms": bathrooms,
        "price_per_month": price,
        "furnishing_status": furnishing,
        "epc_rating": rng.choice(list(EPC_SCORES), n),
        "council_tax_band": rng.choice(list(COUNCIL_TAX_SCORES), n),
        "parking": rng.random(n) > 0.5,
        "garden": rng.random(n) > 0.5,
        "pets_allowed": rng.random(n) > 0.5,
        "latitude": rng.uniform(50.0, 58.0, n).round(6),
        "longitude": rng.uniform(-5.0, 2.0, n).round(6),
        "created_at": created.strftime("%Y-%m-%dT%H:%M:%S"),
    })


def load_dataset(path: str | Path) -> pd.DataFrame | None:
    """Read the listings CSV; None when it is absent, unreadable or empty."""
    p = Path(path)
    if not p.exists():
        logger.warning("Dataset not found", extra={"context": {"path": str(p)}})
        return None
    try:
        df = pd.read_csv(p)
    except (OSError, UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        logger.error("Dataset unreadable", extra={"context": {"path": str(p), "error": str(exc)}})
        return None
    if df.empty:
        logger.warning("Dataset is empty", extra={"context": {"path": str(p)}})
        return None
    logger.info("Loaded dataset", extra={"context": {"path": str(p), "rows": len(df)}})
    return df


def clean_dataset(df: pd.DataFrame) -> pd.DataFrame:
    """Fill gaps, drop unusable prices and normalize categorical spellings."""
    df = df.copy()

    for col in NUMERIC_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")
            median = df[col].median()
            df[col] = df[col].fillna(0 if pd.isna(median) else median)

    for col in CATEGORICAL_COLUMNS:
        if col in df.columns:
            df[col] = df[col].replace("", np.nan)
            mode = df[col].mode(dropna=True)
            if not mode.empty:
                df[col] = df[col].fillna(mode.iloc[0])

    if "price_per_month" not in df.columns:
        return df.iloc[0:0]
    df = df[(df["price_per_month"] > 0) & (df["price_per_month"] < MAX_MONTHLY_PRICE)].copy()

    if "id" not in df.columns:
        if "property_id" in df.columns:
            df["id"] = df["property_id"]
        else:
            df["id"] = [f"prop_{i:06d}" for i in range(len(df))]
    df["id"] = df["id"].astype(str)

    if "postcode" in df.columns:
        df["postcode"] = df["postcode"].astype(str).map(normalize_postcode)
        df["postcode_area"] = df["postcode"].map(postcode_area)

    if "property_type" in df.columns:
        df["property_type"] = df["property_type"].map(
            lambda v: PROPERTY_TYPE_ALIASES.get(str(v).strip().lower(), v)
        )

    return df.reset_index(drop=True)


def _truthy(series: pd.Series) -> pd.Series:
    return series.astype(str).str.strip().str.lower().isin(["true", "1", "yes", "y"])


def engineer_features(df: pd.DataFrame) -> pd.DataFrame:
    """Derived columns used by models and market rankings."""
    df = df.copy()

    if "bedrooms" in df.columns:
        df["price_per_bedroom"] = df["price_per_month"] / df["bedrooms"].clip(lower=1)

    amenities = [c for c in AMENITY_COLUMNS if c in df.columns]
    df["amenity_score"] = sum(_truthy(df[c]).astype(int) for c in amenities) if amenities else 0

    if "epc_rating" in df.columns:
        df["epc_numeric"] = df["epc_rating"].map(EPC_SCORES).fillna(0).astype(int)
    if "council_tax_band" in df.columns:
        df["council_tax_numeric"] = df["council_tax_band"].map(COUNCIL_TAX_SCORES).fillna(0).astype(int)

    if "city" in df.columns:
        # 1 = most expensive city by median rent
        medians = df.groupby("city")["price_per_month"].median().sort_values(ascending=False)
        ranking = {city: rank for rank, city in enumerate(medians.index, start=1)}
        df["city_price_rank"] = df["city"].map(ranking).fillna(0).astype(int)

    return df


def process_full_dataset(path: str | Path, synthetic_size: int = 10_000) -> pd.DataFrame:
    """
    Complete pipeline: load -> clean -> engineer.
    `df.attrs["source"]` records whether the CSV or synthetic data was used.
    """
    source = "csv"
    raw = load_dataset(path)
    if raw is None:
        raw, source = synthetic_dataset(synthetic_size), "synthetic"

    cleaned = clean_dataset(raw)
    if cleaned.empty and source == "csv":
        logger.warning("No usable rows after cleaning; using synthetic dataset")
        cleaned, source = clean_dataset(synthetic_dataset(synthetic_size)), "synthetic"

    processed = engineer_features(cleaned)
    processed.attrs["source"] = source
    logger.info(
        "Processed dataset",
        extra={"context": {"rows": len(processed), "source": source}},
    )
    return processed


def records(df: pd.DataFrame) -> list[dict]:
    """JSON-safe row dicts (NaN -> None, numpy scalars -> Python)."""
    return df.astype(object).where(pd.notna(df), None).to_dict(orient="records")
