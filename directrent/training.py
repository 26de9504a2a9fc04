#!/usr/bin/env python
"""
CLI for training the model artifacts the service loads at runtime.

Usage:
    directrent-train price
    directrent-train fraud --labels labelled_listings.csv
    directrent-train recommender --interactions interactions.csv
"""
import argparse
import logging
import math
import sys
from datetime import datetime, timezone

import numpy as np
import pandas as pd
from sklearn.ensemble import GradientBoostingRegressor, RandomForestClassifier
from sklearn.metrics import (
    accuracy_score,
    f1_score,
    mean_absolute_error,
    mean_squared_error,
    precision_score,
    r2_score,
    recall_score,
)
from sklearn.model_selection import train_test_split

from .core.config import settings
from .core.logging import configure_logging
from .data.dataset import process_full_dataset, records
from .data.market_stats import MarketStatisticsProvider
from .models.artifacts import save_artifact
from .models.fraud_model import FRAUD_FEATURE_NAMES, extract_features
from .models.price_model import FEATURE_NAMES, encode_features
from .models.recommender import DEFAULT_FEATURE_SCALES, interaction_rating

logger = logging.getLogger(__name__)

MIN_TRAINING_ROWS = 20


def _stamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def train_price_model(df: pd.DataFrame, seed: int = 42) -> dict:
    """Fit a gradient-boosted regressor on encoded listings; returns the artifact bundle."""
    if len(df) < MIN_TRAINING_ROWS:
        raise ValueError(f"Need at least {MIN_TRAINING_ROWS} rows to train the price model, got {len(df)}")

    X = np.array([encode_features(r) for r in records(df)], dtype="float64")
    y = df["price_per_month"].to_numpy(dtype="float64")
    X_train, X_test, y_train, y_test = train_test_split(X, y, test_size=0.2, random_state=seed)

    model = GradientBoostingRegressor(
        n_estimators=200, max_depth=4, learning_rate=0.05, random_state=seed
    )
    model.fit(X_train, y_train)
    pred = model.predict(X_test)

    metrics = {
        "mae": float(mean_absolute_error(y_test, pred)),
        "rmse": float(math.sqrt(mean_squared_error(y_test, pred))),
        "r2": float(r2_score(y_test, pred)),
        "train_size": int(len(X_train)),
        "test_size": int(len(X_test)),
    }
    logger.info("Trained price model", extra={"context": metrics})
    return {
        "model": model,
        "feature_names": FEATURE_NAMES,
        "metadata": {
            "trained_at": _stamp(),
            "algorithm": "GradientBoostingRegressor",
            "dataset_source": df.attrs.get("source", "unknown"),
            "metrics": metrics,
        },
    }


def train_fraud_model(labelled: pd.DataFrame, market: MarketStatisticsProvider,
                      keywords: list[str], seed: int = 42) -> dict:
    """
    Fit a random forest on listings carrying an `is_fraud` label (0/1).
    Rows are enriched with their market average exactly as at scoring time.
    """
    if "is_fraud" not in labelled.columns:
        raise ValueError("Labelled listings need an 'is_fraud' column")
    if len(labelled) < MIN_TRAINING_ROWS:
        raise ValueError(f"Need at least {MIN_TRAINING_ROWS} labelled rows, got {len(labelled)}")

    y = labelled["is_fraud"].astype(int).to_numpy()
    if len(set(y)) < 2:
        raise ValueError("Labelled listings must contain both fraudulent and genuine examples")

    rows = []
    for row in records(labelled.drop(columns=["is_fraud"])):
        stats = market.get_market_statistics(row.get("city"), row.get("property_type"))
        row.setdefault("market_average", stats.average_price)
        if isinstance(row.get("images"), str):
            row["images"] = [u for u in row["images"].split("|") if u]
        rows.append(extract_features(row, keywords))
    X = np.array(rows, dtype="float64")

    X_train, X_test, y_train, y_test = train_test_split(
        X, y, test_size=0.25, random_state=seed, stratify=y
    )
    model = RandomForestClassifier(
        n_estimators=200, max_depth=8, class_weight="balanced", random_state=seed
    )
    model.fit(X_train, y_train)
    pred = model.predict(X_test)

    metrics = {
        "accuracy": float(accuracy_score(y_test, pred)),
        "precision": float(precision_score(y_test, pred, zero_division=0)),
        "recall": float(recall_score(y_test, pred, zero_division=0)),
        "f1": float(f1_score(y_test, pred, zero_division=0)),
        "train_size": int(len(X_train)),
        "test_size": int(len(X_test)),
    }
    logger.info("Trained fraud model", extra={"context": metrics})
    return {
        "model": model,
        "feature_names": FRAUD_FEATURE_NAMES,
        "metadata": {
            "trained_at": _stamp(),
            "algorithm": "RandomForestClassifier",
            "metrics": metrics,
        },
    }


def factorize(ratings: np.ndarray, n_users: int, n_items: int, factors: int = 8,
              epochs: int = 60, lr: float = 0.02, reg: float = 0.02, seed: int = 42):
    """
    SGD matrix factorization over (user_idx, item_idx, rating) triples.
    Returns (user_factors, item_factors, training RMSE).
    """
    rng = np.random.default_rng(seed)
    # Start near the mean rating so early predictions are on the right scale
    scale = math.sqrt(max(float(ratings[:, 2].mean()), 1e-6) / factors)
    P = rng.normal(scale, 0.05, (n_users, factors))
    Q = rng.normal(scale, 0.05, (n_items, factors))

    for _ in range(epochs):
        for idx in rng.permutation(len(ratings)):
            u, i, r = int(ratings[idx, 0]), int(ratings[idx, 1]), ratings[idx, 2]
            err = r - P[u] @ Q[i]
            pu = P[u].copy()
            P[u] += lr * (err * Q[i] - reg * P[u])
            Q[i] += lr * (err * pu - reg * Q[i])

    pred = np.einsum("ij,ij->i", P[ratings[:, 0].astype(int)], Q[ratings[:, 1].astype(int)])
    rmse = float(np.sqrt(np.mean((ratings[:, 2] - pred) ** 2)))
    return P, Q, rmse


def feature_scales(df: pd.DataFrame) -> dict[str, float]:
    scales = dict(DEFAULT_FEATURE_SCALES)
    for col in scales:
        if col in df.columns:
            std = float(df[col].std())
            if math.isfinite(std) and std > 0:
                scales[col] = std
    return scales


def train_recommender(df: pd.DataFrame, interactions: pd.DataFrame | None = None,
                      factors: int = 8, epochs: int = 60, seed: int = 42) -> dict:
    """Content scales from the dataset plus, when interactions exist, collaborative factors."""
    bundle = {
        "model": None,
        "feature_scales": feature_scales(df),
        "metadata": {"trained_at": _stamp(), "algorithm": "hybrid", "collaborative": False},
    }
    if interactions is None or interactions.empty:
        logger.info("No interactions supplied; recommender will rank on content only")
        return bundle

    events = interactions.assign(
        user_id=interactions["user_id"].astype(str),
        property_id=interactions["property_id"].astype(str),
        rating=interactions["interaction_type"].map(interaction_rating),
    )
    # Strongest interaction per (user, property)
    pairs = events.groupby(["user_id", "property_id"], as_index=False)["rating"].max()

    user_index = {u: i for i, u in enumerate(sorted(pairs["user_id"].unique()))}
    item_index = {p: i for i, p in enumerate(sorted(pairs["property_id"].unique()))}
    triples = np.column_stack([
        pairs["user_id"].map(user_index).to_numpy(dtype="float64"),
        pairs["property_id"].map(item_index).to_numpy(dtype="float64"),
        pairs["rating"].to_numpy(dtype="float64"),
    ])

    P, Q, rmse = factorize(triples, len(user_index), len(item_index), factors=factors, epochs=epochs, seed=seed)
    bundle["model"] = {
        "user_index": user_index,
        "item_index": item_index,
        "user_factors": P,
        "item_factors": Q,
    }
    bundle["metadata"].update({
        "collaborative": True,
        "users": len(user_index),
        "items": len(item_index),
        "interactions": int(len(pairs)),
        "factors": factors,
        "train_rmse": rmse,
    })
    logger.info("Trained recommender", extra={"context": bundle["metadata"]})
    return bundle


def main(argv: list[str] | None = None) -> int:
    """Main entry point for model training CLI."""
    parser = argparse.ArgumentParser(
        description="Train DirectRent model artifacts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--dataset", default=settings.DATASET_PATH,
                        help="Listings CSV (synthetic data is used when missing)")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    p_price = sub.add_parser("price", help="Train the rent regressor")
    p_price.add_argument("--output", default=settings.PRICE_MODEL_PATH)

    p_fraud = sub.add_parser("fraud", help="Train the fraud classifier")
    p_fraud.add_argument("--labels", required=True, help="CSV of listings with an is_fraud column")
    p_fraud.add_argument("--output", default=settings.FRAUD_MODEL_PATH)

    p_rec = sub.add_parser("recommender", help="Train the hybrid recommender")
    p_rec.add_argument("--interactions", default=None,
                       help="CSV with user_id, property_id, interaction_type")
    p_rec.add_argument("--factors", type=int, default=8)
    p_rec.add_argument("--epochs", type=int, default=60)
    p_rec.add_argument("--output", default=settings.RECOMMENDER_MODEL_PATH)

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        if args.command == "price":
            bundle = train_price_model(process_full_dataset(args.dataset), seed=args.seed)
        elif args.command == "fraud":
            market = MarketStatisticsProvider.from_path(args.dataset)
            bundle = train_fraud_model(pd.read_csv(args.labels), market, settings.fraud_keywords, seed=args.seed)
        else:
            interactions = pd.read_csv(args.interactions) if args.interactions else None
            bundle = train_recommender(
                process_full_dataset(args.dataset), interactions,
                factors=args.factors, epochs=args.epochs, seed=args.seed,
            )
    except (ValueError, OSError, pd.errors.ParserError) as exc:
        logger.error("Training failed", extra={"context": {"command": args.command, "error": str(exc)}})
        return 1

    path = save_artifact(bundle, args.output)
    print(f"\nSaved {args.command} artifact to {path}")
    for name, value in bundle["metadata"].get("metrics", {}).items():
        print(f"  {name}: {value:,.4f}" if isinstance(value, float) else f"  {name}: {value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
