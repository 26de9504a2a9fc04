"""
Market statistics provider.

Aggregates historical rents by (city, property_type) once per process and
answers lookups from the in-memory tables. Lookups never raise: when the key
is unknown the answer widens to the city, then the property type, then the
whole market, and finally a constant default band.
"""
import logging
import math
import threading
from typing import Callable

import pandas as pd

from .base import MarketStatistics, DEFAULT_MARKET_STATISTICS
from .dataset import clean_dataset, engineer_features, process_full_dataset, records
from ..core.utils import canonical_property_type

logger = logging.getLogger(__name__)

# z-score cut-offs for price_anomaly, highest first
ANOMALY_LEVELS = ((3.0, "high"), (2.0, "medium"), (1.0, "low"))


def summarize(frame: pd.DataFrame, source: str) -> MarketStatistics:
    prices = frame["price_per_month"].astype(float)
    std = float(prices.std(ddof=0)) if len(prices) > 1 else 0.0
    return MarketStatistics(
        average_price=round(float(prices.mean()), 2),
        median_price=round(float(prices.median()), 2),
        min_price=float(prices.min()),
        max_price=float(prices.max()),
        std_price=round(std, 2),
        sample_count=int(len(prices)),
        avg_bedrooms=round(float(frame["bedrooms"].mean()), 2) if "bedrooms" in frame else 0.0,
        avg_bathrooms=round(float(frame["bathrooms"].mean()), 2) if "bathrooms" in frame else 0.0,
        source=source,
    )


class MarketStatisticsProvider:
    """
    Holds the processed dataset and its aggregates.

    The loader runs at most once (guarded by a lock, so concurrent first
    callers wait for the same load). `refresh()` is the only way to reload.
    """

    def __init__(self, loader: Callable[[], pd.DataFrame]):
        self._loader = loader
        self._lock = threading.Lock()
        self._data: pd.DataFrame | None = None
        self._by_key: dict[tuple[str, str], MarketStatistics] = {}
        self._by_city: dict[str, MarketStatistics] = {}
        self._by_type: dict[str, MarketStatistics] = {}
        self._national: MarketStatistics | None = None
        self.load_count = 0

    @classmethod
    def from_path(cls, path: str, synthetic_size: int = 10_000) -> "MarketStatisticsProvider":
        return cls(lambda: process_full_dataset(path, synthetic_size))

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "MarketStatisticsProvider":
        """Wrap an in-memory frame (raw listing columns); handy for tests and notebooks."""
        def load():
            processed = engineer_features(clean_dataset(df))
            processed.attrs["source"] = "frame"
            return processed
        return cls(load)

    # ----- loading -----

    def process_full_dataset(self) -> pd.DataFrame:
        """Load and aggregate on first use; later calls return the memoized frame."""
        if self._data is not None:
            return self._data
        with self._lock:
            if self._data is None:
                self._build()
            return self._data

    def refresh(self) -> pd.DataFrame:
        with self._lock:
            self._data = None
            self._build()
            return self._data

    def _build(self) -> None:
        try:
            data = self._loader()
        except Exception:
            # The provider must stay usable; lookups answer with the default band.
            logger.exception("Market dataset load failed")
            data = pd.DataFrame()
        self.load_count += 1

        by_key, by_city, by_type, national = {}, {}, {}, None
        if not data.empty and "price_per_month" in data.columns:
            city_col = data["city"].astype(str).str.strip().str.lower() if "city" in data else None
            type_col = data["property_type"].astype(str) if "property_type" in data else None
            if city_col is not None and type_col is not None:
                for (city, ptype), group in data.groupby([city_col, type_col]):
                    by_key[(city, ptype)] = summarize(group, "exact")
            if city_col is not None:
                for city, group in data.groupby(city_col):
                    by_city[city] = summarize(group, "city")
            if type_col is not None:
                for ptype, group in data.groupby(type_col):
                    by_type[ptype] = summarize(group, "property_type")
            national = summarize(data, "national")

        self._by_key, self._by_city, self._by_type = by_key, by_city, by_type
        self._national = national
        self._data = data
        logger.info(
            "Market statistics ready",
            extra={"context": {"rows": len(data), "groups": len(by_key), "source": self.source}},
        )

    @property
    def source(self) -> str:
        if self._data is None:
            return "unloaded"
        return self._data.attrs.get("source", "unknown")

    # ----- lookups -----

    def get_market_statistics(self, city: str | None = None, property_type: str | None = None) -> MarketStatistics:
        self.process_full_dataset()
        # Non-string cities (e.g. numbers from loosely typed listings) simply miss
        city_key = str(city).strip().lower() if city is not None else ""
        ptype = canonical_property_type(property_type)

        if city_key and ptype and (city_key, ptype) in self._by_key:
            return self._by_key[(city_key, ptype)]
        if city_key and city_key in self._by_city:
            return self._by_city[city_key]
        if ptype and ptype in self._by_type:
            return self._by_type[ptype]
        if self._national is not None:
            return self._national
        return DEFAULT_MARKET_STATISTICS

    def price_anomaly(self, price: float, city: str | None = None, property_type: str | None = None) -> dict:
        """How unusual a rent is against its market (z-score on the matched group)."""
        stats = self.get_market_statistics(city, property_type)
        std = stats.std_price if stats.std_price > 0 else DEFAULT_MARKET_STATISTICS.std_price
        z = abs(price - stats.average_price) / std
        level = next((name for cut, name in ANOMALY_LEVELS if z > cut), "normal")
        deviation = (price - stats.average_price) / stats.average_price * 100 if stats.average_price else 0.0
        return {
            "z_score": round(z, 2),
            "anomaly_level": level,
            "market_average": stats.average_price,
            "price_deviation_percent": round(deviation, 1) if math.isfinite(deviation) else 0.0,
        }

    def candidate_records(self, limit: int) -> list[dict]:
        """First `limit` dataset rows as plain dicts (recommendation candidates of last resort)."""
        data = self.process_full_dataset()
        if data.empty:
            return []
        return records(data.head(limit))
