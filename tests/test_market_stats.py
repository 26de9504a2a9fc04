# tests/test_market_stats.py
import threading
import time

import pandas as pd
import pytest

from directrent.data.base import DEFAULT_MARKET_STATISTICS
from directrent.data.dataset import clean_dataset, engineer_features
from directrent.data.market_stats import MarketStatisticsProvider


def test_exact_match(market):
    stats = market.get_market_statistics("London", "Flat")
    assert stats.source == "exact"
    assert stats.sample_count == 3
    assert stats.average_price == 2200
    assert stats.median_price == 2200
    assert (stats.min_price, stats.max_price) == (2000, 2400)
    assert stats.std_price == pytest.approx(163.30, abs=0.01)


def test_city_is_case_insensitive_and_types_are_aliased(market):
    stats = market.get_market_statistics("  london ", "apartment")
    assert stats.source == "exact"
    assert stats.sample_count == 3


def test_unknown_type_widens_to_city(market):
    stats = market.get_market_statistics("London", "Bungalow")
    assert stats.source == "city"
    assert stats.sample_count == 4
    assert stats.average_price == 2400


def test_unknown_city_widens_to_type(market):
    stats = market.get_market_statistics("Paris", "Flat")
    assert stats.source == "property_type"
    assert stats.sample_count == 5
    assert stats.average_price == 1760


def test_non_string_city_is_an_unknown_key(market):
    assert market.get_market_statistics(123, "Flat").source == "property_type"
    assert market.get_market_statistics(42, None).source == "national"
    assert market.get_market_statistics(" LONDON ", None).source == "city"


def test_unseen_pair_falls_back_to_national(market):
    stats = market.get_market_statistics("Paris", "Castle")
    assert stats.source == "national"
    assert stats.sample_count == 7


def test_no_data_returns_default_band():
    provider = MarketStatisticsProvider(lambda: pd.DataFrame())
    assert provider.get_market_statistics("London", "Flat") == DEFAULT_MARKET_STATISTICS


def test_loader_failure_never_reaches_caller():
    def boom():
        raise RuntimeError("disk on fire")

    provider = MarketStatisticsProvider(boom)
    stats = provider.get_market_statistics("London", "Flat")
    assert stats is DEFAULT_MARKET_STATISTICS
    assert stats.average_price > 0


def test_dataset_processed_once(listings):
    calls = []

    def loader():
        calls.append(1)
        time.sleep(0.05)
        return engineer_features(clean_dataset(pd.DataFrame(listings)))

    provider = MarketStatisticsProvider(loader)
    threads = [
        threading.Thread(target=provider.get_market_statistics, args=("London", "Flat"))
        for _ in range(8)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    provider.get_market_statistics("Leeds", "Studio")

    assert len(calls) == 1
    assert provider.load_count == 1


def test_refresh_recomputes(listings):
    frames = [listings, listings + [{**listings[0], "id": "p8", "price_per_month": 2600}]]

    def loader():
        return engineer_features(clean_dataset(pd.DataFrame(frames.pop(0))))

    provider = MarketStatisticsProvider(loader)
    assert provider.get_market_statistics("London", "Flat").sample_count == 3
    provider.refresh()
    assert provider.get_market_statistics("London", "Flat").sample_count == 4
    assert provider.load_count == 2


def test_missing_csv_uses_synthetic_data(tmp_path):
    provider = MarketStatisticsProvider.from_path(str(tmp_path / "absent.csv"), synthetic_size=300)
    stats = provider.get_market_statistics("London", "Flat")
    assert provider.source == "synthetic"
    assert stats.sample_count > 0
    assert stats.source in {"exact", "city", "property_type", "national"}


def test_csv_is_loaded(tmp_path, listings):
    path = tmp_path / "rentals.csv"
    pd.DataFrame(listings).to_csv(path, index=False)
    provider = MarketStatisticsProvider.from_path(str(path))
    assert provider.get_market_statistics("Manchester", "Flat").average_price == 1100
    assert provider.source == "csv"


def test_price_anomaly_levels(market):
    normal = market.price_anomaly(2200, "London", "Flat")
    assert normal["anomaly_level"] == "normal"
    assert normal["z_score"] == 0

    high = market.price_anomaly(2800, "London", "Flat")
    assert high["anomaly_level"] == "high"
    assert high["market_average"] == 2200
    assert high["price_deviation_percent"] == pytest.approx(27.3)


def test_candidate_records_are_plain_dicts(market):
    rows = market.candidate_records(3)
    assert len(rows) == 3
    assert rows[0]["id"] == "p1"
    assert isinstance(rows[0]["price_per_month"], (int, float))
