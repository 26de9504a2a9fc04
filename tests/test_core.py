# tests/test_core.py
import json
import logging

from directrent.core.cache import Cache
from directrent.core.errors import ModelNotFoundError, ValidationError
from directrent.core.logging import JsonFormatter, RequestIdFilter, log_context, request_id_var


def test_cache_namespaces_do_not_collide():
    prices, rates = Cache(namespace="price"), Cache(namespace="rate")
    prices.set_json("k", {"estimated_price": 1700})
    assert prices.get_json("k") == {"estimated_price": 1700}
    assert rates.get("k") is None


def test_cache_counter_increments():
    counters = Cache(namespace="test-counter")
    assert [counters.incr("caller", ttl=60) for _ in range(3)] == [1, 2, 3]
    assert counters.incr("other", ttl=60) == 1


def test_json_log_line_carries_context_and_request_id():
    record = logging.LogRecord("directrent.test", logging.WARNING, __file__, 1, "Fallback used", None, None)
    record.context = log_context(engine="price", error=None)["context"]
    token = request_id_var.set("req-1")
    try:
        RequestIdFilter().filter(record)
    finally:
        request_id_var.reset(token)

    line = json.loads(JsonFormatter().format(record))
    assert line["msg"] == "Fallback used"
    assert line["level"] == "WARNING"
    assert line["request_id"] == "req-1"
    assert line["context"] == {"engine": "price"}


def test_error_messages():
    err = ValidationError.missing(["postcode", "bedrooms"])
    assert err.message == "Missing required fields: postcode, bedrooms"
    assert err.missing_fields == ["postcode", "bedrooms"]
    assert str(ModelNotFoundError("models/price.pkl")) == "Model not found at: models/price.pkl"


def test_clear_only_touches_own_namespace():
    prices, counters = Cache(namespace="price-clear"), Cache(namespace="rate-clear")
    prices.set("k", "1700")
    counters.incr("caller", ttl=60)
    prices.clear()
    assert prices.get("k") is None
    assert counters.incr("caller", ttl=60) == 2
