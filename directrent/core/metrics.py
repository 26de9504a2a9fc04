import time
from contextlib import contextmanager
from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# HTTP layer
REQ_COUNT = Counter("http_requests_total", "Total HTTP requests", ["path","method","code"])
REQ_LATENCY = Histogram("http_request_duration_seconds", "Request latency", ["path","method"])

# Engines. engine: price | fraud | recommendation; path: primary | fallback
ML_PREDICTIONS = Counter("ml_predictions_total", "Engine invocations by path", ["engine","path"])
ML_INFERENCE_LATENCY = Histogram(
    "ml_inference_duration_seconds", "Time spent inside an engine call", ["engine"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)
ML_MODEL_LOADED = Gauge("ml_model_loaded", "1 when the trained artifact is loaded", ["engine"])
# kind: fraud_report | user_preferences; outcome: stored | failed
ML_SIDE_EFFECTS = Counter("ml_side_effects_total", "Best-effort persistence attempts", ["kind","outcome"])

class PromMiddleware(BaseHTTPMiddleware):
    """
    Counts requests and their latency per route template.
    """
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed = time.perf_counter() - start

        # Route template keeps label cardinality bounded
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        REQ_COUNT.labels(path=path, method=request.method, code=str(response.status_code)).inc()
        REQ_LATENCY.labels(path=path, method=request.method).observe(elapsed)
        return response

@contextmanager
def time_inference(engine: str):
    start = time.perf_counter()
    try:
        yield
    finally:
        ML_INFERENCE_LATENCY.labels(engine=engine).observe(time.perf_counter() - start)

def record_prediction(engine: str, path: str) -> None:
    ML_PREDICTIONS.labels(engine=engine, path=path).inc()

def record_model_loaded(engine: str, loaded: bool) -> None:
    ML_MODEL_LOADED.labels(engine=engine).set(1 if loaded else 0)

def record_side_effect(kind: str, stored: bool) -> None:
    ML_SIDE_EFFECTS.labels(kind=kind, outcome="stored" if stored else "failed").inc()

async def metrics_endpoint(request: Request):
    """GET /v1/metrics, scraped by Prometheus."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
