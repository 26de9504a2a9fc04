import hmac
from datetime import datetime, timezone
from fastapi import Header, HTTPException, Request
from starlette.status import HTTP_401_UNAUTHORIZED, HTTP_429_TOO_MANY_REQUESTS
from .config import settings, Settings
from .cache import Cache

# Counters expire a little after their minute bucket closes
_RATE_WINDOW_SECONDS = 90
_rate_counters = Cache(namespace="rate")

def _config(request: Request) -> Settings:
    return getattr(request.app.state, "config", settings)

def require_api_key(
    request: Request,
    x_api_key: str | None = Header(default=None, alias="x-api-key"),
):
    """
    Service-to-service key check on the scoring routes.
    The marketplace backend holds the key; end users never see it.
    """
    expected = _config(request).API_KEY
    if not expected:
        # If unset, we allow requests (dev convenience).
        return
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid API key")

def rate_limit(request: Request):
    """
    Per-minute request cap for the scoring routes.
    Counted per caller (API key, else client IP) and per route, so a burst of
    fraud checks does not starve price estimates.
    """
    rpm = max(1, _config(request).RATE_LIMIT_RPM)
    caller = request.headers.get("x-api-key") or (request.client.host if request.client else "unknown")
    route = getattr(request.scope.get("route"), "path", request.url.path)
    minute_bucket = datetime.now(timezone.utc).strftime("%Y%m%d%H%M")

    count = _rate_counters.incr(f"{caller}:{route}:{minute_bucket}", _RATE_WINDOW_SECONDS)
    if count > rpm:
        raise HTTPException(status_code=HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")
