import logging
import json
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .config import settings

# Request id of the request currently being served (None outside requests)
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

class JsonFormatter(logging.Formatter):
    """
    One JSON object per line. Structured fields go in `extra={"context": {...}}`
    and come out under "context".
    """
    def format(self, record):
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "env": settings.ENV,
        }
        rid = getattr(record, "request_id", None)
        if rid:
            payload["request_id"] = rid
        context = getattr(record, "context", None)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)

class RequestIdFilter(logging.Filter):
    def filter(self, record):
        if not getattr(record, "request_id", None):
            record.request_id = request_id_var.get()
        return True

def configure_logging(level: str | None = None):
    """
    Install the JSON handler on the root logger (replacing uvicorn's
    default formatter) so every record is one structured line.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestIdFilter())
    root.handlers = [handler]
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

def log_context(**fields) -> dict:
    """Shorthand for `extra=` that drops None values."""
    return {"context": {k: v for k, v in fields.items() if v is not None}}

class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Reuses the caller's X-Request-Id (or mints one), exposes it to log
    records for the duration of the request and echoes it on the response.
    """
    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        try:
            response: Response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-Id"] = request_id
        return response
