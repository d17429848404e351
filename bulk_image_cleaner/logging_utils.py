from __future__ import annotations
import logging
import os
import time
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# Per-request correlation ID
correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="-")

_LINE_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        # provide %(correlation_id)s to all formatters
        record.correlation_id = correlation_id_ctx.get()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        import json

        payload = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "-"),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


_CONFIGURED = False


def env_truthy(name: str, default: str = "true") -> bool:
    val = os.getenv(name, default)
    return str(val or default).strip().lower() in {"true", "1", "t", "yes", "y", "on"}


def setup_logging(level: Optional[int] = None, json_lines: Optional[bool] = None) -> None:
    """
    Idempotent logging setup that ensures %(correlation_id)s is available in all log lines.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    filt = CorrelationIdFilter()
    root = logging.getLogger()
    root.addFilter(filt)

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LINE_FORMAT))
        handler.addFilter(filt)
        root.addHandler(handler)
        root.setLevel(level or logging.INFO)
    else:
        for h in list(root.handlers):
            # Ensure formatter includes correlation_id
            fmt = getattr(h.formatter, "_fmt", "") if h.formatter else ""
            if "%(correlation_id)" not in (fmt or ""):
                h.setFormatter(logging.Formatter(_LINE_FORMAT))
            h.addFilter(filt)

    if json_lines is None:
        json_lines = env_truthy("LOG_JSON", "false")
    if json_lines:
        for h in root.handlers:
            h.setFormatter(JsonFormatter())

    # Common FastAPI/Uvicorn loggers
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
        logging.getLogger(name).addFilter(filt)

    _CONFIGURED = True


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    - Generates UUID correlation ID per request (also in request.state.correlation_id)
    - Logs start/end/errors (gated by LOG_REQUESTS, default true)
    - Adds X-Correlation-ID response header
    """

    def __init__(self, app, log_requests: Optional[bool] = None):
        super().__init__(app)
        self._logger = logging.getLogger("request")
        self._log_requests = (
            env_truthy("LOG_REQUESTS", "true") if log_requests is None else log_requests
        )

    async def dispatch(self, request: Request, call_next):
        cid = request.headers.get("X-Correlation-ID") or uuid.uuid4().hex
        token = correlation_id_ctx.set(cid)
        request.state.correlation_id = cid

        method = request.method
        path = request.url.path
        client = request.client.host if request.client else "-"
        start = time.perf_counter()

        if self._log_requests:
            self._logger.info(">> %s %s client=%s", method, path, client)

        try:
            response: Response = await call_next(request)
            dur_ms = int((time.perf_counter() - start) * 1000)
            response.headers["X-Correlation-ID"] = cid
            if self._log_requests:
                self._logger.info(
                    "<< %s %s %d %dms", method, path, response.status_code, dur_ms
                )
            return response
        except Exception as e:
            dur_ms = int((time.perf_counter() - start) * 1000)
            # Always log exceptions
            self._logger.exception(
                "!! %s %s error after %dms: %s", method, path, dur_ms, e
            )
            raise
        finally:
            correlation_id_ctx.reset(token)
