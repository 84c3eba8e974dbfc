"""Structured logging and request correlation middleware.

Provides:
- Request-ID generation and propagation
- JSON log lines with method, path, status and latency
"""

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

_STRUCTURED_FIELDS = ('request_id', 'method', 'path', 'status', 'latency_ms')


class JSONFormatter(logging.Formatter):
    """Format logs as JSON with standard fields."""

    def format(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        timestamp = dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

        log_data = {
            "timestamp": timestamp,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value:
                log_data[name] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_structured_logging(level: int = logging.INFO) -> None:
    """Install the JSON formatter on the root logger (once)."""
    logger = logging.getLogger()

    if logger.handlers and any(isinstance(h.formatter, JSONFormatter) for h in logger.handlers):
        return

    logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request id to request.state and the X-Request-ID header."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        response = await call_next(request)
        latency_ms = (time.time() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{latency_ms:.2f}ms"
        return response


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with structured fields.

    INFO for normal requests, WARNING for 4xx, ERROR for 5xx.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        logger = logging.getLogger("workbench_web.http")
        request_id = getattr(request.state, "request_id", None)

        start_time = time.time()
        response = await call_next(request)
        latency_ms = (time.time() - start_time) * 1000

        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO

        path = request.scope["path"]
        logger.log(
            level,
            "%s %s -> %s", request.method, path, response.status_code,
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": path,
                "status": response.status_code,
                "latency_ms": round(latency_ms, 2),
            },
        )
        return response


def add_logging_middleware(app: FastAPI) -> None:
    """Add structured logging and request correlation middleware to app.

    RequestIDMiddleware is added last so it runs first and the logging
    middleware sees the request id.

    Args:
        app: FastAPI application
    """
    configure_structured_logging()

    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    logging.getLogger(__name__).debug("Structured logging middleware added")
