"""
Structured JSON logging for the analytics service.

This module provides:
- JSONLogFormatter: one JSON object per log line, container-log friendly
- setup_logging(): installs the formatter on the root and uvicorn loggers
- RequestLoggingMiddleware: ASGI middleware logging one line per HTTP request
- get_logger(): module logger accessor

Structured fields go through the 'extra_fields' key of the logging 'extra' dict:
    logger.info("Dataset loaded", extra={"extra_fields": {"records": 1200}})
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Optional, Union

# Severity names from Python logging levels
LEVEL_NAMES = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARNING",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "CRITICAL",
}


class JSONLogFormatter(logging.Formatter):
    """
    Formats each record as a single JSON object:

    {
        "severity": "INFO",
        "message": "Dataset loaded",
        "timestamp": "2024-01-15T10:30:00.000000+00:00",
        "logger": "shipping_analytics.services.dataset",
        "service": "shipping-analytics",
        "source": {"file": "...", "line": 42, "function": "load"},
        ...extra_fields
    }
    """

    def __init__(self, service_name: str = "shipping-analytics"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        # Base log entry
        entry = {
            "severity": LEVEL_NAMES.get(record.levelno, "DEFAULT"),
            "message": record.getMessage(),
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "logger": record.name,
            "service": self.service_name,
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        # Request id, set by RequestLoggingMiddleware from X-Request-ID
        request_id = getattr(record, "request_id", None)
        if request_id:
            entry["request_id"] = request_id

        # Add http_request if present (set by RequestLoggingMiddleware)
        http_request = getattr(record, "http_request", None)
        if http_request:
            entry["http_request"] = http_request

        # Add any extra fields passed via the 'extra' parameter
        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields and isinstance(extra_fields, dict):
            entry.update(extra_fields)

        # Add exception info if present
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(
    service_name: str = "shipping-analytics",
    level: Union[int, str] = logging.INFO,
) -> logging.Logger:
    """
    Configure the root logger to emit JSON lines on stderr.

    Args:
        service_name: Name stamped on every log line
        level: Logging level, as a number or a name such as "DEBUG"

    Returns:
        Configured root logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger()
    logger.setLevel(level)
    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    # Console handler with the JSON formatter
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(JSONLogFormatter(service_name=service_name))
    logger.addHandler(handler)

    # Route uvicorn's own loggers through the same handler
    for name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.addHandler(handler)
        uvicorn_logger.propagate = False  # Prevent duplicate logs

    return logger


class RequestLoggingMiddleware:
    """
    ASGI middleware logging method, path, status and latency of each request.

    4xx responses log at WARNING, 5xx at ERROR. The X-Request-ID header, when
    sent, is attached to the line.
    """

    def __init__(self, app, logger: Optional[logging.Logger] = None):
        self.app = app
        self.logger = logger or logging.getLogger(__name__)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        headers = dict(scope.get("headers", []))
        request_id = headers.get(b"x-request-id", b"").decode("utf-8", errors="ignore")

        # Capture response status code
        status_code = 500  # Default to 500 in case of unhandled error

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            latency_ms = (time.perf_counter() - start_time) * 1000

            # Build path with query string
            path = scope.get("path", "/")
            query_string = scope.get("query_string", b"").decode("utf-8", errors="ignore")
            if query_string:
                path = f"{path}?{query_string}"
            method = scope.get("method", "UNKNOWN")

            # Log level follows the status code
            if status_code >= 500:
                level = logging.ERROR
            elif status_code >= 400:
                level = logging.WARNING
            else:
                level = logging.INFO

            extra = {
                "http_request": {
                    "method": method,
                    "url": path,
                    "status": status_code,
                    "latency_ms": round(latency_ms, 1),
                },
            }
            if request_id:
                extra["request_id"] = request_id

            self.logger.log(level, f"{method} {path} {status_code} {latency_ms:.0f}ms", extra=extra)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
