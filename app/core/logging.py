"""
Structured logging

structlog on top of stdlib logging. Every HTTP request and every WebSocket
connection gets an id that is bound into the log context, so the events of one
request (or one socket's lifetime) can be pulled out of the stream together.
"""

import logging
import sys
import time
import uuid
from typing import Any, Optional

import structlog
from pythonjsonlogger import jsonlogger

from app.core.config import settings

_HANDLER_FLAG = "_chat_backend_handler"


def clip_long_values(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Shorten oversized string values such as base64 image payloads"""
    limit = settings.log_max_value_length
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str) and len(value) > limit:
            event_dict[key] = f"{value[:limit]}...(+{len(value) - limit} chars)"
    return event_dict


def setup_logging(level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """Install the stdout handler and configure structlog. Safe to call repeatedly."""
    level_name = (level or settings.log_level).upper()
    if json_logs is None:
        json_logs = settings.is_production

    if json_logs:
        formatter = jsonlogger.JsonFormatter("%(asctime)s %(name)s %(levelname)s %(message)s")
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)-7s %(name)s | %(message)s")

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))
    for existing in list(root_logger.handlers):
        if getattr(existing, _HANDLER_FLAG, False):
            root_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    setattr(handler, _HANDLER_FLAG, True)
    root_logger.addHandler(handler)

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            clip_long_values,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def _header(scope, name: bytes) -> Optional[str]:
    for key, value in scope.get("headers", []):
        if key.lower() == name:
            return value.decode("latin-1")
    return None


class RequestIDMiddleware:
    """
    Binds `request_id` (HTTP) or `connection_id` (WebSocket) into the structlog
    context for the lifetime of the scope. An incoming X-Request-ID is reused,
    and HTTP responses echo the id back.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        if scope["type"] == "websocket":
            with structlog.contextvars.bound_contextvars(connection_id=uuid.uuid4().hex[:12]):
                await self.app(scope, receive, send)
            return

        request_id = _header(scope, b"x-request-id") or str(uuid.uuid4())

        async def send_with_request_id(message):
            if message["type"] == "http.response.start":
                message["headers"] = [
                    *message.get("headers", []),
                    (b"x-request-id", request_id.encode("latin-1")),
                ]
            await send(message)

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            await self.app(scope, receive, send_with_request_id)


class RequestLoggingMiddleware:
    """One `request.end` event per HTTP request with status and duration"""

    def __init__(self, app):
        self.app = app
        self.logger = get_logger("app.request")

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.perf_counter()
        status_code = 500

        async def capture_status(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, capture_status)
        finally:
            log = self.logger.warning if status_code >= 500 else self.logger.info
            log(
                "request.end",
                method=scope.get("method"),
                path=scope.get("path"),
                status_code=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )


class LatencyLogger:
    """
    Times a block and logs `<operation>.latency`. Blocks slower than
    settings.log_slow_ms, or that raise, are logged as warnings.
    """

    def __init__(self, operation: str, logger: structlog.stdlib.BoundLogger):
        self.operation = operation
        self.logger = logger
        self.started = 0.0

    def __enter__(self):
        self.started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        latency_ms = (time.perf_counter() - self.started) * 1000
        slow = latency_ms > settings.log_slow_ms
        log = self.logger.warning if slow or exc_type else self.logger.debug
        log(
            f"{self.operation}.latency",
            latency_ms=round(latency_ms, 2),
            slow=slow,
            success=exc_type is None,
        )
        return False
