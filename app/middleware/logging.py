"""Structured logging setup and per-request access logging."""

import logging
import sys
import time
import uuid
from collections.abc import Callable
from typing import Any

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings

# Event keys whose values must never reach log output
REDACTED_KEYS = frozenset({"code", "verification_code", "code_hash", "phone", "token"})

# Paths polled by probes and scrapers; logged at debug level only
QUIET_PATHS = frozenset({"/metrics", "/api/v1/health", "/api/v1/health/ready"})


def redact_sensitive(_logger: Any, _method: str, event_dict: dict) -> dict:
    """Mask verification codes, phone numbers and tokens."""
    for key in REDACTED_KEYS.intersection(event_dict):
        value = event_dict[key]
        if key == "phone" and isinstance(value, str) and len(value) > 4:
            event_dict[key] = "*" * (len(value) - 4) + value[-4:]
        else:
            event_dict[key] = "***"
    return event_dict


def build_processors(log_format: str) -> list:
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    return processors


def configure_logging() -> None:
    """Route structlog through the stdlib root logger at the configured level."""
    structlog.configure(
        processors=build_processors(settings.log_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )
    # Access lines come from LoggingMiddleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def scope_context(request: Request) -> dict[str, str]:
    """Business identifiers carried in the route, if any."""
    params = request.path_params
    context = {}
    if "business_id" in params:
        context["business_id"] = str(params["business_id"])
    if "slug" in params:
        context["business_slug"] = str(params["slug"])
    if "booking_number" in params:
        context["booking_number"] = str(params["booking_number"])
    return context


class LoggingMiddleware(BaseHTTPMiddleware):
    """Emit one structured line per request and tag it with a request id."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        """
        Log the request outcome.

        Every log line emitted while handling the request carries the
        request id, so booking and transition events can be traced back to
        the call that produced them. An inbound ``X-Request-ID`` header is
        reused when present.
        """
        logger = structlog.get_logger("scheduler.access")

        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        path = request.url.path
        log = logger.debug if path in QUIET_PATHS else logger.info
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                method=request.method,
                path=path,
                error=str(e),
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                **scope_context(request),
            )
            raise

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        log(
            "request_completed",
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration_ms=duration_ms,
            client=request.client.host if request.client else None,
            **scope_context(request),
        )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms / 1000:.4f}"
        return response
