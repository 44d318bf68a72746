from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from datetime import UTC, datetime
from typing import Any, Dict, MutableMapping, Tuple

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


class JsonFormatter(logging.Formatter):
    """One JSON object per record; structured fields come from `extra={"extra": ...}`."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        fields = getattr(record, "extra", None)
        if isinstance(fields, dict):
            payload.update(fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: int = logging.INFO) -> None:
    """Send every record to stdout as JSON, replacing handlers set by libraries."""

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)


class SecurityLogAdapter(logging.LoggerAdapter):
    """Logger bound to one traded security.

    Adds `security_symbol` (and any other bound fields) to the structured
    fields of every record; fields passed at the call site win.
    """

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        fields = dict(self.extra or {})
        fields.update(extra.get("extra") or {})
        extra["extra"] = fields
        kwargs["extra"] = extra
        return msg, kwargs


def security_logger(
    logger: logging.Logger, security_symbol: str, **fields: Any
) -> SecurityLogAdapter:
    return SecurityLogAdapter(logger, {"security_symbol": security_symbol, **fields})


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags each request with an X-Request-ID and logs method, path, status and latency."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start) * 1000)
        response.headers["X-Request-ID"] = correlation_id

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logging.getLogger("cryptowick.request").log(
            level,
            "HTTP request",
            extra={
                "extra": {
                    "correlation_id": correlation_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                }
            },
        )
        return response


def log_with_correlation(
    logger: logging.Logger,
    request: Request,
    level: int,
    message: str,
    **fields: Any,
) -> None:
    """Log `message` with the current request's correlation id attached."""

    fields["correlation_id"] = getattr(request.state, "correlation_id", None)
    logger.log(level, message, extra={"extra": fields})


__all__ = [
    "JsonFormatter",
    "RequestContextMiddleware",
    "SecurityLogAdapter",
    "configure_logging",
    "log_with_correlation",
    "security_logger",
]
