"""
Observability middleware and logging setup.

Every request gets a correlation ID (taken from X-Correlation-ID or freshly
generated). It is stored in a context variable so that log lines written by
the domain services during that request (activations, collections,
commission payments, settlement decisions) carry the same ID as the
request's access log line.
"""

import time
import uuid
import logging
from contextvars import ContextVar
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

CORRELATION_HEADER = "X-Correlation-ID"

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")

logger = logging.getLogger("investment_platform.requests")


class CorrelationIdFilter(logging.Filter):
    """Stamp each record with the current request's correlation ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once at start-up."""
    handler = logging.StreamHandler()
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] [%(correlation_id)s] %(message)s"
    ))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(isinstance(f, CorrelationIdFilter) for h in root.handlers for f in h.filters):
        root.addHandler(handler)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        request.state.correlation_id = correlation_id
        token = correlation_id_var.set(correlation_id)
        try:
            start_time = time.perf_counter()
            response = await call_next(request)
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

            response.headers[CORRELATION_HEADER] = correlation_id
            response.headers["X-Process-Time"] = str(duration_ms)

            client_ip = request.client.host if request.client else "unknown"
            message = "%s %s -> %s (%.2f ms, ip=%s)"
            args = (request.method, request.url.path, response.status_code, duration_ms, client_ip)

            if response.status_code >= 500:
                logger.error(message, *args)
            elif response.status_code >= 400:
                logger.warning(message, *args)
            else:
                logger.info(message, *args)

            return response
        finally:
            correlation_id_var.reset(token)
