"""Per-request correlation id, shared by log lines and audit events"""
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from ...utils.logger import set_correlation_id, get_logger
from ...utils.idgen import generate_correlation_id

CORRELATION_HEADER = "X-Correlation-Id"

logger = get_logger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Takes the caller's X-Correlation-Id when present, mints one otherwise, and echoes it back"""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or generate_correlation_id()
        set_correlation_id(correlation_id)

        started = time.perf_counter()
        response = await call_next(request)
        logger.debug(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={"elapsed_ms": round((time.perf_counter() - started) * 1000, 1)}
        )
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
