"""Per-request correlation ids and request completion logging"""

import re
import time
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from gitgate.infrastructure.logging import bind_context, get_logger, unbind_context

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

# Client-supplied ids are echoed into logs and headers
_VALID_CORRELATION_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

correlation_id_var: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)


def _incoming_correlation_id(request: Request) -> str:
    supplied = request.headers.get(CORRELATION_HEADER)
    if supplied and _VALID_CORRELATION_ID.match(supplied):
        return supplied
    return str(uuid.uuid4())


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        correlation_id = _incoming_correlation_id(request)
        token = correlation_id_var.set(correlation_id)
        bind_context(
            correlation_id=correlation_id,
            request_method=request.method,
            request_path=request.url.path,
        )

        start = time.monotonic()
        try:
            response: Response = await call_next(request)
            response.headers[CORRELATION_HEADER] = correlation_id
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_ms=round((time.monotonic() - start) * 1000, 2),
            )
            return response
        finally:
            unbind_context("correlation_id", "request_method", "request_path")
            correlation_id_var.reset(token)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()
