"""X-Request-ID middleware: reuse a caller-supplied UUID or mint one."""

from __future__ import annotations

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

log = structlog.get_logger("commitsync.api")

REQUEST_ID_HEADER = "X-Request-ID"


def _request_id(raw: str | None) -> str:
    if raw:
        try:
            return str(uuid.UUID(raw))
        except ValueError:
            pass
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind request_id/method/path into structlog contextvars for each request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _request_id(request.headers.get(REQUEST_ID_HEADER))
        tokens = structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        start = time.perf_counter()
        try:
            response = await call_next(request)
            log.info(
                "http.request", status_code=response.status_code, duration_ms=_elapsed_ms(start)
            )
        except Exception:
            log.exception("http.request_failed", duration_ms=_elapsed_ms(start))
            raise
        finally:
            structlog.contextvars.reset_contextvars(**tokens)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)
