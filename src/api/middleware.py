"""Request context middleware: binds a request id into every log line."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from uuid_extensions import uuid7

from src.core.logging import get_logger

log = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


async def request_context(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Bind ``request_id``/``path`` to structlog contextvars for the request's lifetime.

    An incoming ``X-Request-ID`` is reused; otherwise a fresh one is minted
    and echoed back on the response.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid7())
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )
    start = time.perf_counter()
    try:
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        log.info(
            "http_request",
            status=response.status_code,
            elapsed_ms=round((time.perf_counter() - start) * 1000, 1),
        )
        return response
    finally:
        structlog.contextvars.clear_contextvars()
