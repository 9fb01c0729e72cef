"""HTTP middleware for request ID propagation and request logging.

The middleware:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for access throughout the request lifecycle
- Logs one line when the request arrives and one when the response leaves
  (paths listed in LOG_EXCLUDE_PATHS are not logged)
- Injects request_id and total duration into response headers
- Clears context after request completion to prevent context leaks

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from app.core.logging import clear_request_id, set_request_id

logger = logging.getLogger("app.http")


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def request_id_middleware(request: Request, call_next) -> Response:
    """Correlate, time and log every HTTP request/response pair.

    If the client provides an X-Request-ID header (configurable via
    LOG_REQUEST_ID_HEADER), that value is used. Otherwise, a new UUID
    is generated. The ID is then propagated back in the response headers
    and stored in contextvars for log correlation.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The response from the next handler with request_id and
            duration headers added.
    """

    log_settings = request.app.state.settings.log
    header_name = log_settings.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    should_log = request.url.path not in log_settings.exclude_paths

    set_request_id(request_id)
    start = time.perf_counter()
    try:
        if should_log:
            logger.info(
                "http.request",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "client": _client_host(request),
                    "user_agent": request.headers.get("user-agent"),
                },
            )
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        if should_log:
            logger.info(
                "http.response",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                },
            )
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
