"""
HTTP Middleware for the Magnify service.

- `ErrorHandlingMiddleware`: Turns a `MagnifyError` escaping an endpoint into
  `{"error": {...}}` with the mapped status; anything else becomes a bare 500.
- `RequestTimingMiddleware`: Adds `X-Process-Time` (milliseconds) and logs one
  line per request.
"""

import time
from typing import Any, Callable, Dict, Optional
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .logging_config import get_logger
from .exceptions import MagnifyError, to_http_exception

logger = get_logger("core.middleware")


def _error_response(
    status_code: int,
    error_type: str,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    error = {"type": error_type, "code": code, "message": message}
    if details is not None:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"error": error})


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Maps application errors onto JSON error responses"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        route = f"{request.method} {request.url.path}"
        try:
            return await call_next(request)
        except MagnifyError as e:
            status_code = to_http_exception(e).status_code
            log = logger.warning if status_code < 500 else logger.error
            log(f"{route} failed with {e.error_code}: {e.message}")
            return _error_response(
                status_code, type(e).__name__, e.error_code, e.message, e.details
            )
        except Exception as e:
            logger.error(f"{route} crashed: {e!r}", exc_info=True)
            return _error_response(
                500, "InternalServerError", "INTERNAL_ERROR", "An unexpected error occurred"
            )


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        response.headers["X-Process-Time"] = str(elapsed_ms)
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} in {elapsed_ms}ms"
        )
        return response
