"""HTTP middleware: request tracing, timing and error responses."""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .exceptions import WorkflowEngineError, create_error_response, http_status_for_error
from .logging import get_logger, logging_context

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _error_response(error: WorkflowEngineError, request: Request, request_id: Optional[str] = None) -> JSONResponse:
    status_code = http_status_for_error(error)
    # Client mistakes are warnings; only storage and config failures are errors
    log = logger.error if status_code >= 500 else logger.warning
    log(
        f"{request.method} {request.url.path} rejected with {status_code} "
        f"({error.error_code}): {error.message}",
        extra={"extra_fields": {"error_details": error.to_dict()}}
    )
    headers = {REQUEST_ID_HEADER: request_id} if request_id else None
    return JSONResponse(status_code=status_code, content=create_error_response(error), headers=headers)


async def workflow_error_handler(request: Request, error: WorkflowEngineError) -> JSONResponse:
    return _error_response(error, request, getattr(request.state, "request_id", None))


def register_exception_handlers(app: FastAPI) -> None:
    """Map every :class:`WorkflowEngineError` raised by a route to its JSON error body."""
    app.add_exception_handler(WorkflowEngineError, workflow_error_handler)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and turns unexpected exceptions into a 500 body.

    A caller-supplied ``X-Request-ID`` is reused so traces can be joined across services.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        with logging_context(request_id=request_id, user_id=request.headers.get("X-User-Id")):
            try:
                response = await call_next(request)
            except WorkflowEngineError as e:
                return _error_response(e, request, request_id)
            except Exception as e:
                logger.error(
                    f"Unhandled {type(e).__name__} on {request.method} {request.url.path} "
                    f"after {time.perf_counter() - started:.3f}s",
                    exc_info=True
                )
                body = {
                    "error": "InternalServerError",
                    "message": "An unexpected error occurred",
                    "details": {
                        "error_type": type(e).__name__,
                        "timestamp": datetime.now(timezone.utc).isoformat(),
                    },
                    "request_id": request_id,
                }
                return JSONResponse(status_code=500, content=body, headers={REQUEST_ID_HEADER: request_id})

            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} "
                f"in {time.perf_counter() - started:.3f}s"
            )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Debug-level dump of query parameters for each request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.query_params:
            logger.debug(f"{request.method} {request.url.path} query={dict(request.query_params)}")
        return await call_next(request)


class PerformanceMonitoringMiddleware(BaseHTTPMiddleware):
    """Adds ``X-Response-Time`` and warns about requests slower than the threshold."""

    def __init__(self, app, slow_request_threshold: float = 5.0):
        super().__init__(app)
        self.slow_request_threshold = slow_request_threshold

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        if elapsed > self.slow_request_threshold:
            logger.warning(
                f"Slow request: {request.method} {request.url.path} took {elapsed:.3f}s "
                f"(threshold {self.slow_request_threshold}s)"
            )
        response.headers["X-Response-Time"] = f"{elapsed:.3f}s"
        return response
