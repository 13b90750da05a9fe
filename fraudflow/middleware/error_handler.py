"""
Global Error Handling.

- ErrorHandlerMiddleware: catch-all for unhandled exceptions, just inside CORS
- fraudflow_error_handler: maps FraudFlowError subclasses to their HTTP status

Both return the same JSON shape and never leak stack traces. Every error
gets a unique error_id for correlation with server logs.
"""

import traceback
import uuid

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from fraudflow.errors import FraudFlowError

logger = structlog.get_logger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Catches everything raised below it. Sits directly inside CORSMiddleware.

    Returns structured error responses:
    {
      "error": "human-readable message",
      "error_id": "uuid for log correlation",
      "status": 500
    }
    """

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            error_id = str(uuid.uuid4())

            logger.error(
                "unhandled_exception",
                error_id=error_id,
                path=request.url.path,
                method=request.method,
                error=str(exc),
                traceback=traceback.format_exc(),
            )

            body: dict = {
                "error": "An internal error occurred. Please try again later.",
                "error_id": error_id,
                "status": 500,
            }
            # In debug mode, add type hint ONLY (not full traceback)
            if self.debug:
                body["debug_hint"] = type(exc).__name__

            return JSONResponse(status_code=500, content=body)


async def fraudflow_error_handler(request: Request, exc: FraudFlowError) -> JSONResponse:
    error_id = str(uuid.uuid4())
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_failed",
        error_id=error_id,
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        error=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.message or type(exc).__name__,
            "error_type": type(exc).__name__,
            "error_id": error_id,
            "status": exc.status_code,
        },
    )
