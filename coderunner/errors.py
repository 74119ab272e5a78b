"""Error taxonomy for the execution engine.

This module provides:
1. Exception classes for engine failures that are raised (readiness,
   bootstrap, protocol decoding, invalid input)
2. Error kind constants used inside result structures for failures that are
   captured rather than raised (execution errors, timeouts)
3. Exception handlers for FastAPI

Usage:
    from coderunner.errors import EnvironmentNotReady, ProtocolError

    if not manager.is_ready:
        raise EnvironmentNotReady(detail="Python environment is not ready.")

    # Register handlers in main.py:
    from coderunner.errors import register_exception_handlers
    register_exception_handlers(app)
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)

KIND_ENVIRONMENT_NOT_READY = "EnvironmentNotReady"
KIND_TIMEOUT = "Timeout"
KIND_PROTOCOL = "ProtocolError"


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str
    detail: str | None = None
    error_code: str | None = None
    context: dict[str, Any] | None = None


class EngineError(Exception):
    """Base class for engine errors."""

    status_code: int = 500
    error: str = "internal_error"
    detail: str = "An unexpected error occurred"

    def __init__(
        self,
        detail: str | None = None,
        error_code: str | None = None,
        **context: Any,
    ) -> None:
        self.detail = detail or self.__class__.detail
        self.error_code = error_code
        self.context = context if context else None
        super().__init__(self.detail)

    def to_response(self) -> ErrorResponse:
        """Convert exception to error response model."""
        return ErrorResponse(
            error=self.error,
            detail=self.detail,
            error_code=self.error_code,
            context=self.context,
        )


class EnvironmentNotReady(EngineError):
    """The runtime is not initialized yet or failed to initialize (503)."""

    status_code = 503
    error = "environment_not_ready"
    detail = "Python environment is not ready. Please wait."


class InitializationError(EngineError):
    """Bootstrapping the runtime failed (503)."""

    status_code = 503
    error = "initialization_error"
    detail = "Python environment failed to initialize"


class ProtocolError(EngineError):
    """A marker-delimited payload is missing, malformed or mismatched (502)."""

    status_code = 502
    error = "protocol_error"
    detail = "Could not decode runtime output"


class ExecutionFailed(EngineError):
    """The runtime could not produce a result for the request (422)."""

    status_code = 422
    error = "execution_error"
    detail = "Error during Python execution"


class InvalidTestError(EngineError):
    """A test snippet cannot be added (400)."""

    status_code = 400
    error = "bad_request"
    detail = "Test code must not be empty"


class NotFoundError(EngineError):
    """Resource not found error (404)."""

    status_code = 404
    error = "not_found"
    detail = "Resource not found"


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    """Handle engine errors raised while serving a request."""
    logger.warning(
        "Engine error: %s (status=%d, path=%s)",
        exc.detail,
        exc.status_code,
        request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(exclude_none=True),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(EngineError, engine_error_handler)
