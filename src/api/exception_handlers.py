"""
Global exception handlers for FastAPI.

Only InvalidInputError (400), SessionNotFoundError (404) and
AllProvidersExhaustedError (503) are user-visible failures. Backend error
details are logged, never returned.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

import structlog

from src.core.exceptions import (
    AllProvidersExhaustedError,
    ConfigurationError,
    InvalidInputError,
    ReflectionEngineError,
    SessionNotFoundError,
)

log = structlog.get_logger(__name__)

RETRY_AFTER_SECONDS = 30


def _error(status_code: int, error_type: str, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"type": error_type, "message": message}},
        headers=headers,
    )


def setup_exception_handlers(app: FastAPI):
    """Register custom exception handlers with the FastAPI application."""

    @app.exception_handler(InvalidInputError)
    async def invalid_input_handler(
        request: Request,
        exc: InvalidInputError,
    ) -> JSONResponse:
        log.info("invalid_input", path=request.url.path, message=exc.message)
        return _error(status.HTTP_400_BAD_REQUEST, "InvalidInput", exc.message)

    @app.exception_handler(SessionNotFoundError)
    async def session_not_found_handler(
        request: Request,
        exc: SessionNotFoundError,
    ) -> JSONResponse:
        log.warning("session_not_found", path=request.url.path, message=exc.message)
        return _error(status.HTTP_404_NOT_FOUND, "SessionNotFound", exc.message)

    @app.exception_handler(AllProvidersExhaustedError)
    async def providers_exhausted_handler(
        request: Request,
        exc: AllProvidersExhaustedError,
    ) -> JSONResponse:
        """Generic retry-later answer; per-provider failures go to the log only."""
        log.error(
            "providers_exhausted_response",
            path=request.url.path,
            failures=exc.failures,
        )
        return _error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "ServiceUnavailable",
            "We couldn't reflect on that right now. Please try again in a moment.",
            headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request,
        exc: ConfigurationError,
    ) -> JSONResponse:
        """Handle configuration errors with HTTP 500 status."""
        log.error(
            "configuration_error",
            path=request.url.path,
            message=exc.message,
        )
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "ConfigurationError",
            "Server configuration error",
        )

    @app.exception_handler(ReflectionEngineError)
    async def engine_error_handler(
        request: Request,
        exc: ReflectionEngineError,
    ) -> JSONResponse:
        log.error(
            "request_error",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            message=exc.message,
        )
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "InternalServerError",
            "An unexpected error occurred",
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Handle all unhandled exceptions with HTTP 500 status."""
        log.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            message=str(exc),
            exc_info=exc,
        )
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "InternalServerError",
            "An unexpected error occurred",
        )
