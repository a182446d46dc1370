"""API middleware and exception handlers for logging, rate limiting, and errors."""
import time
import uuid
from typing import Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import settings
from ..core.exceptions import BaseAPIException, RateLimitExceeded, ValidationError
from ..core.logging import RequestLogger, SecurityLogger

logger = structlog.get_logger(__name__)


def error_response(
    status_code: int,
    message: str,
    error_code: str,
    details: dict = None,
    headers: dict = None
) -> JSONResponse:
    """Uniform error envelope."""
    return JSONResponse(
        status_code=status_code,
        content={
            "message": message,
            "error_code": error_code,
            "details": details or {},
            "timestamp": time.time()
        },
        headers=headers,
    )


async def api_exception_handler(request: Request, exc: BaseAPIException) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return error_response(exc.status_code, exc.message, exc.error_code, exc.details, headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(
        exc.status_code,
        str(exc.detail),
        "HTTP_EXCEPTION",
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = ValidationError(details={"errors": jsonable_encoder(exc.errors())})
    return error_response(error.status_code, error.message, error.error_code, error.details)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BaseAPIException, api_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging requests and responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Generate request ID
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        RequestLogger.log_request(
            method=request.method,
            path=str(request.url.path),
            request_id=request_id,
            extra_data={
                "client_ip": request.client.host if request.client else None,
                "user_agent": request.headers.get("user-agent")
            }
        )

        response = await call_next(request)

        response_time_ms = (time.time() - start_time) * 1000

        # Set by the authorization dependency, if the route had one
        user = getattr(request.state, "user", None)
        RequestLogger.log_response(
            method=request.method,
            path=str(request.url.path),
            status_code=response.status_code,
            response_time_ms=response_time_ms,
            user_id=str(user.id) if user is not None else None,
            request_id=request_id
        )

        response.headers["X-Request-ID"] = request_id

        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Last-resort conversion of escaped exceptions into JSON errors."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except BaseAPIException as e:
            return error_response(e.status_code, e.message, e.error_code, e.details)

        except Exception as e:
            logger.exception(
                "unhandled_exception",
                method=request.method,
                path=str(request.url.path),
            )
            return error_response(
                500,
                "Erreur serveur interne",
                "INTERNAL_ERROR",
                {"message": str(e)} if settings.debug else {},
            )


class RateLimitingMiddleware(BaseHTTPMiddleware):
    """Simple in-memory per-client rate limiting middleware."""

    def __init__(self, app, requests_per_minute: int = 60, window_seconds: int = 60):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.window_seconds = window_seconds
        self.request_times = {}  # client_ip -> list of request times
        self._last_sweep = time.time()

    def _sweep(self, current_time: float) -> None:
        """Forget clients with no request left in the window."""
        stale = [
            client_ip for client_ip, times in self.request_times.items()
            if not times or current_time - times[-1] >= self.window_seconds
        ]
        for client_ip in stale:
            del self.request_times[client_ip]
        self._last_sweep = current_time

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not settings.api.rate_limit_enabled:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        current_time = time.time()

        if current_time - self._last_sweep >= self.window_seconds:
            self._sweep(current_time)

        # Drop requests that left the window
        self.request_times[client_ip] = [
            req_time for req_time in self.request_times.get(client_ip, [])
            if current_time - req_time < self.window_seconds
        ]

        if len(self.request_times[client_ip]) >= self.requests_per_minute:
            SecurityLogger.log_rate_limit_exceeded(
                ip_address=client_ip,
                path=str(request.url.path)
            )
            exc = RateLimitExceeded()
            return error_response(exc.status_code, exc.message, exc.error_code)

        self.request_times[client_ip].append(current_time)

        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response
