"""Application error taxonomy.

Every error carries a stable machine-readable code and the HTTP status it maps
to. Services raise these; the Litestar exception handler renders them as:

    {"error": {"code": "NOT_FOUND", "message": "User not found", "details": {...}}}
"""

from typing import Any

import structlog
from litestar import Request, Response
from litestar.exceptions import HTTPException, ValidationException

logger = structlog.get_logger()


class AppError(Exception):
    """Base class for all application errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize error.

        Args:
            message: Human-readable message (safe to return to clients)
            details: Optional extra context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def with_detail(self, key: str, value: Any) -> "AppError":
        """Attach a detail entry and return self for chaining."""
        self.details[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the error response body."""
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return {"error": body}

    def __str__(self) -> str:
        cause = self.__cause__
        if cause is not None:
            return f"{self.code}: {self.message}: {cause}"
        return f"{self.code}: {self.message}"


class BadRequestError(AppError):
    code = "BAD_REQUEST"
    status_code = 400


class ValidationFailedError(AppError):
    code = "VALIDATION_FAILED"
    status_code = 400


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    status_code = 401


class InvalidCredentialsError(AppError):
    code = "INVALID_CREDENTIALS"
    status_code = 401


class TokenExpiredError(AppError):
    code = "TOKEN_EXPIRED"
    status_code = 401


class InvalidTokenError(AppError):
    code = "INVALID_TOKEN"
    status_code = 401


class ForbiddenError(AppError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(AppError):
    code = "CONFLICT"
    status_code = 409


class InternalError(AppError):
    code = "INTERNAL_ERROR"
    status_code = 500


class DatabaseError(AppError):
    code = "DATABASE_ERROR"
    status_code = 500


class ExternalServiceError(AppError):
    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 500


class ConfigError(AppError):
    code = "CONFIG_ERROR"
    status_code = 500


def app_error_handler(request: Request[Any, Any, Any], exc: AppError) -> Response[dict[str, Any]]:
    """Render an AppError as a JSON error response.

    Server errors are logged at error level with the chained cause,
    client errors at warning level.
    """
    log = logger.bind(
        code=exc.code,
        status=exc.status_code,
        method=request.method,
        path=request.url.path,
    )
    if exc.status_code >= 500:
        log.error(exc.message, cause=str(exc.__cause__) if exc.__cause__ else None)
    else:
        log.warning(exc.message)

    return Response(content=exc.to_dict(), status_code=exc.status_code)


def unhandled_error_handler(
    request: Request[Any, Any, Any], exc: Exception
) -> Response[dict[str, Any]]:
    """Convert an unexpected exception into an INTERNAL_ERROR response."""
    if isinstance(exc, AppError):
        return app_error_handler(request, exc)

    logger.exception(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
    )
    error = InternalError("Internal server error")
    return Response(content=error.to_dict(), status_code=error.status_code)


_HTTP_STATUS_CODES = {
    400: BadRequestError.code,
    401: UnauthorizedError.code,
    403: ForbiddenError.code,
    404: NotFoundError.code,
    409: ConflictError.code,
}


def http_exception_handler(
    request: Request[Any, Any, Any], exc: HTTPException
) -> Response[dict[str, Any]]:
    """Render framework exceptions (routing, request parsing) in the same shape."""
    if isinstance(exc, ValidationException):
        code = ValidationFailedError.code
    else:
        code = _HTTP_STATUS_CODES.get(exc.status_code, "HTTP_ERROR")

    body: dict[str, Any] = {"code": code, "message": exc.detail}
    if exc.extra:
        body["details"] = exc.extra if isinstance(exc.extra, dict) else {"errors": exc.extra}

    logger.warning(
        exc.detail,
        code=code,
        status=exc.status_code,
        method=request.method,
        path=request.url.path,
    )
    return Response(content={"error": body}, status_code=exc.status_code, headers=exc.headers)
