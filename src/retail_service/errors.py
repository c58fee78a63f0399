"""Domain errors carrying stable error codes for API clients."""
from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import NoResultFound


class ServiceError(Exception):
    """Base class for errors that map onto a JSON error payload."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_request"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class InsufficientStockError(ConflictError):
    code = "insufficient_stock"


class PlanLimitExceeded(ServiceError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "plan_limit_exceeded"


class AuthenticationError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "not_authenticated"


class PermissionDenied(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "code": exc.code, "detail": exc.message},
        headers=headers,
    )


async def _not_found_handler(request: Request, exc: NoResultFound) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"status": "error", "code": NotFoundError.code, "detail": str(exc) or "Not found"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(NoResultFound, _not_found_handler)


__all__ = [
    "ServiceError",
    "NotFoundError",
    "ConflictError",
    "InsufficientStockError",
    "PlanLimitExceeded",
    "AuthenticationError",
    "PermissionDenied",
    "register_error_handlers",
]
