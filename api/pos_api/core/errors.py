"""Error taxonomy and the JSON envelope every failure is rendered into.

Services raise :class:`AppError` subclasses; the handlers registered by
:func:`register_exception_handlers` turn them (and framework errors) into
``{"success": false, "message": ..., "code": ...}`` responses.
"""
import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "BAD_REQUEST"

    def __init__(self, message: str, code: str | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details


class ValidationError(AppError):
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(AppError):
    code = "CONFLICT"


class InsufficientStockError(AppError):
    code = "INSUFFICIENT_STOCK"


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_TOKEN"


class PermissionDeniedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "INSUFFICIENT_PERMISSIONS"


class InternalError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"


# First offending field of a rejected payload -> stable error code.
FIELD_ERROR_CODES = {
    "name": "NAME_REQUIRED",
    "price": "INVALID_PRICE",
    "price_level_2": "INVALID_PRICE",
    "price_level_3": "INVALID_PRICE",
    "cost": "INVALID_COST",
    "stock": "INVALID_STOCK",
    "min_stock": "INVALID_MIN_STOCK",
    "unit_type": "INVALID_UNIT_TYPE",
    "product_id": "INVALID_PRODUCT_ID",
    "customer_id": "CUSTOMER_REQUIRED",
    "driver_id": "DRIVER_REQUIRED",
    "type": "INVALID_MOVEMENT_TYPE",
    "quantity": "INVALID_QUANTITY",
    "unit_price": "INVALID_UNIT_PRICE",
    "reason": "REASON_REQUIRED",
    "items": "NO_ITEMS",
    "total": "INVALID_TOTAL",
    "amount": "INVALID_AMOUNT",
    "payment_method": "INVALID_PAYMENT_METHOD",
    "payment_methods": "INVALID_PAYMENT_METHOD",
    "method": "INVALID_PAYMENT_METHOD",
    "status": "INVALID_STATUS",
    "email": "INVALID_EMAIL",
    "password": "INVALID_PASSWORD",
    "new_password": "INVALID_PASSWORD",
    "role": "INVALID_ROLE",
    "period": "INVALID_PERIOD",
    "opening_amount": "INVALID_OPENING_AMOUNT",
    "closing_amount": "INVALID_CLOSING_AMOUNT",
}


def error_body(message: str, code: str, details: Any = None) -> dict:
    body = {"success": False, "message": message, "code": code}
    if details is not None:
        body["details"] = details
    return body


def validation_code(errors: list[dict]) -> str:
    for error in errors:
        for part in reversed(error.get("loc", ())):
            if isinstance(part, str) and part in FIELD_ERROR_CODES:
                return FIELD_ERROR_CODES[part]
    return "VALIDATION_ERROR"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        message = "Error interno del servidor"
    else:
        message = exc.message
    return JSONResponse(status_code=exc.status_code, content=error_body(message, exc.code, exc.details))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = "NOT_FOUND" if exc.status_code == status.HTTP_404_NOT_FOUND else "HTTP_ERROR"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), code),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg')}" if field else "Datos inválidos"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(message, validation_code(errors)),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Error interno del servidor", InternalError.code),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
