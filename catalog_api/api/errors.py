"""Exception handlers shared by all endpoints.

Every error leaves the API as a JSON object with an ``error`` key. Store
failures and unexpected exceptions are logged with full detail but answered
with a generic message.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from catalog_api.persistence.repositories import StoreError
from catalog_api.services.catalog import ProductNotFoundError

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"
_UNROUTED_STATUSES = (
    status.HTTP_404_NOT_FOUND,
    status.HTTP_405_METHOD_NOT_ALLOWED,
)


def error_response(
    status_code: int, message: str, **extra: object
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"error": message, **extra}),
    )


async def _validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]) or None,
            "message": err.get("msg"),
        }
        for err in errors
    ]
    missing_fields = any(
        err.get("type") == "missing" and err.get("loc", ())[:1] == ("body",)
        for err in errors
    )
    message = (
        "Name and price_cents are required" if missing_fields else "Invalid request"
    )
    return error_response(status.HTTP_400_BAD_REQUEST, message, details=details)


async def _product_not_found(
    request: Request, exc: ProductNotFoundError
) -> JSONResponse:
    return error_response(status.HTTP_404_NOT_FOUND, "Product not found")


async def _store_error(request: Request, exc: StoreError) -> JSONResponse:
    logger.error(
        "Store error on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=exc,
    )
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE
    )


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Unknown paths and unsupported methods on known paths both count as
    # unknown endpoints.
    if exc.status_code in _UNROUTED_STATUSES:
        return error_response(status.HTTP_404_NOT_FOUND, "Endpoint not found")
    response = error_response(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(ProductNotFoundError, _product_not_found)
    app.add_exception_handler(StoreError, _store_error)
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(Exception, unhandled_error)
