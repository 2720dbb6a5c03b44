"""
Error rendering for the API.

Every failure leaves the service as ``{"error": <message>, "code": <CODE>}``
with the status carried by the raised ``AppError``.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from book_editor.core.errors import AppError

logger = logging.getLogger(__name__)


def error_response(message: str, code: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"error": message, "code": code}
    )


def message_response(message: str) -> dict:
    return {"message": message}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            f"{request.method} {request.url.path} failed: {exc.code} {exc.message}",
            exc_info=exc.__cause__ is not None,
        )
    elif exc.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN):
        logger.info(f"{request.method} {request.url.path}: {exc.code}")
    else:
        logger.warning(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    return error_response(exc.message, exc.code, exc.status_code)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid request body"
    logger.info(f"{request.method} {request.url.path}: invalid request ({message})")
    return error_response(message, "VALIDATION_ERROR", status.HTTP_400_BAD_REQUEST)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    return error_response(
        "Internal server error",
        "INTERNAL_ERROR",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
