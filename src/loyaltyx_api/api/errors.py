"""Exception handlers rendering domain errors as JSON responses.

Every error leaves the API in the same envelope::

    {"error": {"reason": "...", "message": "...", "details": {...}}}
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_500_INTERNAL_SERVER_ERROR

from loyaltyx_api.services.errors import InternalError, InvalidArgument, LoyaltyError


def error_response(exc: LoyaltyError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_payload()))


async def loyalty_error_handler(request: Request, exc: LoyaltyError) -> JSONResponse:
    if exc.status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("Request failed", path=request.url.path, reason=exc.reason, error=exc.message)
    else:
        logger.info("Request rejected", path=request.url.path, reason=exc.reason, error=exc.message)
    return error_response(exc)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid {location}: {first.get('msg')}" if location else "Invalid request"
    error = InvalidArgument(message, details={"errors": errors})
    return JSONResponse(status_code=HTTP_400_BAD_REQUEST, content=error.to_payload())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", path=request.url.path, error=str(exc))
    return error_response(InternalError("Internal server error"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LoyaltyError, loyalty_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


__all__ = ["error_response", "register_exception_handlers"]
