"""
Error taxonomy and the handlers that turn errors into the response envelope.

Handlers raise the HTTPException subclasses below; anything else that
escapes a handler is treated as a defect, logged, and answered with a
generic 500.
"""

import logging
import traceback
from typing import Any, Dict, Iterable, Optional

from bson.errors import InvalidId
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong!"


class AppError(HTTPException):
    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(status_code=self.status_code, detail=message or self.default_message)

    @property
    def message(self) -> str:
        return self.detail


class BadRequest(AppError):
    status_code = 400
    default_message = "Bad request"


class ValidationFailed(BadRequest):
    default_message = "Invalid input data"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Not authorized"


class TokenMissing(Unauthorized):
    default_message = "Access denied. No token provided."


class TokenExpired(Unauthorized):
    default_message = "Token expired. Please login again."


class TokenInvalid(Unauthorized):
    default_message = "Invalid token. Please login again."


class TokenMalformed(Unauthorized):
    default_message = "Malformed token. Please login again."


class AccountInactive(Unauthorized):
    default_message = "User account is deactivated."


class BadCredentials(Unauthorized):
    default_message = "Invalid email or password"


class Forbidden(AppError):
    status_code = 403
    default_message = "Access denied."


class NotFound(AppError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(AppError):
    status_code = 409
    default_message = "Resource already exists"


def error_body(message: str, **extra: Any) -> Dict[str, Any]:
    return {"success": False, "error": {"message": message, **extra}}


def format_validation_errors(errors: Iterable[Dict[str, Any]]) -> str:
    """Join every violation into one readable message.

    Locations are dotted (``address.city``) and the ``body``/``query``/``path``
    prefix FastAPI adds is dropped.
    """
    messages = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        msg = str(err.get("msg", "Invalid value"))
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        messages.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    return ", ".join(messages) or ValidationFailed.default_message


def duplicate_key_message(exc: DuplicateKeyError) -> str:
    details = exc.details or {}
    key_value = details.get("keyValue") or {}
    if key_value:
        field, value = next(iter(key_value.items()))
        return f"{field.capitalize()} '{value}' already exists"
    return Conflict.default_message


def register_exception_handlers(app: FastAPI, verbose: bool = False) -> None:
    """Install the envelope-producing handlers on ``app``.

    ``verbose`` adds the traceback to 500 responses (development only).
    """

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail)), headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content=error_body(format_validation_errors(exc.errors())))

    @app.exception_handler(ValidationError)
    async def model_validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content=error_body(format_validation_errors(exc.errors())))

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
        logger.warning("Duplicate key on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=409, content=error_body(duplicate_key_message(exc)))

    @app.exception_handler(InvalidId)
    async def invalid_id_handler(request: Request, exc: InvalidId):
        return JSONResponse(status_code=400, content=error_body("Invalid ID format"))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        extra = {}
        if verbose:
            extra["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(status_code=500, content=error_body(GENERIC_ERROR_MESSAGE, **extra))
