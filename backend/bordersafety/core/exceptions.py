"""
Global Exception Handling Module

Defines the business exception classes and the FastAPI global exception
handlers, giving every error the same JSON shape::

    {"error": ..., "message": ..., "detail": ..., "status_code": ...}

Uncaught exceptions are converted into structured 500 responses instead of
bare tracebacks.
"""
import logging
import traceback
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


# ============================================================
# Business Exception Classes
# ============================================================

class BusinessError(Exception):
    """Base Business Exception"""
    status_code: int = 400
    error: str = "business_error"

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class InvalidInputError(BusinessError):
    """Malformed or unrecognized input"""
    status_code = 400
    error = "invalid_input"


class NotFoundError(BusinessError):
    """Resource Not Found"""
    status_code = 404
    error = "not_found"


class StorageError(BusinessError):
    """Storage unreachable or corrupt"""
    status_code = 503
    error = "storage_error"


class DeliveryError(BusinessError):
    """Outbound notification could not be delivered"""
    status_code = 502
    error = "delivery_error"

    def __init__(
        self,
        message: str,
        detail: Optional[str] = None,
        channel: Optional[str] = None,
        retryable: bool = True,
    ):
        super().__init__(message, detail)
        self.channel = channel
        self.retryable = retryable  # False when another attempt cannot succeed


def _error_body(error: str, message: str, detail, status_code: int) -> dict:
    return {
        "error": error,
        "message": message,
        "detail": detail,
        "status_code": status_code,
    }


# ============================================================
# Global Exception Handler Registration
# ============================================================

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register global exception handlers on the FastAPI app.

    Priority:
    1. BusinessError subclasses -> their HTTP status + structured body
    2. RequestValidationError -> 400 invalid_input
    3. HTTPException -> status kept, body wrapped in the common shape
    4. Exception -> 500 + full traceback in the log
    """

    @app.exception_handler(BusinessError)
    async def business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", exc.error, request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error, exc.message, exc.detail, exc.status_code),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', 'invalid')}" for e in errors
        )
        return JSONResponse(
            status_code=400,
            content=_error_body(InvalidInputError.error, message or "Invalid request", None, 400),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body("http_error", str(exc.detail), None, exc.status_code),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception on %s %s: %s\n%s",
            request.method,
            request.url.path,
            str(exc),
            traceback.format_exc(),
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                "Internal server error, please try again later",
                None,
                500,
            ),
        )
