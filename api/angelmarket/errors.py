import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

DEFAULT_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    402: "PAYMENT_REQUIRED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
}


class APIError(HTTPException):
    """HTTP error with a machine-readable code next to the message.

    Extra keyword arguments are merged into the JSON body.
    """

    def __init__(self, status_code: int, code: str, message: str, **extra: Any):
        super().__init__(status_code=status_code, detail=message)
        self.code = code
        self.extra = extra


def nda_required() -> APIError:
    return APIError(
        status.HTTP_403_FORBIDDEN,
        "NDA_REQUIRED",
        "You must sign the Non-Disclosure Agreement before accessing project details",
    )


def nda_expired() -> APIError:
    return APIError(
        status.HTTP_403_FORBIDDEN,
        "NDA_EXPIRED",
        "Your NDA has expired. Please sign a new one to continue",
    )


def payment_required() -> APIError:
    return APIError(
        status.HTTP_403_FORBIDDEN,
        "PAYMENT_REQUIRED",
        "You must pay the viewing fee to access full project details",
    )


def no_views_remaining() -> APIError:
    return APIError(
        status.HTTP_403_FORBIDDEN,
        "NO_VIEWS_REMAINING",
        "You have used all your project views. Please make another payment to view more projects",
        projects_remaining=0,
    )


def document_generation_failed(what: str) -> APIError:
    return APIError(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "DOCUMENT_GENERATION_FAILED",
        f"Failed to generate {what}",
    )


def _error_body(status_code: int, detail: Any, code: Optional[str], extra: Optional[Dict[str, Any]] = None):
    body = {"detail": detail, "code": code or DEFAULT_CODES.get(status_code, "ERROR")}
    if extra:
        body.update(extra)
    return jsonable_encoder(body)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    body = _error_body(exc.status_code, exc.detail, getattr(exc, "code", None), getattr(exc, "extra", None))
    return JSONResponse(body, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    body = _error_body(422, "Invalid request", "VALIDATION_ERROR", {"errors": exc.errors()})
    return JSONResponse(body, status_code=422)


async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("database error on %s %s", request.method, request.url.path)
    body = _error_body(500, "Database operation failed", "DATABASE_ERROR")
    return JSONResponse(body, status_code=500)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
