"""
Error taxonomy and the single HTTP boundary that renders it.

Services raise ``ServiceError`` with an ``ErrorKind`` and whatever context
applies (offending field, resource kind, upstream service).  Only the
handlers registered by ``install_error_handlers`` turn errors into HTTP
responses; routers never build error responses themselves.
"""
from __future__ import annotations

import enum
import logging
import traceback
import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from contentdesk.config import settings

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    AUTHORIZATION = "authorization"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"
    EXTERNAL_SERVICE = "external_service"
    INTERNAL = "internal"


STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.CONFLICT: 409,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.EXTERNAL_SERVICE: 502,
    ErrorKind.INTERNAL: 500,
}


class ServiceError(Exception):
    """An expected failure carrying its kind plus structured context."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        field: str | None = None,
        resource: str | None = None,
        service: str | None = None,
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.field = field
        self.resource = resource
        self.service = service
        self.details = details

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    def __repr__(self) -> str:
        return f"ServiceError(kind={self.kind.value!r}, message={self.message!r})"

    # Constructors for the common cases ---------------------------------

    @classmethod
    def validation(cls, field: str, message: str) -> "ServiceError":
        return cls(
            ErrorKind.VALIDATION,
            message,
            field=field,
            details=[{"field": field, "message": message}],
        )

    @classmethod
    def not_found(cls, resource: str) -> "ServiceError":
        return cls(ErrorKind.NOT_FOUND, f"{resource.capitalize()} not found", resource=resource)

    @classmethod
    def forbidden(cls, message: str = "Not authorized to perform this action") -> "ServiceError":
        return cls(ErrorKind.AUTHORIZATION, message)

    @classmethod
    def conflict(cls, resource: str, message: str) -> "ServiceError":
        return cls(ErrorKind.CONFLICT, message, resource=resource)

    @classmethod
    def rate_limited(cls, message: str) -> "ServiceError":
        return cls(ErrorKind.RATE_LIMITED, message)

    @classmethod
    def external(cls, service: str, message: str) -> "ServiceError":
        return cls(ErrorKind.EXTERNAL_SERVICE, message, service=service)


# ---------------------------------------------------------------------------
# HTTP boundary
# ---------------------------------------------------------------------------

def _envelope(
    status_code: int,
    message: str,
    exc: BaseException,
    details: list[dict[str, Any]] | None = None,
) -> JSONResponse:
    error_id = uuid.uuid4().hex
    body: dict[str, Any] = {"success": False, "message": message, "errorId": error_id}
    if details:
        body["details"] = details
    if not settings.is_production:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    log = logger.error if status_code >= 500 else logger.info
    log(
        "request failed: %s",
        message,
        extra={"error_id": error_id, "status_code": status_code},
        exc_info=status_code >= 500,
    )
    return JSONResponse(status_code=status_code, content=body)


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return _envelope(exc.status_code, exc.message, exc, exc.details)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            # Drop the leading "body"/"query" marker so the field path reads naturally.
            "field": ".".join(str(part) for part in err["loc"][1:]) or str(err["loc"][0]),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    return _envelope(400, "Validation failed", exc, details)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Routing-level errors (unknown path, wrong method) use the same envelope.
    return _envelope(exc.status_code, str(exc.detail), exc)


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    return _envelope(409, "Resource conflicts with an existing record", exc)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return _envelope(500, "Something went wrong", exc)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
