import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """Body returned for every failed request."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    timestamp: datetime
    status: int
    error: str
    kind: str
    message: str
    path: str
    validation_errors: list[FieldError] | None = None


class AppError(Exception):
    """Base for every typed failure raised by the services."""

    kind = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    title = "Internal Server Error"
    headers: dict[str, str] | None = None

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ResourceNotFoundError(AppError):
    kind = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    title = "Not Found"

    def __init__(self, resource: str, field: str, value: Any):
        super().__init__(f"{resource} not found with {field} : '{value}'")
        self.resource = resource
        self.field = field
        self.value = value


class AuthenticationError(AppError):
    """Missing or unusable bearer token."""

    kind = "UNAUTHENTICATED"
    status_code = status.HTTP_401_UNAUTHORIZED
    title = "Unauthorized"
    headers = {"WWW-Authenticate": "Bearer"}


class UnauthorizedError(AppError):
    """Access policy violation; the caller is authenticated but not allowed."""

    kind = "UNAUTHORIZED"
    status_code = status.HTTP_403_FORBIDDEN
    title = "Forbidden"


class BadRequestError(AppError):
    kind = "BAD_REQUEST"
    status_code = status.HTTP_400_BAD_REQUEST
    title = "Bad Request"


class DuplicateResourceError(AppError):
    kind = "DUPLICATE_RESOURCE"
    status_code = status.HTTP_409_CONFLICT
    title = "Conflict"

    def __init__(self, resource: str, field: str, value: Any):
        super().__init__(f"{resource} already exists with {field} : '{value}'")


class ValidationFailedError(AppError):
    kind = "VALIDATION_FAILED"
    status_code = status.HTTP_400_BAD_REQUEST
    title = "Validation Failed"

    def __init__(self, errors: list[FieldError], message: str = "Invalid input data"):
        super().__init__(message)
        self.errors = errors


class InternalError(AppError):
    pass


def _error_body(exc: AppError, request: Request) -> dict:
    body = ErrorResponse(
        timestamp=datetime.now(timezone.utc),
        status=exc.status_code,
        error=exc.title,
        kind=exc.kind,
        message=exc.message,
        path=request.url.path,
        validation_errors=getattr(exc, "errors", None),
    )
    return body.model_dump(mode="json", by_alias=True, exclude_none=True)


def _field_name(loc: tuple) -> str:
    # Drop the "body"/"query"/"path" prefix FastAPI adds.
    parts = [str(p) for p in loc[1:]] if len(loc) > 1 else [str(p) for p in loc]
    return ".".join(parts)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed: path=%s kind=%s", request.url.path, exc.kind)
    else:
        logger.warning(
            "Request rejected: path=%s kind=%s message=%s",
            request.url.path,
            exc.kind,
            exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc, request), headers=exc.headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        FieldError(field=_field_name(tuple(err.get("loc", ()))), message=err.get("msg", ""))
        for err in exc.errors()
    ]
    return await app_error_handler(request, ValidationFailedError(errors))


_HTTP_KINDS = {
    status.HTTP_400_BAD_REQUEST: BadRequestError.kind,
    status.HTTP_401_UNAUTHORIZED: AuthenticationError.kind,
    status.HTTP_403_FORBIDDEN: UnauthorizedError.kind,
    status.HTTP_404_NOT_FOUND: ResourceNotFoundError.kind,
    status.HTTP_409_CONFLICT: DuplicateResourceError.kind,
}


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework-raised HTTP errors (unknown routes, wrong methods) get the same body."""
    error = AppError(str(exc.detail))
    error.status_code = exc.status_code
    error.title = HTTPStatus(exc.status_code).phrase
    error.kind = _HTTP_KINDS.get(exc.status_code, AppError.kind if exc.status_code >= 500 else "HTTP_ERROR")
    error.headers = exc.headers
    return await app_error_handler(request, error)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception occurred: path=%s", request.url.path)
    error = InternalError("An unexpected error occurred")
    return JSONResponse(status_code=error.status_code, content=_error_body(error, request))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
