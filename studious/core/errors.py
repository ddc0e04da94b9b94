"""Service error taxonomy and its HTTP rendering."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    kind = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    kind = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(ServiceError):
    kind = "unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(ServiceError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ServiceError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ServiceError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class StorageError(ServiceError):
    kind = "storage_error"
    status_code = status.HTTP_502_BAD_GATEWAY


def error_body(kind: str, message: str) -> dict:
    return {"error": {"kind": kind, "message": message}}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.kind, exc.message))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        messages = []
        for err in exc.errors():
            location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
            messages.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_body(ValidationError.kind, "; ".join(messages)),
        )

    @app.exception_handler(SQLAlchemyError)
    async def handle_database_error(request: Request, exc: SQLAlchemyError):
        logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(ServiceError.kind, "Database error"),
        )
