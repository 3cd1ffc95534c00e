"""API errors: taxonomy, JSON body {"error": tag, "message": text}, FastAPI handlers."""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

_log = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 500
    error_type = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500

    def to_dict(self) -> dict:
        return {"error": self.error_type, "message": self.message}


class BadRequest(ApiError):
    status_code = 400
    error_type = "BAD_REQUEST"


class NotFound(ApiError):
    status_code = 404
    error_type = "NOT_FOUND"


class InternalError(ApiError):
    status_code = 500
    error_type = "INTERNAL_ERROR"


class DatabaseError(ApiError):
    status_code = 500
    error_type = "DATABASE_ERROR"


class StorageError(ApiError):
    status_code = 500
    error_type = "STORAGE_ERROR"


class ExternalApiError(ApiError):
    status_code = 502
    error_type = "EXTERNAL_API_ERROR"


def _log_error(request: Request, exc: ApiError) -> None:
    # Клиентские ошибки: warning, серверные: error
    if exc.is_client_error:
        _log.warning("%s %s -> %s: %s", request.method, request.url.path, exc.error_type, exc.message)
    else:
        _log.error("%s %s -> %s: %s", request.method, request.url.path, exc.error_type, exc.message)


def error_response(request: Request, exc: ApiError) -> JSONResponse:
    _log_error(request, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        parts = []
        for err in exc.errors():
            loc = ".".join(str(x) for x in err.get("loc", ()) if x != "body")
            parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return error_response(request, BadRequest("; ".join(parts) or "invalid request"))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        if exc.status_code == 404:
            err: ApiError = NotFound(detail)
        elif exc.status_code < 500:
            err = BadRequest(detail)
            err.status_code = exc.status_code
        else:
            err = InternalError(detail)
        return error_response(request, err)

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        return error_response(request, DatabaseError(f"Database error: {exc}"))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        _log.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=InternalError(str(exc) or type(exc).__name__).to_dict(),
        )
