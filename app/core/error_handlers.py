"""
Обработчики ошибок FastAPI.

Every error leaves the API as
``{"error": code, "message": ..., "details": {...}, "path": ...}``.
"""

import logging
import traceback
from typing import Dict, Union

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError,
)
from starlette.exceptions import HTTPException
from asyncpg.exceptions import (
    ConnectionDoesNotExistError,
    ConnectionFailureError,
    PostgresError,
    TooManyConnectionsError,
)

from app.core.config import DEBUG
from app.core.exceptions import (
    BaseAppException,
    DatabaseConnectionError,
    DatabaseError,
    DatabaseIntegrityError,
    DatabaseTimeoutError,
)

logger = logging.getLogger(__name__)

# Имена ограничений схемы -> понятное описание для клиента
KNOWN_CONSTRAINTS: Dict[str, str] = {
    "uq_consulting_enrollment_active": "User already holds an active seat in this session",
    "ck_consulting_sessions_capacity": "max_participants must be at least 1",
    "ck_consulting_sessions_participants": "current_participants cannot be negative",
    "ck_consulting_sessions_within_capacity": "current_participants cannot exceed max_participants",
    "ck_consulting_sessions_duration": "duration_minutes cannot be negative",
    "consulting_session_enrollments_session_id_fkey": "Session still has enrollments",
}


def error_body(request: Request, error: str, message: str, details: dict = None) -> dict:
    return {
        "error": error,
        "message": message,
        "details": details or {},
        "path": request.url.path,
    }


def _constraint_name(exc: IntegrityError) -> str:
    name = getattr(exc.orig, "constraint_name", None)
    if name:
        return name

    # SQLite и другие драйверы не отдают имя отдельно
    text = str(exc.orig)
    for known in KNOWN_CONSTRAINTS:
        if known in text:
            return known
    if "consulting_session_enrollments.session_id" in text and "UNIQUE" in text:
        return "uq_consulting_enrollment_active"
    return "unknown"


def translate_database_error(exc: Union[SQLAlchemyError, PostgresError]) -> BaseAppException:
    """Map a store exception onto the application error taxonomy"""
    if isinstance(exc, IntegrityError):
        constraint = _constraint_name(exc)
        details = {"reason": KNOWN_CONSTRAINTS.get(constraint, "constraint violated")}
        if DEBUG:
            details["original_error"] = str(exc.orig)
        return DatabaseIntegrityError(constraint, details)

    if isinstance(
        exc,
        (
            OperationalError,
            DisconnectionError,
            ConnectionFailureError,
            ConnectionDoesNotExistError,
            TooManyConnectionsError,
        ),
    ):
        return DatabaseConnectionError("Database is unavailable")

    if isinstance(exc, TimeoutError):
        return DatabaseTimeoutError("database_operation", 30)

    if isinstance(exc, PostgresError):
        return DatabaseError(
            "Database operation failed",
            details={"postgres_code": getattr(exc, "sqlstate", "unknown")},
        )

    return DatabaseError("Database operation failed")


async def app_exception_handler(
    request: Request, exc: BaseAppException
) -> JSONResponse:
    # Отказы бронирования (409) ожидаемы и логируются как warning
    logger.log(
        logging.WARNING if exc.status_code < 500 else logging.ERROR,
        f"{exc.error_code}: {exc.message}",
        extra={
            "error_code": exc.error_code,
            "status_code": exc.status_code,
            "details": exc.details,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.error_code, exc.message, exc.details),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    logger.warning(
        f"HTTP {exc.status_code} on {request.method} {request.url.path}: {exc.detail}"
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, "HTTP_ERROR", str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


def _json_safe(value):
    """Input echoed back in validation errors may be any object"""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    return str(value)


async def validation_exception_handler(
    request: Request, exc: Union[RequestValidationError, PydanticValidationError]
) -> JSONResponse:
    fields = [
        {
            "field": ".".join(str(loc) for loc in error.get("loc", ())),
            "message": error.get("msg", "Validation error"),
            "type": error.get("type", "value_error"),
            "input": _json_safe(error.get("input")),
        }
        for error in exc.errors()
    ]

    logger.warning(
        f"Validation failed on {request.method} {request.url.path}",
        extra={"fields": fields},
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body(
            request,
            "VALIDATION_ERROR",
            f"Validation failed for {len(fields)} field(s)",
            {"fields": fields},
        ),
    )


async def database_exception_handler(
    request: Request, exc: Union[SQLAlchemyError, PostgresError]
) -> JSONResponse:
    logger.error(
        f"Database exception: {type(exc).__name__}",
        extra={
            "exception_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=exc,
    )

    return await app_exception_handler(request, translate_database_error(exc))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=exc,
    )

    # В production детали не показываем
    details = {}
    if DEBUG:
        details = {
            "exception_type": type(exc).__name__,
            "traceback": "".join(traceback.format_exception(exc)),
        }

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(
            request, "INTERNAL_SERVER_ERROR", "An unexpected error occurred", details
        ),
    )


def setup_exception_handlers(app):
    """Регистрация обработчиков исключений"""

    app.add_exception_handler(BaseAppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(PostgresError, database_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered")
