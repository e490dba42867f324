import logging
import time
import uuid
from typing import Callable, Iterable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from app.core.logging_utils import error_tracker, request_id_var

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE_PATHS = ("/health", "/docs", "/openapi.json", "/redoc")
REQUEST_ID_HEADER = "X-Request-ID"


def get_client_ip(request: Request) -> str:
    """IP клиента с учетом proxy"""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    return request.headers.get("x-real-ip") or (
        request.client.host if request.client else "unknown"
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Request id, access log, slow request warnings and error counters.

    An incoming ``X-Request-ID`` is reused so a retried enroll can be traced
    across the client and the server logs.
    """

    def __init__(
        self,
        app: ASGIApp,
        exclude_paths: Optional[Iterable[str]] = None,
        slow_request_threshold: float = 1.0,
    ):
        super().__init__(app)
        self.exclude_paths = set(exclude_paths or DEFAULT_EXCLUDE_PATHS)
        self.slow_request_threshold = slow_request_threshold

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            error_tracker.track_error(
                f"UNHANDLED_{type(e).__name__}", str(e), context
            )
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={**context, "error_type": type(e).__name__},
            )
            raise
        finally:
            request_id_var.reset(token)

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        extra = {
            **context,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            "client_ip": get_client_ip(request),
        }

        if response.status_code >= 400:
            # 409 here is a lost race for a seat, not a server fault
            error_tracker.track_error(
                f"HTTP_{response.status_code}",
                f"HTTP {response.status_code} response",
                context,
            )

        if duration_ms > self.slow_request_threshold * 1000:
            logger.warning(
                f"Slow request: {request.method} {request.url.path}",
                extra={**extra, "category": "performance"},
            )
        else:
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code}",
                extra=extra,
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Listings carry per-user meeting links
        response.headers.setdefault("Cache-Control", "no-store")

        return response


def setup_middleware(app, config: dict = None):
    """
    Настройка middleware приложения

    Args:
        app: FastAPI приложение
        config: exclude_paths, slow_request_threshold
    """
    config = config or {}

    # Middleware применяются в обратном порядке добавления
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RequestContextMiddleware,
        exclude_paths=config.get("exclude_paths", DEFAULT_EXCLUDE_PATHS),
        slow_request_threshold=config.get("slow_request_threshold", 1.0),
    )

    logger.info("Middleware configured")
