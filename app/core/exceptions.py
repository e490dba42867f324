"""
Исключения приложения.

Each class carries its HTTP status and a stable ``error_code``; the
handlers in ``error_handlers`` render them without further mapping.
"""

from typing import Optional, Dict, Any


class BaseAppException(Exception):
    """Базовое исключение приложения"""

    status_code: int = 500
    error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# === Аутентификация ===
class AuthenticationError(BaseAppException):
    status_code = 401
    error_code = "AUTHENTICATION_ERROR"

    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)


class AuthorizationError(BaseAppException):
    status_code = 403
    error_code = "AUTHORIZATION_ERROR"

    def __init__(
        self, message: str = "Access denied", details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details=details)


# === Валидация и бизнес-логика ===
class ValidationError(BaseAppException):
    status_code = 400
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class NotFoundError(BaseAppException):
    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: str = None):
        details = {"resource": resource}
        if identifier:
            details["identifier"] = identifier
            message = f"{resource} with identifier '{identifier}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(message, details=details)


class BusinessLogicError(BaseAppException):
    status_code = 400
    error_code = "BUSINESS_LOGIC_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


# === Бронирование консультаций ===
# Messages are shown to members as is

class SessionNotFoundError(NotFoundError):
    error_code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: int):
        super().__init__("ConsultingSession", str(session_id))
        self.message = "Sessão não encontrada"


class BookingError(BaseAppException):
    """Enroll/cancel rejected; nothing was written"""

    status_code = 409

    def __init__(self, message: str, session_id: int, **details):
        super().__init__(message, details={"session_id": session_id, **details})


class SessionFullError(BookingError):
    """No seats left. Safe to retry against another session."""

    error_code = "SESSION_FULL"

    def __init__(self, session_id: int, max_participants: int):
        super().__init__(
            "Esta sessão está esgotada", session_id, max_participants=max_participants
        )


class SessionCancelledOrFinishedError(BookingError):
    error_code = "SESSION_CANCELLED_OR_FINISHED"

    def __init__(self, session_id: int, status: str):
        super().__init__(
            "Esta sessão já ocorreu ou foi cancelada", session_id, status=status
        )


class NotEnrolledError(BookingError):
    status_code = 400
    error_code = "NOT_ENROLLED"

    def __init__(self, session_id: int):
        super().__init__("Você não está inscrito nesta sessão", session_id)


class SessionAlreadyFinishedError(BookingError):
    """Roster of a finished session is frozen"""

    status_code = 400
    error_code = "SESSION_ALREADY_FINISHED"

    def __init__(self, session_id: int):
        super().__init__(
            "Esta sessão já foi concluída. Não é mais possível cancelar a inscrição.",
            session_id,
        )


# === База данных ===
class DatabaseError(BaseAppException):
    error_code = "DATABASE_ERROR"

    def __init__(
        self,
        message: str = "Database operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)


class DatabaseConnectionError(BaseAppException):
    status_code = 503
    error_code = "DATABASE_CONNECTION_ERROR"

    def __init__(self, message: str = "Database connection failed"):
        super().__init__(message)


class DatabaseTimeoutError(BaseAppException):
    status_code = 504
    error_code = "DATABASE_TIMEOUT"

    def __init__(self, operation: str, timeout: int):
        super().__init__(
            f"Database operation '{operation}' timed out after {timeout}s",
            details={"operation": operation, "timeout": timeout},
        )


class DatabaseIntegrityError(BaseAppException):
    status_code = 409
    error_code = "DATABASE_INTEGRITY_ERROR"

    def __init__(self, constraint: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Database integrity constraint violated: {constraint}",
            details={"constraint": constraint, **(details or {})},
        )


# === Внешние сервисы и конфигурация ===
class ExternalServiceError(BaseAppException):
    status_code = 502
    error_code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, message: str = None):
        super().__init__(
            message or f"External service '{service}' error",
            details={"service": service},
        )


class ConfigurationError(BaseAppException):
    error_code = "CONFIGURATION_ERROR"

    def __init__(self, parameter: str, message: str = None):
        super().__init__(
            message or f"Configuration parameter '{parameter}' is invalid or missing",
            details={"parameter": parameter},
        )
