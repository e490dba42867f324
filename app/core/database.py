import logging
import time
from functools import wraps
from typing import Any, AsyncGenerator, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import text
from sqlalchemy.exc import (
    DisconnectionError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError,
)
from asyncpg.exceptions import ConnectionDoesNotExistError, ConnectionFailureError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import DATABASE_URL, DB_RETRY_ATTEMPTS, DB_RETRY_BACKOFF_FACTOR, DB_RETRY_DELAY
from .exceptions import DatabaseConnectionError, DatabaseTimeoutError

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    """Pool settings only apply to server databases"""
    if url.startswith("sqlite"):
        return {"echo": False}
    return {
        "echo": False,
        "pool_size": 20,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 3600,  # Переподключение каждый час
        "pool_pre_ping": True,
    }


engine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

# expire_on_commit=False: booking results are read after commit
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()

F = TypeVar("F", bound=Callable[..., Any])

RETRYABLE_EXCEPTIONS = (
    OperationalError,
    DisconnectionError,
    TimeoutError,
    ConnectionFailureError,
    ConnectionDoesNotExistError,
)


def db_retry(
    max_attempts: int = None,
    delay: float = None,
    backoff_factor: float = None,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
) -> Callable[[F], F]:
    """
    Повтор операций при потере соединения с базой данных.

    Only for idempotent operations (startup checks, DDL); booking writes are
    never retried blindly.
    """
    max_attempts = max_attempts or DB_RETRY_ATTEMPTS
    delay = DB_RETRY_DELAY if delay is None else delay
    backoff_factor = backoff_factor or DB_RETRY_BACKOFF_FACTOR

    def log_attempt(retry_state):
        logger.warning(
            f"Database operation failed (attempt {retry_state.attempt_number}/{max_attempts}): "
            f"{retry_state.outcome.exception()}"
        )

    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            retrying = AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_exponential(multiplier=delay, exp_base=backoff_factor),
                retry=retry_if_exception_type(exceptions),
                before_sleep=log_attempt,
            )
            try:
                async for attempt in retrying:
                    with attempt:
                        return await func(*args, **kwargs)
            except RetryError as e:
                last_exception = e.last_attempt.exception()
                logger.error(
                    f"{func.__name__} failed after {max_attempts} attempts: {last_exception}"
                )
                if isinstance(last_exception, TimeoutError):
                    raise DatabaseTimeoutError(func.__name__, 30) from last_exception
                raise DatabaseConnectionError(
                    f"Database connection failed after {max_attempts} attempts"
                ) from last_exception

        return wrapper

    return decorator


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency: одна сессия БД на запрос"""
    async with async_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


class DatabaseManager:
    """Старт/остановка базы данных"""

    @staticmethod
    @db_retry()
    async def create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    @staticmethod
    @db_retry()
    async def check_connection():
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    @staticmethod
    async def close_connections():
        await engine.dispose()
        logger.info("Database connections closed")


db_manager = DatabaseManager()


def db_operation(func: F) -> F:
    """
    Логирование CRUD операций.

    SQLAlchemy errors are logged with the operation name and re-raised;
    domain errors pass through untouched.
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        started = time.perf_counter()
        try:
            result = await func(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(
                f"SQLAlchemy error in {func.__name__}: {str(e)}",
                extra={"operation": func.__name__, "exception_type": type(e).__name__},
            )
            raise

        logger.debug(
            f"{func.__name__} completed in {(time.perf_counter() - started) * 1000:.1f}ms"
        )
        return result

    return wrapper
