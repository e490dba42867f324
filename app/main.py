import asyncio
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from app.core.limits import limiter, rate_limit_handler
from app.core.error_handlers import setup_exception_handlers
from app.core.database import async_session, db_manager
from app.core.middleware import setup_middleware
from app.core.logging_utils import (
    setup_logging,
    get_logger,
    log_business_event,
    error_tracker,
)
from app.core.config import (
    validate_config,
    APP_NAME,
    APP_VERSION,
    DEBUG,
    LOG_LEVEL,
    LOG_FORMAT,
    COMPLETION_SWEEP_INTERVAL_SECONDS,
)

# Таблицы регистрируются в metadata при импорте моделей
from app.consulting import models  # noqa: F401
from app.consulting.crud.admin import sweep_completed_sessions
from app.consulting.routers import sessions_router, admin_router

setup_logging(LOG_LEVEL, LOG_FORMAT)
logger = get_logger(__name__)


async def completion_sweep_loop(interval: float):
    """Периодически сохраняет статус completed для завершённых сессий"""
    while True:
        await asyncio.sleep(interval)
        try:
            async with async_session() as db:
                completed, _ = await sweep_completed_sessions(db)
        except Exception as e:
            # Следующий проход повторит попытку
            logger.error(f"Completion sweep failed: {str(e)}")
            error_tracker.track_error(
                "SWEEP_ERROR", str(e), {"component": "completion_sweep"}
            )
            continue

        if completed:
            logger.info(f"Completion sweep: {completed} session(s) completed")


async def startup() -> Optional[asyncio.Task]:
    validate_config()
    await db_manager.check_connection()
    await db_manager.create_tables()
    logger.info("✅ Configuration and database ready")

    sweep_task = None
    if COMPLETION_SWEEP_INTERVAL_SECONDS > 0:
        sweep_task = asyncio.create_task(
            completion_sweep_loop(COMPLETION_SWEEP_INTERVAL_SECONDS)
        )
        logger.info(f"✅ Completion sweep every {COMPLETION_SWEEP_INTERVAL_SECONDS}s")

    log_business_event(
        "application_started",
        "system",
        None,
        {"version": APP_VERSION, "environment": "development" if DEBUG else "production"},
    )
    return sweep_task


async def shutdown(sweep_task: Optional[asyncio.Task]):
    if sweep_task is not None:
        sweep_task.cancel()
        with suppress(asyncio.CancelledError):
            await sweep_task

    await db_manager.close_connections()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {APP_NAME} v{APP_VERSION}")

    try:
        sweep_task = await startup()
    except Exception as e:
        logger.error(f"❌ Application startup failed: {str(e)}")
        error_tracker.track_error(
            "STARTUP_ERROR", str(e), {"component": "application_startup"}
        )
        raise

    logger.info("🚀 Application startup completed")
    yield

    logger.info("🛑 Shutting down application...")
    await shutdown(sweep_task)
    logger.info("👋 Application shutdown completed")


app = FastAPI(
    title=APP_NAME,
    description="Consulting sessions scheduling and enrollment",
    version=APP_VERSION,
    lifespan=lifespan,
    debug=DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:8080"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)
setup_middleware(
    app,
    {
        "slow_request_threshold": 5.0,
        "exclude_paths": ["/health", "/docs", "/openapi.json", "/redoc", "/favicon.ico"],
    },
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

app.include_router(sessions_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    return {
        "status": "ok",
        "version": APP_VERSION,
        "errors": error_tracker.get_stats()["total_errors"],
    }
