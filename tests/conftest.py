import os
from contextlib import nullcontext

# Must be set before any app module reads its configuration
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-consulting-sessions-0123456789"
os.environ["SUPERADMIN_TOKEN"] = "test-superadmin-token"
os.environ["NOTIFICATION_WEBHOOK_URL"] = ""
os.environ["LOG_FORMAT"] = "text"

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.database import Base, get_session
from app.core.jwt_auth import jwt_manager
from app.core.limits import limiter
from app.consulting.models import ConsultingSession, SessionStatus

NOW = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)
SUPERADMIN_HEADERS = {"X-Superadmin-Token": "test-superadmin-token"}


def auth_headers(user_id: str) -> dict:
    token = jwt_manager.create_access_token(user_id)
    return {"Authorization": f"Bearer {token}"}


class NoLocks:
    """Stands in for another worker that does not share the in-process lock"""

    def hold(self, session_id):
        return nullcontext()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'consulting.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_session(session_factory):
    """Insert a consulting session directly into the store"""

    async def _make(**overrides) -> ConsultingSession:
        data = {
            "title": "Planejamento financeiro",
            "description": "Sessão em grupo",
            "instructor": "Ana Souza",
            "scheduled_at": NOW + timedelta(days=1),
            "duration_minutes": 60,
            "max_participants": 20,
            "current_participants": 0,
            "status": SessionStatus.available.value,
            "platform": "zoom",
            "meeting_link": "https://zoom.example.com/j/123",
        }
        data.update(overrides)
        async with session_factory() as session:
            consulting = ConsultingSession(**data)
            session.add(consulting)
            await session.commit()
            await session.refresh(consulting)
            return consulting

    return _make


@pytest_asyncio.fixture
async def client(session_factory):
    from app.main import app

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
