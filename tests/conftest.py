"""Shared fixtures: in-memory SQLite, fake Redis and an ASGI test client."""

from __future__ import annotations

from datetime import datetime, timedelta

import fakeredis
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from thumbai.api.main import app
from thumbai.config import Settings, get_settings
from thumbai.database import models  # noqa: F401
from thumbai.database.models import User, UserSession
from thumbai.database.session import get_db
from thumbai.jobs.context import ClientInit, JobContext
from thumbai.jobs.store import ResultStore
from thumbai.providers.base import ImageProvider
from thumbai.schemas import ThumbnailArtifact, utc_now
from thumbai.services.sessions import create_session


class FakeImageProvider(ImageProvider):
    """Records prompts; fails with the queued errors before succeeding."""

    def __init__(self, errors: list[Exception] | None = None, always_fail: Exception | None = None):
        self.calls: list[str] = []
        self.errors = list(errors or [])
        self.always_fail = always_fail

    @property
    def provider_name(self) -> str:
        return "fake"

    async def generate(self, prompt: str) -> ThumbnailArtifact:
        self.calls.append(prompt)
        if self.always_fail is not None:
            raise self.always_fail
        if self.errors:
            raise self.errors.pop(0)
        return ThumbnailArtifact(
            url=f"https://images.test/{len(self.calls)}.png",
            model="fake-image",
            size="1792x1024",
        )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        redis_url="redis://localhost:6379/0",
        queue_signing_key="test-signing-key",
        job_retry_backoff_seconds=0,
        openai_api_key="sk-test",
    )


@pytest.fixture
async def session_maker():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def redis():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def provider() -> FakeImageProvider:
    return FakeImageProvider()


@pytest.fixture
def job_context(settings, redis, provider) -> JobContext:
    return JobContext(
        settings=settings,
        redis=ClientInit.success(redis),
        store=ClientInit.success(ResultStore(redis, key_prefix=settings.job_key_prefix)),
        provider=ClientInit.success(provider),
    )


@pytest.fixture
async def client(settings, session_maker, job_context):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.state.job_context = job_context

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
    app.state.job_context = None


# =============================================================================
# Helpers
# =============================================================================

async def make_user(session_maker, email: str, name: str | None = None) -> User:
    async with session_maker() as db:
        user = User(email=email, name=name)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


async def sign_in(
    session_maker,
    user: User,
    settings: Settings,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
    last_seen_at: datetime | None = None,
    expires: datetime | None = None,
) -> UserSession:
    async with session_maker() as db:
        session = await create_session(
            db, user, user_agent=user_agent, ip_address=ip_address, settings=settings
        )
        if last_seen_at is not None or expires is not None:
            if last_seen_at is not None:
                session.last_seen_at = last_seen_at
            if expires is not None:
                session.expires = expires
            db.add(session)
            await db.commit()
            await db.refresh(session)
        return session


async def load_session(session_maker, session_id: str) -> UserSession | None:
    async with session_maker() as db:
        return await db.get(UserSession, session_id)


def auth(session: UserSession) -> dict[str, str]:
    return {"Authorization": f"Bearer {session.session_token}"}


def ago(**kwargs) -> datetime:
    return utc_now() - timedelta(**kwargs)
