"""
Test fixtures using async SQLite for fast, isolated tests.
No PostgreSQL and no upstream provider required.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PERSIST_LOGS", "false")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.dependencies import get_log_writer, get_provider_factory
from app.db.base import Base
from app.logs.models import ActivityLog  # noqa: F401
from app.logs.schemas import ActivityLogEntry
from app.logs.service import LogWriter
from app.main import app
from app.providers.base import BaseProvider
from app.providers.mock import MockProvider


class RecordingLogWriter(LogWriter):
    """Keeps submitted entries in memory instead of writing them to storage."""

    def __init__(self) -> None:
        super().__init__(None, enabled=False)
        self.entries: list[ActivityLogEntry] = []

    def submit(self, entry: ActivityLogEntry) -> None:
        self.entries.append(entry)
        super().submit(entry)


class ProviderStub:
    """Provider factory handing out fixed providers and recording which were asked for."""

    def __init__(self, providers: dict[str, BaseProvider] | None = None) -> None:
        self.providers: dict[str, BaseProvider] = providers or {"mock": MockProvider()}
        self.calls: list[str] = []

    def __call__(self, provider_id: str) -> BaseProvider:
        self.calls.append(provider_id)
        if provider_id not in self.providers:
            raise ValueError(f"Unknown provider: {provider_id}")
        return self.providers[provider_id]


@pytest_asyncio.fixture
async def db():
    """Create a fresh in-memory SQLite database for each test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def log_writer() -> RecordingLogWriter:
    return RecordingLogWriter()


@pytest.fixture
def providers() -> ProviderStub:
    return ProviderStub()


@pytest_asyncio.fixture
async def client(providers: ProviderStub, log_writer: RecordingLogWriter):
    app.dependency_overrides[get_provider_factory] = lambda: providers
    app.dependency_overrides[get_log_writer] = lambda: log_writer
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as client:
            yield client
    finally:
        app.dependency_overrides.clear()
