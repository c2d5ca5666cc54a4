"""pytest fixtures for Sigil backend tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- session: Function-scoped database session on a fresh SQLite database
- uow_factory: Function-scoped UnitOfWork factory
- settings: Test settings with no provider credentials
- fake_adapter: Factory for scripted adapters
- make_lifecycle: GenerationLifecycle over the test database
- create_generation: Insert a generation row directly
"""

import asyncio
import os

# Settings validation is skipped in test environments; must be set before app import
os.environ.setdefault("APP_ENV", "test")

from typing import AsyncGenerator  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from sigil.core.config import Settings  # noqa: E402
from sigil.core.database import setup_db_session  # noqa: E402
from sigil.models import Generation  # noqa: E402
from sigil.services.generation.lifecycle import GenerationLifecycle  # noqa: E402
from sigil.services.models.base import (  # noqa: E402
    BaseModelAdapter,
    GenerationRequest,
    GenerationResponse,
)
from sigil.services.models.registry import ModelRegistry  # noqa: E402
from sigil.services.models.routing import ProviderCredentials  # noqa: E402
from sigil.services.storage.output_persistence import OutputPersistence  # noqa: E402
from sigil.uow import create_uow_factory  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Provide a session factory bound to a fresh file-backed SQLite database.

    A file (not :memory:) is used so concurrent sessions see the same data.
    """
    factory = setup_db_session(f"sqlite+aiosqlite:///{tmp_path / 'sigil_test.db'}")
    engine = factory.kw["bind"]

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield factory

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)


@pytest.fixture
def settings() -> Settings:
    """Settings with no provider credentials and no .env file."""
    return Settings(  # type: ignore[call-arg]
        _env_file=None,
        APP_ENV="test",
        REPLICATE_API_TOKEN="",
        GEMINI_API_KEY="",
        FAL_KEY="",
        KLING_ACCESS_KEY="",
        KLING_SECRET_KEY="",
        SUPABASE_URL="",
        SUPABASE_SERVICE_ROLE_KEY="",
        ADMIN_API_TOKEN="admin-secret",
        DISPATCH_SECRET="",
    )


class FakeAdapter(BaseModelAdapter):
    """Adapter returning a scripted response and recording the requests it saw."""

    response: GenerationResponse | Exception | None = None
    delay: float = 0.0
    requests: list[GenerationRequest] = []

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        type(self).requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.response, Exception):
            raise self.response
        assert self.response is not None
        return self.response


@pytest.fixture
def fake_adapter():
    """Factory for FakeAdapter subclasses with their own request log."""

    def _make(response: GenerationResponse | Exception, delay: float = 0.0):
        return type(
            "ScriptedAdapter",
            (FakeAdapter,),
            {"response": response, "delay": delay, "requests": []},
        )

    return _make


@pytest.fixture
def make_lifecycle(uow_factory, settings):
    """Factory for GenerationLifecycle over the test database (no durable storage)."""

    def _make(
        registry: ModelRegistry,
        credentials: ProviderCredentials | None = None,
        heartbeat_interval_seconds: float = 10.0,
    ) -> GenerationLifecycle:
        return GenerationLifecycle(
            uow_factory=uow_factory,
            registry=registry,
            credentials=credentials or ProviderCredentials(),
            persistence=OutputPersistence(storage=None),
            heartbeat_interval_seconds=heartbeat_interval_seconds,
        )

    return _make


@pytest.fixture
def create_generation(uow_factory):
    """Insert a generation row directly (bypassing the registry check)."""

    async def _create(**overrides) -> Generation:
        values = {
            "user_id": uuid4(),
            "session_id": uuid4(),
            "model_id": "seedream-4",
            "prompt": "a lighthouse at dusk",
            "parameters": {},
        }
        values.update(overrides)
        async with await uow_factory() as uow:
            return await uow.generations.add(Generation(**values))

    return _create
