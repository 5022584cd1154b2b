"""Pytest fixtures for the reputation service.

Tests run against in-memory SQLite by default. Point them at Postgres with
TEST_DATABASE_URL plus PYTEST_ALLOW_DB=1.
"""

import asyncio
import os
from typing import AsyncGenerator, Optional

# Settings are read at import time; give them something harmless.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest
import pytest_asyncio

from httpx import AsyncClient, ASGITransport
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel

from app.errors import IdentitySourceError
from app.services.identity_resolver import IdentityResolver
from app.services.identity_source import ExternalIdentity, OrgMembership
from app.utils.db_async import build_engine, import_table_modules


def _load_database_url() -> str:
    """Resolve the database URL for tests, enforcing an explicit opt-in for Postgres."""
    test_db_url = os.getenv("TEST_DATABASE_URL")
    if not test_db_url:
        return "sqlite+aiosqlite://"
    pytest_allow_db = int(os.getenv("PYTEST_ALLOW_DB", "0"))
    if pytest_allow_db != 1:
        raise RuntimeError(
            "Running tests against TEST_DATABASE_URL requires setting PYTEST_ALLOW_DB=1"
            " to confirm the configured database is safe to mutate."
        )
    return test_db_url


class FakeIdentitySource:
    """In-memory stand-in for the upstream member-lookup API."""

    def __init__(self) -> None:
        self.members: dict[str, ExternalIdentity] = {}
        self.aliases: dict[str, str] = {}
        self.handle_calls: list[str] = []
        self.id_calls: list[str] = []
        self.fail_with: Optional[Exception] = None
        self.delay: float = 0.0

    def add(
        self,
        external_id: str,
        handle: str,
        display_name: Optional[str] = None,
        avatar_url: Optional[str] = None,
        organizations: Optional[list[OrgMembership]] = None,
    ) -> ExternalIdentity:
        """Register (or replace) the upstream profile for ``external_id``."""
        identity = ExternalIdentity(
            external_id=external_id,
            handle=handle,
            display_name=display_name,
            avatar_url=avatar_url,
            organizations=tuple(organizations) if organizations is not None else None,
        )
        self.members[external_id] = identity
        return identity

    async def _answer(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

    async def lookup_by_handle(self, handle: str) -> Optional[ExternalIdentity]:
        self.handle_calls.append(handle)
        await self._answer()
        if handle.lower() in self.aliases:
            return self.members.get(self.aliases[handle.lower()])
        for identity in self.members.values():
            if identity.handle.lower() == handle.lower():
                return identity
        return None

    async def lookup_by_external_id(self, external_id: str) -> Optional[ExternalIdentity]:
        self.id_calls.append(external_id)
        await self._answer()
        return self.members.get(external_id)

    def alias(self, handle: str, external_id: str) -> None:
        """Make a handle lookup answer with another member (e.g. an old handle)."""
        self.aliases[handle.lower()] = external_id

    def go_offline(self) -> None:
        self.fail_with = IdentitySourceError("upstream unavailable", status_code=503)


@pytest.fixture()
def database_url() -> str:
    return _load_database_url()


@pytest_asyncio.fixture()
async def async_engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Yield an async engine with a freshly created schema."""
    import_table_modules()

    engine = build_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)
    try:
        yield engine
    finally:
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.drop_all)
        await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Session with no transaction open; services begin their own."""
    session_factory = async_sessionmaker(
        async_engine, expire_on_commit=False, class_=AsyncSession
    )
    async with session_factory() as session:
        yield session


@pytest.fixture()
def identity_source() -> FakeIdentitySource:
    return FakeIdentitySource()


@pytest.fixture()
def resolver(identity_source: FakeIdentitySource) -> IdentityResolver:
    return IdentityResolver(identity_source, lookup_timeout_seconds=1.0)


@pytest_asyncio.fixture()
async def app_client(
    db_session: AsyncSession, resolver: IdentityResolver
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an HTTP client with the application wired to the test session."""
    try:
        from app.main import app
    except ValidationError as exc:  # pragma: no cover - guard for misconfigured env
        pytest.skip(f"App configuration failed: {exc}")

    from app.deps import get_identity_resolver
    from app.utils.db_async import get_session

    async def _get_session_override() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_session] = _get_session_override
    app.dependency_overrides[get_identity_resolver] = lambda: resolver
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.pop(get_session, None)
        app.dependency_overrides.pop(get_identity_resolver, None)


@pytest.fixture()
def make_player(db_session: AsyncSession):
    """Factory that stores a player directly, bypassing the identity source."""
    from app.schemas.players import Player

    async def _make(external_id: str, handle: str, display_name: Optional[str] = None) -> Player:
        async with db_session.begin():
            player = Player(
                external_id=external_id,
                current_handle=handle,
                current_display_name=display_name,
            )
            db_session.add(player)
        return player

    return _make
