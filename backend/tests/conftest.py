import asyncio
import os
from types import SimpleNamespace
from uuid import UUID, uuid4

# The service module builds its engine on import; keep it off postgres in tests.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import pytest
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from collaboration.application.local_store import LocalDocumentStore
from collaboration.application.provider import NoteSyncProvider
from collaboration.infrastructure.redis_pubsub import RealtimeClient
from main import app
from shared.dependencies import get_db
from shared.infrastructure.api_client import RemoteBackendClient
from shared.infrastructure.database import Base
from shared.infrastructure.local_database import (
    create_local_engine,
    create_local_session_factory,
    init_local_database,
)
from shared.infrastructure.network import ManualNetworkMonitor
from shared.security import create_access_token

import notes.infrastructure.models  # noqa: F401


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'server.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db(test_engine):
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
async def override_db(test_engine):
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async def _override():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override
    yield
    app.dependency_overrides.clear()


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


def bearer(user_id: UUID) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def auth_headers(user_id) -> dict:
    return bearer(user_id)


@pytest.fixture
def other_headers() -> dict:
    return bearer(uuid4())


@pytest.fixture
async def remote(user_id):
    http = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
    async with RemoteBackendClient(http, create_access_token(user_id)) as remote:
        yield remote


@pytest.fixture
def network():
    return ManualNetworkMonitor(online=True)


@pytest.fixture
async def redis():
    r = FakeRedis(server=FakeServer())
    yield r
    await r.aclose()


@pytest.fixture
def realtime(redis):
    return RealtimeClient(redis)


@pytest.fixture
async def make_local_engine(tmp_path):
    """Each engine stands in for the embedded database of one device."""
    engines = []

    async def _make(name: str = "device"):
        engine = create_local_engine(f"sqlite+aiosqlite:///{tmp_path / f'{name}.db'}")
        await init_local_database(engine)
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        await engine.dispose()


@pytest.fixture
async def local_engine(make_local_engine):
    return await make_local_engine()


@pytest.fixture
def local_session_factory(local_engine):
    return create_local_session_factory(local_engine)


@pytest.fixture
def local_store(local_session_factory):
    return LocalDocumentStore(local_session_factory)


@pytest.fixture
async def note_id(client, auth_headers) -> UUID:
    resp = await client.post("/api/notes", json={"title": "Shared note"}, headers=auth_headers)
    return UUID(resp.json()["id"])


@pytest.fixture
async def make_remote():
    """Remote clients signed in as other identities."""
    remotes = []

    def _make(user_id: UUID) -> RemoteBackendClient:
        http = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        remote = RemoteBackendClient(http, create_access_token(user_id))
        remotes.append(remote)
        return remote

    yield _make
    for remote in remotes:
        await remote.aclose()


@pytest.fixture
async def collaborator(client, auth_headers, note_id, make_remote):
    """A second identity the note is shared with as an editor."""
    user = uuid4()
    resp = await client.put(
        f"/api/notes/{note_id}/collaborators",
        json={"user_id": str(user), "role": "editor"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    return SimpleNamespace(user_id=user, remote=make_remote(user))


@pytest.fixture
async def make_provider(note_id, user_id, local_store, remote, realtime, network):
    providers = []

    def _make(**overrides) -> NoteSyncProvider:
        options = {
            "local_store": local_store,
            "remote": remote,
            "realtime": realtime,
            "network": network,
            "debounce_seconds": 0.01,
        }
        target = overrides.pop("note_id", note_id)
        identity = overrides.pop("user_id", user_id)
        options.update(overrides)
        provider = NoteSyncProvider(target, identity, **options)
        providers.append(provider)
        return provider

    yield _make
    for provider in providers:
        await provider.destroy()


@pytest.fixture
def wait_until():
    async def _wait(predicate, timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.01)

    return _wait
