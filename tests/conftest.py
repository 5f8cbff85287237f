import os

# Settings are read at import time; pin a throwaway environment first.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["BCRYPT_ROUNDS"] = "4"

from collections.abc import AsyncIterator  # noqa: E402

import fakeredis  # noqa: E402
import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from account_service.core.cache import get_redis  # noqa: E402
from account_service.core.database import get_db  # noqa: E402
from account_service.core.http import ClientContext  # noqa: E402
from account_service.core.security import TokenCodec  # noqa: E402
from account_service.models import Base  # noqa: E402
from account_service.services import role_service  # noqa: E402
from account_service.services.session_registry import SessionRegistry  # noqa: E402

TEST_SECRET = os.environ["SECRET_KEY"]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def engine(tmp_path):
    # File-backed so that separate sessions really use separate connections.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'accounts.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        await role_service.seed(session)
        yield session


@pytest.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def registry(redis_client) -> SessionRegistry:
    return SessionRegistry(redis_client)


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(secret=TEST_SECRET)


@pytest.fixture
def client_ctx() -> ClientContext:
    return ClientContext(ip="10.0.0.7", os="Linux", browser="Firefox")


@pytest.fixture
async def app(session_factory, redis_client, db):
    from account_service.main import create_app

    app = create_app()
    app.state.token_codec = TokenCodec(secret=TEST_SECRET)

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: redis_client
    return app


@pytest.fixture
async def http(app) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
