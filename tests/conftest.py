"""
Test infrastructure for the Questions API.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI, keeping the suite fast and self-contained.
- StaticPool forces all async tasks to share the same in-memory database
  connection, which is required because SQLite in-memory databases are
  connection-scoped; a new connection would see an empty database.
- The app's get_db dependency is overridden so every test-time request uses
  the test session factory rather than the production one.
- All tables are created fresh before each test and dropped after, giving
  each test a clean isolated state without needing transactions or truncation.
- The Redis token cache is disabled by setting cache._redis = None (reads
  miss, writes are skipped), so every request goes through the fake auth
  client.  Tests that exercise the cache itself plug in fakeredis.
- The lifespan does not run under ASGITransport, so the collaborators it
  would create (event bus, catalog and auth clients) are replaced on
  app.state with in-memory fakes that record what they were asked to do.
"""
import pytest
import pytest_asyncio
from fakeredis import aioredis as fake_aioredis
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.cache import cache
from app.database import Base, get_db
from app.exceptions import UpstreamError
from app.main import app
from app.schemas import CurrentUser

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Dependency override: replace production get_db with the test session factory
# ---------------------------------------------------------------------------

async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

# token -> identity payload as the auth service would return it
IDENTITIES = {
    "token-u1": {"id": "U1", "permissions": ["user"]},
    "token-u2": {"id": "U2", "permissions": ["user"]},
    "token-a1": {"id": "A1", "permissions": ["user", "admin"]},
    "token-a2": {"id": "A2", "permissions": ["user", "admin"]},
}


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def identity(token: str) -> CurrentUser:
    return CurrentUser.model_validate(IDENTITIES[token])


class FakeEventBus:
    """Records publishes and subscriptions instead of talking to RabbitMQ."""

    def __init__(self) -> None:
        self.published: list[tuple[str, dict, bool]] = []
        self.subscriptions: dict[str, tuple] = {}
        self.fail_publish = False
        self.fail_subscribe = False
        self.is_connected = True

    async def publish(self, topic, message, durable=True):
        if self.fail_publish:
            raise ConnectionError("broker unreachable")
        self.published.append((topic, message, durable))

    async def subscribe(self, topic, handler, durable=True):
        if self.fail_subscribe:
            raise ConnectionError("broker unreachable")
        self.subscriptions[topic] = (handler, durable)

    async def close(self):
        pass


class FakeCatalogClient:
    """Serves articles from a dict; unknown ids behave like a catalog 404."""

    def __init__(self) -> None:
        self.articles: dict[str, dict] = {}
        self.tokens_seen: list[str] = []

    def add(self, article_id: str, enabled: bool = True) -> None:
        self.articles[article_id] = {"id": article_id, "enabled": enabled}

    async def get_article(self, article_id, token):
        self.tokens_seen.append(token)
        return self.articles.get(article_id)

    async def is_article_enabled(self, article_id, token):
        article = await self.get_article(article_id, token)
        return bool(article) and article.get("enabled") is not False

    async def close(self):
        pass


class FakeAuthClient:
    def __init__(self) -> None:
        self.calls = 0

    async def get_current_user(self, authorization):
        self.calls += 1
        token = authorization.split(" ", 1)[1]
        if token not in IDENTITIES:
            raise UpstreamError("Invalid or expired token", upstream_status=401)
        return dict(IDENTITIES[token])

    async def close(self):
        pass


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """
    Yield a live AsyncSession for tests that need to interact with the
    database directly (e.g. seeding data, asserting ORM state).
    """
    async with async_session_test() as session:
        yield session


@pytest.fixture
def bus() -> FakeEventBus:
    return FakeEventBus()


@pytest.fixture
def catalog() -> FakeCatalogClient:
    catalog = FakeCatalogClient()
    catalog.add("ART-1")
    catalog.add("ART-2")
    catalog.add("ART-OFF", enabled=False)
    return catalog


@pytest.fixture
def auth_client() -> FakeAuthClient:
    return FakeAuthClient()


@pytest_asyncio.fixture
async def redis_cache():
    """Point the shared token cache at fakeredis for the duration of a test."""
    cache._redis = fake_aioredis.FakeRedis(decode_responses=True)
    yield cache
    await cache._redis.flushall()
    cache._redis = None


@pytest_asyncio.fixture
async def async_client(bus, catalog, auth_client) -> AsyncClient:
    """
    Yield an httpx.AsyncClient wired to the FastAPI app via ASGITransport,
    with fake collaborators on app.state.
    """
    if not isinstance(cache._redis, fake_aioredis.FakeRedis):
        cache._redis = None
    app.state.event_bus = bus
    app.state.catalog_client = catalog
    app.state.auth_client = auth_client
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
