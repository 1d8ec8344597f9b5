"""
Test infrastructure for contentdesk.

Strategy
--------
- SQLite in-memory via aiosqlite, with StaticPool so every session (the
  request session and the background-task session alike) shares the single
  in-memory connection.
- ``get_db`` and ``get_session_factory`` are overridden to use the test
  session factory.
- Collaborators with side effects (asset store, notifier) are replaced by
  in-memory fakes that record calls and can be told to fail.
- Tables are created before each test and dropped after.
- The Redis cache is disabled by setting ``cache._redis = None``; every cache
  call then degrades to a no-op and the real query path runs.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from contentdesk.assets import StoredAsset, get_asset_store
from contentdesk.cache import cache
from contentdesk.database import Base, get_db, get_session_factory
from contentdesk.main import app
from contentdesk.middleware import install_query_counter
from contentdesk.models import User
from contentdesk.notifier import get_notifier

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeNotifier:
    def __init__(self) -> None:
        self.sent = []
        self.fail = False

    async def send(self, message) -> None:
        if self.fail:
            raise ConnectionError("smtp unavailable")
        self.sent.append(message)


class FakeAssetStore:
    def __init__(self) -> None:
        self.stored: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_delete = False

    async def upload(self, data: bytes, content_type: str) -> StoredAsset:
        reference_id = f"featured-images/asset-{len(self.stored) + 1}"
        self.stored[reference_id] = data
        return StoredAsset(url=f"https://cdn.test/{reference_id}", reference_id=reference_id)

    async def delete(self, reference_id: str) -> None:
        if self.fail_delete:
            raise ConnectionError("asset store unavailable")
        self.deleted.append(reference_id)
        self.stored.pop(reference_id, None)


# ---------------------------------------------------------------------------
# Dependency overrides
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
app.dependency_overrides[get_session_factory] = lambda: async_session_test


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    cache._redis = None
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live AsyncSession for seeding data and calling services directly."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def notifier():
    fake = FakeNotifier()
    app.dependency_overrides[get_notifier] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_notifier, None)


@pytest_asyncio.fixture
async def assets():
    fake = FakeAssetStore()
    app.dependency_overrides[get_asset_store] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_asset_store, None)


@pytest_asyncio.fixture
async def async_client(notifier, assets) -> AsyncClient:
    """httpx.AsyncClient wired to the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession):
    """Factory that commits an author row and returns it."""

    async def _make(username: str = "author", email: str | None = None) -> User:
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            display_name=username.title(),
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def as_user():
    """Build identity headers for a request made on behalf of a user id."""

    def _headers(user_id: int, role: str = "author") -> dict:
        return {"X-User-Id": str(user_id), "X-User-Role": role}

    return _headers

