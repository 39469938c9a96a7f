"""Master test fixtures.

Environment variables are set BEFORE any application imports so that
``config.Settings()`` initialises with test-safe values and never
touches Docker secrets or a production database.
"""

import io, os, random, uuid

# ── Set test env vars before any app import ──────────────────────────
os.environ.update({
    "DATABASE_URL": "sqlite+aiosqlite://",
    "POSTGRES_PASSWORD": "testpassword",
    "LLM_API_KEY": "test-llm-key",
    "LLM_BASE_URL": "https://llm.test/v1",
    "LLM_MODEL": "test-model",
    "SUPABASE_URL": "https://supabase.test",
    "SUPABASE_JWT_SECRET": "test-jwt-secret-for-signing-tokens",
    "SUPABASE_SERVICE_ROLE_KEY": "test-service-role-key",
})

import pytest

from httpx import ASGITransport, AsyncClient
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Now safe to import application code
from models.base import Base, get_db
from auth.jwt import create_access_token
from storage.client import StorageClient, get_storage_client

SUPABASE_URL = "https://supabase.test"
SERVICE_ROLE_KEY = "test-service-role-key"
LLM_COMPLETIONS_URL = "https://llm.test/v1/chat/completions"


_test_engine = create_async_engine("sqlite+aiosqlite://", echo=False)
_TestSession = async_sessionmaker(_test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(autouse=True)
async def _create_tables():
    """Create and drop SQLite tables around every test."""
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _fresh_llm_client(monkeypatch):
    """Every test builds its own gateway client."""
    import assistant.gateway as gateway
    monkeypatch.setattr(gateway, "_llm_client", None)


@pytest.fixture
async def db_session():
    """Yield a test DB session."""
    async with _TestSession() as session:
        yield session


@pytest.fixture
def storage_client():
    return StorageClient(SUPABASE_URL, SERVICE_ROLE_KEY)


@pytest.fixture
async def test_client(db_session: AsyncSession, storage_client: StorageClient):
    """HTTPX async client wired to the FastAPI app, with DB and storage overrides.

    The startup event is NOT run.
    """
    from main import app

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_storage_client] = lambda: storage_client
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def auth_headers(user_id: uuid.UUID) -> dict:
    """Authorization header carrying a valid token for ``user_id``."""
    token = create_access_token(user_id)
    return {"Authorization": f"Bearer {token}"}


# ── Image builders ───────────────────────────────────────────────────

def noise_image(width: int, height: int, seed: int = 0) -> Image.Image:
    """Random RGB noise, about the worst case for JPEG size."""
    data = random.Random(seed).randbytes(width * height * 3)
    return Image.frombytes("RGB", (width, height), data)


def gradient_image(width: int, height: int) -> Image.Image:
    """A smooth image that compresses very well."""
    horizontal = Image.linear_gradient("L").resize((width, height))
    vertical = horizontal.transpose(Image.Transpose.ROTATE_90).resize((width, height))
    flat = Image.new("L", (width, height), 128)
    return Image.merge("RGB", (horizontal, vertical, flat))


def encode_image(img: Image.Image, fmt: str = "JPEG", **kwargs) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


def encode_heic(img: Image.Image) -> bytes:
    import images.heic  # noqa: F401  registers the HEIF opener
    return encode_image(img, "HEIF", quality=90)


@pytest.fixture
def small_jpeg() -> bytes:
    return encode_image(gradient_image(320, 240), quality=90)


@pytest.fixture
def heic_photo() -> bytes:
    return encode_heic(gradient_image(1200, 900))
