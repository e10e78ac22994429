"""
Pytest configuration and fixtures for async API testing.

Each test gets a fresh in-memory SQLite database (aiosqlite), so tests can
commit freely without leaking rows into each other. The Shopify gateway is
replaced by FakeGateway; nothing here talks to the network.
"""
import os
import time
import uuid

# Settings are cached on first use, so the environment must be set before
# anything from qr_api is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ["SHOPIFY_API_KEY"] = "test-api-key"
os.environ["SHOPIFY_API_SECRET"] = "test-api-secret"
os.environ["APP_URL"] = "https://qr.example.test"

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from qr_api.core.db import Base
from qr_api.core.errors import PlatformError
from qr_api.models import ShopSession
from qr_api.shopify import Discount, ScriptTag

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite://")

# Tests drop and recreate every table; never point them at a shared database
if not TEST_DATABASE_URL.startswith("sqlite") and "localhost" not in TEST_DATABASE_URL:
    raise RuntimeError(
        f"DANGER: Tests are configured to use a remote database!\n"
        f"TEST_DATABASE_URL: {TEST_DATABASE_URL}\n"
        f"Use sqlite+aiosqlite:// or a local test database."
    )

SHOP_A = "shop1.example"
SHOP_B = "shop2.example"
API_KEY = os.environ["SHOPIFY_API_KEY"]
API_SECRET = os.environ["SHOPIFY_API_SECRET"]


def make_session_token(shop: str, secret: str = API_SECRET, expires_in: int = 60, **claims) -> str:
    """Mint a session token shaped like the ones App Bridge sends."""
    now = int(time.time())
    payload = {
        "iss": f"https://{shop}/admin",
        "dest": f"https://{shop}",
        "aud": API_KEY,
        "sub": "42",
        "exp": now + expires_in,
        "nbf": now - 5,
        "iat": now - 5,
        "jti": str(uuid.uuid4()),
        "sid": "session-id",
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(shop: str) -> dict:
    return {"Authorization": f"Bearer {make_session_token(shop)}"}


class FakeGateway:
    """Stands in for ShopifyGateway; records what the routes asked for."""

    def __init__(self, shop: str = SHOP_A):
        self.shop = shop
        self.discounts: list[Discount] = []
        self.script_tags: list[ScriptTag] = []
        self.fail_with: PlatformError | None = None
        self.discount_calls = 0
        self.created_script_srcs: list[str] = []
        self.since_ids: list[str | None] = []

    def _maybe_fail(self):
        if self.fail_with:
            raise self.fail_with

    async def fetch_discounts(self, limit: int) -> dict:
        self._maybe_fail()
        self.discount_calls += 1
        return {
            "codeDiscountNodes": {
                "edges": [
                    {
                        "node": {
                            "id": d.id,
                            "codeDiscount": {"codes": {"edges": [{"node": {"code": d.code}}]}},
                        }
                    }
                    for d in self.discounts[:limit]
                ]
            }
        }

    async def list_discounts(self, limit: int) -> list[Discount]:
        self._maybe_fail()
        self.discount_calls += 1
        return self.discounts[:limit]

    async def list_script_tags(self, since_id=None, src=None) -> list[ScriptTag]:
        self._maybe_fail()
        self.since_ids.append(since_id)
        return [tag for tag in self.script_tags if src is None or tag.src == src]

    async def find_existing_script_tag(self, src: str):
        for tag in await self.list_script_tags(src=src):
            return tag
        return None

    async def create_script_tag(self, src: str, event: str = "onload") -> ScriptTag:
        self._maybe_fail()
        self.created_script_srcs.append(src)
        tag = ScriptTag(id=1000 + len(self.script_tags), src=src, event=event)
        self.script_tags.append(tag)
        return tag


# ────────────────────────────────────────────────────────────────
# Database Fixtures
# ────────────────────────────────────────────────────────────────

@pytest.fixture
async def async_engine():
    """Fresh schema per test; StaticPool keeps the in-memory database alive."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def async_session(async_engine):
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session_maker() as session:
        yield session


@pytest.fixture
async def installed_shops(async_session: AsyncSession):
    """Offline sessions for two shops, as the install flow would store them."""
    async_session.add_all([
        ShopSession(shop=SHOP_A, access_token="shpat_a", scope="read_discounts,write_script_tags"),
        ShopSession(shop=SHOP_B, access_token="shpat_b", scope="read_discounts,write_script_tags"),
    ])
    await async_session.commit()
    return [SHOP_A, SHOP_B]


# ────────────────────────────────────────────────────────────────
# App Fixtures
# ────────────────────────────────────────────────────────────────

@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
async def client(async_session, installed_shops, gateway):
    """
    AsyncClient against the FastAPI app with the test database session and
    the fake Shopify gateway wired in.
    """
    # Import here so the environment above is in place first
    from qr_api.main import app
    from qr_api.core.db import get_session
    from qr_api.shopify import get_platform_gateway

    async def override_get_session():
        yield async_session

    async def override_get_platform_gateway():
        yield gateway

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_platform_gateway] = override_get_platform_gateway

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
