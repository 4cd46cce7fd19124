"""Test-specific fixtures."""

import os

# Settings are read at import time by storefront.main; pin the test profile first
os.environ["ENV"] = "test"
os.environ.setdefault(
    "JWT_SECRET", "test_jwt_secret_for_testing_only_must_be_at_least_32_chars_long"
)
os.environ["PASSWORD_SCHEME"] = "pbkdf2_sha256"
os.environ["LOG_FORMAT"] = "plain"
os.environ["AUTO_CREATE_SCHEMA"] = "0"
os.environ.pop("JWT_ISS", None)
os.environ.pop("JWT_AUD", None)

import httpx  # noqa: E402
import pytest  # noqa: E402
from httpx import ASGITransport  # noqa: E402

from storefront.credentials import hash_password  # noqa: E402
from storefront.db.core import configure_engine, dispose_engine, init_models  # noqa: E402
from storefront.rate_limit import limiter  # noqa: E402
from storefront.settings import get_settings  # noqa: E402
from storefront.settings_rate import rate_limit_settings  # noqa: E402
from storefront.stores.products import ProductCatalog  # noqa: E402
from storefront.stores.users import UserStore  # noqa: E402

TEST_PASSWORD = "Sup3r$ecret!"


@pytest.fixture(autouse=True)
def _fresh_state():
    """Cached settings and limiter counters never leak between tests."""
    get_settings.cache_clear()
    rate_limit_settings.reset_test_config()
    limiter.reset()
    yield
    get_settings.cache_clear()
    rate_limit_settings.reset_test_config()
    limiter.reset()


@pytest.fixture
async def db(tmp_path):
    """A fresh SQLite file database per test."""
    configure_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront_test.db'}")
    await init_models()
    yield
    await dispose_engine()


@pytest.fixture
def app(db):
    from storefront.main import create_app

    return create_app(configure_logs=False)


@pytest.fixture
async def raw_client(app):
    """Client with no CSRF priming."""
    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture
async def client(raw_client):
    """Client that has picked up its guest/CSRF cookies and echoes the CSRF header."""
    r = await raw_client.get("/healthz")
    assert r.status_code == 200
    raw_client.headers["X-CSRF-Token"] = raw_client.cookies["csrf-token"]
    return raw_client


@pytest.fixture
def catalog():
    return ProductCatalog()


@pytest.fixture
def make_user(db):
    users = UserStore()

    async def _make(email="shopper@example.com", password=TEST_PASSWORD, role="customer"):
        return await users.create(
            email=email,
            password_hash=hash_password(password),
            first_name="Test",
            last_name="User",
            role=role,
            accept_terms=True,
        )

    return _make


@pytest.fixture
def login(client):
    async def _login(email="shopper@example.com", password=TEST_PASSWORD, **extra):
        r = await client.post("/api/auth/login", json={"email": email, "password": password, **extra})
        assert r.status_code == 200, r.text
        return r.json()

    return _login
