import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from tortoise import Tortoise

from sso.config import Settings
from sso.core.db import tortoise_config
from sso.core.errors import UpstreamError, ValidationError
from sso.core.security import hash_password
from sso.main import create_app
from sso.models.user import User
from sso.services.blob_store import BlobStore, BlobStoreError, StoredObject
from sso.services.turnstile import TurnstileVerifier


TEST_DB_URL = "sqlite://:memory:"
TEST_SECRET = "test-jwt-secret"


class FakeBlobStore(BlobStore):
    """In-memory blob store recording every call."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_delete = False
        self.fail_upload = False

    def public_url(self, path: str) -> str:
        return f"https://blobs.test/public/{path}"

    async def upload(self, path: str, data: bytes, content_type: str) -> StoredObject:
        self.calls.append(("upload", path))
        if self.fail_upload:
            raise BlobStoreError("upload refused")
        self.objects[path] = data
        return StoredObject(path=path, url=self.public_url(path))

    async def delete(self, path: str) -> None:
        self.calls.append(("delete", path))
        if self.fail_delete:
            raise BlobStoreError("delete refused")
        self.objects.pop(path, None)


class FakeTurnstile(TurnstileVerifier):
    """Challenge verifier with a scripted outcome: "ok", "reject" or "error"."""

    def __init__(self):
        super().__init__(secret_key="test-turnstile")
        self.outcome = "ok"
        self.tokens: list[str] = []

    async def verify(self, token: str, remote_ip=None) -> None:
        self.tokens.append(token)
        if self.outcome == "reject":
            raise ValidationError("Security verification failed. Please try again.")
        if self.outcome == "error":
            raise UpstreamError("Security verification error")


def make_settings(**overrides) -> Settings:
    values = dict(
        database_url=TEST_DB_URL,
        jwt_secret=TEST_SECRET,
        storage_url="https://blobs.test",
        storage_service_key="service-key",
        allowed_redirects=["https://mategroup.id", "https://comate.mategroup.id"],
        rate_limit_max=10_000,
    )
    values.update(overrides)
    return Settings(**values)


async def _init_test_db() -> None:
    """
    Initialize a clean in-memory SQLite database for every test.
    Ensures tables are recreated from scratch.
    """
    if Tortoise._inited:
        await Tortoise.close_connections()
    await Tortoise.init(config=tortoise_config(TEST_DB_URL))
    await Tortoise.generate_schemas()


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def turnstile():
    return FakeTurnstile()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def app(settings, blob_store, turnstile):
    return create_app(settings, blob_store=blob_store, turnstile=turnstile)


@pytest_asyncio.fixture
async def client(app):
    """
    Provide an HTTPX AsyncClient bound to the FastAPI app with a fresh DB.
    """
    await _init_test_db()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client
    await Tortoise.close_connections()


@pytest_asyncio.fixture
async def create_user():
    """
    Factory fixture to create users directly via ORM.
    """

    async def _create_user(password: str = "UserPass!23", **fields) -> tuple[User, str]:
        suffix = uuid.uuid4().hex[:6]
        values = dict(
            name="Test User",
            username=f"user_{suffix}",
            email=f"{suffix}@example.com",
            password_hash=hash_password(password),
            subscriptions={},
        )
        values.update(fields)
        user = await User.create(**values)
        return user, password

    return _create_user


@pytest_asyncio.fixture
async def auth_header_factory(client):
    """
    Helper fixture to obtain Authorization headers via the login endpoint.
    Cookies from the login are dropped so only the header authenticates.
    """

    async def _get_headers(identifier: str, password: str) -> dict[str, str]:
        resp = await client.post(
            "/auth/login",
            json={"email": identifier, "password": password},
        )
        assert resp.status_code == 200, resp.text
        client.cookies.clear()
        return {"Authorization": f"Bearer {resp.json()['token']}"}

    return _get_headers


@pytest.fixture
def make_app():
    """Factory for apps with non-default settings (fakes for external services)."""

    def _make_app(**overrides):
        return create_app(make_settings(**overrides), blob_store=FakeBlobStore(), turnstile=FakeTurnstile())

    return _make_app
