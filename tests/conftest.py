"""
Household Push Dispatch: Test Configuration (conftest.py)
=========================================================

What:  Shared fixtures: an in-memory SQLite database, an RSA service-account
       key, a fake FCM/OAuth provider behind httpx.MockTransport, and an
       ASGI test client.
How:   Environment variables are set before any push_dispatch import so the
       settings singleton never sees production values.

Fixture Hierarchy:
    Session-scoped:
    └── rsa_key: 2048-bit key, generated once

    Function-scoped:
    ├── db_engine / session_factory / db_session: fresh schema per test
    ├── provider: FakeProvider recording every outbound request
    ├── http_client: httpx.AsyncClient routed to the provider
    └── test_client: ASGI client with app.state and the DB dependency wired
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_LEVEL"] = "WARNING"
for _name in ("FCM_SERVER_KEY", "FCM_PROJECT_ID", "FCM_CLIENT_EMAIL", "FCM_PRIVATE_KEY"):
    os.environ[_name] = ""
os.environ.pop("DISPATCH_AUTH_TOKEN", None)

import json
from typing import Dict, List, Set, Tuple

import httpx
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from push_dispatch.credentials import LegacyKey, ServiceAccount, SigningCredential
from push_dispatch.database import Base
from push_dispatch.models import Device, HouseholdMember, Image, Message, Profile
from push_dispatch.services.token_minter import TokenMinter

PROJECT_ID = "household-test"
CLIENT_EMAIL = "push@household-test.iam.gserviceaccount.com"
TOKEN_PATH = "/token"
LEGACY_PATH = "/fcm/send"


# ══════════════════════════════════════════════════════════════════════════
# Credentials
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_key) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def credential(private_key_pem) -> SigningCredential:
    return SigningCredential(
        client_email=CLIENT_EMAIL,
        project_id=PROJECT_ID,
        private_key_pem=private_key_pem,
    )


@pytest.fixture
def service_account(credential) -> ServiceAccount:
    return ServiceAccount(credential=credential)


@pytest.fixture
def legacy_key() -> LegacyKey:
    return LegacyKey(server_key="legacy-server-key")


# ══════════════════════════════════════════════════════════════════════════
# Fake provider (OAuth token endpoint + FCM v1 + FCM legacy)
# ══════════════════════════════════════════════════════════════════════════

class FakeProvider:
    """
    MockTransport handler standing in for Google.

    Knobs:
        token_response   (status, json) returned by the OAuth endpoint
        rejections       token → (status, json) for v1 sends
        timeouts         tokens whose v1 send raises ReadTimeout
        legacy_results   per-token legacy result dicts (default message_id)
        legacy_status    status of every legacy batch response
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.token_response: Tuple[int, object] = (
            200,
            {"access_token": "ya29.test-token", "expires_in": 3600, "token_type": "Bearer"},
        )
        self.rejections: Dict[str, Tuple[int, object]] = {}
        self.timeouts: Set[str] = set()
        self.legacy_results: Dict[str, dict] = {}
        self.legacy_status = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == TOKEN_PATH:
            status, body = self.token_response
            return httpx.Response(status, json=body)
        if path.endswith("messages:send"):
            token = json.loads(request.content)["message"]["token"]
            if token in self.timeouts:
                raise httpx.ReadTimeout("read timed out", request=request)
            if token in self.rejections:
                status, body = self.rejections[token]
                return httpx.Response(status, json=body)
            return httpx.Response(
                200, json={"name": f"projects/{PROJECT_ID}/messages/{len(self.requests)}"}
            )
        if path == LEGACY_PATH:
            tokens = json.loads(request.content)["registration_ids"]
            results = [
                self.legacy_results.get(token, {"message_id": f"0:{i}"})
                for i, token in enumerate(tokens)
            ]
            return httpx.Response(
                self.legacy_status,
                json={
                    "multicast_id": 1,
                    "success": sum(1 for r in results if "message_id" in r),
                    "failure": sum(1 for r in results if "error" in r),
                    "results": results,
                },
            )
        return httpx.Response(404, json={"error": "unexpected path " + path})

    def by_path(self, suffix: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    @property
    def token_requests(self) -> List[httpx.Request]:
        return self.by_path(TOKEN_PATH)

    @property
    def v1_sends(self) -> List[httpx.Request]:
        return self.by_path("messages:send")

    @property
    def legacy_sends(self) -> List[httpx.Request]:
        return self.by_path(LEGACY_PATH)

    @property
    def send_count(self) -> int:
        return len(self.v1_sends) + len(self.legacy_sends)


def v1_unregistered() -> Tuple[int, dict]:
    return (
        404,
        {
            "error": {
                "code": 404,
                "message": "Requested entity was not found.",
                "status": "NOT_FOUND",
                "details": [
                    {
                        "@type": "type.googleapis.com/google.firebase.fcm.v1.FcmError",
                        "errorCode": "UNREGISTERED",
                    }
                ],
            }
        },
    )


def v1_invalid_argument() -> Tuple[int, dict]:
    return (
        400,
        {"error": {"code": 400, "message": "Invalid payload", "status": "INVALID_ARGUMENT"}},
    )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest_asyncio.fixture
async def http_client(provider):
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(provider),
        base_url="https://oauth2.googleapis.com",
    ) as client:
        yield client


@pytest.fixture
def minter(http_client) -> TokenMinter:
    return TokenMinter(
        http_client,
        token_url="https://oauth2.googleapis.com/token",
        retry_attempts=2,
        retry_min_wait=0,
        retry_max_wait=0,
    )


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


async def seed(session, *rows) -> None:
    session.add_all(rows)
    await session.commit()


@pytest_asyncio.fixture
async def household(db_session):
    """
    Household h1 = {u1, u2}; u1 uploaded img_1 and wrote msg_1.
    u2 has tokens tok_a and tok_b; u1 has tok_self.
    """
    await seed(
        db_session,
        Image(id="img_1", user_id="u1", household_id="h1", file_name="beach.jpg"),
        Message(id="msg_1", sender_id="u1", household_id="h1", text="Dinner at 8?"),
        HouseholdMember(household_id="h1", user_id="u1"),
        HouseholdMember(household_id="h1", user_id="u2"),
        Profile(id="u1", display_name="Sam", household_id="h1"),
        Device(user_id="u2", token="tok_a", platform="android"),
        Device(user_id="u2", token="tok_b", platform="ios"),
        Device(user_id="u1", token="tok_self", platform="android"),
    )
    return db_session


# ══════════════════════════════════════════════════════════════════════════
# API client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(session_factory, http_client, minter, service_account):
    """
    ASGI client for the real app. Lifespan does not run under ASGITransport,
    so app.state is populated here and the DB dependency is overridden.
    """
    from push_dispatch.database import get_db_session
    from push_dispatch.main import app

    async def override_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    app.state.http_client = http_client
    app.state.token_minter = minter
    app.state.delivery_protocol = service_account

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
