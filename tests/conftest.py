"""Global test fixtures and shared test infrastructure.

Provides:
- Environment variable defaults (must be set before any app import)
- A per-test in-memory SQLite database with the application schema
- FakeGateway standing in for the Daraja client in orchestrator and endpoint tests
- Daraja mock transport helpers for exercising the real client over httpx
- An ASGI client with database and gateway dependency overrides
"""

from __future__ import annotations

import os

# Environment defaults must be set before importing the app, which triggers
# pydantic Settings validation on import.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("DARAJA_CONSUMER_KEY", "test-consumer-key")
os.environ.setdefault("DARAJA_CONSUMER_SECRET", "test-consumer-secret")
os.environ.setdefault("DARAJA_PASSKEY", "test-passkey")
os.environ.setdefault("DARAJA_CALLBACK_URL", "https://loans.example.com/api/mpesa/callback")
os.environ.setdefault("BASE_URL", "https://loans.example.com")

import json
from typing import Any, Callable

import httpx
import pytest
import pytest_asyncio
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.deps import get_daraja_client
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.services import loan_applications
from app.services.daraja import DarajaClient, DarajaConfig, StkPushResult


# ---------------------------------------------------------------------------
# FakeGateway: mimics the DarajaClient surface used by the orchestrator
# ---------------------------------------------------------------------------


class FakeGateway:
    """Records STK push requests and hands out sequential checkout request ids.

    Set ``error`` to an exception instance to make the next pushes fail.
    """

    def __init__(self) -> None:
        self.pushes: list[dict[str, Any]] = []
        self.error: Exception | None = None
        self._counter = 0

    async def initiate_stk_push(
        self,
        phone_number: str,
        amount: int,
        account_reference: str,
        transaction_desc: str,
        *,
        now=None,
    ) -> StkPushResult:
        self.pushes.append(
            {
                "phone_number": phone_number,
                "amount": amount,
                "account_reference": account_reference,
                "transaction_desc": transaction_desc,
            }
        )
        if self.error is not None:
            raise self.error
        self._counter += 1
        return StkPushResult(
            checkout_request_id=f"ws_CO_{self._counter:06d}",
            merchant_request_id=f"29115-{self._counter}",
            customer_message="Success. Request accepted for processing",
        )


# ---------------------------------------------------------------------------
# Daraja mock transport: drives the real client without network access
# ---------------------------------------------------------------------------


def daraja_config(**overrides: Any) -> DarajaConfig:
    defaults: dict[str, Any] = dict(
        consumer_key="key",
        consumer_secret="secret",
        business_shortcode="174379",
        passkey="passkey",
        callback_url="https://loans.example.com/api/mpesa/callback",
        environment="sandbox",
        public_base_url="https://loans.example.com",
        initiator_name="testapi",
        security_credential="credential",
        timeout_seconds=30.0,
    )
    defaults.update(overrides)
    return DarajaConfig(**defaults)


class DarajaStub:
    """``httpx.MockTransport`` handler that answers OAuth and records API posts."""

    def __init__(self, responses: dict[str, Callable[[httpx.Request], httpx.Response]] | None = None):
        self.requests: list[httpx.Request] = []
        self.responses = responses or {}

    def bodies(self, path: str) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.responses.get(request.url.path)
        if handler is not None:
            return handler(request)
        if request.url.path == "/oauth/v1/generate":
            return httpx.Response(200, json={"access_token": "test-token", "expires_in": "3599"})
        return httpx.Response(
            200,
            json={
                "ConversationID": "AG_20261018_0001",
                "OriginatorConversationID": "1234-5678-1",
                "ResponseCode": "0",
                "ResponseDescription": "Accept the service request successfully.",
            },
        )

    def client(self, **config_overrides: Any) -> DarajaClient:
        return DarajaClient(daraja_config(**config_overrides), transport=httpx.MockTransport(self))


# ---------------------------------------------------------------------------
# Shared pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Give every test a fresh in-memory limiter with no default limits."""
    original = app.state.limiter
    app.state.limiter = Limiter(
        key_func=get_remote_address,
        storage_uri="memory://",
    )
    yield
    app.state.limiter = original


@pytest_asyncio.fixture
async def engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture
async def client(session_factory, gateway):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_daraja_client] = lambda: gateway

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http

    app.dependency_overrides.clear()


def application_fields(**overrides: Any) -> dict[str, Any]:
    defaults: dict[str, Any] = dict(
        first_name="Ann",
        last_name="Doe",
        email="a@x.com",
        phone="712345678",
        amount=5000,
        purpose="school",
    )
    defaults.update(overrides)
    return defaults


async def create_committed_application(session_factory, **overrides: Any) -> str:
    async with session_factory() as session:
        application = await loan_applications.create_application(
            session, application_fields(**overrides)
        )
        await session.commit()
        return application.id


async def load_application(session_factory, application_id: str):
    async with session_factory() as session:
        return await loan_applications.get_application(session, application_id)
