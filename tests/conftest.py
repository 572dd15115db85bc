"""Pytest configuration and fixtures for integration tests."""
import json
import os
from dataclasses import dataclass
from typing import Optional

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["AUTH_ENABLED"] = "true"
os.environ["AUTH_SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["AUTH_BCRYPT_ROUNDS"] = "4"
os.environ["AUTO_MIGRATE"] = "false"
os.environ.pop("ELEVENLABS_WEBHOOK_SECRET", None)
os.environ.pop("ELEVENLABS_API_KEY", None)

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from parley.main import app
from parley.auth.jwt import create_access_token
from parley.auth.passwords import hash_password
from parley.config import parley_settings
from parley.database import get_async_session, get_session_factory
from parley.models import Agent, Base, Session, User
from parley.services.voice_client import get_conversation_client
from parley.utils import gen_id, now_ms
from parley.webhook_security import compute_signature

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

WEBHOOK_SECRET = "whsec-test-0123456789"
WEBHOOK_URL = "/v1/webhooks/elevenlabs"
TEST_PASSWORD = "correct-horse-battery"


@dataclass
class Account:
    id: str
    email: str
    is_admin: bool
    headers: dict


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """In-memory database shared by every session of one test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory):
    """Create test client with overridden database and no provider client."""

    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_conversation_client] = lambda: None

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def password():
    return TEST_PASSWORD


@pytest.fixture
def webhook_secret(monkeypatch):
    """Configure the static webhook secret for the duration of a test."""
    monkeypatch.setattr(parley_settings, "elevenlabs_webhook_secret", WEBHOOK_SECRET)
    return WEBHOOK_SECRET


# ── Factories ─────────────────────────────────────────────────────────────────


@pytest.fixture
def make_user(session_factory):
    async def _make_user(
        email: Optional[str] = None,
        is_admin: bool = False,
        is_active: bool = True,
        password: str = TEST_PASSWORD,
    ) -> Account:
        now = now_ms()
        user = User(
            id=gen_id("usr_"),
            email=email or f"{gen_id('u')}@example.com",
            display_name="Test User",
            password_hash=hash_password(password),
            is_active=is_active,
            is_admin=is_admin,
            created_at=now,
            updated_at=now,
        )
        async with session_factory() as session:
            session.add(user)
            await session.commit()

        token = create_access_token(user.id, user.email, user.is_admin)
        return Account(
            id=user.id,
            email=user.email,
            is_admin=is_admin,
            headers={"Authorization": f"Bearer {token}"},
        )

    return _make_user


@pytest.fixture
def make_agent(session_factory):
    async def _make_agent(**overrides) -> Agent:
        now = now_ms()
        values = {
            "id": gen_id("agt_"),
            "title": "Cold call: insurance renewal",
            "short_description": "A skeptical customer whose policy is about to lapse",
            "difficulty": "medium",
            "language": "pl",
            "tags": json.dumps(["sales"]),
            "eleven_agent_id": "el-agent-123",
            "is_active": True,
            "display_order": 0,
            "created_at": now,
            "updated_at": now,
        }
        values.update(overrides)
        agent = Agent(**values)
        async with session_factory() as session:
            session.add(agent)
            await session.commit()
        return agent

    return _make_agent


@pytest.fixture
def make_session(session_factory):
    async def _make_session(
        user_id: str,
        agent_id: str,
        status: str = "pending",
        session_id: Optional[str] = None,
        ended_at: Optional[int] = None,
    ) -> str:
        now = now_ms()
        session_id = session_id or gen_id("ses-")
        async with session_factory() as session:
            session.add(
                Session(
                    id=session_id,
                    user_id=user_id,
                    agent_id=agent_id,
                    status=status,
                    started_at=now,
                    ended_at=ended_at,
                    created_at=now,
                )
            )
            await session.commit()
        return session_id

    return _make_session


@pytest_asyncio.fixture
async def user(make_user) -> Account:
    return await make_user("learner@example.com")


@pytest_asyncio.fixture
async def admin(make_user) -> Account:
    return await make_user("admin@example.com", is_admin=True)


@pytest_asyncio.fixture
async def agent(make_agent) -> Agent:
    return await make_agent()


@pytest_asyncio.fixture
async def pending_session(make_session, user, agent) -> str:
    return await make_session(user.id, agent.id)


@pytest.fixture
def post_webhook(client):
    """POST a webhook body signed with ``secret`` (or an explicit signature)."""

    async def _post(
        payload=None,
        raw: Optional[bytes] = None,
        secret: Optional[str] = WEBHOOK_SECRET,
        signature: Optional[str] = None,
    ):
        body = raw if raw is not None else json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if signature is None and secret is not None:
            signature = compute_signature(body, secret)
        if signature is not None:
            headers["X-Signature"] = signature
        return await client.post(WEBHOOK_URL, content=body, headers=headers)

    return _post


def legacy_payload(
    session_id,
    transcript: bool = True,
    analysis: bool = True,
    event: str = "post_call_transcription",
) -> dict:
    """Builder shared by webhook tests; exposed through the ``payloads`` fixture."""
    payload = {
        "event": event,
        "conversation_initiation_client_data": {
            "dynamic_variables": {"session_id": session_id},
        },
    }
    if transcript:
        payload["transcript"] = [
            {"speaker": "agent", "text": "Dzień dobry!", "ts_ms": 0},
            {"speaker": "user", "text": "Dzień dobry, dzwonię w sprawie polisy.", "ts_ms": 1800},
        ]
    if analysis:
        payload["analysis"] = {
            "score_overall": 8.5,
            "criteria": {"clarity": 9, "empathy": 8},
            "summary": "Clear opening, good rapport",
            "tips": ["Summarize the customer's need before pitching"],
        }
    return payload


def post_call_payload(session_id, summary: str = "Customer agreed to a follow-up") -> dict:
    return {
        "type": "post_call_transcription",
        "event_timestamp": 1739537297,
        "data": {
            "agent_id": "el-agent-123",
            "conversation_id": "conv_abc",
            "conversation_initiation_client_data": {
                "dynamic_variables": {"session_id": session_id, "user_id": "usr_x"},
            },
            "transcript": [
                {"role": "agent", "message": "Hello, how can I help?", "time_in_call_secs": 0},
                {"role": "user", "message": "I'd like to renew.", "time_in_call_secs": 3.5},
                {"role": "agent", "message": None, "time_in_call_secs": 5},
            ],
            "analysis": {
                "call_successful": "success",
                "transcript_summary": summary,
                "data_collection_results": {
                    "score_overall": {"value": 82},
                    "clarity": {"value": 90},
                    "tips": {"value": "Slow down when quoting prices"},
                },
            },
        },
    }


class Payloads:
    legacy = staticmethod(legacy_payload)
    post_call = staticmethod(post_call_payload)


@pytest.fixture
def payloads():
    return Payloads
