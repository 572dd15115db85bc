"""Integration tests for the practice session endpoints."""
import json

import httpx
import pytest
import respx
from sqlalchemy import select

from parley.main import app
from parley.models import Session, SessionFeedback, SessionNote, SessionTranscript
from parley.services.audit_log import WebhookAuditLog
from parley.services.voice_client import ElevenLabsConversationClient, get_conversation_client


@pytest.mark.asyncio
async def test_start_session_returns_correlation_bundle(client, user, agent, session_factory):
    response = await client.post(
        "/v1/sessions/start", json={"agentId": agent.id}, headers=user.headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["providerAgentId"] == "el-agent-123"
    assert data["correlationBundle"] == {
        "user_id": user.id,
        "session_id": data["sessionId"],
        "agent_db_id": agent.id,
    }
    assert "signedUrl" not in data

    async with session_factory() as db:
        session = await db.get(Session, data["sessionId"])
    assert session.status == "pending"
    assert session.user_id == user.id
    assert session.ended_at is None


@pytest.mark.asyncio
async def test_start_session_ids_are_unique(client, user, agent):
    ids = set()
    for _ in range(3):
        response = await client.post(
            "/v1/sessions/start", json={"agentId": agent.id}, headers=user.headers
        )
        ids.add(response.json()["sessionId"])
    assert len(ids) == 3


@pytest.mark.asyncio
async def test_start_session_requires_auth(client, agent):
    response = await client.post("/v1/sessions/start", json={"agentId": agent.id})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_start_session_requires_agent_id(client, user):
    response = await client.post("/v1/sessions/start", json={}, headers=user.headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_start_session_unknown_or_inactive_agent(client, user, make_agent, session_factory):
    inactive = await make_agent(is_active=False)

    for agent_id in ("agt_missing", inactive.id):
        response = await client.post(
            "/v1/sessions/start", json={"agentId": agent_id}, headers=user.headers
        )
        assert response.status_code == 404

    async with session_factory() as db:
        assert (await db.execute(select(Session))).scalars().all() == []


@pytest.mark.asyncio
async def test_start_session_with_signed_url(client, user, agent):
    conversation_client = ElevenLabsConversationClient(
        api_key="xi-test", base_url="https://api.elevenlabs.test"
    )
    app.dependency_overrides[get_conversation_client] = lambda: conversation_client

    with respx.mock(base_url="https://api.elevenlabs.test") as mock:
        mock.get("/v1/convai/conversation/get-signed-url").mock(
            return_value=httpx.Response(200, json={"signed_url": "wss://signed"})
        )
        response = await client.post(
            "/v1/sessions/start", json={"agentId": agent.id}, headers=user.headers
        )

    assert response.status_code == 200
    assert response.json()["signedUrl"] == "wss://signed"
    assert conversation_client.active.dynamic_variables["session_id"] == response.json()["sessionId"]


@pytest.mark.asyncio
async def test_start_session_survives_provider_failure(client, user, agent):
    conversation_client = ElevenLabsConversationClient(
        api_key="xi-test", base_url="https://api.elevenlabs.test"
    )
    app.dependency_overrides[get_conversation_client] = lambda: conversation_client

    with respx.mock(base_url="https://api.elevenlabs.test") as mock:
        mock.get("/v1/convai/conversation/get-signed-url").mock(
            return_value=httpx.Response(503)
        )
        response = await client.post(
            "/v1/sessions/start", json={"agentId": agent.id}, headers=user.headers
        )

    assert response.status_code == 200
    assert "signedUrl" not in response.json()


@pytest.mark.asyncio
async def test_list_my_sessions(client, user, make_user, agent, make_session, session_factory):
    other = await make_user("other@example.com")
    mine = await make_session(user.id, agent.id)
    await make_session(other.id, agent.id)

    async with session_factory() as db:
        db.add(SessionFeedback(session_id=mine, score_overall=6.0, updated_at=1))
        await db.commit()

    response = await client.get("/v1/sessions/my", headers=user.headers)

    assert response.status_code == 200
    sessions = response.json()["sessions"]
    assert [s["id"] for s in sessions] == [mine]
    assert sessions[0]["title"] == agent.title
    assert sessions[0]["scoreOverall"] == 6.0
    assert sessions[0]["agent"]["id"] == agent.id


@pytest.mark.asyncio
async def test_session_detail_after_webhook(
    client, user, pending_session, post_webhook, webhook_secret, payloads
):
    await post_webhook(payloads.legacy(pending_session))

    response = await client.get(f"/v1/sessions/{pending_session}", headers=user.headers)

    assert response.status_code == 200
    data = response.json()
    assert data["session"]["status"] == "completed"
    assert data["feedback"]["scoreOverall"] == 8.5
    assert data["feedback"]["scoreBreakdown"] == {"clarity": 9.0, "empathy": 8.0}
    assert data["transcript"][1]["role"] == "user"
    assert data["notes"] == ""
    assert data["degraded"] is False


@pytest.mark.asyncio
async def test_session_detail_recovers_from_audit_log(
    client, user, pending_session, session_factory, payloads
):
    # Signed delivery was logged but its reconciliation failed
    event_id = await WebhookAuditLog(session_factory).record(
        "elevenlabs", "post_call_transcription", payloads.post_call(pending_session), "failed",
        error=f"Failed to reconcile session {pending_session}: disk I/O error",
        signature_verified=True,
    )

    response = await client.get(f"/v1/sessions/{pending_session}", headers=user.headers)

    data = response.json()
    assert data["degraded"] is True
    assert data["recoveredFromEventId"] == event_id
    assert data["feedback"]["scoreOverall"] == 82
    assert len(data["transcript"]) == 2
    # Read path never writes
    assert data["session"]["status"] == "pending"
    async with session_factory() as db:
        assert await db.get(SessionTranscript, pending_session) is None


@pytest.mark.asyncio
async def test_session_detail_ignores_rejected_deliveries(
    client, user, pending_session, post_webhook, webhook_secret, payloads
):
    forged = payloads.legacy(pending_session)
    forged["analysis"]["score_overall"] = 100

    rejected = await post_webhook(forged, signature="deadbeef")
    assert rejected.status_code == 401

    response = await client.get(f"/v1/sessions/{pending_session}", headers=user.headers)

    data = response.json()
    assert data["degraded"] is False
    assert data["feedback"] is None
    assert data["transcript"] is None


@pytest.mark.asyncio
async def test_session_detail_ownership(client, user, make_user, pending_session):
    other = await make_user("intruder@example.com")

    response = await client.get(f"/v1/sessions/{pending_session}", headers=other.headers)
    assert response.status_code == 403

    response = await client.get("/v1/sessions/does-not-exist", headers=user.headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_update_title(client, user, pending_session):
    response = await client.patch(
        f"/v1/sessions/{pending_session}", json={"title": "  Renewal call #2 "}, headers=user.headers
    )
    assert response.status_code == 200

    detail = await client.get(f"/v1/sessions/{pending_session}", headers=user.headers)
    assert detail.json()["session"]["title"] == "Renewal call #2"


@pytest.mark.asyncio
async def test_update_title_rejects_empty(client, user, pending_session):
    response = await client.patch(
        f"/v1/sessions/{pending_session}", json={"title": "   "}, headers=user.headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_notes_upsert(client, user, pending_session, session_factory):
    for text in ("first draft", "## Final notes"):
        response = await client.patch(
            f"/v1/sessions/{pending_session}/notes", json={"notes": text}, headers=user.headers
        )
        assert response.status_code == 200

    async with session_factory() as db:
        rows = (await db.execute(select(SessionNote))).scalars().all()
    assert len(rows) == 1
    assert rows[0].notes_md == "## Final notes"


@pytest.mark.asyncio
async def test_delete_session_cascades(
    client, user, pending_session, post_webhook, webhook_secret, payloads, session_factory
):
    await post_webhook(payloads.legacy(pending_session))
    await client.patch(
        f"/v1/sessions/{pending_session}/notes", json={"notes": "x"}, headers=user.headers
    )

    response = await client.delete(f"/v1/sessions/{pending_session}", headers=user.headers)
    assert response.status_code == 200

    async with session_factory() as db:
        assert await db.get(Session, pending_session) is None
        assert await db.get(SessionTranscript, pending_session) is None
        assert await db.get(SessionFeedback, pending_session) is None
        assert await db.get(SessionNote, pending_session) is None


@pytest.mark.asyncio
async def test_delete_other_users_session_forbidden(client, make_user, pending_session):
    other = await make_user("intruder@example.com")
    response = await client.delete(f"/v1/sessions/{pending_session}", headers=other.headers)
    assert response.status_code == 403
