"""Tests for the webhook audit log."""
import json

import pytest

from parley.models.webhook import EVENT_TYPE_MAX_LENGTH
from parley.services.audit_log import (
    MAX_RAW_BODY_CHARS,
    WebhookAuditLog,
    list_events,
    raw_body_payload,
)


@pytest.mark.asyncio
async def test_record_and_list_newest_first(session_factory, test_session, monkeypatch):
    audit_log = WebhookAuditLog(session_factory)
    clock = iter([1000, 2000, 3000])
    monkeypatch.setattr("parley.services.audit_log.now_ms", lambda: next(clock))

    first = await audit_log.record("elevenlabs", "a", {"n": 1}, "processed")
    await audit_log.record("elevenlabs", "b", {"n": 2}, "failed", error="boom")
    await audit_log.record("other", "c", {"n": 3}, "ignored")

    assert first.startswith("whe_")

    events = await list_events(test_session)
    assert [e.event_type for e in events] == ["c", "b", "a"]

    failed = await list_events(test_session, provider="elevenlabs", status="failed")
    assert len(failed) == 1
    assert failed[0].error == "boom"
    assert json.loads(failed[0].payload) == {"n": 2}

    page = await list_events(test_session, limit=1, offset=1)
    assert [e.event_type for e in page] == ["b"]


@pytest.mark.asyncio
async def test_record_rejects_unknown_status(session_factory):
    with pytest.raises(ValueError):
        await WebhookAuditLog(session_factory).record("elevenlabs", "a", {}, "done")


@pytest.mark.asyncio
async def test_record_never_raises_on_storage_failure(test_engine, session_factory):
    async with test_engine.begin() as conn:
        await conn.exec_driver_sql("DROP TABLE webhook_events")

    assert await WebhookAuditLog(session_factory).record("elevenlabs", "a", {}, "failed") is None


@pytest.mark.asyncio
async def test_missing_event_type_recorded_as_unknown(session_factory, test_session):
    await WebhookAuditLog(session_factory).record("elevenlabs", "", {}, "ignored")
    events = await list_events(test_session)
    assert events[0].event_type == "unknown"


def test_raw_body_payload_truncates():
    body = b"x" * (MAX_RAW_BODY_CHARS + 10)
    payload = raw_body_payload(body)
    assert payload["truncated"] is True
    assert len(payload["raw"]) == MAX_RAW_BODY_CHARS


def test_raw_body_payload_replaces_invalid_utf8():
    assert raw_body_payload(b"ok\xff") == {"raw": "ok\ufffd"}


@pytest.mark.asyncio
async def test_long_event_type_is_truncated_not_lost(session_factory, test_session):
    event_id = await WebhookAuditLog(session_factory).record(
        "elevenlabs", "e" * 1000, {}, "ignored"
    )

    assert event_id is not None
    events = await list_events(test_session)
    assert events[0].event_type == "e" * EVENT_TYPE_MAX_LENGTH


@pytest.mark.asyncio
async def test_record_uses_caller_id_and_defaults_to_unverified(session_factory, test_session):
    audit_log = WebhookAuditLog(session_factory)

    assert await audit_log.record("elevenlabs", "a", {}, "failed", event_id="whe_given") == "whe_given"
    await audit_log.record("elevenlabs", "b", {}, "processed", signature_verified=True)

    rows = {e.event_type: e for e in await list_events(test_session)}
    assert rows["a"].id == "whe_given"
    assert rows["a"].signature_verified is False
    assert rows["b"].signature_verified is True
