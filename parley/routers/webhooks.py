"""Voice-provider webhook endpoint.

Pipeline per delivery:

    read raw body -> resolve secret -> verify signature -> parse + normalize
    -> reconcile (own transaction) -> audit row (own transaction, always)

Every branch ends with exactly one audit row, written after the outcome is
known and before the response is returned.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import async_sessionmaker

from parley.config import parley_settings
from parley.database import get_session_factory
from parley.errors import NormalizationError, StorageError
from parley.logging_config import delivery_context, get_logger
from parley.models.webhook import (
    WEBHOOK_STATUS_FAILED,
    WEBHOOK_STATUS_IGNORED,
    WEBHOOK_STATUS_PROCESSED,
)
from parley.services.audit_log import WebhookAuditLog, raw_body_payload
from parley.services.normalizer import normalize, parse_payload
from parley.services.reconciler import reconcile
from parley.utils import gen_id
from parley.webhook_security import resolve_webhook_secret, verify_signature

logger = get_logger(__name__)

router = APIRouter()

PROVIDER_ELEVENLABS = "elevenlabs"


def _best_effort_payload(raw_body: bytes):
    """Decoded JSON for the audit row, or the raw text when it doesn't parse."""
    try:
        return parse_payload(raw_body)
    except NormalizationError:
        return raw_body_payload(raw_body)


def _best_effort_event_type(payload) -> str:
    if isinstance(payload, dict):
        for key in ("event", "type"):
            if payload.get(key) is not None:
                return str(payload[key])
    return "unknown"


@router.post("/elevenlabs")
async def receive_elevenlabs_webhook(
    request: Request,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Receive a post-call webhook from the voice provider.

    Returns:
    - 200: processed, or ignored (no correlation id, nothing to store)
    - 401: invalid or missing signature
    - 404: correlation id present but no matching session
    - 500: no secret configured, malformed JSON, or storage failure

    Log lines for the delivery carry the id of its audit row.
    """
    delivery_id = gen_id("whe_")
    with delivery_context(delivery_id):
        return await _handle_delivery(
            request, WebhookAuditLog(session_factory), session_factory, delivery_id
        )


async def _handle_delivery(
    request: Request,
    audit_log: WebhookAuditLog,
    session_factory: async_sessionmaker,
    delivery_id: str,
):
    # Signature is computed over the exact bytes received
    raw_body = await request.body()
    signature = request.headers.get(parley_settings.webhook_signature_header)

    async with session_factory() as session:
        secret = await resolve_webhook_secret(session)

    if not secret:
        logger.error("No webhook secret configured - rejecting delivery")
        payload = _best_effort_payload(raw_body)
        await audit_log.record(
            PROVIDER_ELEVENLABS,
            _best_effort_event_type(payload),
            payload,
            WEBHOOK_STATUS_FAILED,
            error="Webhook secret not configured",
            event_id=delivery_id,
        )
        return JSONResponse(
            status_code=500, content={"error": "Webhook secret not configured"}
        )

    if not verify_signature(raw_body, signature, secret):
        if signature:
            logger.warning("Webhook signature verification failed")
        else:
            logger.warning(
                f"Webhook delivery without {parley_settings.webhook_signature_header} header"
            )
        payload = _best_effort_payload(raw_body)
        await audit_log.record(
            PROVIDER_ELEVENLABS,
            _best_effort_event_type(payload),
            payload,
            WEBHOOK_STATUS_FAILED,
            error="Invalid signature",
            event_id=delivery_id,
        )
        return JSONResponse(status_code=401, content={"error": "Invalid signature"})

    # From here on the body is authenticated; the audit row says so.
    async def audit(event_type, payload, status, error=None):
        await audit_log.record(
            PROVIDER_ELEVENLABS,
            event_type,
            payload,
            status,
            error=error,
            signature_verified=True,
            event_id=delivery_id,
        )

    try:
        payload = parse_payload(raw_body)
    except NormalizationError as e:
        logger.error(f"Malformed webhook body: {e}")
        await audit("unknown", raw_body_payload(raw_body), WEBHOOK_STATUS_FAILED, error=str(e))
        return JSONResponse(
            status_code=500, content={"error": "Invalid JSON payload", "message": str(e)}
        )

    event = normalize(payload)
    logger.info(
        f"Received event '{event.event_type}' (shape={event.shape.value}, "
        f"session={event.correlation_session_id})"
    )

    try:
        async with session_factory() as session:
            try:
                result = await reconcile(session, event)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    except StorageError as e:
        logger.error(f"Webhook processing error: {e}")
        await audit(event.event_type, payload, WEBHOOK_STATUS_FAILED, error=str(e))
        return JSONResponse(
            status_code=500, content={"error": "Internal server error", "message": str(e)}
        )
    except Exception as e:
        logger.exception("Unexpected webhook processing error")
        message = f"{type(e).__name__}: {e}"
        await audit(event.event_type, payload, WEBHOOK_STATUS_FAILED, error=message)
        return JSONResponse(
            status_code=500, content={"error": "Internal server error", "message": message}
        )

    await audit(event.event_type, payload, result.outcome, error=result.error)

    if not result.session_found:
        return JSONResponse(
            status_code=404,
            content={"error": "Session not found", "session_id": result.session_id},
        )

    if result.outcome == WEBHOOK_STATUS_IGNORED:
        # Still 200 so the provider does not retry an event we will never use
        return {
            "success": False,
            "outcome": result.outcome,
            "session_id": result.session_id,
            "message": result.error,
        }

    return {
        "success": result.outcome == WEBHOOK_STATUS_PROCESSED,
        "outcome": result.outcome,
        "session_id": result.session_id,
        "status": result.session_status,
        "transcript_saved": result.transcript_saved,
        "feedback_saved": result.feedback_saved,
        "message": "Webhook processed successfully",
    }
