"""Read-time recovery of session artifacts from the webhook audit log.

A signed delivery can be logged without being reconciled, for instance when
the database write failed and the provider gave up retrying. The session then
has no transcript or feedback rows. The session detail view can still show
something by re-normalizing the payload of the most recent matching audit
row. Only rows with ``signature_verified`` set are read: a delivery rejected
for its signature is logged too, and must never surface as session data.
Nothing here writes; the result is marked degraded.
"""

import json
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parley.logging_config import get_logger
from parley.models.webhook import WebhookEvent
from parley.services.normalizer import Analysis, TranscriptTurn, normalize

logger = get_logger(__name__)


@dataclass
class RecoveredArtifacts:
    source_event_id: str
    transcript: Optional[list[TranscriptTurn]] = None
    analysis: Optional[Analysis] = None
    degraded: bool = True


async def recover_artifacts(
    db: AsyncSession,
    session_id: str,
    scan_limit: int = 50,
) -> Optional[RecoveredArtifacts]:
    """Find the newest audit row whose payload correlates to ``session_id``.

    Only signature-verified rows whose payload text mentions the id are
    scanned, newest first, at most ``scan_limit`` of them. Rows are
    re-normalized and the correlation id compared exactly, so a mention elsewhere in a payload does not match.
    """
    result = await db.execute(
        select(WebhookEvent)
        .where(WebhookEvent.signature_verified.is_(True))
        .where(WebhookEvent.payload.contains(session_id, autoescape=True))
        .order_by(WebhookEvent.created_at.desc())
        .limit(scan_limit)
    )

    for row in result.scalars().all():
        try:
            payload = json.loads(row.payload)
        except json.JSONDecodeError:
            continue

        event = normalize(payload)
        if event.correlation_session_id != session_id or not event.has_artifacts:
            continue

        logger.info(
            f"Recovered artifacts for session {session_id} from audit event {row.id}"
        )
        return RecoveredArtifacts(
            source_event_id=row.id,
            transcript=event.transcript,
            analysis=event.analysis,
        )

    return None
