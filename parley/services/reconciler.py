"""Session reconciliation: apply a normalized webhook event to stored state.

State machine per session:

    pending   + transcript/analysis persisted   -> completed (ended_at = now)
    pending   + failure event, no artifacts     -> error     (ended_at = now)
    completed/error + artifacts                 -> artifacts replaced, status kept
    any       + nothing to persist              -> unchanged (ignored)

Artifacts are upserted on session_id, one row per session each, so replaying
the same delivery converges to the same state. The status update is
conditional on ``status = 'pending'``; late or reordered deliveries cannot move
a terminal session back.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from parley.database import dialect_insert
from parley.errors import StorageError
from parley.logging_config import get_logger
from parley.models.session import (
    SESSION_STATUS_COMPLETED,
    SESSION_STATUS_ERROR,
    SESSION_STATUS_PENDING,
    Session,
    SessionFeedback,
    SessionTranscript,
)
from parley.models.webhook import (
    WEBHOOK_STATUS_FAILED,
    WEBHOOK_STATUS_IGNORED,
    WEBHOOK_STATUS_PROCESSED,
)
from parley.services.normalizer import Analysis, CanonicalEvent, TranscriptTurn
from parley.utils import dump_json, now_ms

logger = get_logger(__name__)

# Provider event kinds meaning the conversation never produced a result.
FAILURE_EVENT_TYPES = frozenset({"call_initiation_failure", "conversation_failed"})


@dataclass
class ReconciliationResult:
    outcome: str
    session_id: Optional[str] = None
    session_found: bool = True
    transcript_saved: bool = False
    feedback_saved: bool = False
    session_status: Optional[str] = None
    error: Optional[str] = None


async def upsert_transcript(
    db: AsyncSession, session_id: str, turns: list[TranscriptTurn]
) -> None:
    """Insert or wholesale-replace the transcript of a session."""
    now = now_ms()
    transcript_json = dump_json([turn.to_dict() for turn in turns])
    stmt = (
        dialect_insert(db, SessionTranscript)
        .values(session_id=session_id, transcript=transcript_json, updated_at=now)
        .on_conflict_do_update(
            index_elements=["session_id"],
            set_={"transcript": transcript_json, "updated_at": now},
        )
    )
    await db.execute(stmt)


async def upsert_feedback(db: AsyncSession, session_id: str, analysis: Analysis) -> None:
    """Insert or wholesale-replace the scored feedback of a session."""
    now = now_ms()
    values = {
        "score_overall": analysis.overall_score,
        "score_breakdown": dump_json(analysis.criteria) if analysis.criteria else None,
        "raw_feedback": dump_json(analysis.raw),
        "updated_at": now,
    }
    stmt = (
        dialect_insert(db, SessionFeedback)
        .values(session_id=session_id, **values)
        .on_conflict_do_update(index_elements=["session_id"], set_=values)
    )
    await db.execute(stmt)


async def _finish_pending(db: AsyncSession, session_id: str, status: str) -> bool:
    result = await db.execute(
        update(Session)
        .where(Session.id == session_id, Session.status == SESSION_STATUS_PENDING)
        .values(status=status, ended_at=now_ms())
    )
    return result.rowcount > 0


async def reconcile(db: AsyncSession, event: CanonicalEvent) -> ReconciliationResult:
    """Apply ``event`` to the session it correlates to.

    Does not commit; the caller owns the transaction. Database errors are
    raised as StorageError so the caller can roll back and audit the failure.
    """
    session_id = event.correlation_session_id
    if not session_id:
        logger.info(f"Event '{event.event_type}' has no session_id - ignoring")
        return ReconciliationResult(
            outcome=WEBHOOK_STATUS_IGNORED,
            error="Missing session_id in dynamic variables",
        )

    try:
        result = await db.execute(select(Session.status).where(Session.id == session_id))
        current_status = result.scalar_one_or_none()

        if current_status is None:
            logger.warning(f"Session not found: {session_id}")
            return ReconciliationResult(
                outcome=WEBHOOK_STATUS_FAILED,
                session_id=session_id,
                session_found=False,
                error=f"Session not found: {session_id}",
            )

        outcome = ReconciliationResult(
            outcome=WEBHOOK_STATUS_PROCESSED,
            session_id=session_id,
            session_status=current_status,
        )

        if event.transcript:
            await upsert_transcript(db, session_id, event.transcript)
            outcome.transcript_saved = True
            logger.info(f"Transcript saved for session {session_id}")

        if event.analysis is not None:
            await upsert_feedback(db, session_id, event.analysis)
            outcome.feedback_saved = True
            logger.info(f"Feedback saved for session {session_id}")

        if outcome.transcript_saved or outcome.feedback_saved:
            target_status = SESSION_STATUS_COMPLETED
        elif event.event_type in FAILURE_EVENT_TYPES:
            target_status = SESSION_STATUS_ERROR
        else:
            logger.info(
                f"Event '{event.event_type}' for session {session_id} carried "
                "no transcript or analysis - ignoring"
            )
            outcome.outcome = WEBHOOK_STATUS_IGNORED
            outcome.error = "No transcript or analysis in event"
            return outcome

        if current_status == SESSION_STATUS_PENDING and await _finish_pending(
            db, session_id, target_status
        ):
            outcome.session_status = target_status
            logger.info(f"Session {session_id} marked as {target_status}")
        else:
            logger.info(
                f"Session {session_id} already {current_status}; status left unchanged"
            )

        return outcome
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to reconcile session {session_id}: {e}") from e
