"""Practice session endpoints for the signed-in user."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parley.auth import AuthUser, get_current_user
from parley.config import parley_settings
from parley.database import dialect_insert, get_async_session
from parley.errors import AgentNotFoundError, StorageError
from parley.logging_config import get_logger
from parley.models.agent import Agent
from parley.models.session import Session, SessionFeedback, SessionNote, SessionTranscript
from parley.services.correlation import start_session
from parley.services.session_recovery import recover_artifacts
from parley.services.voice_client import (
    ConversationClient,
    ConversationClientError,
    get_conversation_client,
)
from parley.utils import load_json, now_ms

logger = get_logger(__name__)
router = APIRouter()


class StartSessionRequest(BaseModel):
    agentId: Optional[str] = None


class UpdateSessionRequest(BaseModel):
    title: Optional[str] = None


class UpdateNotesRequest(BaseModel):
    notes: str = Field(default="", max_length=100_000)


def _session_title(session: Session, agent: Optional[Agent]) -> str:
    return session.title_override or (agent.title if agent else None) or "Untitled"


def _agent_summary(agent: Optional[Agent]) -> Optional[dict]:
    if agent is None:
        return None
    return {
        "id": agent.id,
        "title": agent.title,
        "description": agent.short_description,
        "difficulty": agent.difficulty,
        "language": agent.language,
        "thumbnailPath": agent.thumbnail_path,
    }


def _feedback_to_dict(feedback: SessionFeedback) -> dict:
    return {
        "scoreOverall": feedback.score_overall,
        "scoreBreakdown": load_json(feedback.score_breakdown),
        "rawFeedback": load_json(feedback.raw_feedback),
    }


async def _get_owned_session(
    session_id: str, user: AuthUser, db: AsyncSession
) -> Session:
    result = await db.execute(select(Session).where(Session.id == session_id))
    session = result.scalar_one_or_none()
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    if session.user_id != user.id:
        raise HTTPException(status_code=403, detail="Forbidden")
    return session


@router.post("/start")
async def start_practice_session(
    body: StartSessionRequest,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    conversation_client: Optional[ConversationClient] = Depends(get_conversation_client),
):
    """Create a pending session and return the correlation bundle.

    The client passes ``correlationBundle`` to the provider as dynamic
    variables; the provider echoes it back in its post-call webhook.
    """
    if not body.agentId:
        raise HTTPException(status_code=400, detail="Agent ID is required")

    try:
        started = await start_session(db, user.id, body.agentId)
    except AgentNotFoundError:
        raise HTTPException(status_code=404, detail="Agent not found or inactive")
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))

    bundle = started.correlation_bundle.as_dynamic_variables()
    response = {
        "sessionId": started.session_id,
        "providerAgentId": started.provider_agent_id,
        "correlationBundle": bundle,
    }

    if conversation_client is not None:
        try:
            handle = await conversation_client.start_session(
                started.provider_agent_id, bundle
            )
            response["signedUrl"] = handle.signed_url
        except ConversationClientError as e:
            # Session stays valid; the client can still connect with the public agent id
            logger.warning(f"Signed URL unavailable for session {started.session_id}: {e}")

    return response


@router.get("/my")
async def list_my_sessions(
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """List the caller's sessions, newest first."""
    result = await db.execute(
        select(Session, Agent, SessionFeedback.score_overall)
        .outerjoin(Agent, Agent.id == Session.agent_id)
        .outerjoin(SessionFeedback, SessionFeedback.session_id == Session.id)
        .where(Session.user_id == user.id)
        .order_by(Session.created_at.desc())
    )

    return {
        "sessions": [
            {
                "id": session.id,
                "title": _session_title(session, agent),
                "status": session.status,
                "startedAt": session.started_at,
                "endedAt": session.ended_at,
                "createdAt": session.created_at,
                "agent": _agent_summary(agent),
                "scoreOverall": score,
            }
            for session, agent, score in result.all()
        ]
    }


@router.get("/{session_id}")
async def get_session_detail(
    session_id: str,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Session detail with agent, feedback, transcript and notes.

    When neither a transcript nor feedback was ever stored, artifacts are
    reconstructed from the webhook audit log and flagged ``degraded``.
    """
    session = await _get_owned_session(session_id, user, db)

    agent = await db.get(Agent, session.agent_id)
    feedback = await db.get(SessionFeedback, session_id)
    transcript = await db.get(SessionTranscript, session_id)
    notes = await db.get(SessionNote, session_id)

    feedback_data = _feedback_to_dict(feedback) if feedback else None
    transcript_data = load_json(transcript.transcript) if transcript else None
    degraded = False
    recovered_from = None

    if feedback is None and transcript is None:
        recovered = await recover_artifacts(
            db, session_id, scan_limit=parley_settings.webhook_recovery_scan_limit
        )
        if recovered is not None:
            degraded = True
            recovered_from = recovered.source_event_id
            if recovered.transcript:
                transcript_data = [turn.to_dict() for turn in recovered.transcript]
            if recovered.analysis is not None:
                feedback_data = {
                    "scoreOverall": recovered.analysis.overall_score,
                    "scoreBreakdown": recovered.analysis.criteria,
                    "rawFeedback": recovered.analysis.raw,
                }

    return {
        "session": {
            "id": session.id,
            "title": _session_title(session, agent),
            "status": session.status,
            "startedAt": session.started_at,
            "endedAt": session.ended_at,
            "createdAt": session.created_at,
            "agent": _agent_summary(agent),
        },
        "feedback": feedback_data,
        "transcript": transcript_data,
        "notes": notes.notes_md if notes else "",
        "degraded": degraded,
        "recoveredFromEventId": recovered_from,
    }


@router.patch("/{session_id}")
async def update_session(
    session_id: str,
    body: UpdateSessionRequest,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Set the user's title override."""
    title = (body.title or "").strip()
    if not title:
        raise HTTPException(status_code=400, detail="Invalid title")

    session = await _get_owned_session(session_id, user, db)
    session.title_override = title[:256]
    await db.commit()
    return {"success": True}


@router.patch("/{session_id}/notes")
async def update_session_notes(
    session_id: str,
    body: UpdateNotesRequest,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Save the user's notes (auto-save from the detail view)."""
    await _get_owned_session(session_id, user, db)

    now = now_ms()
    await db.execute(
        dialect_insert(db, SessionNote)
        .values(session_id=session_id, notes_md=body.notes, updated_at=now)
        .on_conflict_do_update(
            index_elements=["session_id"],
            set_={"notes_md": body.notes, "updated_at": now},
        )
    )
    await db.commit()
    return {"success": True}


@router.delete("/{session_id}")
async def delete_session(
    session_id: str,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Delete a session; transcript, feedback and notes go with it."""
    session = await _get_owned_session(session_id, user, db)
    await db.delete(session)
    await db.commit()
    logger.info(f"Session {session_id} deleted by {user.id}")
    return {"success": True}
