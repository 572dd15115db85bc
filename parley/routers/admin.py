"""Admin endpoints: agent catalog, users, sessions, webhook audit log, settings.

All routes require an admin (``get_current_admin``).
"""

import json
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from parley.auth import AuthUser, get_current_admin
from parley.config import parley_settings
from parley.database import get_async_session
from parley.logging_config import get_logger
from parley.models.agent import Agent
from parley.models.auth import User
from parley.models.session import SESSION_STATUSES, Session
from parley.models.settings import Setting
from parley.models.webhook import WEBHOOK_STATUSES
from parley.routers.agents import agent_to_dict
from parley.services.audit_log import list_events
from parley.services.settings_service import (
    UnknownSettingError,
    load_settings,
    save_section,
)
from parley.utils import dump_json, gen_id, load_json, now_ms

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(get_current_admin)])


# ── Schemas ───────────────────────────────────────────────────────────────────


class AgentCreateRequest(BaseModel):
    title: str
    elevenAgentId: str
    shortDescription: Optional[str] = None
    difficulty: Optional[str] = None
    language: Optional[str] = None
    tags: List[str] = []
    thumbnailPath: Optional[str] = None
    isActive: bool = True
    displayOrder: int = 0


class AgentUpdateRequest(BaseModel):
    title: Optional[str] = None
    elevenAgentId: Optional[str] = None
    shortDescription: Optional[str] = None
    difficulty: Optional[str] = None
    language: Optional[str] = None
    tags: Optional[List[str]] = None
    thumbnailPath: Optional[str] = None
    isActive: Optional[bool] = None
    displayOrder: Optional[int] = None


class UserUpdateRequest(BaseModel):
    isAdmin: Optional[bool] = None
    isActive: Optional[bool] = None


class SettingUpdateRequest(BaseModel):
    key: Optional[str] = None
    value: Any = None


# Request field -> model column
_AGENT_FIELDS = {
    "title": "title",
    "elevenAgentId": "eleven_agent_id",
    "shortDescription": "short_description",
    "difficulty": "difficulty",
    "language": "language",
    "thumbnailPath": "thumbnail_path",
    "isActive": "is_active",
    "displayOrder": "display_order",
}


# ── Agents ────────────────────────────────────────────────────────────────────


@router.get("/agents")
async def admin_list_agents(db: AsyncSession = Depends(get_async_session)):
    """All agents, inactive included."""
    result = await db.execute(select(Agent).order_by(Agent.display_order, Agent.title))
    return {"agents": [agent_to_dict(a) for a in result.scalars().all()]}


@router.post("/agents", status_code=201)
async def admin_create_agent(
    body: AgentCreateRequest,
    db: AsyncSession = Depends(get_async_session),
):
    if not body.title.strip() or not body.elevenAgentId.strip():
        raise HTTPException(status_code=400, detail="Title and elevenAgentId are required")

    now = now_ms()
    agent = Agent(
        id=gen_id("agt_"),
        title=body.title.strip(),
        short_description=body.shortDescription,
        difficulty=body.difficulty,
        language=body.language,
        tags=dump_json(body.tags),
        thumbnail_path=body.thumbnailPath or None,
        eleven_agent_id=body.elevenAgentId.strip(),
        is_active=body.isActive,
        display_order=body.displayOrder,
        created_at=now,
        updated_at=now,
    )
    db.add(agent)
    await db.commit()

    logger.info(f"Created agent {agent.id} ({agent.title})")
    return {"agent": agent_to_dict(agent)}


@router.get("/agents/{agent_id}")
async def admin_get_agent(agent_id: str, db: AsyncSession = Depends(get_async_session)):
    agent = await db.get(Agent, agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")
    return {"agent": agent_to_dict(agent)}


@router.patch("/agents/{agent_id}")
async def admin_update_agent(
    agent_id: str,
    body: AgentUpdateRequest,
    db: AsyncSession = Depends(get_async_session),
):
    agent = await db.get(Agent, agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")

    updates = body.model_dump(exclude_unset=True)
    for field_name, column in _AGENT_FIELDS.items():
        if field_name in updates:
            setattr(agent, column, updates[field_name])
    if "tags" in updates:
        agent.tags = dump_json(updates["tags"] or [])
    agent.updated_at = now_ms()

    await db.commit()
    return {"agent": agent_to_dict(agent)}


@router.delete("/agents/{agent_id}")
async def admin_delete_agent(agent_id: str, db: AsyncSession = Depends(get_async_session)):
    """Delete an agent together with every session practiced against it."""
    agent = await db.get(Agent, agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")

    sessions = await db.execute(select(Session).where(Session.agent_id == agent_id))
    for session in sessions.scalars().all():
        await db.delete(session)
    await db.delete(agent)
    await db.commit()

    logger.info(f"Deleted agent {agent_id}")
    return {"success": True}


# ── Users ─────────────────────────────────────────────────────────────────────


@router.get("/users")
async def admin_list_users(db: AsyncSession = Depends(get_async_session)):
    session_count = (
        select(func.count(Session.id))
        .where(Session.user_id == User.id)
        .correlate(User)
        .scalar_subquery()
    )
    result = await db.execute(
        select(User, session_count).order_by(User.created_at.desc())
    )
    return {
        "users": [
            {
                "id": user.id,
                "email": user.email,
                "displayName": user.display_name,
                "isAdmin": user.is_admin,
                "isActive": user.is_active,
                "createdAt": user.created_at,
                "sessionCount": count or 0,
            }
            for user, count in result.all()
        ]
    }


@router.patch("/users/{user_id}")
async def admin_update_user(
    user_id: str,
    body: UserUpdateRequest,
    admin: AuthUser = Depends(get_current_admin),
    db: AsyncSession = Depends(get_async_session),
):
    if user_id == admin.id:
        raise HTTPException(status_code=400, detail="Cannot change your own role")

    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if body.isAdmin is not None:
        user.is_admin = body.isAdmin
    if body.isActive is not None:
        user.is_active = body.isActive
    user.updated_at = now_ms()
    await db.commit()

    logger.info(
        f"Admin {admin.id} updated user {user_id}: admin={user.is_admin} active={user.is_active}"
    )
    return {
        "user": {
            "id": user.id,
            "email": user.email,
            "isAdmin": user.is_admin,
            "isActive": user.is_active,
        }
    }


# ── Sessions ──────────────────────────────────────────────────────────────────


@router.get("/sessions")
async def admin_list_sessions(
    userId: Optional[str] = Query(None),
    agentId: Optional[str] = Query(None),
    status: Optional[str] = Query(None, description="Filter by status"),
    db: AsyncSession = Depends(get_async_session),
):
    if status and status not in SESSION_STATUSES:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}")

    query = (
        select(Session, User.email, Agent.title)
        .join(User, User.id == Session.user_id)
        .join(Agent, Agent.id == Session.agent_id)
    )
    if userId:
        query = query.where(Session.user_id == userId)
    if agentId:
        query = query.where(Session.agent_id == agentId)
    if status:
        query = query.where(Session.status == status)

    result = await db.execute(query.order_by(Session.created_at.desc()))
    return {
        "sessions": [
            {
                "id": s.id,
                "userId": s.user_id,
                "userEmail": email,
                "agentId": s.agent_id,
                "agentTitle": title,
                "status": s.status,
                "titleOverride": s.title_override,
                "startedAt": s.started_at,
                "endedAt": s.ended_at,
                "createdAt": s.created_at,
            }
            for s, email, title in result.all()
        ]
    }


# ── Webhook audit log ─────────────────────────────────────────────────────────


@router.get("/webhooks/events")
async def admin_list_webhook_events(
    provider: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_async_session),
):
    if status and status not in WEBHOOK_STATUSES:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}")

    events = await list_events(db, provider=provider, status=status, limit=limit, offset=offset)
    return {
        "events": [
            {
                "id": e.id,
                "provider": e.provider,
                "eventType": e.event_type,
                "status": e.status,
                "error": e.error,
                "payload": load_json(e.payload),
                "createdAt": e.created_at,
            }
            for e in events
        ],
        "limit": limit,
        "offset": offset,
    }


# ── Settings ──────────────────────────────────────────────────────────────────


@router.get("/settings")
async def admin_get_settings(db: AsyncSession = Depends(get_async_session)):
    settings = await load_settings(db)
    view = settings.admin_view()
    # The static fallback secret is not in the table; report only whether it exists
    view["elevenlabs"]["secretFromEnv"] = parley_settings.elevenlabs_webhook_secret is not None
    return {"settings": view}


@router.patch("/settings")
async def admin_update_setting(
    body: SettingUpdateRequest,
    db: AsyncSession = Depends(get_async_session),
):
    """Replace one settings section.

    For ``elevenlabs`` an omitted ``secret`` keeps the stored one, so the
    masked admin view can be sent back unchanged.
    """
    if not body.key:
        raise HTTPException(status_code=400, detail="Key is required")

    value = body.value
    if body.key == "elevenlabs" and isinstance(value, dict) and "secret" not in value:
        row = await db.get(Setting, "elevenlabs")
        stored = load_json(row.value, default={}) if row else {}
        value = {**value, "secret": stored.get("secret")}

    try:
        section = await save_section(db, body.key, value)
    except UnknownSettingError:
        raise HTTPException(status_code=400, detail=f"Unknown setting: {body.key}")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=json.loads(e.json()))
    await db.commit()

    data = section.model_dump()
    if "secret" in data:
        data["secretConfigured"] = data.pop("secret") is not None
    return {"key": body.key, "value": data}
