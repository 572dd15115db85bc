"""Agent catalog endpoints (active agents only)."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parley.auth import AuthUser, get_current_user
from parley.database import get_async_session
from parley.models.agent import Agent
from parley.utils import load_json

router = APIRouter()


def agent_to_dict(agent: Agent) -> dict:
    return {
        "id": agent.id,
        "title": agent.title,
        "description": agent.short_description,
        "difficulty": agent.difficulty,
        "language": agent.language,
        "tags": load_json(agent.tags, default=[]),
        "thumbnailPath": agent.thumbnail_path,
        "elevenAgentId": agent.eleven_agent_id,
        "isActive": agent.is_active,
        "displayOrder": agent.display_order,
    }


@router.get("")
async def list_agents(
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    result = await db.execute(
        select(Agent)
        .where(Agent.is_active.is_(True))
        .order_by(Agent.display_order, Agent.title)
    )
    return {"agents": [agent_to_dict(a) for a in result.scalars().all()]}


@router.get("/{agent_id}")
async def get_agent(
    agent_id: str,
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    agent = await db.get(Agent, agent_id)
    if not agent or not agent.is_active:
        raise HTTPException(status_code=404, detail="Agent not found")
    return agent_to_dict(agent)
