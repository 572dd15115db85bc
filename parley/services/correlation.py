"""Session start: mint the correlation token handed to the voice provider.

The session id doubles as the correlation token. The client passes the
bundle to the provider as dynamic variables; the provider echoes them back
inside its webhook, which is the only way an asynchronous event can be
mapped to a local session.
"""

import uuid
from dataclasses import asdict, dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from parley.errors import AgentNotFoundError, StorageError
from parley.logging_config import get_logger
from parley.models.agent import Agent
from parley.models.session import SESSION_STATUS_PENDING, Session
from parley.utils import now_ms

logger = get_logger(__name__)


@dataclass
class CorrelationBundle:
    user_id: str
    session_id: str
    agent_db_id: str

    def as_dynamic_variables(self) -> dict:
        return asdict(self)


@dataclass
class SessionStart:
    session_id: str
    provider_agent_id: str
    correlation_bundle: CorrelationBundle


def mint_session_id() -> str:
    """Opaque, unguessable, never reused."""
    return str(uuid.uuid4())


async def start_session(db: AsyncSession, user_id: str, agent_id: str) -> SessionStart:
    """Create a pending session for ``user_id`` practising with ``agent_id``.

    Commits on success. Raises AgentNotFoundError if the agent is missing or
    inactive, StorageError if the database fails; in both cases nothing is
    persisted.
    """
    try:
        result = await db.execute(
            select(Agent).where(Agent.id == agent_id, Agent.is_active == True)  # noqa: E712
        )
        agent = result.scalar_one_or_none()
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to load agent {agent_id}: {e}") from e

    if agent is None:
        raise AgentNotFoundError(agent_id)

    now = now_ms()
    session_id = mint_session_id()
    try:
        db.add(
            Session(
                id=session_id,
                user_id=user_id,
                agent_id=agent.id,
                status=SESSION_STATUS_PENDING,
                started_at=now,
                created_at=now,
            )
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error creating session for user {user_id}, agent {agent_id}: {e}")
        raise StorageError("Failed to create session") from e

    logger.info(f"Session {session_id} started: user={user_id} agent={agent.id}")

    return SessionStart(
        session_id=session_id,
        provider_agent_id=agent.eleven_agent_id,
        correlation_bundle=CorrelationBundle(
            user_id=user_id,
            session_id=session_id,
            agent_db_id=agent.id,
        ),
    )
