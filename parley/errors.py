"""Shared service-layer error types.

Services raise these; routers translate them into HTTP responses.
Centralised here to avoid circular imports between service modules.
"""


class ParleyError(Exception):
    """Base class for all service-layer errors."""


class NotFoundError(ParleyError):
    """A referenced row does not exist (or is not visible to the caller)."""


class AgentNotFoundError(NotFoundError):
    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent not found or inactive: {agent_id}")


class StorageError(ParleyError):
    """A database read or write failed. Safe to retry."""


class NormalizationError(ParleyError):
    """Webhook body could not be decoded as JSON."""
