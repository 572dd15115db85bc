"""Conversation client for the ElevenLabs conversational-AI platform.

The browser SDK used to be loaded as a global and polled until ready. Here
the capability is an injected ``ConversationClient``: route handlers receive
one from ``get_conversation_client`` and never reach for module state.

Only the server-side half lives in this service: obtaining a signed
conversation URL for an agent. Audio transport stays in the client.
"""

from dataclasses import dataclass, field
from typing import Optional, Protocol

import httpx

from parley.config import parley_settings
from parley.logging_config import get_logger

logger = get_logger(__name__)

SIGNED_URL_PATH = "/v1/convai/conversation/get-signed-url"


class ConversationClientError(Exception):
    """The provider refused or failed to start a conversation."""


@dataclass
class ConversationHandle:
    agent_id: str
    signed_url: str
    dynamic_variables: dict = field(default_factory=dict)


class ConversationClient(Protocol):
    async def start_session(
        self, agent_id: str, dynamic_variables: dict
    ) -> ConversationHandle: ...

    async def end_session(self) -> None: ...

    def set_volume(self, volume: float) -> float: ...


class ElevenLabsConversationClient:
    """Starts provider conversations over the ElevenLabs REST API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.elevenlabs.io",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client
        self._timeout = timeout
        self._active: Optional[ConversationHandle] = None
        self._volume = 1.0

    @property
    def active(self) -> Optional[ConversationHandle]:
        return self._active

    @property
    def volume(self) -> float:
        return self._volume

    async def _get(self, path: str, params: dict) -> httpx.Response:
        headers = {"xi-api-key": self._api_key}
        if self._http_client is not None:
            return await self._http_client.get(
                f"{self._base_url}{path}", params=params, headers=headers
            )
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.get(
                f"{self._base_url}{path}", params=params, headers=headers
            )

    async def start_session(
        self, agent_id: str, dynamic_variables: dict
    ) -> ConversationHandle:
        """Request a signed URL the browser can open a conversation with."""
        try:
            response = await self._get(SIGNED_URL_PATH, {"agent_id": agent_id})
            response.raise_for_status()
            signed_url = response.json().get("signed_url")
        except (httpx.HTTPError, ValueError) as e:
            raise ConversationClientError(
                f"Could not get signed URL for agent {agent_id}: {e}"
            ) from e

        if not signed_url:
            raise ConversationClientError(f"Provider returned no signed URL for {agent_id}")

        self._active = ConversationHandle(
            agent_id=agent_id,
            signed_url=signed_url,
            dynamic_variables=dict(dynamic_variables),
        )
        return self._active

    async def end_session(self) -> None:
        self._active = None

    def set_volume(self, volume: float) -> float:
        """Clamp into [0, 1] and remember it for the next conversation."""
        self._volume = min(1.0, max(0.0, float(volume)))
        return self._volume


def get_conversation_client() -> Optional[ConversationClient]:
    """FastAPI dependency: a client when an API key is configured, else None."""
    if not parley_settings.elevenlabs_api_key:
        return None
    return ElevenLabsConversationClient(
        api_key=parley_settings.elevenlabs_api_key,
        base_url=parley_settings.elevenlabs_api_url,
    )
