"""HTTP client for the Parley API."""

import hashlib
import hmac
import json
from typing import Optional

import httpx

DEFAULT_URL = "http://localhost:8000"
DEFAULT_SIGNATURE_HEADER = "X-Signature"


def sign_body(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of ``body``, the value the webhook endpoint expects."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class ParleyClient:
    """Client for the Parley API server.

    All endpoints use the /v1/ prefix matching the FastAPI server routes.
    Admin endpoints need a Bearer token (``--api-key`` / ``PARLEY_API_KEY``).
    """

    def __init__(
        self,
        base_url: str = DEFAULT_URL,
        token: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._client: httpx.Client | None = None

    @property
    def token(self) -> Optional[str]:
        return self._token

    def _build_headers(self) -> dict:
        headers = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=30.0,
                follow_redirects=True,
                headers=self._build_headers(),
            )
        return self._client

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None

    # ── Status ──────────────────────────────────────────────────────────

    def get_status(self) -> dict:
        """Get server health status."""
        response = self.client.get("/v1/status")
        response.raise_for_status()
        return response.json()

    # ── Webhooks ────────────────────────────────────────────────────────

    def send_webhook(
        self,
        payload: dict,
        secret: str,
        signature_header: str = DEFAULT_SIGNATURE_HEADER,
    ) -> httpx.Response:
        """Sign and POST a webhook payload.

        Returns the raw response; non-2xx statuses are the caller's to report.
        """
        body = json.dumps(payload).encode("utf-8")
        return self.client.post(
            "/v1/webhooks/elevenlabs",
            content=body,
            headers={
                "Content-Type": "application/json",
                signature_header: sign_body(body, secret),
            },
        )

    def list_webhook_events(
        self,
        status: Optional[str] = None,
        provider: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[dict]:
        """List recent webhook audit rows (admin)."""
        params = {"limit": limit, "offset": offset}
        if status:
            params["status"] = status
        if provider:
            params["provider"] = provider
        response = self.client.get("/v1/admin/webhooks/events", params=params)
        response.raise_for_status()
        return response.json().get("events", [])
