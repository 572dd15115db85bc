"""Auth configuration: reads from environment variables."""

import os
from dataclasses import dataclass, field


@dataclass
class AuthSettings:
    """Centralised auth configuration read from env vars at import time."""

    # Master toggle: when False, auth middleware is a no-op.
    enabled: bool = field(
        default_factory=lambda: os.getenv("AUTH_ENABLED", "true").lower() == "true"
    )

    # Secret key used to sign JWTs (HS256). Required when auth is enabled.
    secret_key: str = field(default_factory=lambda: os.getenv("AUTH_SECRET_KEY", ""))

    access_token_ttl_seconds: int = field(
        default_factory=lambda: int(os.getenv("AUTH_ACCESS_TOKEN_TTL", "900"))  # 15 min
    )

    # bcrypt work factor; tests lower it to keep hashing fast.
    bcrypt_rounds: int = field(
        default_factory=lambda: int(os.getenv("AUTH_BCRYPT_ROUNDS", "12"))
    )

    def validate(self) -> None:
        """Raise if critical settings are missing while auth is enabled."""
        if not self.enabled:
            return
        if not self.secret_key:
            raise RuntimeError(
                "AUTH_SECRET_KEY must be set when AUTH_ENABLED=true. "
                'Generate one with: python -c "import secrets; print(secrets.token_urlsafe(64))"'
            )


# Singleton: imported everywhere.
auth_settings = AuthSettings()
