"""Shared utility functions."""
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional


def gen_id(prefix: str = "") -> str:
    """Generate a short prefixed ID."""
    return f"{prefix}{uuid.uuid4().hex[:12]}"


def now_ms() -> int:
    """Get current timestamp in milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def dump_json(value: Any) -> str:
    """Serialize a value for a Text JSON column."""
    return json.dumps(value, ensure_ascii=False, default=str)


def load_json(raw: Optional[str], default: Any = None) -> Any:
    """Parse a Text JSON column, returning ``default`` for empty or corrupt values."""
    if not raw:
        return default
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return default
