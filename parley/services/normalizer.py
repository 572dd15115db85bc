"""Normalization of voice-provider webhook payloads.

The provider's payload layout changed across integration generations. Each
known generation is a ``PayloadShape``; ``detect_shape`` picks one and
``normalize`` dispatches to the matching extractor, producing a single
``CanonicalEvent`` the reconciler works with.

Known shapes:

    LEGACY     {"event", "conversation_initiation_client_data",
                "transcript": [{"speaker", "text", "ts_ms"}],
                "analysis": {"score_overall", "criteria", "summary", "tips"}}

    POST_CALL  {"type", "event_timestamp",
                "data": {"conversation_id", "conversation_initiation_client_data",
                         "transcript": [{"role", "message", "time_in_call_secs"}],
                         "analysis": {"transcript_summary",
                                      "data_collection_results", ...}}}

    ENVELOPE   {"event", "payload": {<LEGACY or POST_CALL body>}}

    UNKNOWN    anything else, including non-object JSON. Never raises; the
               resulting event has no correlation id and is ignored.

The correlation id always lives at
``conversation_initiation_client_data.dynamic_variables.session_id`` inside
the shape's body. Supporting a new generation means adding a shape, a rule in
``detect_shape`` and an extractor in ``_EXTRACTORS``.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from parley.errors import NormalizationError

ROLE_USER = "user"
ROLE_AGENT = "agent"

_USER_ROLES = {"user", "human", "caller", "customer"}

_OVERALL_SCORE_KEYS = ("score_overall", "overall_score", "overallScore")
_CRITERIA_KEYS = ("criteria", "criteria_scores", "score_breakdown")
_SUMMARY_KEYS = ("summary", "transcript_summary")


class PayloadShape(str, Enum):
    LEGACY = "legacy"
    POST_CALL = "post_call"
    ENVELOPE = "envelope"
    UNKNOWN = "unknown"


@dataclass
class TranscriptTurn:
    role: str
    text: str
    # Milliseconds from conversation start, when the provider reports it.
    timestamp: Optional[float] = None

    def to_dict(self) -> dict:
        return {"role": self.role, "text": self.text, "timestamp": self.timestamp}


@dataclass
class Analysis:
    overall_score: Optional[float] = None
    criteria: Optional[dict[str, float]] = None
    summary: Optional[str] = None
    tips: Optional[list[str]] = None
    # Provider's analysis object, verbatim
    raw: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "overallScore": self.overall_score,
            "criteria": self.criteria,
            "summary": self.summary,
            "tips": self.tips,
        }


@dataclass
class CanonicalEvent:
    event_type: str
    shape: PayloadShape
    correlation_session_id: Optional[str] = None
    transcript: Optional[list[TranscriptTurn]] = None
    analysis: Optional[Analysis] = None

    @property
    def has_artifacts(self) -> bool:
        return bool(self.transcript) or self.analysis is not None


def parse_payload(raw_body: bytes) -> Any:
    """Decode the raw webhook body. Raises NormalizationError on malformed input."""
    try:
        return json.loads(raw_body.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise NormalizationError(f"Body is not valid UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise NormalizationError(f"Invalid JSON payload: {e}") from e


def detect_shape(payload: Any) -> PayloadShape:
    """Classify a decoded payload into one of the known schema generations."""
    if not isinstance(payload, dict):
        return PayloadShape.UNKNOWN

    data = payload.get("data")
    if isinstance(data, dict) and (
        "type" in payload
        or "conversation_initiation_client_data" in data
        or "transcript" in data
    ):
        return PayloadShape.POST_CALL

    if isinstance(payload.get("payload"), dict):
        return PayloadShape.ENVELOPE

    if any(
        key in payload
        for key in ("conversation_initiation_client_data", "transcript", "analysis")
    ):
        return PayloadShape.LEGACY

    return PayloadShape.UNKNOWN


def normalize(payload: Any) -> CanonicalEvent:
    """Turn any decoded payload into a CanonicalEvent. Never raises."""
    shape = detect_shape(payload)
    extractor = _EXTRACTORS.get(shape, _from_unknown)
    return extractor(payload)


# ─── Field helpers ──────────────────────────────────────────────────────────


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _first(mapping: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        if mapping.get(key) is not None:
            return mapping[key]
    return None


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _event_type(payload: dict, *keys: str) -> str:
    value = _first(payload, keys)
    return str(value) if value is not None else "unknown"


def extract_correlation_id(body: Any) -> Optional[str]:
    """Read dynamic_variables.session_id from a shape's body."""
    client_data = _as_dict(_as_dict(body).get("conversation_initiation_client_data"))
    session_id = _as_dict(client_data.get("dynamic_variables")).get("session_id")
    if isinstance(session_id, bool) or not isinstance(session_id, (str, int)):
        return None
    session_id = str(session_id).strip()
    return session_id or None


def _normalize_role(raw_role: Any) -> str:
    if isinstance(raw_role, str) and raw_role.strip().lower() in _USER_ROLES:
        return ROLE_USER
    return ROLE_AGENT


def _extract_transcript(
    entries: Any,
    timestamp_key: str,
    timestamp_scale: float,
) -> Optional[list[TranscriptTurn]]:
    if not isinstance(entries, list):
        return None

    turns = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        text = _first(entry, ("text", "message"))
        # Tool calls and interruptions arrive with an empty message
        if not isinstance(text, str) or not text.strip():
            continue
        ts = _to_number(entry.get(timestamp_key))
        turns.append(
            TranscriptTurn(
                role=_normalize_role(_first(entry, ("speaker", "role"))),
                text=text,
                timestamp=ts * timestamp_scale if ts is not None else None,
            )
        )
    return turns or None


def _extract_criteria(raw: Any) -> Optional[dict[str, float]]:
    if not isinstance(raw, dict):
        return None
    criteria = {}
    for name, value in raw.items():
        score = _to_number(value)
        if score is not None:
            criteria[str(name)] = score
    return criteria or None


def _extract_tips(raw: Any) -> Optional[list[str]]:
    if isinstance(raw, str) and raw.strip():
        return [raw.strip()]
    if isinstance(raw, list):
        tips = [t.strip() for t in raw if isinstance(t, str) and t.strip()]
        return tips or None
    return None


def _extract_analysis(raw: Any) -> Optional[Analysis]:
    if not isinstance(raw, dict) or not raw:
        return None

    summary = _first(raw, _SUMMARY_KEYS)
    analysis = Analysis(
        overall_score=_to_number(_first(raw, _OVERALL_SCORE_KEYS)),
        criteria=_extract_criteria(_first(raw, _CRITERIA_KEYS)),
        summary=summary if isinstance(summary, str) else None,
        tips=_extract_tips(raw.get("tips")),
        raw=raw,
    )

    # Post-call analysis carries scores as data-collection results:
    # {"score_overall": {"value": 82}, "clarity": {"value": 90}, ...}
    collected = {
        name: _as_dict(result).get("value")
        for name, result in _as_dict(raw.get("data_collection_results")).items()
    }
    if collected:
        if analysis.overall_score is None:
            analysis.overall_score = _to_number(_first(collected, _OVERALL_SCORE_KEYS))
        if analysis.tips is None:
            analysis.tips = _extract_tips(collected.get("tips"))
        if analysis.criteria is None:
            analysis.criteria = _extract_criteria(
                {k: v for k, v in collected.items() if k not in _OVERALL_SCORE_KEYS}
            )

    return analysis


# ─── Per-shape extractors ───────────────────────────────────────────────────


def _from_legacy(payload: dict) -> CanonicalEvent:
    return CanonicalEvent(
        event_type=_event_type(payload, "event", "type"),
        shape=PayloadShape.LEGACY,
        correlation_session_id=extract_correlation_id(payload),
        transcript=_extract_transcript(
            payload.get("transcript"), timestamp_key="ts_ms", timestamp_scale=1
        ),
        analysis=_extract_analysis(payload.get("analysis")),
    )


def _from_post_call(payload: dict) -> CanonicalEvent:
    data = payload["data"]
    return CanonicalEvent(
        event_type=_event_type(payload, "type", "event"),
        shape=PayloadShape.POST_CALL,
        correlation_session_id=extract_correlation_id(data),
        transcript=_extract_transcript(
            data.get("transcript"),
            timestamp_key="time_in_call_secs",
            timestamp_scale=1000,
        ),
        analysis=_extract_analysis(data.get("analysis")),
    )


def _from_envelope(payload: dict) -> CanonicalEvent:
    inner = payload["payload"]
    inner_shape = detect_shape(inner)
    if inner_shape in (PayloadShape.ENVELOPE, PayloadShape.UNKNOWN):
        event = _from_unknown(inner)
    else:
        event = _EXTRACTORS[inner_shape](inner)

    outer_type = _first(payload, ("event", "type"))
    if outer_type is not None:
        event.event_type = str(outer_type)
    event.shape = PayloadShape.ENVELOPE
    return event


def _from_unknown(payload: Any) -> CanonicalEvent:
    event_type = "unknown"
    if isinstance(payload, dict):
        event_type = _event_type(payload, "event", "type")
    return CanonicalEvent(event_type=event_type, shape=PayloadShape.UNKNOWN)


_EXTRACTORS: dict[PayloadShape, Callable[[Any], CanonicalEvent]] = {
    PayloadShape.LEGACY: _from_legacy,
    PayloadShape.POST_CALL: _from_post_call,
    PayloadShape.ENVELOPE: _from_envelope,
    PayloadShape.UNKNOWN: _from_unknown,
}
