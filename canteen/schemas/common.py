from datetime import datetime, timezone
from pydantic import BaseModel, ValidationError
from typing import Any, Optional, TypeVar

M = TypeVar("M", bound=BaseModel)


# ---------- envelope decoding ----------
# Upstream answers either bare payloads, {data: ...} or {status, data: ...}.

def unwrap(payload: Any) -> Any:
    if payload is None:
        return None
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload

def decode_list(payload: Any, model: type[M]) -> list[M]:
    rows = unwrap(payload)
    if not isinstance(rows, list):
        return []
    out: list[M] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        try:
            out.append(model.model_validate(row))
        except ValidationError:
            # one bad row never sinks the whole collection
            continue
    return out

def decode_one(payload: Any, model: type[M]) -> M:
    body = unwrap(payload)
    if isinstance(body, dict):
        try:
            return model.model_validate(body)
        except ValidationError:
            pass
    return model()

def decode_optional(payload: Any, model: type[M]) -> Optional[M]:
    body = unwrap(payload)
    if not isinstance(body, dict):
        return None
    try:
        return model.model_validate(body)
    except ValidationError:
        return None


# ---------- timestamps ----------
# first present wins
TIMESTAMP_FIELDS = (
    "createdAt", "created_at", "submittedAt", "submitted_at",
    "date", "created", "updatedAt", "updated_at",
)

def timestamp_text(value: Any) -> Optional[str]:
    """Timestamps are kept as text; epoch milliseconds become ISO-8601 in UTC."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()
        except (OverflowError, OSError, ValueError):
            return None
    return str(value)

def resolve_timestamp(obj: Any) -> Optional[str]:
    if obj is None:
        return None
    if isinstance(obj, dict):
        for k in TIMESTAMP_FIELDS:
            v = obj.get(k)
            if v:
                return timestamp_text(v)
        return None
    return getattr(obj, "created_at", None) or None
