"""Timestamp normalisation at the persistence boundary.

Stores hand back timestamps in whatever shape their driver produces: aware or
naive datetimes, `{seconds, nanoseconds}` pairs, epoch numbers or ISO strings.
Everything above the store sees a single ISO-8601 UTC string.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

TIMESTAMP_FIELDS = ("created_at", "flagged_at")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        # sqlite drops tzinfo on the way back; values were written as UTC.
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, Mapping) and "seconds" in value:
        seconds = value["seconds"] + value.get("nanoseconds", 0) / 1e9
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise TypeError(f"unsupported timestamp value: {value!r}")


def to_iso(value: Any) -> str:
    return to_datetime(value).astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize_document(doc: Mapping[str, Any]) -> dict:
    out = dict(doc)
    for key in TIMESTAMP_FIELDS:
        if out.get(key) is not None:
            out[key] = to_iso(out[key])
    return out
