"""Record identifiers and timestamps shared by every collection."""

from __future__ import annotations

from datetime import datetime, timezone

from bson import ObjectId

from mediahub.api.errors import InvalidIdentifier


def new_object_id() -> str:
    return str(ObjectId())


def is_object_id(value: object) -> bool:
    return isinstance(value, str) and ObjectId.is_valid(value)


def ensure_object_id(value: object, *, label: str = "id") -> str:
    """Return ``value`` when it is a well-formed object id, else raise."""
    if not is_object_id(value):
        raise InvalidIdentifier(f"Invalid {label} format")
    return str(value)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
