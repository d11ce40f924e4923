"""
Deterministic hashing utilities.

All hashing in the budget kernel must be deterministic and reproducible.
This module provides the canonical JSON encoding used by the hash engine
and the configuration checksum.
"""

import hashlib
import json
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from budget_kernel.domain.amounts import canonical_amount


def canonical_timestamp(value: datetime) -> str:
    """
    UTC ISO-8601 with microseconds and a ``Z`` suffix.

    Naive datetimes are treated as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.  Floats never reach
            here; they are rejected by ``canonicalize_json`` itself.
    """
    if isinstance(obj, Decimal):
        return canonical_amount(obj)
    if isinstance(obj, datetime):
        return canonical_timestamp(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.hex()

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _reject_floats(data: Any) -> None:
    if isinstance(data, float):
        raise TypeError("Floats are not allowed in canonical JSON; use Decimal")
    if isinstance(data, dict):
        for value in data.values():
            _reject_floats(value)
    elif isinstance(data, (list, tuple)):
        for value in data:
            _reject_floats(value)


def canonicalize_json(data: dict | list | Any, sort_keys: bool = True) -> str:
    """
    Convert data to canonical JSON string.

    Produces a deterministic JSON representation:
    - Keys are sorted alphabetically (unless ``sort_keys`` is False, for
      payloads whose order is itself significant)
    - No whitespace, non-ASCII kept as UTF-8
    - Consistent handling of special types (Decimal, datetime, UUID)
    """
    _reject_floats(data)
    return json.dumps(
        data,
        sort_keys=sort_keys,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """
    Compute SHA-256 hash of a payload.

    Returns:
        Hex-encoded SHA-256 hash (64 characters).
    """
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
