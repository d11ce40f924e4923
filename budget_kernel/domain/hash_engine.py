"""
HashEngine -- canonical projection and digest of a ledger record.

Responsibility:
    Turn the hashed subset of a ledger record into one canonical byte
    string and digest it with a tagged algorithm.  Every party that checks
    a record (the creating ledger, the verification service, an external
    reader) uses this module, so they all agree byte for byte.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Canonical form (``v1``):
    A JSON array of ``[name, value]`` pairs in the fixed order of
    ``HASH_FIELDS``, no whitespace, UTF-8::

        [["request_id","…"],["amount","50000"],["timestamp","2024-01-01T12:00:00.000000Z"],…]

    * amount     -- plain decimal, no exponent, no trailing zeros
    * timestamp  -- UTC ISO-8601 with microseconds and ``Z``
    * UUIDs      -- lowercase hyphenated string
    * missing    -- JSON null

    The array form pins field order in the bytes themselves, independent of
    any dict ordering or key sorting in the serializer.

Failure modes:
    - UnsupportedHashAlgorithmError for an unknown algorithm tag.
    - ValidationError if a projection carries a float amount.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Mapping
from uuid import UUID

from budget_kernel.domain.amounts import parse_amount
from budget_kernel.domain.ledger_records import LedgerRecordView
from budget_kernel.exceptions import UnsupportedHashAlgorithmError, ValidationError
from budget_kernel.utils.hashing import canonicalize_json

HASH_FIELDS: tuple[str, ...] = (
    "request_id",
    "amount",
    "timestamp",
    "department",
    "project",
    "vendor_address",
    "allocated_by",
    "category",
    "vendor_name",
)

_HEX_DIGEST = re.compile(r"^[0-9a-f]{64}$")


class HashAlgorithm(str, Enum):
    """Versioned algorithm tags.  The suffix versions the field list."""

    SHA256_V1 = "sha256-v1"
    SHA3_256_V1 = "sha3-256-v1"


DEFAULT_HASH_ALGORITHM = HashAlgorithm.SHA256_V1

_DIGESTS: dict[HashAlgorithm, Callable[[bytes], Any]] = {
    HashAlgorithm.SHA256_V1: hashlib.sha256,
    HashAlgorithm.SHA3_256_V1: hashlib.sha3_256,
}


def resolve_algorithm(algorithm: HashAlgorithm | str) -> HashAlgorithm:
    """Map a stored or configured tag to a ``HashAlgorithm``."""
    if isinstance(algorithm, HashAlgorithm):
        return algorithm
    try:
        return HashAlgorithm(algorithm)
    except ValueError:
        raise UnsupportedHashAlgorithmError(str(algorithm)) from None


@dataclass(frozen=True)
class HashableFields:
    """The hashed projection of a ledger record, in canonical order."""

    request_id: UUID | str | None
    amount: Decimal
    timestamp: datetime
    department: str | None
    project: str | None
    vendor_address: str | None
    allocated_by: UUID | str | None
    category: str | None
    vendor_name: str | None

    def __post_init__(self) -> None:
        if isinstance(self.amount, float):
            raise ValidationError("amount", "must be an exact decimal, got float")

    def pairs(self) -> list[list[Any]]:
        return [[f.name, getattr(self, f.name)] for f in fields(self)]


# Field order on the dataclass must be the canonical order
assert tuple(f.name for f in fields(HashableFields)) == HASH_FIELDS


def canonical_bytes(projection: HashableFields) -> bytes:
    return canonicalize_json(projection.pairs(), sort_keys=False).encode("utf-8")


def compute_hash(
    projection: HashableFields,
    algorithm: HashAlgorithm | str = DEFAULT_HASH_ALGORITHM,
) -> str:
    """
    Digest a projection.

    Postconditions:
        Returns 64 lowercase hex characters.  Identical projections always
        produce identical digests; any single-field change produces a
        different one.

    Raises:
        UnsupportedHashAlgorithmError: Unknown algorithm tag.
    """
    digest = _DIGESTS[resolve_algorithm(algorithm)]
    return digest(canonical_bytes(projection)).hexdigest()


def normalize_hash(value: str | None) -> str | None:
    """Strip an optional ``0x`` prefix and lowercase."""
    if value is None:
        return None
    value = value.strip()
    if value[:2].lower() == "0x":
        value = value[2:]
    return value.lower()


def is_valid_hash(value: str | None) -> bool:
    normalized = normalize_hash(value)
    return normalized is not None and bool(_HEX_DIGEST.match(normalized))


def project_record(record: LedgerRecordView) -> HashableFields:
    """Creator-side projection, built from the typed record."""
    return HashableFields(
        request_id=record.related_request_id,
        amount=record.amount,
        timestamp=record.created_at,
        department=record.department,
        project=record.project,
        vendor_address=record.vendor_address,
        allocated_by=record.created_by,
        category=record.category,
        vendor_name=record.vendor_name,
    )


def project_wire(wire: Mapping[str, Any]) -> HashableFields:
    """
    Reader-side projection, built from a record's wire representation.

    Only what travels on the wire is used; no ORM access.
    """
    created_at = wire.get("created_at")
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
    return HashableFields(
        request_id=wire.get("related_request_id"),
        amount=parse_amount(wire.get("amount"), allow_zero=True),
        timestamp=created_at,
        department=wire.get("department"),
        project=wire.get("project"),
        vendor_address=wire.get("vendor_address"),
        allocated_by=wire.get("created_by"),
        category=wire.get("category"),
        vendor_name=wire.get("vendor_name"),
    )
