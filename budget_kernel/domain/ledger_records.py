"""
Ledger record value objects.

A ledger record is a tagged variant: ``record_type`` says which wallet
movement it documents.  Every type carries the same field set so a single
hash projection and a single verification path cover all of them.

Architecture position: Kernel > Domain.  Pure, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from budget_kernel.exceptions import ValidationError
from budget_kernel.utils.hashing import canonical_timestamp


class LedgerRecordType(str, Enum):
    ALLOCATION = "allocation"
    RELEASE = "release"
    WITHDRAWAL = "withdrawal"
    FREEZE = "freeze"
    UNFREEZE = "unfreeze"


class VerificationStatus(str, Enum):
    """Integrity status of a stored ledger record."""

    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass(frozen=True)
class AllocationContext:
    """
    Who and what an allocation or release is for.

    ``pool_code`` is only consulted by ``allocate``; a release returns
    funds inside the wallet and leaves the pool untouched.
    """

    request_id: UUID
    department: str
    project: str
    category: str
    created_by: UUID
    approved_by: UUID | None = None
    pool_code: str | None = None
    memo: str | None = None

    def __post_init__(self) -> None:
        if self.request_id is None:
            raise ValidationError("request_id", "is required")
        if self.created_by is None:
            raise ValidationError("created_by", "is required")


@dataclass(frozen=True)
class LedgerRecordView:
    """Read-side snapshot of a persisted ledger record."""

    record_id: UUID
    seq: int
    record_type: LedgerRecordType
    amount: Decimal
    vendor_id: UUID
    vendor_address: str
    vendor_name: str
    created_by: UUID
    created_at: datetime
    data_hash: str
    hash_algorithm: str
    verification_status: VerificationStatus
    related_request_id: UUID | None = None
    department: str | None = None
    project: str | None = None
    category: str | None = None
    approved_by: UUID | None = None
    memo: str | None = None
    hold_bucket: str | None = None
    last_verified_at: datetime | None = None

    def to_wire(self) -> dict[str, Any]:
        """
        JSON-ready representation handed to downstream readers.

        Amounts travel as decimal strings and timestamps as UTC ISO-8601,
        so a reader can rebuild the hash projection without floats.
        """

        def _opt(value: Any) -> str | None:
            return None if value is None else str(value)

        return {
            "record_id": str(self.record_id),
            "seq": self.seq,
            "record_type": self.record_type.value,
            "amount": str(self.amount),
            "vendor_id": str(self.vendor_id),
            "vendor_address": self.vendor_address,
            "vendor_name": self.vendor_name,
            "related_request_id": _opt(self.related_request_id),
            "department": self.department,
            "project": self.project,
            "category": self.category,
            "created_by": str(self.created_by),
            "approved_by": _opt(self.approved_by),
            "created_at": canonical_timestamp(self.created_at),
            "memo": self.memo,
            "hold_bucket": self.hold_bucket,
            "data_hash": self.data_hash,
            "hash_algorithm": self.hash_algorithm,
            "verification_status": self.verification_status.value,
            "last_verified_at": (
                canonical_timestamp(self.last_verified_at)
                if self.last_verified_at is not None
                else None
            ),
        }
