"""
Verification outcome classification.

Three independent hash values describe one ledger record:

    creator  (layer A) -- recomputed from the persisted record fields
    stored   (layer B) -- the data_hash written at creation
    reader   (layer C) -- recomputed by a downstream reader from the wire
                          form, or supplied by a client

``classify`` compares them.  A disagreement between A and B means the
stored fields or the stored hash changed after creation (tampering).  A
disagreement only at C means the record is intact but the reader computes a
different projection (drift).  Neither is an exception: both are ordinary
results of asking "is this record intact?".

Architecture position: Kernel > Domain.  Pure, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from budget_kernel.domain.ledger_records import VerificationStatus


class VerificationOutcome(str, Enum):
    VERIFIED = "verified"
    TAMPERED = "tampered"
    DRIFT = "drift"


class MismatchLocation(str, Enum):
    CREATOR_STORED = "layerA-layerB"
    STORED_READER = "layerB-layerC"


# Status written back to the record for each outcome.  Drift leaves the
# record verified: the stored fields and hash still agree.
OUTCOME_STATUS: dict[VerificationOutcome, VerificationStatus] = {
    VerificationOutcome.VERIFIED: VerificationStatus.VERIFIED,
    VerificationOutcome.TAMPERED: VerificationStatus.FAILED,
    VerificationOutcome.DRIFT: VerificationStatus.VERIFIED,
}


@dataclass(frozen=True)
class HashMismatch:
    """Where two layers disagreed and what each computed."""

    location: MismatchLocation
    expected: str
    actual: str


@dataclass(frozen=True)
class VerificationResult:
    record_id: UUID
    outcome: VerificationOutcome
    computed_hashes: dict[str, str | None]
    hash_algorithm: str
    verified_at: datetime
    mismatch: HashMismatch | None = None

    @property
    def match(self) -> bool:
        return self.outcome == VerificationOutcome.VERIFIED

    @property
    def mismatch_location(self) -> str | None:
        return self.mismatch.location.value if self.mismatch else None

    @property
    def status(self) -> VerificationStatus:
        return OUTCOME_STATUS[self.outcome]


@dataclass(frozen=True)
class VerificationSummary:
    """Bulk verification report."""

    results: tuple[VerificationResult, ...] = field(default_factory=tuple)

    def _count(self, outcome: VerificationOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def verified(self) -> int:
        return self._count(VerificationOutcome.VERIFIED)

    @property
    def failed(self) -> int:
        return self._count(VerificationOutcome.TAMPERED)

    @property
    def drift(self) -> int:
        return self._count(VerificationOutcome.DRIFT)

    @property
    def tampered_record_ids(self) -> list[UUID]:
        return [
            r.record_id
            for r in self.results
            if r.outcome == VerificationOutcome.TAMPERED
        ]

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "verified": self.verified,
            "failed": self.failed,
            "drift": self.drift,
            "tampered_record_ids": [str(r) for r in self.tampered_record_ids],
        }


def classify(
    creator: str, stored: str, reader: str
) -> tuple[VerificationOutcome, HashMismatch | None]:
    """
    Classify three normalized hashes.

    A != B wins over everything else: once the stored record disagrees with
    its own fields, the reader's view is irrelevant.
    """
    if creator != stored:
        return VerificationOutcome.TAMPERED, HashMismatch(
            location=MismatchLocation.CREATOR_STORED,
            expected=stored,
            actual=creator,
        )
    if stored != reader:
        return VerificationOutcome.DRIFT, HashMismatch(
            location=MismatchLocation.STORED_READER,
            expected=stored,
            actual=reader,
        )
    return VerificationOutcome.VERIFIED, None
