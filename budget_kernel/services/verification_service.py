"""
VerificationService -- independent recomputation of ledger record hashes.

Responsibility:
    Answers "is this record intact?" by comparing three hashes of the same
    record (see ``domain.verification``) and writes the answer back to the
    record's ``verification_status``.

Architecture position:
    Kernel > Services.  The only writer of ``verification_status`` and
    ``last_verified_at``; the immutability listeners allow nothing else to
    change on a ledger record.

Layers:
    A  creator -- ``project_record`` over the persisted row
    B  stored  -- ``data_hash`` as written at creation
    C  reader  -- ``project_wire`` over the record's wire form, or a hash
                  supplied by the caller

Failure modes:
    - LedgerRecordNotFoundError for an unknown record id.
    - ValidationError for a malformed client-supplied hash.
    A hash mismatch is a RESULT, never an exception.  So is an unknown
    stored algorithm tag: the record is reported as tampered at
    layerA-layerB, since the tag is fixed when the record is written.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.domain.hash_engine import (
    HashableFields,
    compute_hash,
    is_valid_hash,
    normalize_hash,
    project_record,
    project_wire,
    resolve_algorithm,
)
from budget_kernel.domain.notifications import EventBuffer, LifecycleEventType
from budget_kernel.domain.verification import (
    OUTCOME_STATUS,
    HashMismatch,
    MismatchLocation,
    VerificationOutcome,
    VerificationResult,
    VerificationSummary,
    classify,
)
from budget_kernel.exceptions import (
    LedgerRecordNotFoundError,
    UnsupportedHashAlgorithmError,
    ValidationError,
)
from budget_kernel.logging_config import LogContext, get_logger
from budget_kernel.models.ledger_record import LedgerRecordModel

logger = get_logger("services.verification")

WireProjection = Callable[[Mapping[str, Any]], HashableFields]


class VerificationService:
    """
    Contract:
        ``verify`` never modifies hashed fields; it flushes status updates
        and leaves the commit to the caller.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        events: EventBuffer | None = None,
        reader_projection: WireProjection = project_wire,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._events = events if events is not None else EventBuffer()
        self._reader_projection = reader_projection

    @property
    def events(self) -> EventBuffer:
        return self._events

    def verify(self, record_id: UUID, client_hash: str | None = None) -> VerificationResult:
        """
        Verify one record.

        Args:
            record_id: Ledger record to check.
            client_hash: Optional hash computed by a downstream party.  When
                given it replaces the service's own reader-side
                recomputation as layer C.
        """
        if client_hash is not None and not is_valid_hash(client_hash):
            raise ValidationError("client_hash", "must be 64 hex characters, optional 0x prefix")

        record = self._session.execute(
            select(LedgerRecordModel)
            .where(LedgerRecordModel.record_id == record_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if record is None:
            raise LedgerRecordNotFoundError(str(record_id))

        view = record.to_dto()
        stored = normalize_hash(view.data_hash)
        try:
            algorithm = resolve_algorithm(view.hash_algorithm)
        except UnsupportedHashAlgorithmError:
            # The tag is written at creation and never changes; an unknown
            # tag means the stored record was rewritten
            creator = reader = None
            outcome = VerificationOutcome.TAMPERED
            mismatch = HashMismatch(
                location=MismatchLocation.CREATOR_STORED,
                expected=stored,
                actual=f"unsupported hash algorithm {view.hash_algorithm!r}",
            )
        else:
            creator = compute_hash(project_record(view), algorithm)
            if client_hash is not None:
                reader = normalize_hash(client_hash)
            else:
                reader = compute_hash(self._reader_projection(view.to_wire()), algorithm)
            outcome, mismatch = classify(creator, stored, reader)
        now = self._clock.now()

        record.verification_status = OUTCOME_STATUS[outcome].value
        record.last_verified_at = now
        self._session.flush()

        result = VerificationResult(
            record_id=view.record_id,
            outcome=outcome,
            computed_hashes={"creator": creator, "stored": stored, "reader": reader},
            hash_algorithm=view.hash_algorithm,
            verified_at=now,
            mismatch=mismatch,
        )
        self._log(result, view.seq)
        if outcome == VerificationOutcome.TAMPERED:
            self._events.record(
                LifecycleEventType.RECORD_TAMPERED,
                {
                    "record_id": str(view.record_id),
                    "seq": view.seq,
                    "vendor_id": str(view.vendor_id),
                    "mismatch_location": result.mismatch_location,
                    "stored_hash": stored,
                    "computed_hash": creator,
                    "hash_algorithm": view.hash_algorithm,
                },
                now,
            )
        return result

    def verify_all(self, limit: int | None = None) -> VerificationSummary:
        """Verify records in sequence order; ``limit`` caps how many."""
        query = select(LedgerRecordModel.record_id).order_by(LedgerRecordModel.seq)
        if limit is not None:
            query = query.limit(limit)
        record_ids = self._session.execute(query).scalars().all()

        summary = VerificationSummary(
            results=tuple(self.verify(record_id) for record_id in record_ids)
        )
        logger.info("bulk_verification_completed", extra=summary.as_dict())
        return summary

    def _log(self, result: VerificationResult, seq: int) -> None:
        with LogContext.bind(record_id=str(result.record_id)):
            fields = {
                "seq": seq,
                "outcome": result.outcome.value,
                "hash_algorithm": result.hash_algorithm,
            }
            if result.outcome == VerificationOutcome.VERIFIED:
                logger.info("record_verified", extra=fields)
            elif result.outcome == VerificationOutcome.DRIFT:
                logger.warning(
                    "record_hash_drift",
                    extra={
                        **fields,
                        "mismatch_location": result.mismatch_location,
                        "computed_hashes": result.computed_hashes,
                    },
                )
            else:
                logger.error(
                    "record_tampered",
                    extra={
                        **fields,
                        "mismatch_location": result.mismatch_location,
                        "computed_hashes": result.computed_hashes,
                    },
                )
