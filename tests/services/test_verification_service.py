"""
Tests for VerificationService.

Verifies:
- An untouched record verifies and its status is written back
- A field edited behind the ORM's back is classified as tampering
- A reader that projects differently is classified as drift
- Client-supplied hashes replace the reader layer
"""

from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import text

from budget_kernel.domain.hash_engine import project_wire
from budget_kernel.domain.ledger_records import AllocationContext, VerificationStatus
from budget_kernel.domain.notifications import LifecycleEventType
from budget_kernel.domain.verification import VerificationOutcome
from budget_kernel.exceptions import (
    LedgerRecordNotFoundError,
    ValidationError,
)
from budget_kernel.selectors.ledger_selector import LedgerSelector
from budget_kernel.services.verification_service import VerificationService
from budget_kernel.services.wallet_ledger import WalletLedger


@pytest.fixture
def record(session, deterministic_clock, test_actor_id, approver_id):
    ledger = WalletLedger(session, deterministic_clock)
    vendor_id = uuid4()
    ledger.open_wallet(vendor_id, "Acme Supplies", test_actor_id, wallet_address="0xacme")
    ledger.create_pool("ENG", "Engineering", "100000", 2024, test_actor_id)
    return ledger.allocate(
        vendor_id,
        "50000",
        AllocationContext(
            request_id=uuid4(),
            department="ENG",
            project="Lab refresh",
            category="equipment",
            created_by=approver_id,
            pool_code="ENG",
        ),
    )


@pytest.fixture
def verifier(session, deterministic_clock):
    return VerificationService(session, deterministic_clock)


def _tamper(session, record_id, column, value):
    # Direct SQL: ORM immutability listeners never see it
    session.execute(
        text(f"UPDATE ledger_records SET {column} = :value WHERE record_id = :rid"),
        {"value": value, "rid": str(record_id)},
    )


class TestVerify:

    def test_intact_record_verifies(self, verifier, record, session, deterministic_clock):
        result = verifier.verify(record.record_id)

        assert result.outcome == VerificationOutcome.VERIFIED
        assert result.match
        assert set(result.computed_hashes.values()) == {record.data_hash}
        stored = LedgerSelector(session).record(record.record_id)
        assert stored.verification_status == VerificationStatus.VERIFIED
        assert stored.last_verified_at == deterministic_clock.now()

    def test_amount_edit_is_tampering(self, verifier, record, session):
        _tamper(session, record.record_id, "amount", "49999")

        result = verifier.verify(record.record_id)

        assert result.outcome == VerificationOutcome.TAMPERED
        assert result.mismatch_location == "layerA-layerB"
        assert result.mismatch.expected == record.data_hash
        assert LedgerSelector(session).record(record.record_id).verification_status == (
            VerificationStatus.FAILED
        )

    def test_stored_hash_edit_is_tampering(self, verifier, record, session):
        _tamper(session, record.record_id, "data_hash", "0" * 64)
        assert verifier.verify(record.record_id).outcome == VerificationOutcome.TAMPERED

    def test_vendor_name_edit_is_tampering(self, verifier, record, session):
        _tamper(session, record.record_id, "vendor_name", "Someone Else")
        assert verifier.verify(record.record_id).outcome == VerificationOutcome.TAMPERED

    def test_tampering_emits_event(self, verifier, record, session):
        _tamper(session, record.record_id, "amount", "1")
        verifier.verify(record.record_id)
        tampered = [
            e for e in verifier.events.events
            if e.event_type == LifecycleEventType.RECORD_TAMPERED
        ]
        assert len(tampered) == 1
        assert tampered[0].payload["record_id"] == str(record.record_id)

    def test_unhashed_field_edit_goes_unnoticed(self, verifier, record, session):
        _tamper(session, record.record_id, "memo", "annotated later")
        assert verifier.verify(record.record_id).outcome == VerificationOutcome.VERIFIED

    def test_reader_drift(self, session, deterministic_clock, record, captured_logs):
        def stale_reader(wire):
            projection = project_wire(wire)
            return replace(projection, amount=projection.amount + Decimal("1"))

        verifier = VerificationService(session, deterministic_clock, reader_projection=stale_reader)
        result = verifier.verify(record.record_id)

        assert result.outcome == VerificationOutcome.DRIFT
        assert result.mismatch_location == "layerB-layerC"
        assert result.status == VerificationStatus.VERIFIED
        drift_logs = [r for r in captured_logs() if r["message"] == "record_hash_drift"]
        assert drift_logs and drift_logs[0]["level"] == "WARNING"

    def test_matching_client_hash(self, verifier, record):
        result = verifier.verify(record.record_id, client_hash="0x" + record.data_hash.upper())
        assert result.outcome == VerificationOutcome.VERIFIED

    def test_mismatching_client_hash_is_drift(self, verifier, record):
        result = verifier.verify(record.record_id, client_hash="f" * 64)
        assert result.outcome == VerificationOutcome.DRIFT
        assert result.computed_hashes["reader"] == "f" * 64

    def test_malformed_client_hash(self, verifier, record):
        with pytest.raises(ValidationError):
            verifier.verify(record.record_id, client_hash="not-a-hash")

    def test_unknown_record(self, verifier):
        with pytest.raises(LedgerRecordNotFoundError):
            verifier.verify(uuid4())

    def test_rewritten_algorithm_tag_is_tampering(self, verifier, record, session):
        _tamper(session, record.record_id, "hash_algorithm", "md5-v0")

        result = verifier.verify(record.record_id)

        assert result.outcome == VerificationOutcome.TAMPERED
        assert result.mismatch_location == "layerA-layerB"
        assert result.hash_algorithm == "md5-v0"
        assert "md5-v0" in result.mismatch.actual
        assert result.computed_hashes["stored"] == record.data_hash
        assert result.computed_hashes["creator"] is None
        tampered = [
            e for e in verifier.events.events
            if e.event_type == LifecycleEventType.RECORD_TAMPERED
        ]
        assert tampered[0].payload["hash_algorithm"] == "md5-v0"
        stored = LedgerSelector(session).record(record.record_id)
        assert stored.verification_status == VerificationStatus.FAILED


class TestVerifyAll:

    def test_summary(self, verifier, record, session, deterministic_clock, test_actor_id):
        ledger = WalletLedger(session, deterministic_clock)
        ledger.release(
            record.vendor_id,
            "100",
            AllocationContext(
                request_id=record.related_request_id,
                department="ENG",
                project="Lab refresh",
                category="equipment",
                created_by=test_actor_id,
            ),
        )
        _tamper(session, record.record_id, "amount", "1")

        summary = verifier.verify_all()

        assert summary.total == 2
        assert summary.failed == 1
        assert summary.verified == 1
        assert summary.tampered_record_ids == [record.record_id]
        assert LedgerSelector(session).verification_counts() == {"verified": 1, "failed": 1}

    def test_limit(self, verifier, record):
        assert verifier.verify_all(limit=0).total == 0

    def test_bad_algorithm_tag_does_not_stop_the_run(
        self, verifier, record, session, deterministic_clock, test_actor_id
    ):
        ledger = WalletLedger(session, deterministic_clock)
        release = ledger.release(
            record.vendor_id,
            "100",
            AllocationContext(
                request_id=record.related_request_id,
                department="ENG",
                project="Lab refresh",
                category="equipment",
                created_by=test_actor_id,
            ),
        )
        _tamper(session, record.record_id, "hash_algorithm", "md5-v0")

        summary = verifier.verify_all()

        assert summary.total == 2
        assert summary.failed == 1
        assert summary.verified == 1
        assert summary.tampered_record_ids == [record.record_id]
        assert LedgerSelector(session).record(release.record_id).verification_status == (
            VerificationStatus.VERIFIED
        )
