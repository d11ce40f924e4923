"""
Audit tests: tampering with the store directly is detected on verification,
and wallet balances can be rebuilt from the ledger alone.

These tests commit through the facade and then write to the database on a
separate connection, the way an operator with store access would.
"""

from decimal import Decimal

import pytest
from sqlalchemy import text

from budget_kernel.db.engine import session_scope
from budget_kernel.domain.ledger_records import VerificationStatus
from budget_kernel.domain.notifications import LifecycleEventType
from budget_kernel.domain.verification import VerificationOutcome
from budget_kernel.selectors.ledger_selector import LedgerSelector
from budget_kernel.services.budget_operations import (
    CompleteRequest,
    FreezeFunds,
    UnfreezeFunds,
    VerifyRecord,
    WithdrawFunds,
)


@pytest.fixture
def funded_vendor(create_pool, open_wallet, allocated_request):
    create_pool()
    wallet = open_wallet(vendor_name="Acme Supplies")
    movement = allocated_request(wallet.vendor_id)
    return wallet.vendor_id, movement


def _raw_update(engine, sql, **params):
    with engine.begin() as conn:
        conn.execute(text(sql), params)


class TestTamperDetection:

    def test_altered_amount_detected(self, ops, db_engine, funded_vendor, notifier):
        _, movement = funded_vendor
        record_id = movement.record.record_id
        _raw_update(
            db_engine,
            "UPDATE ledger_records SET amount = :amount WHERE record_id = :rid",
            amount="5000",
            rid=str(record_id),
        )

        result = ops.verify_record(VerifyRecord(record_id=record_id))

        assert result.is_success
        assert result.value.outcome == VerificationOutcome.TAMPERED
        assert result.value.mismatch_location == "layerA-layerB"
        assert notifier.of_type(LifecycleEventType.RECORD_TAMPERED)[0]["record_id"] == str(
            record_id
        )
        with session_scope() as session:
            stored = LedgerSelector(session).record(record_id)
        assert stored.verification_status == VerificationStatus.FAILED

    def test_rewritten_stored_hash_detected(self, ops, db_engine, funded_vendor):
        _, movement = funded_vendor
        _raw_update(
            db_engine,
            "UPDATE ledger_records SET data_hash = :h WHERE record_id = :rid",
            h="a" * 64,
            rid=str(movement.record.record_id),
        )

        result = ops.verify_record(VerifyRecord(record_id=movement.record.record_id))

        assert result.value.outcome == VerificationOutcome.TAMPERED
        assert result.value.computed_hashes["creator"] == movement.record.data_hash

    def test_untouched_records_stay_verified(self, ops, funded_vendor):
        _, movement = funded_vendor
        first = ops.verify_record(VerifyRecord(record_id=movement.record.record_id))
        second = ops.verify_record(VerifyRecord(record_id=movement.record.record_id))
        assert first.value.outcome == second.value.outcome == VerificationOutcome.VERIFIED


class TestLedgerReplay:

    def test_replay_matches_stored_balances(
        self, ops, funded_vendor, approver_id, test_actor_id
    ):
        vendor_id, movement = funded_vendor
        ops.complete_request(
            CompleteRequest(request_id=movement.request.request_id, actor_id=approver_id)
        )
        ops.freeze_funds(
            FreezeFunds(vendor_id=vendor_id, amount="1000", reason="kyc", actor_id=test_actor_id)
        )
        ops.withdraw(WithdrawFunds(vendor_id=vendor_id, amount="20000", actor_id=test_actor_id))
        ops.unfreeze_funds(
            UnfreezeFunds(vendor_id=vendor_id, amount="400", actor_id=test_actor_id)
        )

        with session_scope() as session:
            selector = LedgerSelector(session)
            replayed = selector.replay_balances(vendor_id)
        stored = ops.get_wallet(vendor_id).value.balances

        assert replayed == stored
        assert stored.frozen == Decimal("600")
        assert stored.withdrawn == Decimal("20000")
        assert stored.is_conserved
