"""
Tests for SequenceService.

Verifies:
- First use creates the counter and returns 1
- Values are strictly increasing per name and independent across names
- Every allocation is logged with its invariant tag
- A rolled-back transaction does not consume its values
"""

from budget_kernel.invariants import LedgerInvariant
from budget_kernel.services.sequence_service import SequenceService


class TestSequenceService:

    def test_first_value_is_one(self, session):
        service = SequenceService(session)
        assert service.current_value(SequenceService.LEDGER_RECORD) is None
        assert service.next_value(SequenceService.LEDGER_RECORD) == 1
        assert service.current_value(SequenceService.LEDGER_RECORD) == 1

    def test_strictly_increasing(self, session):
        service = SequenceService(session)
        values = [service.next_value(SequenceService.LEDGER_RECORD) for _ in range(5)]
        assert values == [1, 2, 3, 4, 5]

    def test_allocations_logged(self, session, captured_logs):
        service = SequenceService(session)
        service.next_value(SequenceService.LEDGER_RECORD)
        service.next_value(SequenceService.LEDGER_RECORD)

        allocated = [r for r in captured_logs() if r["message"] == "sequence_allocated"]
        assert [r["value"] for r in allocated] == [1, 2]
        assert {r["invariant"] for r in allocated} == {
            LedgerInvariant.SEQUENCE_MONOTONICITY.value
        }

    def test_names_are_independent(self, session):
        service = SequenceService(session)
        service.next_value(SequenceService.LEDGER_RECORD)
        service.next_value(SequenceService.LEDGER_RECORD)
        assert service.next_value("other") == 1

    def test_rollback_does_not_consume(self, session_factory):
        first = session_factory()
        try:
            SequenceService(first).next_value(SequenceService.LEDGER_RECORD)
            first.commit()
            SequenceService(first).next_value(SequenceService.LEDGER_RECORD)
            first.rollback()
        finally:
            first.close()

        second = session_factory()
        try:
            assert SequenceService(second).next_value(SequenceService.LEDGER_RECORD) == 2
            second.rollback()
        finally:
            second.close()
