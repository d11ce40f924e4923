"""
Tests for LedgerSelector read-side queries.

All data is written through the facade first; each test then reads inside
a single session_scope.
"""

from decimal import Decimal
from uuid import uuid4

from budget_kernel.db.engine import session_scope
from budget_kernel.domain.ledger_records import LedgerRecordType
from budget_kernel.domain.request_lifecycle import RequestState
from budget_kernel.selectors.ledger_selector import LedgerSelector
from budget_kernel.services.budget_operations import CompleteRequest, WithdrawFunds


class TestStatements:

    def test_filter_by_record_type_and_limit(
        self, ops, create_pool, open_wallet, allocated_request, approver_id, test_actor_id
    ):
        create_pool()
        wallet = open_wallet()
        movement = allocated_request(wallet.vendor_id, amount="300")
        ops.complete_request(
            CompleteRequest(request_id=movement.request.request_id, actor_id=approver_id)
        )
        for _ in range(2):
            ops.withdraw(
                WithdrawFunds(vendor_id=wallet.vendor_id, amount="100", actor_id=test_actor_id)
            )

        with session_scope() as session:
            selector = LedgerSelector(session)
            withdrawals = selector.records_for_vendor(
                wallet.vendor_id, record_type=LedgerRecordType.WITHDRAWAL
            )
            first_two = selector.records_for_vendor(wallet.vendor_id, limit=2)
            trail = selector.records_for_request(movement.request.request_id)

        assert [r.amount for r in withdrawals] == [Decimal("100"), Decimal("100")]
        assert [r.record_type for r in first_two] == [
            LedgerRecordType.ALLOCATION,
            LedgerRecordType.RELEASE,
        ]
        assert [r.record_type for r in trail] == [
            LedgerRecordType.ALLOCATION,
            LedgerRecordType.RELEASE,
        ]

    def test_missing_record_is_none(self, db_engine):
        with session_scope() as session:
            assert LedgerSelector(session).record(uuid4()) is None


class TestListings:

    def test_wallets_sorted_by_name(self, open_wallet):
        open_wallet(vendor_name="Zeta Labs")
        open_wallet(vendor_name="Alpha Parts")

        with session_scope() as session:
            names = [w.vendor_name for w in LedgerSelector(session).wallets()]

        assert names == ["Alpha Parts", "Zeta Labs"]

    def test_pools_by_fiscal_year(self, create_pool):
        create_pool(pool_code="ENG", fiscal_year=2024)
        create_pool(pool_code="OPS", fiscal_year=2025)

        with session_scope() as session:
            selector = LedgerSelector(session)
            every = [p.pool_code for p in selector.pools()]
            year_2025 = [p.pool_code for p in selector.pools(fiscal_year=2025)]

        assert every == ["ENG", "OPS"]
        assert year_2025 == ["OPS"]

    def test_requests_filtered(self, create_pool, submit_request, approved_request):
        create_pool(pool_code="ENG")
        create_pool(pool_code="OPS")
        pending = submit_request(amount="10", department="ENG")
        approved = approved_request(amount="20", department="ENG")
        other = submit_request(amount="30", department="OPS")

        with session_scope() as session:
            selector = LedgerSelector(session)
            eng_pending = selector.requests(state=RequestState.PENDING, department="ENG")
            ops_all = selector.requests(department="OPS")
            everything = selector.requests()

        assert [r.request_id for r in eng_pending] == [pending.request_id]
        assert [r.request_id for r in ops_all] == [other.request_id]
        assert {r.request_id for r in everything} == {
            pending.request_id,
            approved.request_id,
            other.request_id,
        }


class TestAggregates:

    def test_allocated_total_for_department(self, create_pool, open_wallet, allocated_request):
        create_pool(pool_code="ENG")
        create_pool(pool_code="OPS")
        wallet = open_wallet()
        allocated_request(wallet.vendor_id, amount="1000.25", department="ENG")
        allocated_request(wallet.vendor_id, amount="499.75", department="ENG")
        allocated_request(wallet.vendor_id, amount="5", department="OPS")

        with session_scope() as session:
            selector = LedgerSelector(session)
            eng = selector.allocated_total_for_department("ENG")
            empty = selector.allocated_total_for_department("HR")

        assert eng == Decimal("1500.00")
        assert empty == Decimal("0")
