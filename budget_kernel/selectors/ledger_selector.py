"""
Module: budget_kernel.selectors.ledger_selector
Responsibility: Read-only queries over ledger records, wallets, pools and
    requests: vendor statements, request trails, pool utilization and a
    replay of wallet balances from the ledger.

Money aggregation happens in Python on Decimal values; SQLite keeps money as
text and SQL SUM over it would go through floats.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from budget_kernel.domain.amounts import ZERO
from budget_kernel.domain.balances import BalanceBucket, WalletBalances, WalletView
from budget_kernel.domain.ledger_records import LedgerRecordType, LedgerRecordView
from budget_kernel.domain.pools import PoolView
from budget_kernel.domain.request_lifecycle import BudgetRequestView, RequestState
from budget_kernel.models.budget_pool import BudgetPoolModel
from budget_kernel.models.budget_request import BudgetRequestModel
from budget_kernel.models.ledger_record import LedgerRecordModel
from budget_kernel.models.vendor_wallet import VendorWalletModel
from budget_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector):
    """Read-side queries for the budget ledger."""

    def record(self, record_id: UUID) -> LedgerRecordView | None:
        row = self.session.execute(
            select(LedgerRecordModel).where(LedgerRecordModel.record_id == record_id)
        ).scalar_one_or_none()
        return row.to_dto() if row else None

    def records_for_vendor(
        self,
        vendor_id: UUID,
        record_type: LedgerRecordType | None = None,
        limit: int | None = None,
    ) -> list[LedgerRecordView]:
        """Vendor statement in sequence order."""
        query = (
            select(LedgerRecordModel)
            .where(LedgerRecordModel.vendor_id == vendor_id)
            .order_by(LedgerRecordModel.seq)
        )
        if record_type is not None:
            query = query.where(LedgerRecordModel.record_type == record_type.value)
        if limit is not None:
            query = query.limit(limit)
        return [row.to_dto() for row in self.session.execute(query).scalars()]

    def records_for_request(self, request_id: UUID) -> list[LedgerRecordView]:
        rows = self.session.execute(
            select(LedgerRecordModel)
            .where(LedgerRecordModel.related_request_id == request_id)
            .order_by(LedgerRecordModel.seq)
        ).scalars()
        return [row.to_dto() for row in rows]

    def all_sequences(self) -> list[int]:
        return list(
            self.session.execute(
                select(LedgerRecordModel.seq).order_by(LedgerRecordModel.seq)
            ).scalars()
        )

    def replay_balances(self, vendor_id: UUID) -> WalletBalances:
        """
        Rebuild a wallet's balances from its ledger records alone.

        Equal to the stored balances whenever every mutation went through
        WalletLedger.
        """
        balances = WalletBalances.empty()
        for record in self.records_for_vendor(vendor_id):
            if record.record_type == LedgerRecordType.ALLOCATION:
                balances = balances.allocate(record.amount)
            elif record.record_type == LedgerRecordType.RELEASE:
                balances = balances.release(record.amount)
            elif record.record_type == LedgerRecordType.WITHDRAWAL:
                balances = balances.withdraw(record.amount)
            elif record.record_type == LedgerRecordType.FREEZE:
                balances = balances.freeze(record.amount, BalanceBucket(record.hold_bucket))
            elif record.record_type == LedgerRecordType.UNFREEZE:
                balances = balances.unfreeze(record.amount, BalanceBucket(record.hold_bucket))
        return balances

    def wallets(self) -> list[WalletView]:
        rows = self.session.execute(
            select(VendorWalletModel).order_by(VendorWalletModel.vendor_name)
        ).scalars()
        return [row.to_dto() for row in rows]

    def pools(self, fiscal_year: int | None = None) -> list[PoolView]:
        """Pool utilization, one entry per pool."""
        query = select(BudgetPoolModel).order_by(BudgetPoolModel.pool_code)
        if fiscal_year is not None:
            query = query.where(BudgetPoolModel.fiscal_year == fiscal_year)
        return [row.to_dto() for row in self.session.execute(query).scalars()]

    def requests(
        self,
        state: RequestState | None = None,
        department: str | None = None,
    ) -> list[BudgetRequestView]:
        query = select(BudgetRequestModel).order_by(BudgetRequestModel.created_at)
        if state is not None:
            query = query.where(BudgetRequestModel.state == state.value)
        if department is not None:
            query = query.where(BudgetRequestModel.department == department)
        return [row.to_dto() for row in self.session.execute(query).scalars()]

    def allocated_total_for_department(self, department: str) -> Decimal:
        amounts = self.session.execute(
            select(BudgetRequestModel.allocated_amount).where(
                BudgetRequestModel.department == department,
                BudgetRequestModel.allocated_amount.is_not(None),
            )
        ).scalars()
        return sum(amounts, ZERO)

    def verification_counts(self) -> dict[str, int]:
        rows = self.session.execute(
            select(LedgerRecordModel.verification_status, func.count())
            .group_by(LedgerRecordModel.verification_status)
        ).all()
        return {status: count for status, count in rows}
