"""
Module: budget_kernel.models.vendor_wallet
Responsibility: ORM persistence for vendor wallets.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One wallet per vendor (UNIQUE vendor_id).
    - Non-negative buckets and conservation, validated by
      WalletBalances.check() before every write.
    - Balance columns are written only by WalletLedger, via
      ``apply_balances`` after ``WalletBalances.check()`` passed.
    - ``version`` is a SQLAlchemy version counter.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import Base, MoneyType, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from budget_kernel.domain.balances import WalletBalances, WalletView


class VendorWalletModel(Base):
    """Persistent vendor wallet."""

    __tablename__ = "vendor_wallets"

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'suspended', 'closed')",
            name="ck_vendor_wallets_valid_status",
        ),
    )

    vendor_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    vendor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    wallet_address: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    daily_withdrawal_limit: Mapped[Decimal | None] = mapped_column(MoneyType(), nullable=True)

    allocated: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False, default=Decimal("0"))
    available: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False, default=Decimal("0"))
    pending: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False, default=Decimal("0"))
    withdrawn: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False, default=Decimal("0"))
    frozen: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False, default=Decimal("0"))

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<VendorWallet {self.vendor_id} allocated={self.allocated} "
            f"available={self.available} pending={self.pending}>"
        )

    @property
    def vendor_address(self) -> str:
        return self.wallet_address or str(self.vendor_id)

    def balances(self) -> WalletBalances:
        from budget_kernel.domain.balances import WalletBalances

        return WalletBalances(
            allocated=self.allocated,
            available=self.available,
            pending=self.pending,
            withdrawn=self.withdrawn,
            frozen=self.frozen,
        )

    def apply_balances(self, balances: WalletBalances) -> None:
        self.allocated = balances.allocated
        self.available = balances.available
        self.pending = balances.pending
        self.withdrawn = balances.withdrawn
        self.frozen = balances.frozen

    def to_dto(self) -> WalletView:
        from budget_kernel.domain.balances import WalletStatus, WalletView

        return WalletView(
            vendor_id=self.vendor_id,
            vendor_name=self.vendor_name,
            wallet_address=self.wallet_address,
            status=WalletStatus(self.status),
            balances=self.balances(),
            daily_withdrawal_limit=self.daily_withdrawal_limit,
        )
