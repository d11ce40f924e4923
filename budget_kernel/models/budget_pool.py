"""
Module: budget_kernel.models.budget_pool
Responsibility: ORM persistence for budget pools (the ceiling a request's
    allocation draws from).

Invariants enforced:
    - Unique pool_code.
    - ``allocated_total <= ceiling``: checked by WalletLedger under the pool
      row lock before every increment.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import Base, MoneyType, UTCDateTime

if TYPE_CHECKING:
    from budget_kernel.domain.pools import PoolView


class BudgetPoolModel(Base):
    __tablename__ = "budget_pools"

    pool_code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    ceiling: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    allocated_total: Mapped[Decimal] = mapped_column(
        MoneyType(), nullable=False, default=Decimal("0"),
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<BudgetPool {self.pool_code} {self.allocated_total}/{self.ceiling}>"

    def to_dto(self) -> PoolView:
        from budget_kernel.domain.pools import PoolView

        return PoolView(
            pool_code=self.pool_code,
            name=self.name,
            fiscal_year=self.fiscal_year,
            ceiling=self.ceiling,
            allocated_total=self.allocated_total,
        )
