"""
Budget pool value objects.

A pool is the ceiling-bearing budget a request draws from, usually one per
department and fiscal year.  ``allocated_total`` only grows through
``WalletLedger.allocate`` and never exceeds ``ceiling``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from budget_kernel.domain.amounts import ZERO, round_money
from budget_kernel.exceptions import InsufficientBalanceError

HIGH_USAGE_THRESHOLD = Decimal("75")
NEAR_LIMIT_THRESHOLD = Decimal("90")
EXHAUSTED_THRESHOLD = Decimal("100")


class PoolStatus(str, Enum):
    NORMAL = "normal"
    HIGH_USAGE = "high_usage"
    NEAR_LIMIT = "near_limit"
    EXHAUSTED = "exhausted"


def utilization_percent(allocated_total: Decimal, ceiling: Decimal) -> Decimal:
    """Share of the ceiling already allocated, as a percentage (2 dp)."""
    if ceiling <= ZERO:
        return EXHAUSTED_THRESHOLD if allocated_total > ZERO else ZERO
    return round_money(allocated_total * 100 / ceiling)


def pool_status(allocated_total: Decimal, ceiling: Decimal) -> PoolStatus:
    if ceiling > ZERO and allocated_total >= ceiling:
        return PoolStatus.EXHAUSTED
    utilization = utilization_percent(allocated_total, ceiling)
    if utilization >= EXHAUSTED_THRESHOLD:
        return PoolStatus.EXHAUSTED
    if utilization > NEAR_LIMIT_THRESHOLD:
        return PoolStatus.NEAR_LIMIT
    if utilization > HIGH_USAGE_THRESHOLD:
        return PoolStatus.HIGH_USAGE
    return PoolStatus.NORMAL


def check_pool_capacity(allocated_total: Decimal, ceiling: Decimal, amount: Decimal) -> None:
    """
    Raises:
        InsufficientBalanceError: ``allocated_total + amount`` would pass the
            ceiling.  ``available`` is the unallocated remainder.
    """
    remaining = ceiling - allocated_total
    if amount > remaining:
        raise InsufficientBalanceError("pool", amount, max(remaining, ZERO))


@dataclass(frozen=True)
class PoolView:
    pool_code: str
    name: str
    fiscal_year: int
    ceiling: Decimal
    allocated_total: Decimal

    @property
    def remaining(self) -> Decimal:
        return self.ceiling - self.allocated_total

    @property
    def utilization(self) -> Decimal:
        return utilization_percent(self.allocated_total, self.ceiling)

    @property
    def status(self) -> PoolStatus:
        return pool_status(self.allocated_total, self.ceiling)
