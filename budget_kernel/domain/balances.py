"""
Wallet balance arithmetic (``budget_kernel.domain.balances``).

Responsibility
--------------
Pure bucket math for a vendor wallet.  Every wallet mutation in the kernel
is computed here first, on an immutable ``WalletBalances`` value, and only
then copied onto the ORM row by ``WalletLedger``.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.

Invariants enforced
-------------------
* CONSERVATION -- ``allocated == available + pending + withdrawn + frozen``.
* NON_NEGATIVE -- every bucket is >= 0.  An operation whose source bucket
  cannot cover the amount raises ``InsufficientBalanceError`` and produces
  no new value; it never clamps or partially applies.

Failure modes
-------------
* ``InsufficientBalanceError`` -- expected, user-facing.
* ``InvariantViolationError`` -- ``check()`` found a broken invariant.  Only
  reachable through corrupted stored balances or a programming error.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from uuid import UUID

from budget_kernel.domain.amounts import ZERO
from budget_kernel.exceptions import (
    InsufficientBalanceError,
    InvariantViolationError,
    ValidationError,
)
from budget_kernel.invariants import LedgerInvariant


class BalanceBucket(str, Enum):
    """Wallet buckets.  ``allocated`` is the total; the rest partition it."""

    ALLOCATED = "allocated"
    AVAILABLE = "available"
    PENDING = "pending"
    WITHDRAWN = "withdrawn"
    FROZEN = "frozen"


# Buckets a freeze may draw from and an unfreeze may return to
HOLD_BUCKETS: frozenset[BalanceBucket] = frozenset({
    BalanceBucket.AVAILABLE,
    BalanceBucket.PENDING,
})


@dataclass(frozen=True)
class WalletBalances:
    """
    Immutable snapshot of a wallet's five buckets.

    All operations return a new instance; the receiver is never changed.
    """

    allocated: Decimal = ZERO
    available: Decimal = ZERO
    pending: Decimal = ZERO
    withdrawn: Decimal = ZERO
    frozen: Decimal = ZERO

    @classmethod
    def empty(cls) -> WalletBalances:
        return cls()

    def bucket(self, bucket: BalanceBucket) -> Decimal:
        return getattr(self, bucket.value)

    @property
    def partition_total(self) -> Decimal:
        return self.available + self.pending + self.withdrawn + self.frozen

    @property
    def is_conserved(self) -> bool:
        return self.allocated == self.partition_total

    def _require(self, bucket: BalanceBucket, amount: Decimal) -> None:
        held = self.bucket(bucket)
        if held < amount:
            raise InsufficientBalanceError(bucket.value, amount, held)

    def allocate(self, amount: Decimal) -> WalletBalances:
        """New funds arrive as pending until the work is released."""
        return replace(
            self,
            allocated=self.allocated + amount,
            pending=self.pending + amount,
        )

    def release(self, amount: Decimal) -> WalletBalances:
        """pending -> available."""
        self._require(BalanceBucket.PENDING, amount)
        return replace(
            self,
            pending=self.pending - amount,
            available=self.available + amount,
        )

    def withdraw(self, amount: Decimal) -> WalletBalances:
        """available -> withdrawn."""
        self._require(BalanceBucket.AVAILABLE, amount)
        return replace(
            self,
            available=self.available - amount,
            withdrawn=self.withdrawn + amount,
        )

    def freeze(self, amount: Decimal, source: BalanceBucket) -> WalletBalances:
        """available|pending -> frozen."""
        _require_hold_bucket(source)
        self._require(source, amount)
        return replace(
            self,
            **{
                source.value: self.bucket(source) - amount,
                "frozen": self.frozen + amount,
            },
        )

    def unfreeze(self, amount: Decimal, target: BalanceBucket) -> WalletBalances:
        """frozen -> available|pending."""
        _require_hold_bucket(target)
        self._require(BalanceBucket.FROZEN, amount)
        return replace(
            self,
            **{
                "frozen": self.frozen - amount,
                target.value: self.bucket(target) + amount,
            },
        )

    def check(self) -> WalletBalances:
        """
        Validate conservation and non-negativity.

        Returns:
            self, so callers can chain ``balances.withdraw(x).check()``.

        Raises:
            InvariantViolationError: A bucket is negative or the partition
                does not sum to ``allocated``.
        """
        for bucket in BalanceBucket:
            value = self.bucket(bucket)
            if value < ZERO:
                raise InvariantViolationError(
                    LedgerInvariant.NON_NEGATIVE.value,
                    f"{bucket.value} is negative: {value}",
                )
        if not self.is_conserved:
            raise InvariantViolationError(
                LedgerInvariant.CONSERVATION.value,
                f"allocated {self.allocated} != available {self.available} "
                f"+ pending {self.pending} + withdrawn {self.withdrawn} "
                f"+ frozen {self.frozen}",
            )
        return self

    def as_dict(self) -> dict[str, Decimal]:
        return {bucket.value: self.bucket(bucket) for bucket in BalanceBucket}


def _require_hold_bucket(bucket: BalanceBucket) -> None:
    if bucket not in HOLD_BUCKETS:
        raise ValidationError(
            "bucket", f"holds apply to available or pending, not {bucket.value}"
        )


class WalletStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CLOSED = "closed"


@dataclass(frozen=True)
class WalletView:
    """Read-side snapshot of a vendor wallet."""

    vendor_id: UUID
    vendor_name: str
    wallet_address: str | None
    status: WalletStatus
    balances: WalletBalances
    daily_withdrawal_limit: Decimal | None = None

    @property
    def vendor_address(self) -> str:
        """Identifier used in hashed records; falls back to the vendor id."""
        return self.wallet_address or str(self.vendor_id)
