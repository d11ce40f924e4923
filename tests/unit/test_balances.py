"""
Unit tests for wallet bucket arithmetic.

Every operation on WalletBalances returns a new snapshot; a shortfall
raises before anything changes, and ``check()`` enforces conservation and
non-negativity.
"""

from decimal import Decimal

import pytest

from budget_kernel.domain.balances import BalanceBucket, WalletBalances
from budget_kernel.exceptions import (
    InsufficientBalanceError,
    InvariantViolationError,
    ValidationError,
)
from budget_kernel.invariants import LedgerInvariant


@pytest.fixture
def funded() -> WalletBalances:
    """Allocated 1000, half released."""
    return WalletBalances.empty().allocate(Decimal("1000")).release(Decimal("500"))


class TestBucketMovements:

    def test_allocate_lands_in_pending(self):
        b = WalletBalances.empty().allocate(Decimal("50000"))
        assert b.allocated == Decimal("50000")
        assert b.pending == Decimal("50000")
        assert b.available == Decimal("0")

    def test_release_moves_pending_to_available(self, funded):
        assert funded.pending == Decimal("500")
        assert funded.available == Decimal("500")

    def test_withdraw_moves_available_to_withdrawn(self, funded):
        b = funded.withdraw(Decimal("200"))
        assert b.available == Decimal("300")
        assert b.withdrawn == Decimal("200")
        assert b.allocated == Decimal("1000")

    def test_freeze_from_pending(self, funded):
        b = funded.freeze(Decimal("100"), BalanceBucket.PENDING)
        assert b.pending == Decimal("400")
        assert b.frozen == Decimal("100")

    def test_unfreeze_to_available(self, funded):
        b = funded.freeze(Decimal("100"), BalanceBucket.PENDING).unfreeze(
            Decimal("100"), BalanceBucket.AVAILABLE
        )
        assert b.frozen == Decimal("0")
        assert b.available == Decimal("600")

    def test_receiver_unchanged(self, funded):
        funded.withdraw(Decimal("100"))
        assert funded.available == Decimal("500")


class TestShortfalls:

    def test_over_withdraw(self, funded):
        with pytest.raises(InsufficientBalanceError) as exc_info:
            funded.withdraw(Decimal("501"))
        err = exc_info.value
        assert err.bucket == "available"
        assert err.required == Decimal("501")
        assert err.available == Decimal("500")
        assert err.shortfall == Decimal("1")

    def test_over_release(self, funded):
        with pytest.raises(InsufficientBalanceError) as exc_info:
            funded.release(Decimal("600"))
        assert exc_info.value.bucket == "pending"

    def test_over_unfreeze(self, funded):
        with pytest.raises(InsufficientBalanceError) as exc_info:
            funded.unfreeze(Decimal("1"), BalanceBucket.AVAILABLE)
        assert exc_info.value.bucket == "frozen"

    @pytest.mark.parametrize(
        "bucket", [BalanceBucket.WITHDRAWN, BalanceBucket.ALLOCATED, BalanceBucket.FROZEN]
    )
    def test_freeze_only_from_hold_buckets(self, funded, bucket):
        with pytest.raises(ValidationError):
            funded.freeze(Decimal("1"), bucket)


class TestCheck:

    def test_valid_snapshot_returns_self(self, funded):
        assert funded.check() is funded

    def test_every_operation_conserves(self, funded):
        b = (
            funded.withdraw(Decimal("100"))
            .freeze(Decimal("50"), BalanceBucket.AVAILABLE)
            .unfreeze(Decimal("25"), BalanceBucket.PENDING)
        )
        assert b.is_conserved
        assert b.allocated == b.available + b.pending + b.withdrawn + b.frozen

    def test_conservation_violation(self):
        broken = WalletBalances(allocated=Decimal("10"), available=Decimal("5"))
        with pytest.raises(InvariantViolationError) as exc_info:
            broken.check()
        assert exc_info.value.invariant == LedgerInvariant.CONSERVATION.value

    def test_negative_bucket(self):
        broken = WalletBalances(
            allocated=Decimal("0"), available=Decimal("-5"), pending=Decimal("5")
        )
        with pytest.raises(InvariantViolationError) as exc_info:
            broken.check()
        assert exc_info.value.invariant == LedgerInvariant.NON_NEGATIVE.value
