"""
Property-based tests for the pure ledger arithmetic and record hashing.

Boundaries fuzzed here:
- Wallet buckets: arbitrary sequences of allocate/release/withdraw/freeze/
  unfreeze either apply completely and conserve, or fail and leave the
  balances untouched
- Amounts: valid range parses exactly; canonical form is scale-independent
- Hashing: storage scale never changes a digest; any amount change does
"""

from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from budget_kernel.domain.amounts import ZERO, canonical_amount, parse_amount
from budget_kernel.domain.balances import BalanceBucket, WalletBalances
from budget_kernel.domain.hash_engine import HashableFields, HashAlgorithm, compute_hash
from budget_kernel.exceptions import InsufficientBalanceError

money_amounts = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("999999999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

hold_buckets = st.sampled_from([BalanceBucket.AVAILABLE, BalanceBucket.PENDING])


@composite
def wallet_operations(draw):
    """One (name, amount, hold_bucket) step for WalletBalances."""
    name = draw(st.sampled_from(["allocate", "release", "withdraw", "freeze", "unfreeze"]))
    return name, draw(money_amounts), draw(hold_buckets)


def _apply(balances: WalletBalances, step) -> WalletBalances:
    name, amount, bucket = step
    if name in ("freeze", "unfreeze"):
        return getattr(balances, name)(amount, bucket)
    return getattr(balances, name)(amount)


def _projection(amount: Decimal) -> HashableFields:
    return HashableFields(
        request_id="6f1c2f4e-8a55-4b0c-9a1e-0d3b2c1a9f10",
        amount=amount,
        timestamp=datetime(2024, 3, 1, 9, 30, tzinfo=UTC),
        department="ENG",
        project="Lab refresh",
        vendor_address=None,
        allocated_by="0b0b9d3e-0f3e-4a57-9d43-5b1c6c2b7f01",
        category="equipment",
        vendor_name="Acme Supplies",
    )


class TestWalletBucketProperties:

    @settings(max_examples=200)
    @given(steps=st.lists(wallet_operations(), min_size=1, max_size=40))
    def test_every_step_all_or_nothing(self, steps):
        balances = WalletBalances.empty()
        for step in steps:
            try:
                after = _apply(balances, step)
            except InsufficientBalanceError as exc:
                assert exc.shortfall > ZERO
                continue
            after.check()
            assert after.allocated >= balances.allocated
            balances = after

        assert balances.is_conserved
        assert all(value >= ZERO for value in balances.as_dict().values())

    @given(amount=money_amounts, extra=money_amounts)
    def test_overdraw_names_shortfall(self, amount, extra):
        balances = WalletBalances.empty().allocate(amount).release(amount)
        try:
            balances.withdraw(amount + extra)
        except InsufficientBalanceError as exc:
            assert exc.shortfall == extra
            assert exc.bucket == BalanceBucket.AVAILABLE.value
        else:
            raise AssertionError("withdrawal beyond available succeeded")


class TestAmountProperties:

    @given(amount=money_amounts)
    def test_parse_is_exact(self, amount):
        assert parse_amount(str(amount)) == amount
        assert parse_amount(amount) == amount

    @given(amount=money_amounts, scale=st.integers(min_value=0, max_value=7))
    def test_canonical_form_ignores_scale(self, amount, scale):
        rescaled = amount.quantize(Decimal(1).scaleb(-(2 + scale)))
        assert canonical_amount(rescaled) == canonical_amount(amount)
        assert Decimal(canonical_amount(amount)) == amount


class TestHashProperties:

    @given(
        amount=money_amounts,
        scale=st.integers(min_value=0, max_value=7),
        algorithm=st.sampled_from(list(HashAlgorithm)),
    )
    def test_storage_scale_does_not_change_digest(self, amount, scale, algorithm):
        rescaled = amount.quantize(Decimal(1).scaleb(-(2 + scale)))
        assert compute_hash(_projection(rescaled), algorithm) == compute_hash(
            _projection(amount), algorithm
        )

    @given(amount=money_amounts, delta=money_amounts)
    def test_any_amount_change_changes_digest(self, amount, delta):
        original = _projection(amount)
        altered = replace(original, amount=amount + delta)
        assert compute_hash(altered) != compute_hash(original)

    @given(vendor_name=st.text(min_size=1, max_size=64))
    def test_vendor_name_change_changes_digest(self, vendor_name):
        original = _projection(Decimal("100"))
        altered = replace(original, vendor_name=vendor_name)
        if vendor_name != original.vendor_name:
            assert compute_hash(altered) != compute_hash(original)

    def test_request_id_type_irrelevant(self):
        request_id = uuid4()
        as_uuid = replace(_projection(Decimal("1")), request_id=request_id)
        as_str = replace(_projection(Decimal("1")), request_id=str(request_id))
        assert compute_hash(as_uuid) == compute_hash(as_str)
