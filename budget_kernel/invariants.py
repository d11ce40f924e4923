"""
Kernel Invariants Contract.

These invariants are structural law for the budget ledger.  No configuration
value may switch them off.

This module exists solely to declare them.  Enforcement is distributed
across domain.balances, WalletLedger, BudgetRequestStateMachine,
SequenceService and the ORM immutability listeners.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    CONSERVATION = "conservation"
    """allocated == available + pending + withdrawn + frozen for every
    wallet after every mutation.  Checked by WalletBalances.check()."""

    NON_NEGATIVE = "non_negative"
    """No wallet bucket and no pool total is ever below zero.  Operations
    that would overdraw are rejected, never clamped."""

    POOL_CEILING = "pool_ceiling"
    """A pool's allocated_total never exceeds its ceiling.  Checked under
    the pool row lock in WalletLedger.allocate()."""

    ALLOCATION_BOUND = "allocation_bound"
    """A request's allocated_amount never exceeds its requested amount."""

    AT_MOST_ONCE_ALLOCATION = "at_most_once_allocation"
    """A request produces at most one allocation record.  Enforced by the
    state machine under the request row lock and a partial unique index."""

    SEQUENCE_MONOTONICITY = "sequence_monotonicity"
    """Ledger record sequence numbers strictly increase in commit order.
    Enforced by SequenceService's locked counter row."""

    HASH_IMMUTABILITY = "hash_immutability"
    """A ledger record's data_hash and hashed fields never change after
    insert.  Enforced by db.immutability listeners."""


ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)
