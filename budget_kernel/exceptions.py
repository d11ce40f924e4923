"""
Typed Exception Hierarchy for the Budget Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the kernel (an admin session, a vendor session, a batch script)
must react to failures precisely: show a validation message, refuse a
transition, report a shortfall.  Parsing message strings for that is fragile,
so every failure has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (request id, bucket, shortfall, ...)

Example - WRONG way to handle errors:
    try:
        ledger.withdraw(vendor_id, amount, actor_id)
    except Exception as e:
        if "insufficient" in str(e):  # FRAGILE
            ...

Example - RIGHT way:
    try:
        ledger.withdraw(vendor_id, amount, actor_id)
    except InsufficientBalanceError as e:
        api_response(code=e.code, shortfall=str(e.shortfall))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BudgetKernelError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- RequestNotFoundError
    |   +-- WalletNotFoundError
    |   +-- PoolNotFoundError
    |   +-- LedgerRecordNotFoundError
    |
    +-- LifecycleError
    |   +-- InvalidTransitionError
    |
    +-- LedgerError
    |   +-- InsufficientBalanceError
    |   +-- WithdrawalLimitExceededError
    |   +-- WalletAlreadyExistsError
    |   +-- WalletInactiveError
    |   +-- PoolAlreadyExistsError
    |
    +-- RecordIntegrityError
    |   +-- InvariantViolationError      (FATAL - programming error)
    |   +-- UnsupportedHashAlgorithmError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |   +-- LockTimeoutError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

A hash mismatch found during verification is NOT an exception.  Detecting a
tampered record is an expected outcome and is reported through
``budget_kernel.domain.verification.VerificationResult``.

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                        | When Raised
-------------|-----------------------------|----------------------------------------
Validation   | VALIDATION_ERROR            | Bad amount, missing/blank field
-------------|-----------------------------|----------------------------------------
Not found    | REQUEST_NOT_FOUND           | Unknown budget request id
             | WALLET_NOT_FOUND            | No wallet for vendor
             | POOL_NOT_FOUND              | Unknown budget pool code
             | LEDGER_RECORD_NOT_FOUND     | Unknown ledger record id
-------------|-----------------------------|----------------------------------------
Lifecycle    | INVALID_TRANSITION          | Action not allowed from current state
-------------|-----------------------------|----------------------------------------
Ledger       | INSUFFICIENT_BALANCE        | Bucket or pool cannot cover amount
             | WITHDRAWAL_LIMIT_EXCEEDED   | Daily withdrawal limit reached
             | WALLET_ALREADY_EXISTS       | Second wallet for the same vendor
             | WALLET_INACTIVE             | Wallet suspended or closed
             | POOL_ALREADY_EXISTS         | Duplicate pool code
-------------|-----------------------------|----------------------------------------
Integrity    | INVARIANT_VIOLATION         | Conservation / non-negativity broken
             | UNSUPPORTED_HASH_ALGORITHM  | Unknown hash algorithm tag
-------------|-----------------------------|----------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT    | Row version changed underneath us
             | LOCK_TIMEOUT                | Waited too long for a row lock
-------------|-----------------------------|----------------------------------------
Immutability | IMMUTABILITY_VIOLATION      | Write to a frozen ledger/history field

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Expected errors are returned to the caller as typed results by
   ``BudgetOperations`` (see services/budget_operations.py).

2. InvariantViolationError is NEVER shown as a normal user error.  The
   transaction is rolled back, the event is logged at CRITICAL, and the
   exception propagates.

3. ConcurrencyError subclasses are safe to retry by the CALLER; the kernel
   never retries on its own.
"""

from decimal import Decimal


class BudgetKernelError(Exception):
    """
    Base exception for all budget kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "BUDGET_KERNEL_ERROR"


# Validation


class ValidationError(BudgetKernelError):
    """Malformed input: non-positive amount, missing field, unknown enum."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Not found


class NotFoundError(BudgetKernelError):
    """Base exception for lookups that found nothing."""

    code: str = "NOT_FOUND"


class RequestNotFoundError(NotFoundError):
    """Budget request with given ID was not found."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Budget request not found: {request_id}")


class WalletNotFoundError(NotFoundError):
    """Vendor has no wallet."""

    code: str = "WALLET_NOT_FOUND"

    def __init__(self, vendor_id: str):
        self.vendor_id = vendor_id
        super().__init__(f"No wallet for vendor: {vendor_id}")


class PoolNotFoundError(NotFoundError):
    """Budget pool with given code was not found."""

    code: str = "POOL_NOT_FOUND"

    def __init__(self, pool_code: str):
        self.pool_code = pool_code
        super().__init__(f"Budget pool not found: {pool_code}")


class LedgerRecordNotFoundError(NotFoundError):
    """Ledger record with given ID was not found."""

    code: str = "LEDGER_RECORD_NOT_FOUND"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Ledger record not found: {record_id}")


# Lifecycle


class LifecycleError(BudgetKernelError):
    """Base exception for request lifecycle errors."""

    code: str = "LIFECYCLE_ERROR"


class InvalidTransitionError(LifecycleError):
    """
    Operation attempted from a state that does not permit it.

    Raised for re-approval, double allocation, and any attempt to leave a
    terminal state.  The request is left untouched.
    """

    code: str = "INVALID_TRANSITION"

    def __init__(self, request_id: str, current_state: str, action: str):
        self.request_id = request_id
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Cannot {action} budget request {request_id} in state '{current_state}'"
        )


# Ledger


class LedgerError(BudgetKernelError):
    """Base exception for wallet ledger errors."""

    code: str = "LEDGER_ERROR"


class InsufficientBalanceError(LedgerError):
    """
    A bucket (or the budget pool) cannot cover the requested amount.

    Never partially applied: the wallet is left exactly as it was.
    """

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(self, bucket: str, required: Decimal, available: Decimal):
        self.bucket = bucket
        self.required = required
        self.available = available
        self.shortfall = required - available
        super().__init__(
            f"Insufficient {bucket} balance: required {required}, "
            f"available {available}, shortfall {self.shortfall}"
        )


class WithdrawalLimitExceededError(LedgerError):
    """Withdrawal would exceed the wallet's daily limit."""

    code: str = "WITHDRAWAL_LIMIT_EXCEEDED"

    def __init__(self, vendor_id: str, limit: Decimal, withdrawn_today: Decimal, requested: Decimal):
        self.vendor_id = vendor_id
        self.limit = limit
        self.withdrawn_today = withdrawn_today
        self.requested = requested
        super().__init__(
            f"Daily withdrawal limit {limit} exceeded for vendor {vendor_id}: "
            f"already withdrawn {withdrawn_today}, requested {requested}"
        )


class WalletAlreadyExistsError(LedgerError):
    """Vendor already has a wallet."""

    code: str = "WALLET_ALREADY_EXISTS"

    def __init__(self, vendor_id: str):
        self.vendor_id = vendor_id
        super().__init__(f"Wallet already exists for vendor: {vendor_id}")


class WalletInactiveError(LedgerError):
    """Wallet is not active and cannot be mutated."""

    code: str = "WALLET_INACTIVE"

    def __init__(self, vendor_id: str, status: str):
        self.vendor_id = vendor_id
        self.status = status
        super().__init__(f"Wallet for vendor {vendor_id} is {status}")


class PoolAlreadyExistsError(LedgerError):
    """Budget pool code already in use."""

    code: str = "POOL_ALREADY_EXISTS"

    def __init__(self, pool_code: str):
        self.pool_code = pool_code
        super().__init__(f"Budget pool already exists: {pool_code}")


# Integrity


class RecordIntegrityError(BudgetKernelError):
    """Base exception for integrity errors."""

    code: str = "INTEGRITY_ERROR"


class InvariantViolationError(RecordIntegrityError):
    """
    A ledger invariant does not hold after a mutation.

    This is a programming error, not a user error.  The mutation is never
    committed and the event must be escalated.
    """

    code: str = "INVARIANT_VIOLATION"

    def __init__(self, invariant: str, details: str):
        self.invariant = invariant
        self.details = details
        super().__init__(f"Invariant {invariant} violated: {details}")


class UnsupportedHashAlgorithmError(RecordIntegrityError):
    """Hash algorithm tag is not registered."""

    code: str = "UNSUPPORTED_HASH_ALGORITHM"

    def __init__(self, algorithm: str):
        self.algorithm = algorithm
        super().__init__(f"Unsupported hash algorithm: {algorithm}")


# Concurrency


class ConcurrencyError(BudgetKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Row version changed between read and write."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}"
        )


class LockTimeoutError(ConcurrencyError):
    """Gave up waiting for a row or database lock; nothing was applied."""

    code: str = "LOCK_TIMEOUT"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Timed out waiting for lock during {operation}")


# Immutability


class ImmutabilityError(BudgetKernelError):
    """Base exception for immutability errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempt to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
