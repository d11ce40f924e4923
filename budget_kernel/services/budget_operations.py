"""
BudgetOperations -- inbound operations facade.

Responsibility:
    The surface an admin session, a vendor session or a batch script
    calls.  Each method runs exactly one transaction, turns expected kernel
    errors into a typed ``OperationResult``, and delivers notifications only
    after the transaction has committed.

Architecture position:
    Kernel > Services -- outermost kernel service.  Owns transaction
    boundaries (``session_scope``); everything below only flushes.

Error policy:
    - ``BudgetKernelError`` subclasses (validation, not found, invalid
      transition, insufficient balance, ...) -> failed result.
    - ``StaleDataError`` -> ``OptimisticLockError`` result.
    - Lock wait timeout (``OperationalError``) -> ``LockTimeoutError``
      result.  Nothing was applied.
    - ``InvariantViolationError`` -> logged at CRITICAL and RE-RAISED.
      Never returned as an ordinary failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Generic, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from budget_kernel.db.engine import session_scope
from budget_kernel.domain.balances import BalanceBucket, WalletView
from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.domain.hash_engine import DEFAULT_HASH_ALGORITHM, HashAlgorithm
from budget_kernel.domain.ledger_records import LedgerRecordView
from budget_kernel.domain.notifications import EventBuffer, NotificationPort, NullNotifier
from budget_kernel.domain.pools import PoolView
from budget_kernel.domain.request_lifecycle import (
    BudgetRequestSubmission,
    BudgetRequestView,
    StateChangeView,
)
from budget_kernel.domain.verification import VerificationResult
from budget_kernel.exceptions import (
    BudgetKernelError,
    InsufficientBalanceError,
    InvalidTransitionError,
    InvariantViolationError,
    LockTimeoutError,
    NotFoundError,
    OptimisticLockError,
    ValidationError,
    WithdrawalLimitExceededError,
)
from budget_kernel.logging_config import LogContext, get_logger
from budget_kernel.services.request_state_machine import (
    BudgetRequestStateMachine,
    FundsMovement,
)
from budget_kernel.services.verification_service import VerificationService
from budget_kernel.services.wallet_ledger import WalletLedger

logger = get_logger("services.budget_operations")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApproveRequest:
    request_id: UUID
    approver_id: UUID
    comments: str | None = None


@dataclass(frozen=True)
class RejectRequest:
    request_id: UUID
    approver_id: UUID
    reason: str


@dataclass(frozen=True)
class CancelRequest:
    request_id: UUID
    actor_id: UUID
    reason: str


@dataclass(frozen=True)
class AllocateFunds:
    request_id: UUID
    vendor_id: UUID
    actor_id: UUID
    amount: Decimal | str | int | None = None


@dataclass(frozen=True)
class StartRequest:
    request_id: UUID
    actor_id: UUID


@dataclass(frozen=True)
class CompleteRequest:
    request_id: UUID
    actor_id: UUID
    comment: str | None = None


@dataclass(frozen=True)
class WithdrawFunds:
    vendor_id: UUID
    amount: Decimal | str | int
    actor_id: UUID
    destination: str | None = None


@dataclass(frozen=True)
class FreezeFunds:
    vendor_id: UUID
    amount: Decimal | str | int
    reason: str
    actor_id: UUID
    source: BalanceBucket | str = BalanceBucket.AVAILABLE


@dataclass(frozen=True)
class UnfreezeFunds:
    vendor_id: UUID
    amount: Decimal | str | int
    actor_id: UUID
    target: BalanceBucket | str = BalanceBucket.AVAILABLE
    reason: str | None = None


@dataclass(frozen=True)
class OpenWallet:
    vendor_id: UUID
    vendor_name: str
    actor_id: UUID
    wallet_address: str | None = None
    daily_withdrawal_limit: Decimal | str | int | None = None


@dataclass(frozen=True)
class CreatePool:
    pool_code: str
    name: str
    ceiling: Decimal | str | int
    fiscal_year: int
    actor_id: UUID


@dataclass(frozen=True)
class VerifyRecord:
    record_id: UUID
    client_hash: str | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class OperationStatus(str, Enum):
    SUCCEEDED = "succeeded"
    VALIDATION_FAILED = "validation_failed"
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    LIMIT_EXCEEDED = "limit_exceeded"
    REJECTED = "rejected"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Result of one facade call."""

    status: OperationStatus
    value: T | None = None
    error_code: str | None = None
    message: str | None = None
    error: BudgetKernelError | None = None

    @property
    def is_success(self) -> bool:
        return self.status == OperationStatus.SUCCEEDED

    @classmethod
    def succeeded(cls, value: T) -> OperationResult[T]:
        return cls(status=OperationStatus.SUCCEEDED, value=value)

    @classmethod
    def failed(cls, error: BudgetKernelError) -> OperationResult[T]:
        return cls(
            status=_status_for(error),
            error_code=error.code,
            message=str(error),
            error=error,
        )


def _status_for(error: BudgetKernelError) -> OperationStatus:
    if isinstance(error, ValidationError):
        return OperationStatus.VALIDATION_FAILED
    if isinstance(error, NotFoundError):
        return OperationStatus.NOT_FOUND
    if isinstance(error, InvalidTransitionError):
        return OperationStatus.INVALID_TRANSITION
    if isinstance(error, InsufficientBalanceError):
        return OperationStatus.INSUFFICIENT_FUNDS
    if isinstance(error, WithdrawalLimitExceededError):
        return OperationStatus.LIMIT_EXCEEDED
    if isinstance(error, (OptimisticLockError, LockTimeoutError)):
        return OperationStatus.CONFLICT
    return OperationStatus.REJECTED


def _is_lock_timeout(exc: OperationalError) -> bool:
    orig = exc.orig
    if getattr(orig, "pgcode", None) == "55P03":  # lock_not_available
        return True
    message = str(orig).lower()
    return "database is locked" in message or "lock timeout" in message


@dataclass
class _Services:
    state_machine: BudgetRequestStateMachine
    ledger: WalletLedger
    verifier: VerificationService


# ---------------------------------------------------------------------------
# Facade
# ---------------------------------------------------------------------------


class BudgetOperations:
    """
    Inbound operations.  Safe to share between threads: every call opens
    its own session from ``session_factory``.

    Usage:
        ops = BudgetOperations(get_session_factory(), notifier=LoggingNotifier())
        result = ops.submit_request(BudgetRequestSubmission(...))
        if result.is_success:
            request = result.value
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        notifier: NotificationPort | None = None,
        clock: Clock | None = None,
        hash_algorithm: HashAlgorithm | str = DEFAULT_HASH_ALGORITHM,
        default_daily_withdrawal_limit: Decimal | None = None,
    ):
        self._session_factory = session_factory
        self._notifier = notifier or NullNotifier()
        self._clock = clock or SystemClock()
        self._hash_algorithm = hash_algorithm
        self._default_daily_withdrawal_limit = default_daily_withdrawal_limit

    def _services(self, session: Session, events: EventBuffer) -> _Services:
        ledger = WalletLedger(session, self._clock, events, self._hash_algorithm)
        return _Services(
            state_machine=BudgetRequestStateMachine(session, self._clock, ledger),
            ledger=ledger,
            verifier=VerificationService(session, self._clock, events),
        )

    def _run(
        self,
        operation: str,
        work: Callable[[_Services], T],
        **context: Any,
    ) -> OperationResult[T]:
        events = EventBuffer()
        with LogContext.bind(correlation_id=str(uuid4()), **context):
            try:
                with session_scope(self._session_factory) as session:
                    value = work(self._services(session, events))
            except InvariantViolationError as exc:
                logger.critical(
                    "operation_aborted_invariant_violation",
                    extra={
                        "operation": operation,
                        "invariant": exc.invariant,
                        "details": exc.details,
                    },
                )
                raise
            except StaleDataError:
                error = OptimisticLockError("row", operation)
                logger.warning("operation_conflict", extra={"operation": operation})
                return OperationResult.failed(error)
            except OperationalError as exc:
                if not _is_lock_timeout(exc):
                    raise
                error = LockTimeoutError(operation)
                logger.warning("operation_lock_timeout", extra={"operation": operation})
                return OperationResult.failed(error)
            except BudgetKernelError as exc:
                logger.info(
                    "operation_failed",
                    extra={"operation": operation, "error_code": exc.code},
                )
                return OperationResult.failed(exc)

            logger.info("operation_succeeded", extra={"operation": operation})
            events.dispatch(self._notifier)
            return OperationResult.succeeded(value)

    # -- requests -------------------------------------------------------

    def submit_request(
        self, submission: BudgetRequestSubmission
    ) -> OperationResult[BudgetRequestView]:
        return self._run(
            "submit_request",
            lambda s: s.state_machine.submit(submission),
            actor_id=submission.requester_id,
        )

    def approve_request(self, payload: ApproveRequest) -> OperationResult[BudgetRequestView]:
        return self._run(
            "approve_request",
            lambda s: s.state_machine.approve(
                payload.request_id, payload.approver_id, payload.comments
            ),
            request_id=payload.request_id,
            actor_id=payload.approver_id,
        )

    def reject_request(self, payload: RejectRequest) -> OperationResult[BudgetRequestView]:
        return self._run(
            "reject_request",
            lambda s: s.state_machine.reject(
                payload.request_id, payload.approver_id, payload.reason
            ),
            request_id=payload.request_id,
            actor_id=payload.approver_id,
        )

    def cancel_request(self, payload: CancelRequest) -> OperationResult[BudgetRequestView]:
        return self._run(
            "cancel_request",
            lambda s: s.state_machine.cancel(
                payload.request_id, payload.actor_id, payload.reason
            ),
            request_id=payload.request_id,
            actor_id=payload.actor_id,
        )

    def allocate_funds(self, payload: AllocateFunds) -> OperationResult[FundsMovement]:
        return self._run(
            "allocate_funds",
            lambda s: s.state_machine.allocate(
                payload.request_id, payload.vendor_id, payload.actor_id, payload.amount
            ),
            request_id=payload.request_id,
            vendor_id=payload.vendor_id,
            actor_id=payload.actor_id,
        )

    def start_request(self, payload: StartRequest) -> OperationResult[BudgetRequestView]:
        return self._run(
            "start_request",
            lambda s: s.state_machine.mark_in_progress(payload.request_id, payload.actor_id),
            request_id=payload.request_id,
            actor_id=payload.actor_id,
        )

    def complete_request(self, payload: CompleteRequest) -> OperationResult[FundsMovement]:
        return self._run(
            "complete_request",
            lambda s: s.state_machine.complete(
                payload.request_id, payload.actor_id, payload.comment
            ),
            request_id=payload.request_id,
            actor_id=payload.actor_id,
        )

    # -- wallets --------------------------------------------------------

    def open_wallet(self, payload: OpenWallet) -> OperationResult[WalletView]:
        return self._run(
            "open_wallet",
            lambda s: s.ledger.open_wallet(
                payload.vendor_id,
                payload.vendor_name,
                payload.actor_id,
                wallet_address=payload.wallet_address,
                daily_withdrawal_limit=(
                    payload.daily_withdrawal_limit
                    if payload.daily_withdrawal_limit is not None
                    else self._default_daily_withdrawal_limit
                ),
            ),
            vendor_id=payload.vendor_id,
            actor_id=payload.actor_id,
        )

    def create_pool(self, payload: CreatePool) -> OperationResult[PoolView]:
        return self._run(
            "create_pool",
            lambda s: s.ledger.create_pool(
                payload.pool_code,
                payload.name,
                payload.ceiling,
                payload.fiscal_year,
                payload.actor_id,
            ),
            actor_id=payload.actor_id,
        )

    def withdraw(self, payload: WithdrawFunds) -> OperationResult[LedgerRecordView]:
        return self._run(
            "withdraw",
            lambda s: s.ledger.withdraw(
                payload.vendor_id, payload.amount, payload.actor_id, payload.destination
            ),
            vendor_id=payload.vendor_id,
            actor_id=payload.actor_id,
        )

    def freeze_funds(self, payload: FreezeFunds) -> OperationResult[LedgerRecordView]:
        return self._run(
            "freeze_funds",
            lambda s: s.ledger.freeze(
                payload.vendor_id,
                payload.amount,
                payload.reason,
                payload.actor_id,
                payload.source,
            ),
            vendor_id=payload.vendor_id,
            actor_id=payload.actor_id,
        )

    def unfreeze_funds(self, payload: UnfreezeFunds) -> OperationResult[LedgerRecordView]:
        return self._run(
            "unfreeze_funds",
            lambda s: s.ledger.unfreeze(
                payload.vendor_id,
                payload.amount,
                payload.actor_id,
                payload.target,
                payload.reason,
            ),
            vendor_id=payload.vendor_id,
            actor_id=payload.actor_id,
        )

    # -- integrity ------------------------------------------------------

    def verify_record(self, payload: VerifyRecord) -> OperationResult[VerificationResult]:
        return self._run(
            "verify_record",
            lambda s: s.verifier.verify(payload.record_id, payload.client_hash),
            record_id=payload.record_id,
        )

    # -- reads ----------------------------------------------------------

    def get_request(self, request_id: UUID) -> OperationResult[BudgetRequestView]:
        return self._run(
            "get_request",
            lambda s: s.state_machine.get(request_id),
            request_id=request_id,
        )

    def request_history(self, request_id: UUID) -> OperationResult[list[StateChangeView]]:
        return self._run(
            "request_history",
            lambda s: s.state_machine.history(request_id),
            request_id=request_id,
        )

    def get_wallet(self, vendor_id: UUID) -> OperationResult[WalletView]:
        return self._run(
            "get_wallet",
            lambda s: s.ledger.get_wallet(vendor_id),
            vendor_id=vendor_id,
        )

    def get_pool(self, pool_code: str) -> OperationResult[PoolView]:
        return self._run("get_pool", lambda s: s.ledger.get_pool(pool_code))

    def adjust_pool_ceiling(
        self, pool_code: str, new_ceiling: Decimal | str | int
    ) -> OperationResult[PoolView]:
        return self._run(
            "adjust_pool_ceiling",
            lambda s: s.ledger.adjust_pool_ceiling(pool_code, new_ceiling),
        )
