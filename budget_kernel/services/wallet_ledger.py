"""
WalletLedger -- the only writer of wallet balances.

Responsibility:
    Applies allocations, releases, withdrawals and compliance holds to
    vendor wallets, produces one hashed LedgerRecord per movement, and keeps
    budget pool totals in step with allocations.

Architecture position:
    Kernel > Services -- imperative shell.  Balance math is delegated to the
    pure ``domain.balances.WalletBalances``; this class loads, locks,
    persists and records.

Invariants enforced:
    CONSERVATION / NON_NEGATIVE -- every new balance set passes
        ``WalletBalances.check()`` before it is copied onto the row.  The
        stored balances are checked on load as well.
    POOL_CEILING -- checked while holding the pool row lock.
    SEQUENCE_MONOTONICITY -- the sequence counter is the last lock taken.

Lock order (never varies):
    request (state machine) -> pool -> wallet -> sequence counter

Failure modes:
    - InsufficientBalanceError, WithdrawalLimitExceededError,
      WalletInactiveError, ValidationError, *NotFoundError -- expected.
      Raised before any row is modified.
    - InvariantViolationError -- logged at CRITICAL and propagated.

Non-goals:
    Does NOT commit.  The caller owns the transaction.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from budget_kernel.domain.amounts import ZERO, parse_amount
from budget_kernel.domain.balances import (
    BalanceBucket,
    WalletBalances,
    WalletStatus,
    WalletView,
)
from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.domain.hash_engine import (
    DEFAULT_HASH_ALGORITHM,
    HashableFields,
    HashAlgorithm,
    compute_hash,
    resolve_algorithm,
)
from budget_kernel.domain.ledger_records import (
    AllocationContext,
    LedgerRecordType,
    LedgerRecordView,
    VerificationStatus,
)
from budget_kernel.domain.notifications import EventBuffer, LifecycleEventType
from budget_kernel.domain.pools import PoolView, check_pool_capacity
from budget_kernel.exceptions import (
    InsufficientBalanceError,
    InvariantViolationError,
    PoolAlreadyExistsError,
    PoolNotFoundError,
    ValidationError,
    WalletAlreadyExistsError,
    WalletInactiveError,
    WalletNotFoundError,
    WithdrawalLimitExceededError,
)
from budget_kernel.invariants import LedgerInvariant
from budget_kernel.logging_config import LogContext, get_logger
from budget_kernel.models.budget_pool import BudgetPoolModel
from budget_kernel.models.ledger_record import LedgerRecordModel
from budget_kernel.models.vendor_wallet import VendorWalletModel
from budget_kernel.services.sequence_service import SequenceService

logger = get_logger("services.wallet_ledger")


class WalletLedger:
    """
    Wallet ledger for one session / transaction.

    Every public mutation either completes fully (balances written, record
    appended, events buffered) or raises before touching any row.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        events: EventBuffer | None = None,
        hash_algorithm: HashAlgorithm | str = DEFAULT_HASH_ALGORITHM,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._events = events if events is not None else EventBuffer()
        self._hash_algorithm = resolve_algorithm(hash_algorithm)
        self._sequences = SequenceService(session)

    @property
    def events(self) -> EventBuffer:
        return self._events

    # ------------------------------------------------------------------
    # Loading and locking
    # ------------------------------------------------------------------

    def _lock_wallet(self, vendor_id: UUID) -> VendorWalletModel:
        wallet = self._session.execute(
            select(VendorWalletModel)
            .where(VendorWalletModel.vendor_id == vendor_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if wallet is None:
            raise WalletNotFoundError(str(vendor_id))
        return wallet

    def _lock_active_wallet(self, vendor_id: UUID) -> tuple[VendorWalletModel, WalletBalances]:
        wallet = self._lock_wallet(vendor_id)
        if wallet.status != WalletStatus.ACTIVE.value:
            raise WalletInactiveError(str(vendor_id), wallet.status)
        return wallet, self._checked(wallet, wallet.balances())

    def _lock_pool(self, pool_code: str) -> BudgetPoolModel:
        pool = self._session.execute(
            select(BudgetPoolModel)
            .where(BudgetPoolModel.pool_code == pool_code)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if pool is None:
            raise PoolNotFoundError(pool_code)
        return pool

    def _checked(self, wallet: VendorWalletModel, balances: WalletBalances) -> WalletBalances:
        try:
            return balances.check()
        except InvariantViolationError as exc:
            logger.critical(
                "invariant_violation_detected",
                extra={
                    "invariant": exc.invariant,
                    "vendor_id": str(wallet.vendor_id),
                    "balances": balances.as_dict(),
                    "details": exc.details,
                },
            )
            raise

    # ------------------------------------------------------------------
    # Wallets and pools
    # ------------------------------------------------------------------

    def open_wallet(
        self,
        vendor_id: UUID,
        vendor_name: str,
        actor_id: UUID,
        wallet_address: str | None = None,
        daily_withdrawal_limit: Decimal | str | int | None = None,
    ) -> WalletView:
        """
        Create an empty active wallet.

        Raises:
            WalletAlreadyExistsError: The vendor already has a wallet.
            ValidationError: Blank vendor name or a bad limit.
        """
        if not vendor_name or not vendor_name.strip():
            raise ValidationError("vendor_name", "is required")
        limit = (
            parse_amount(daily_withdrawal_limit, "daily_withdrawal_limit")
            if daily_withdrawal_limit is not None
            else None
        )
        existing = self._session.execute(
            select(VendorWalletModel.id).where(VendorWalletModel.vendor_id == vendor_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise WalletAlreadyExistsError(str(vendor_id))

        now = self._clock.now()
        wallet = VendorWalletModel(
            vendor_id=vendor_id,
            vendor_name=vendor_name.strip(),
            wallet_address=(wallet_address or "").strip() or None,
            status=WalletStatus.ACTIVE.value,
            daily_withdrawal_limit=limit,
            allocated=ZERO,
            available=ZERO,
            pending=ZERO,
            withdrawn=ZERO,
            frozen=ZERO,
            created_at=now,
            updated_at=now,
        )
        savepoint = self._session.begin_nested()
        try:
            self._session.add(wallet)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise WalletAlreadyExistsError(str(vendor_id)) from None

        logger.info(
            "wallet_opened",
            extra={"vendor_id": str(vendor_id), "actor_id": str(actor_id)},
        )
        return wallet.to_dto()

    def set_wallet_status(self, vendor_id: UUID, status: WalletStatus | str, actor_id: UUID) -> WalletView:
        """Suspend, reactivate or close a wallet.  Balances are untouched."""
        try:
            status = WalletStatus(status)
        except ValueError:
            raise ValidationError("status", f"unknown wallet status {status!r}") from None
        wallet = self._lock_wallet(vendor_id)
        previous = wallet.status
        wallet.status = status.value
        wallet.updated_at = self._clock.now()
        self._session.flush()
        logger.info(
            "wallet_status_changed",
            extra={
                "vendor_id": str(vendor_id),
                "from_status": previous,
                "to_status": status.value,
                "actor_id": str(actor_id),
            },
        )
        return wallet.to_dto()

    def create_pool(
        self,
        pool_code: str,
        name: str,
        ceiling: Decimal | str | int,
        fiscal_year: int,
        actor_id: UUID,
    ) -> PoolView:
        """
        Raises:
            PoolAlreadyExistsError: Duplicate pool code.
            ValidationError: Blank code/name or a negative ceiling.
        """
        if not pool_code or not pool_code.strip():
            raise ValidationError("pool_code", "is required")
        if not name or not name.strip():
            raise ValidationError("name", "is required")
        ceiling = parse_amount(ceiling, "ceiling", allow_zero=True)
        pool_code = pool_code.strip()

        existing = self._session.execute(
            select(BudgetPoolModel.id).where(BudgetPoolModel.pool_code == pool_code)
        ).scalar_one_or_none()
        if existing is not None:
            raise PoolAlreadyExistsError(pool_code)

        now = self._clock.now()
        pool = BudgetPoolModel(
            pool_code=pool_code,
            name=name.strip(),
            fiscal_year=fiscal_year,
            ceiling=ceiling,
            allocated_total=ZERO,
            created_at=now,
            updated_at=now,
        )
        savepoint = self._session.begin_nested()
        try:
            self._session.add(pool)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise PoolAlreadyExistsError(pool_code) from None

        logger.info(
            "pool_created",
            extra={
                "pool_code": pool_code,
                "ceiling": ceiling,
                "fiscal_year": fiscal_year,
                "actor_id": str(actor_id),
            },
        )
        return pool.to_dto()

    def adjust_pool_ceiling(self, pool_code: str, new_ceiling: Decimal | str | int) -> PoolView:
        """
        Raises:
            ValidationError: The new ceiling is below what is already
                allocated from the pool.
        """
        new_ceiling = parse_amount(new_ceiling, "ceiling", allow_zero=True)
        pool = self._lock_pool(pool_code)
        if new_ceiling < pool.allocated_total:
            logger.warning(
                "pool_ceiling_rejected",
                extra={
                    "invariant": LedgerInvariant.POOL_CEILING.value,
                    "pool_code": pool.pool_code,
                    "ceiling": new_ceiling,
                    "allocated_total": pool.allocated_total,
                },
            )
            raise ValidationError(
                "ceiling",
                f"{new_ceiling} is below allocated total {pool.allocated_total}",
            )
        previous = pool.ceiling
        pool.ceiling = new_ceiling
        pool.updated_at = self._clock.now()
        self._session.flush()
        logger.info(
            "pool_ceiling_adjusted",
            extra={
                "pool_code": pool_code,
                "previous_ceiling": previous,
                "new_ceiling": new_ceiling,
            },
        )
        return pool.to_dto()

    # ------------------------------------------------------------------
    # Balance mutations
    # ------------------------------------------------------------------

    def allocate(
        self, vendor_id: UUID, amount: Decimal | str | int, context: AllocationContext
    ) -> LedgerRecordView:
        """
        Fund a vendor wallet from a budget pool.

        Postconditions:
            allocated += amount, pending += amount,
            pool.allocated_total += amount, one ``allocation`` record.

        Raises:
            ValidationError: No pool code in the context, or a bad amount.
            InsufficientBalanceError: bucket ``pool``; the pool's remaining
                capacity cannot cover the amount.
        """
        amount = parse_amount(amount)
        if not context.pool_code:
            raise ValidationError("pool_code", "is required for an allocation")

        pool = self._lock_pool(context.pool_code)
        wallet, balances = self._lock_active_wallet(vendor_id)
        try:
            check_pool_capacity(pool.allocated_total, pool.ceiling, amount)
        except InsufficientBalanceError:
            logger.warning(
                "pool_ceiling_rejected",
                extra={
                    "invariant": LedgerInvariant.POOL_CEILING.value,
                    "pool_code": pool.pool_code,
                    "ceiling": pool.ceiling,
                    "allocated_total": pool.allocated_total,
                    "amount": amount,
                },
            )
            raise

        self._apply(wallet, balances.allocate(amount))
        pool.allocated_total = pool.allocated_total + amount
        pool.updated_at = self._clock.now()

        record = self._append_record(
            wallet,
            LedgerRecordType.ALLOCATION,
            amount,
            context.created_by,
            request_id=context.request_id,
            department=context.department,
            project=context.project,
            category=context.category,
            approved_by=context.approved_by,
            memo=context.memo,
        )
        self._emit(LifecycleEventType.FUNDS_ALLOCATED, record, pool_code=pool.pool_code)
        return record

    def release(
        self, vendor_id: UUID, amount: Decimal | str | int, context: AllocationContext
    ) -> LedgerRecordView:
        """pending -> available, documented by a ``release`` record."""
        amount = parse_amount(amount)
        wallet, balances = self._lock_active_wallet(vendor_id)
        self._apply(wallet, balances.release(amount))
        record = self._append_record(
            wallet,
            LedgerRecordType.RELEASE,
            amount,
            context.created_by,
            request_id=context.request_id,
            department=context.department,
            project=context.project,
            category=context.category,
            approved_by=context.approved_by,
            memo=context.memo,
        )
        self._emit(LifecycleEventType.FUNDS_RELEASED, record)
        return record

    def withdraw(
        self,
        vendor_id: UUID,
        amount: Decimal | str | int,
        actor_id: UUID,
        destination: str | None = None,
    ) -> LedgerRecordView:
        """
        available -> withdrawn.  Never partial.

        Raises:
            InsufficientBalanceError: bucket ``available``.
            WithdrawalLimitExceededError: The wallet's daily limit would be
                passed (UTC calendar day).
        """
        amount = parse_amount(amount)
        wallet, balances = self._lock_active_wallet(vendor_id)
        new_balances = balances.withdraw(amount)

        if wallet.daily_withdrawal_limit is not None:
            withdrawn_today = self._withdrawn_on(vendor_id, self._clock.now())
            if withdrawn_today + amount > wallet.daily_withdrawal_limit:
                raise WithdrawalLimitExceededError(
                    str(vendor_id),
                    wallet.daily_withdrawal_limit,
                    withdrawn_today,
                    amount,
                )

        self._apply(wallet, new_balances)
        record = self._append_record(
            wallet,
            LedgerRecordType.WITHDRAWAL,
            amount,
            actor_id,
            memo=destination,
        )
        self._emit(LifecycleEventType.FUNDS_WITHDRAWN, record, destination=destination)
        return record

    def freeze(
        self,
        vendor_id: UUID,
        amount: Decimal | str | int,
        reason: str,
        actor_id: UUID,
        source: BalanceBucket | str = BalanceBucket.AVAILABLE,
    ) -> LedgerRecordView:
        """Compliance hold: available|pending -> frozen.  Reason is mandatory."""
        if not reason or not reason.strip():
            raise ValidationError("reason", "is required to freeze funds")
        amount = parse_amount(amount)
        source = _parse_bucket(source, "source")
        wallet, balances = self._lock_active_wallet(vendor_id)
        self._apply(wallet, balances.freeze(amount, source))
        record = self._append_record(
            wallet,
            LedgerRecordType.FREEZE,
            amount,
            actor_id,
            memo=reason.strip(),
            hold_bucket=source,
        )
        self._emit(LifecycleEventType.FUNDS_FROZEN, record, source=source.value)
        return record

    def unfreeze(
        self,
        vendor_id: UUID,
        amount: Decimal | str | int,
        actor_id: UUID,
        target: BalanceBucket | str = BalanceBucket.AVAILABLE,
        reason: str | None = None,
    ) -> LedgerRecordView:
        """Lift a hold: frozen -> available|pending."""
        amount = parse_amount(amount)
        target = _parse_bucket(target, "target")
        wallet, balances = self._lock_active_wallet(vendor_id)
        self._apply(wallet, balances.unfreeze(amount, target))
        record = self._append_record(
            wallet,
            LedgerRecordType.UNFREEZE,
            amount,
            actor_id,
            memo=(reason or "").strip() or None,
            hold_bucket=target,
        )
        self._emit(LifecycleEventType.FUNDS_UNFROZEN, record, target=target.value)
        return record

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_balances(self, vendor_id: UUID) -> WalletBalances:
        return self.get_wallet(vendor_id).balances

    def get_wallet(self, vendor_id: UUID) -> WalletView:
        wallet = self._session.execute(
            select(VendorWalletModel).where(VendorWalletModel.vendor_id == vendor_id)
        ).scalar_one_or_none()
        if wallet is None:
            raise WalletNotFoundError(str(vendor_id))
        return wallet.to_dto()

    def get_pool(self, pool_code: str) -> PoolView:
        pool = self._session.execute(
            select(BudgetPoolModel).where(BudgetPoolModel.pool_code == pool_code)
        ).scalar_one_or_none()
        if pool is None:
            raise PoolNotFoundError(pool_code)
        return pool.to_dto()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(self, wallet: VendorWalletModel, balances: WalletBalances) -> None:
        wallet.apply_balances(self._checked(wallet, balances))
        wallet.updated_at = self._clock.now()

    def _withdrawn_on(self, vendor_id: UUID, moment: datetime) -> Decimal:
        day_start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
        day_end = day_start + timedelta(days=1)
        amounts = self._session.execute(
            select(LedgerRecordModel.amount).where(
                LedgerRecordModel.vendor_id == vendor_id,
                LedgerRecordModel.record_type == LedgerRecordType.WITHDRAWAL.value,
                LedgerRecordModel.created_at >= day_start,
                LedgerRecordModel.created_at < day_end,
            )
        ).scalars().all()
        return sum(amounts, ZERO)

    def _append_record(
        self,
        wallet: VendorWalletModel,
        record_type: LedgerRecordType,
        amount: Decimal,
        actor_id: UUID,
        *,
        request_id: UUID | None = None,
        department: str | None = None,
        project: str | None = None,
        category: str | None = None,
        approved_by: UUID | None = None,
        memo: str | None = None,
        hold_bucket: BalanceBucket | None = None,
    ) -> LedgerRecordView:
        # Sequence lock is taken last; created_at is read under it
        seq = self._sequences.next_value(SequenceService.LEDGER_RECORD)
        created_at = self._clock.now()

        projection = HashableFields(
            request_id=request_id,
            amount=amount,
            timestamp=created_at,
            department=department,
            project=project,
            vendor_address=wallet.vendor_address,
            allocated_by=actor_id,
            category=category,
            vendor_name=wallet.vendor_name,
        )
        data_hash = compute_hash(projection, self._hash_algorithm)

        record = LedgerRecordModel(
            record_id=uuid4(),
            seq=seq,
            record_type=record_type.value,
            amount=amount,
            vendor_id=wallet.vendor_id,
            vendor_address=wallet.vendor_address,
            vendor_name=wallet.vendor_name,
            related_request_id=request_id,
            department=department,
            project=project,
            category=category,
            created_by=actor_id,
            approved_by=approved_by,
            created_at=created_at,
            memo=memo,
            hold_bucket=hold_bucket.value if hold_bucket else None,
            data_hash=data_hash,
            hash_algorithm=self._hash_algorithm.value,
            verification_status=VerificationStatus.PENDING.value,
        )
        self._session.add(record)
        self._session.flush()

        with LogContext.bind(vendor_id=str(wallet.vendor_id), record_id=str(record.record_id)):
            logger.info(
                "ledger_record_created",
                extra={
                    "record_type": record_type.value,
                    "seq": seq,
                    "amount": amount,
                    "related_request_id": str(request_id) if request_id else None,
                    "data_hash": data_hash,
                    "hash_algorithm": self._hash_algorithm.value,
                },
            )
        return record.to_dto()

    def _emit(self, event_type: LifecycleEventType, record: LedgerRecordView, **extra) -> None:
        payload = {
            "record_id": str(record.record_id),
            "seq": record.seq,
            "vendor_id": str(record.vendor_id),
            "amount": str(record.amount),
            "request_id": str(record.related_request_id) if record.related_request_id else None,
            "data_hash": record.data_hash,
            **extra,
        }
        self._events.record(event_type, payload, record.created_at)


def _parse_bucket(value: BalanceBucket | str, field: str) -> BalanceBucket:
    try:
        return BalanceBucket(value)
    except ValueError:
        raise ValidationError(field, f"unknown bucket {value!r}") from None
