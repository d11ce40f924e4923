"""
BudgetRequestStateMachine -- lifecycle authority for budget requests.

Responsibility:
    Validates and applies every request state change, appends the state
    history, and drives the wallet ledger for the two transitions that move
    money (allocate and complete).

Architecture position:
    Kernel > Services.  Uses WalletLedger for all balance changes; never
    touches wallet or pool rows itself.

Invariants enforced:
    AT_MOST_ONCE_ALLOCATION -- the request row is locked (first lock of the
        lock order) and its state checked under that lock before the ledger
        is called.  A second allocate finds ``allocated`` and is refused.
        The partial unique index on ledger_records backs this up.
    ALLOCATION_BOUND -- 0 < allocation <= requested amount.
    Forward-only lifecycle -- only edges in REQUEST_TRANSITIONS.

Failure modes:
    - InvalidTransitionError: action not allowed from the current state.
      The request is left untouched.
    - Ledger errors from allocate/complete propagate unchanged; the request
      keeps its previous state.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from budget_kernel.domain.amounts import parse_amount
from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.domain.ledger_records import AllocationContext, LedgerRecordView
from budget_kernel.domain.notifications import EventBuffer, LifecycleEventType
from budget_kernel.domain.request_lifecycle import (
    BudgetRequestSubmission,
    BudgetRequestView,
    RequestState,
    StateChangeView,
    can_transition,
    validate_allocation,
)
from budget_kernel.exceptions import (
    InvalidTransitionError,
    RequestNotFoundError,
    ValidationError,
)
from budget_kernel.invariants import LedgerInvariant
from budget_kernel.logging_config import LogContext, get_logger
from budget_kernel.models.budget_request import (
    BudgetRequestModel,
    RequestStateChangeModel,
)
from budget_kernel.services.wallet_ledger import WalletLedger

logger = get_logger("services.request_state_machine")


@dataclass(frozen=True)
class FundsMovement:
    """A transition that moved money: the updated request and its record."""

    request: BudgetRequestView
    record: LedgerRecordView


class BudgetRequestStateMachine:
    """
    Contract:
        Each method runs inside the caller's transaction and flushes but
        never commits.  Events go to the shared EventBuffer.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: WalletLedger | None = None,
        events: EventBuffer | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        if ledger is None:
            ledger = WalletLedger(session, self._clock, events)
        self._ledger = ledger
        self._events = ledger.events

    @property
    def events(self) -> EventBuffer:
        return self._events

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def submit(self, submission: BudgetRequestSubmission) -> BudgetRequestView:
        """
        Create a request in ``pending``.

        Raises:
            ValidationError: see ``BudgetRequestSubmission.validated``.
        """
        valid = submission.validated()
        now = self._clock.now()
        request = BudgetRequestModel(
            request_id=uuid4(),
            requester_id=valid.requester_id,
            amount=valid.amount,
            department=valid.department,
            project=valid.project,
            category=valid.category.value,
            priority=valid.priority.value,
            description=valid.description,
            justification=valid.justification,
            required_by=valid.required_by,
            pool_code=valid.pool_code,
            state=RequestState.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        self._session.add(request)
        self._session.flush()
        self._append_history(request, None, RequestState.PENDING, valid.requester_id, None)

        with LogContext.bind(request_id=str(request.request_id)):
            logger.info(
                "request_submitted",
                extra={
                    "amount": valid.amount,
                    "department": valid.department,
                    "pool_code": valid.pool_code,
                    "requester_id": str(valid.requester_id),
                },
            )
        self._emit(LifecycleEventType.REQUEST_SUBMITTED, request, valid.requester_id)
        return request.to_dto()

    def approve(
        self, request_id: UUID, approver_id: UUID, comments: str | None = None
    ) -> BudgetRequestView:
        request = self._lock_request(request_id)
        self._require(request, RequestState.APPROVED, "approve")
        now = self._clock.now()
        request.approved_by = approver_id
        request.approved_at = now
        request.approval_comments = (comments or "").strip() or None
        self._transition(request, RequestState.APPROVED, approver_id, request.approval_comments)
        self._emit(LifecycleEventType.REQUEST_APPROVED, request, approver_id)
        return request.to_dto()

    def reject(self, request_id: UUID, approver_id: UUID, reason: str) -> BudgetRequestView:
        """Terminal.  ``reason`` is mandatory and kept for audit."""
        reason = _required_reason(reason)
        request = self._lock_request(request_id)
        self._require(request, RequestState.REJECTED, "reject")
        request.rejected_by = approver_id
        request.rejection_reason = reason
        self._transition(request, RequestState.REJECTED, approver_id, reason)
        self._emit(LifecycleEventType.REQUEST_REJECTED, request, approver_id, reason=reason)
        return request.to_dto()

    def cancel(self, request_id: UUID, actor_id: UUID, reason: str) -> BudgetRequestView:
        """Withdraw a request before any money moved."""
        reason = _required_reason(reason)
        request = self._lock_request(request_id)
        self._require(request, RequestState.CANCELLED, "cancel")
        self._transition(request, RequestState.CANCELLED, actor_id, reason)
        self._emit(LifecycleEventType.REQUEST_CANCELLED, request, actor_id, reason=reason)
        return request.to_dto()

    def allocate(
        self,
        request_id: UUID,
        vendor_id: UUID,
        actor_id: UUID,
        amount: Decimal | str | int | None = None,
    ) -> FundsMovement:
        """
        Fund an approved request from its pool into the vendor's wallet.

        ``amount`` defaults to the requested amount.

        Raises:
            InvalidTransitionError: The request is not ``approved``
                (including a second allocation).
            ValidationError: amount <= 0 or above the requested amount.
            InsufficientBalanceError / WalletNotFoundError /
            PoolNotFoundError: from WalletLedger.allocate, request unchanged.
        """
        request = self._lock_request(request_id)
        self._require(
            request,
            RequestState.ALLOCATED,
            "allocate",
            invariant=LedgerInvariant.AT_MOST_ONCE_ALLOCATION,
        )

        allocation = request.amount if amount is None else parse_amount(amount)
        try:
            validate_allocation(request.amount, allocation)
        except ValidationError:
            logger.warning(
                "allocation_rejected",
                extra={
                    "invariant": LedgerInvariant.ALLOCATION_BOUND.value,
                    "request_id": str(request.request_id),
                    "requested": request.amount,
                    "allocation": allocation,
                },
            )
            raise

        record = self._ledger.allocate(
            vendor_id,
            allocation,
            AllocationContext(
                request_id=request.request_id,
                department=request.department,
                project=request.project,
                category=request.category,
                created_by=actor_id,
                approved_by=request.approved_by,
                pool_code=request.pool_code,
            ),
        )

        request.assigned_vendor_id = vendor_id
        request.allocated_amount = allocation
        request.allocated_at = record.created_at
        self._transition(request, RequestState.ALLOCATED, actor_id, None)
        return FundsMovement(request=request.to_dto(), record=record)

    def mark_in_progress(self, request_id: UUID, actor_id: UUID) -> BudgetRequestView:
        request = self._lock_request(request_id)
        self._require(request, RequestState.IN_PROGRESS, "start")
        self._transition(request, RequestState.IN_PROGRESS, actor_id, None)
        self._emit(LifecycleEventType.REQUEST_IN_PROGRESS, request, actor_id)
        return request.to_dto()

    def complete(
        self, request_id: UUID, actor_id: UUID, comment: str | None = None
    ) -> FundsMovement:
        """
        Finish the work and release the full allocation (pending -> available).
        """
        request = self._lock_request(request_id)
        self._require(request, RequestState.COMPLETED, "complete")

        record = self._ledger.release(
            request.assigned_vendor_id,
            request.allocated_amount,
            AllocationContext(
                request_id=request.request_id,
                department=request.department,
                project=request.project,
                category=request.category,
                created_by=actor_id,
                approved_by=request.approved_by,
                pool_code=request.pool_code,
                memo=(comment or "").strip() or None,
            ),
        )

        request.completed_at = record.created_at
        self._transition(request, RequestState.COMPLETED, actor_id, comment)
        self._emit(LifecycleEventType.REQUEST_COMPLETED, request, actor_id)
        return FundsMovement(request=request.to_dto(), record=record)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, request_id: UUID) -> BudgetRequestView:
        request = self._session.execute(
            select(BudgetRequestModel).where(BudgetRequestModel.request_id == request_id)
        ).scalar_one_or_none()
        if request is None:
            raise RequestNotFoundError(str(request_id))
        return request.to_dto()

    def history(self, request_id: UUID) -> list[StateChangeView]:
        self.get(request_id)
        rows = self._session.execute(
            select(RequestStateChangeModel)
            .where(RequestStateChangeModel.request_id == request_id)
            .order_by(RequestStateChangeModel.position)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_request(self, request_id: UUID) -> BudgetRequestModel:
        request = self._session.execute(
            select(BudgetRequestModel)
            .where(BudgetRequestModel.request_id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if request is None:
            raise RequestNotFoundError(str(request_id))
        return request

    def _require(
        self,
        request: BudgetRequestModel,
        target: RequestState,
        action: str,
        invariant: LedgerInvariant | None = None,
    ) -> None:
        current = RequestState(request.state)
        if not can_transition(current, target):
            extra = {
                "request_id": str(request.request_id),
                "current_state": current.value,
                "action": action,
            }
            if invariant is not None:
                extra["invariant"] = invariant.value
            logger.info("transition_refused", extra=extra)
            raise InvalidTransitionError(str(request.request_id), current.value, action)

    def _transition(
        self,
        request: BudgetRequestModel,
        target: RequestState,
        actor_id: UUID,
        comment: str | None,
    ) -> None:
        previous = RequestState(request.state)
        request.state = target.value
        request.updated_at = self._clock.now()
        self._session.flush()
        self._append_history(request, previous, target, actor_id, comment)
        with LogContext.bind(request_id=str(request.request_id), actor_id=str(actor_id)):
            logger.info(
                "request_state_changed",
                extra={"from_state": previous.value, "to_state": target.value},
            )

    def _append_history(
        self,
        request: BudgetRequestModel,
        from_state: RequestState | None,
        to_state: RequestState,
        actor_id: UUID,
        comment: str | None,
    ) -> None:
        count = self._session.execute(
            select(func.count())
            .select_from(RequestStateChangeModel)
            .where(RequestStateChangeModel.request_id == request.request_id)
        ).scalar_one()
        self._session.add(
            RequestStateChangeModel(
                request_id=request.request_id,
                position=count + 1,
                from_state=from_state.value if from_state else None,
                to_state=to_state.value,
                actor_id=actor_id,
                comment=comment,
                occurred_at=self._clock.now(),
            )
        )
        self._session.flush()

    def _emit(
        self,
        event_type: LifecycleEventType,
        request: BudgetRequestModel,
        actor_id: UUID,
        **extra,
    ) -> None:
        payload = {
            "request_id": str(request.request_id),
            "state": request.state,
            "amount": str(request.amount),
            "department": request.department,
            "actor_id": str(actor_id),
            **extra,
        }
        self._events.record(event_type, payload, self._clock.now())


def _required_reason(reason: str | None) -> str:
    if reason is None or not reason.strip():
        raise ValidationError("reason", "is required")
    return reason.strip()
