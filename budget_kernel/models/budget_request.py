"""
Module: budget_kernel.models.budget_request
Responsibility: ORM persistence for budget requests and their state history.

Architecture position: Kernel > Models.  May import from db/base.py only
    (domain DTOs are imported inline inside ``to_dto``).

Invariants enforced:
    - DB check constraint limits ``state`` to the lifecycle values; the
      state machine enforces which transitions are legal.
    - ``allocated_amount`` never exceeds ``amount`` (check constraint).
    - ``version`` is a SQLAlchemy version counter: an UPDATE that finds a
      different version raises StaleDataError.
    - RequestStateChangeModel is append-only (db.immutability listeners).

Failure modes:
    - IntegrityError on a second history row with the same position.
    - ImmutabilityViolationError on UPDATE/DELETE of a history row.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from budget_kernel.db.base import Base, MoneyType, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from budget_kernel.domain.request_lifecycle import (
        BudgetRequestView,
        StateChangeView,
    )


class BudgetRequestModel(Base):
    """Persistent budget request.

    Contract:
        Only BudgetRequestStateMachine writes ``state`` and the lifecycle
        columns, always while holding the row lock.
    """

    __tablename__ = "budget_requests"

    __table_args__ = (
        CheckConstraint(
            "state IN ('pending', 'approved', 'rejected', 'allocated', "
            "'in-progress', 'completed', 'cancelled')",
            name="ck_budget_requests_valid_state",
        ),
        Index("ix_budget_requests_state", "state"),
        Index("ix_budget_requests_department", "department"),
        Index("ix_budget_requests_requester", "requester_id"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    requester_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    department: Mapped[str] = mapped_column(String(100), nullable=False)
    project: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="medium")
    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    required_by: Mapped[date | None] = mapped_column(Date, nullable=True)
    pool_code: Mapped[str] = mapped_column(String(50), nullable=False)
    state: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    approval_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejected_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    assigned_vendor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    allocated_amount: Mapped[Decimal | None] = mapped_column(MoneyType(), nullable=True)
    allocated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    history: Mapped[list["RequestStateChangeModel"]] = relationship(
        "RequestStateChangeModel",
        primaryjoin="BudgetRequestModel.request_id == RequestStateChangeModel.request_id",
        order_by="RequestStateChangeModel.position",
        lazy="select",
        viewonly=True,
    )

    def __repr__(self) -> str:
        return f"<BudgetRequest {self.request_id} {self.amount} state={self.state}>"

    def to_dto(self) -> BudgetRequestView:
        """Convert ORM model to frozen domain DTO."""
        from budget_kernel.domain.request_lifecycle import (
            BudgetRequestView,
            RequestCategory,
            RequestPriority,
            RequestState,
        )

        return BudgetRequestView(
            request_id=self.request_id,
            requester_id=self.requester_id,
            amount=self.amount,
            department=self.department,
            project=self.project,
            category=RequestCategory(self.category),
            priority=RequestPriority(self.priority),
            description=self.description,
            state=RequestState(self.state),
            pool_code=self.pool_code,
            justification=self.justification,
            required_by=self.required_by,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            approval_comments=self.approval_comments,
            rejected_by=self.rejected_by,
            rejection_reason=self.rejection_reason,
            assigned_vendor_id=self.assigned_vendor_id,
            allocated_amount=self.allocated_amount,
            allocated_at=self.allocated_at,
            completed_at=self.completed_at,
            created_at=self.created_at,
        )


class RequestStateChangeModel(Base):
    """One immutable entry in a request's state history.

    ``position`` numbers the entries of one request from 1, assigned under
    the request row lock.
    """

    __tablename__ = "request_state_changes"

    __table_args__ = (
        UniqueConstraint("request_id", "position", name="uq_request_state_change_position"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("budget_requests.request_id"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    from_state: Mapped[str | None] = mapped_column(String(20), nullable=True)
    to_state: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def to_dto(self) -> StateChangeView:
        from budget_kernel.domain.request_lifecycle import RequestState, StateChangeView

        return StateChangeView(
            request_id=self.request_id,
            from_state=RequestState(self.from_state) if self.from_state else None,
            to_state=RequestState(self.to_state),
            actor_id=self.actor_id,
            occurred_at=self.occurred_at,
            comment=self.comment,
        )
