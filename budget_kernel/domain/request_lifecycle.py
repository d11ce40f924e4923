"""
Budget request domain types (``budget_kernel.domain.request_lifecycle``).

Responsibility
--------------
Pure value objects for the request lifecycle: states, the transition
table, enums for category and priority, the inbound submission payload and
the read-side DTOs.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  No imports from ``db/``,
``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Forward-only lifecycle: ``REQUEST_TRANSITIONS`` is the only source of
  legal state changes.  Terminal states have no outgoing edges.
* ``allocated_amount`` is unset before ``allocated`` and never exceeds
  ``amount`` (checked by the state machine using ``validate_allocation``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from budget_kernel.domain.amounts import parse_amount
from budget_kernel.exceptions import ValidationError


class RequestState(str, Enum):
    """Budget request lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ALLOCATED = "allocated"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


REQUEST_TRANSITIONS: dict[RequestState, frozenset[RequestState]] = {
    RequestState.PENDING: frozenset({
        RequestState.APPROVED,
        RequestState.REJECTED,
        RequestState.CANCELLED,
    }),
    RequestState.APPROVED: frozenset({
        RequestState.ALLOCATED,
        RequestState.CANCELLED,
    }),
    RequestState.ALLOCATED: frozenset({
        RequestState.IN_PROGRESS,
        RequestState.COMPLETED,
    }),
    RequestState.IN_PROGRESS: frozenset({
        RequestState.COMPLETED,
    }),
    RequestState.REJECTED: frozenset(),
    RequestState.COMPLETED: frozenset(),
    RequestState.CANCELLED: frozenset(),
}

TERMINAL_REQUEST_STATES: frozenset[RequestState] = frozenset(
    state for state, targets in REQUEST_TRANSITIONS.items() if not targets
)

# States in which the request has consumed its allocation
FUNDED_STATES: frozenset[RequestState] = frozenset({
    RequestState.ALLOCATED,
    RequestState.IN_PROGRESS,
    RequestState.COMPLETED,
})


def can_transition(current: RequestState, target: RequestState) -> bool:
    return target in REQUEST_TRANSITIONS.get(current, frozenset())


class RequestPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class RequestCategory(str, Enum):
    EQUIPMENT = "equipment"
    SOFTWARE = "software"
    SERVICES = "services"
    INFRASTRUCTURE = "infrastructure"
    RESEARCH = "research"
    MARKETING = "marketing"
    OPERATIONS = "operations"
    OTHER = "other"


def _required_text(value: str | None, field: str, max_length: int) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(field, "is required")
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(field, f"cannot exceed {max_length} characters")
    return text


def _parse_enum(enum_cls, value, field: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(field, f"must be one of: {allowed}") from None


@dataclass(frozen=True)
class BudgetRequestSubmission:
    """Inbound payload for ``submit``.  Validated by ``validated()``."""

    requester_id: UUID
    amount: Decimal | int | str
    department: str
    project: str
    description: str
    category: RequestCategory | str = RequestCategory.OTHER
    priority: RequestPriority | str = RequestPriority.MEDIUM
    justification: str | None = None
    required_by: date | None = None
    pool_code: str | None = None

    def validated(self) -> "BudgetRequestSubmission":
        """
        Return a normalized copy.

        Raises:
            ValidationError: amount <= 0 or not exact, a required field
                missing or blank, unknown category/priority.
        """
        if self.requester_id is None:
            raise ValidationError("requester_id", "is required")
        department = _required_text(self.department, "department", 100)
        return BudgetRequestSubmission(
            requester_id=self.requester_id,
            amount=parse_amount(self.amount),
            department=department,
            project=_required_text(self.project, "project", 200),
            description=_required_text(self.description, "description", 1000),
            category=_parse_enum(RequestCategory, self.category, "category"),
            priority=_parse_enum(RequestPriority, self.priority, "priority"),
            justification=(self.justification or "").strip() or None,
            required_by=self.required_by,
            pool_code=(self.pool_code or "").strip() or department,
        )


def validate_allocation(requested: Decimal, allocation: Decimal) -> None:
    """Allocation must be positive and no larger than the requested amount."""
    if allocation > requested:
        raise ValidationError(
            "amount",
            f"allocation {allocation} exceeds requested amount {requested}",
        )


@dataclass(frozen=True)
class BudgetRequestView:
    """Read-side snapshot of a budget request."""

    request_id: UUID
    requester_id: UUID
    amount: Decimal
    department: str
    project: str
    category: RequestCategory
    priority: RequestPriority
    description: str
    state: RequestState
    pool_code: str
    justification: str | None = None
    required_by: date | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    approval_comments: str | None = None
    rejected_by: UUID | None = None
    rejection_reason: str | None = None
    assigned_vendor_id: UUID | None = None
    allocated_amount: Decimal | None = None
    allocated_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_REQUEST_STATES

    @property
    def has_allocation(self) -> bool:
        return self.state in FUNDED_STATES


@dataclass(frozen=True)
class StateChangeView:
    """One entry of a request's state history."""

    request_id: UUID
    from_state: RequestState | None
    to_state: RequestState
    actor_id: UUID
    occurred_at: datetime
    comment: str | None = None
