"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

A ledger record's hash is only meaningful if the fields it covers cannot be
rewritten through the application.  This module blocks such writes before
the SQL reaches the database.

It does NOT stop someone with direct write access to the store; detecting
that is the job of VerificationService, which recomputes the hash from the
stored fields and compares it with the stored ``data_hash``.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                  | Rule
------------------------|----------------------------------------------------
LedgerRecordModel       | Only verification_status / last_verified_at may
                        | change; never deleted
RequestStateChangeModel | Append-only: no UPDATE, no DELETE
BudgetRequestModel      | Never deleted (terminal states instead)

===============================================================================
USAGE
===============================================================================

    from budget_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY - never in production):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect

from budget_kernel.exceptions import ImmutabilityViolationError
from budget_kernel.invariants import LedgerInvariant
from budget_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str, **extra):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "invariant": LedgerInvariant.HASH_IMMUTABILITY.value,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _changed_columns(target) -> set[str]:
    state = inspect(target)
    return {
        attr.key
        for attr in state.mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    }


def _check_ledger_record_immutability(mapper, connection, target):
    """
    Block UPDATEs that touch anything but the verification columns.

    The hashed fields, the stored hash and the algorithm tag are write-once.
    """
    from budget_kernel.models.ledger_record import MUTABLE_LEDGER_RECORD_FIELDS

    frozen_changes = _changed_columns(target) - MUTABLE_LEDGER_RECORD_FIELDS
    if frozen_changes:
        _blocked(
            "LedgerRecord",
            str(target.record_id),
            "UPDATE",
            f"fields are immutable after creation: {', '.join(sorted(frozen_changes))}",
            fields=sorted(frozen_changes),
        )


def _check_ledger_record_delete(mapper, connection, target):
    _blocked(
        "LedgerRecord",
        str(target.record_id),
        "DELETE",
        "Ledger records cannot be deleted",
    )


def _check_state_change_immutability(mapper, connection, target):
    _blocked(
        "RequestStateChange",
        str(target.id),
        "UPDATE",
        "State history is append-only",
    )


def _check_state_change_delete(mapper, connection, target):
    _blocked(
        "RequestStateChange",
        str(target.id),
        "DELETE",
        "State history is append-only",
    )


def _check_budget_request_delete(mapper, connection, target):
    _blocked(
        "BudgetRequest",
        str(target.request_id),
        "DELETE",
        "Budget requests are never deleted; cancel or reject instead",
    )


def _listeners():
    from budget_kernel.models.budget_request import (
        BudgetRequestModel,
        RequestStateChangeModel,
    )
    from budget_kernel.models.ledger_record import LedgerRecordModel

    return [
        (LedgerRecordModel, "before_update", _check_ledger_record_immutability),
        (LedgerRecordModel, "before_delete", _check_ledger_record_delete),
        (RequestStateChangeModel, "before_update", _check_state_change_immutability),
        (RequestStateChangeModel, "before_delete", _check_state_change_delete),
        (BudgetRequestModel, "before_delete", _check_budget_request_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: a second call does not add duplicate listeners.
    """
    for model, identifier, fn in _listeners():
        if not event.contains(model, identifier, fn):
            event.listen(model, identifier, fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners():
    """Remove the listeners.  Only for tests that need forbidden writes."""
    for model, identifier, fn in _listeners():
        if event.contains(model, identifier, fn):
            event.remove(model, identifier, fn)
    logger.debug("immutability_listeners_unregistered")
