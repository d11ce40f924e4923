"""ORM models for the budget kernel."""

from budget_kernel.models.budget_pool import BudgetPoolModel
from budget_kernel.models.budget_request import (
    BudgetRequestModel,
    RequestStateChangeModel,
)
from budget_kernel.models.ledger_record import (
    MUTABLE_LEDGER_RECORD_FIELDS,
    LedgerRecordModel,
)
from budget_kernel.models.sequence_counter import SequenceCounter
from budget_kernel.models.vendor_wallet import VendorWalletModel

__all__ = [
    "BudgetPoolModel",
    "BudgetRequestModel",
    "RequestStateChangeModel",
    "LedgerRecordModel",
    "MUTABLE_LEDGER_RECORD_FIELDS",
    "SequenceCounter",
    "VendorWalletModel",
    "import_all_models",
]


def import_all_models() -> list[type]:
    """Return every mapped model so Base.metadata knows all tables."""
    return [
        BudgetPoolModel,
        BudgetRequestModel,
        RequestStateChangeModel,
        LedgerRecordModel,
        SequenceCounter,
        VendorWalletModel,
    ]
