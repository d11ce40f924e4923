"""
Module: budget_kernel.models.sequence_counter
Responsibility: Named counter rows backing SequenceService.

Each row represents a named sequence with its current value.  Row-level
locking on this table is what makes ledger sequence numbers monotonic under
concurrency.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import Base


class SequenceCounter(Base):
    """Sequence counter table."""

    __tablename__ = "sequence_counters"

    # Sequence name (e.g., "ledger_record")
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    # Current sequence value
    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
