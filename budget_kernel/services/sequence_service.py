"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing sequence numbers for ledger records.  Uses
    a dedicated counter table with row-level locking
    (``SELECT ... FOR UPDATE``) to guarantee uniqueness and ordering under
    concurrent access.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by WalletLedger as the LAST lock of every mutation.

Invariants enforced:
    SEQUENCE_MONOTONICITY -- the locked counter row is the sole source of
    the next value; aggregate-max-plus-one is never used.  Because the
    counter lock is held until the caller's transaction ends, a later
    sequence number always belongs to a later commit.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from budget_kernel.invariants import LedgerInvariant
from budget_kernel.logging_config import get_logger
from budget_kernel.models.sequence_counter import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.

    Usage:
        with session_scope() as session:
            seq = SequenceService(session).next_value(SequenceService.LEDGER_RECORD)
            # If the transaction rolls back, seq is not consumed
    """

    LEDGER_RECORD = "ledger_record"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Preconditions:
            The caller is within an active database transaction.

        Postconditions:
            Returns an integer > 0 strictly greater than any previously
            committed value for this name.  The counter row stays locked
            until the transaction completes.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use of this sequence; another thread may be creating it
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={
                        "invariant": LedgerInvariant.SEQUENCE_MONOTONICITY.value,
                        "sequence_name": sequence_name,
                        "value": 1,
                    },
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={
                "invariant": LedgerInvariant.SEQUENCE_MONOTONICITY.value,
                "sequence_name": sequence_name,
                "value": counter.current_value,
            },
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        return counter.current_value if counter else None

