"""
Module: budget_kernel.models.ledger_record
Responsibility: ORM persistence for ledger records, the hashed documents
    of every wallet movement.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``seq`` is unique and comes from SequenceService's locked counter.
    - At most one ``allocation`` record per request: partial unique index
      on ``related_request_id`` where ``record_type = 'allocation'``.
    - ``data_hash`` and every hashed field are write-once; only
      ``verification_status`` and ``last_verified_at`` may change, and the
      row can never be deleted (db.immutability listeners).

Failure modes:
    - IntegrityError on a second allocation record for one request.
    - ImmutabilityViolationError on UPDATE of a frozen column or DELETE.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import Base, MoneyType, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from budget_kernel.domain.ledger_records import LedgerRecordView

# Columns verification may update after insert
MUTABLE_LEDGER_RECORD_FIELDS = frozenset({"verification_status", "last_verified_at"})


class LedgerRecordModel(Base):
    """Persistent ledger record ("transaction")."""

    __tablename__ = "ledger_records"

    __table_args__ = (
        CheckConstraint(
            "record_type IN ('allocation', 'release', 'withdrawal', 'freeze', 'unfreeze')",
            name="ck_ledger_records_valid_type",
        ),
        CheckConstraint(
            "verification_status IN ('pending', 'verified', 'failed')",
            name="ck_ledger_records_valid_verification_status",
        ),
        Index(
            "uq_ledger_records_one_allocation_per_request",
            "related_request_id",
            unique=True,
            postgresql_where=text("record_type = 'allocation'"),
            sqlite_where=text("record_type = 'allocation'"),
        ),
        Index("ix_ledger_records_vendor", "vendor_id", "seq"),
        Index("ix_ledger_records_request", "related_request_id"),
        Index("ix_ledger_records_verification_status", "verification_status"),
    )

    record_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    record_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)

    vendor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    vendor_address: Mapped[str] = mapped_column(String(100), nullable=False)
    vendor_name: Mapped[str] = mapped_column(String(200), nullable=False)

    related_request_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    project: Mapped[str | None] = mapped_column(String(200), nullable=True)
    category: Mapped[str | None] = mapped_column(String(30), nullable=True)

    created_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Bucket a freeze drew from or an unfreeze returned to
    hold_bucket: Mapped[str | None] = mapped_column(String(20), nullable=True)

    data_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    hash_algorithm: Mapped[str] = mapped_column(String(20), nullable=False)
    verification_status: Mapped[str] = mapped_column(
        String(10), nullable=False, default="pending",
    )
    last_verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<LedgerRecord #{self.seq} {self.record_type} {self.amount}>"

    def to_dto(self) -> LedgerRecordView:
        from budget_kernel.domain.ledger_records import (
            LedgerRecordType,
            LedgerRecordView,
            VerificationStatus,
        )

        return LedgerRecordView(
            record_id=self.record_id,
            seq=self.seq,
            record_type=LedgerRecordType(self.record_type),
            amount=self.amount,
            vendor_id=self.vendor_id,
            vendor_address=self.vendor_address,
            vendor_name=self.vendor_name,
            created_by=self.created_by,
            created_at=self.created_at,
            data_hash=self.data_hash,
            hash_algorithm=self.hash_algorithm,
            verification_status=VerificationStatus(self.verification_status),
            related_request_id=self.related_request_id,
            department=self.department,
            project=self.project,
            category=self.category,
            approved_by=self.approved_by,
            memo=self.memo,
            hold_bucket=self.hold_bucket,
            last_verified_at=self.last_verified_at,
        )
