"""
Module: ledger_kernel.models.correction
Responsibility: Append-only audit trail of account corrections applied to
    posted ledger entries through the repair path.
Architecture position: Kernel > Models.  Imports db/base.py and the
    ledger_entry key lengths.

Invariants enforced:
    - Rows are never updated or deleted (db/immutability.py).
    - Every in-place change to a LedgerEntry account snapshot has exactly
      one row here, written in the same transaction.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString
from ledger_kernel.models.ledger_entry import REFERENCE_NUMBER_LENGTH, REVERSAL_SUFFIX_MAX_LENGTH


class LedgerEntryCorrection(Base):
    """Before/after record of one account correction."""

    __tablename__ = "ledger_entry_corrections"

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    ledger_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("general_ledger.id"),
        nullable=False,
        index=True,
    )

    reference_number: Mapped[str] = mapped_column(
        String(REFERENCE_NUMBER_LENGTH + REVERSAL_SUFFIX_MAX_LENGTH), nullable=False
    )

    old_account_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    old_account_code: Mapped[str] = mapped_column(String(50), nullable=False)
    old_account_name: Mapped[str] = mapped_column(String(255), nullable=False)

    new_account_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    new_account_code: Mapped[str] = mapped_column(String(50), nullable=False)
    new_account_name: Mapped[str] = mapped_column(String(255), nullable=False)

    reason: Mapped[str] = mapped_column(Text, nullable=False)

    corrected_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    corrected_by_name: Mapped[str] = mapped_column(String(255), nullable=False)
    corrected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
