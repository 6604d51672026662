"""
Module: ledger_kernel.models.ledger_entry
Responsibility: ORM persistence for general ledger entries -- the atomic
    unit of the ledger.  Entries sharing a posting_group_id form one posting
    group that must balance in base-currency equivalents.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only.  Any UPDATE or DELETE is blocked by db/immutability.py,
      except the account snapshot fields during an authorized account
      correction (services/entry_correction.py).
    - (tenant_id, reference_number, transaction_type, line_seq) is unique,
      which makes concurrent duplicate postings collide instead of doubling
      the group.
    - reference_number and transaction_type columns are wider than the
      caller limits by REVERSAL_SUFFIX_MAX_LENGTH, which only reversal
      groups use.
    - The account code/name/nature/type are copied at posting time and are
      never re-derived from the accounts table.

Audit relevance:
    created_by_id / created_by_name record the posting actor; request_hash
    fingerprints the lines the group was posted with.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString

ZERO = Decimal("0")

# Caller-supplied key lengths.  Stored columns leave room for a reversal
# suffix on top, so the reversal of a maximum-length reference still fits.
REFERENCE_NUMBER_LENGTH = 100
TRANSACTION_TYPE_LENGTH = 50
REVERSAL_SUFFIX_MAX_LENGTH = 20


class EntrySide(str, Enum):
    """Debit or credit designation of a ledger entry."""

    DEBIT = "debit"
    CREDIT = "credit"


# Fields the account repair path may rewrite.  Nothing else on a ledger entry
# is ever updated.
ACCOUNT_SNAPSHOT_FIELDS = frozenset({
    "account_id",
    "account_code",
    "account_name",
    "account_nature",
    "account_type",
})


class LedgerEntry(TrackedBase):
    """One line of a posting group."""

    __tablename__ = "general_ledger"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "reference_number",
            "transaction_type",
            "line_seq",
            name="uq_general_ledger_idempotency",
        ),
        Index("idx_general_ledger_reference", "tenant_id", "reference_number"),
        Index("idx_general_ledger_group", "posting_group_id"),
        Index("idx_general_ledger_account_date", "tenant_id", "account_id", "transaction_date"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    posting_group_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    reference_number: Mapped[str] = mapped_column(
        String(REFERENCE_NUMBER_LENGTH + REVERSAL_SUFFIX_MAX_LENGTH), nullable=False
    )

    transaction_type: Mapped[str] = mapped_column(
        String(TRANSACTION_TYPE_LENGTH + REVERSAL_SUFFIX_MAX_LENGTH), nullable=False
    )

    transaction_type_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # 1-based position of the line within its posting group
    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    financial_year_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("financial_years.id"),
        nullable=False,
    )

    financial_year_name: Mapped[str] = mapped_column(String(100), nullable=False)

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Wall-clock time of posting (from the injected clock)
    system_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Account snapshot
    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )
    account_code: Mapped[str] = mapped_column(String(50), nullable=False)
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_nature: Mapped[str] = mapped_column(String(10), nullable=False)
    account_type: Mapped[str] = mapped_column(String(20), nullable=False)

    side: Mapped[EntrySide] = mapped_column(String(10), nullable=False)

    # Transaction (original) currency and amount
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(24, 4), nullable=False)

    exchange_rate: Mapped[Decimal] = mapped_column(Numeric(15, 6), nullable=False)

    # Amount in the tenant's base currency
    equivalent_amount: Mapped[Decimal] = mapped_column(Numeric(24, 4), nullable=False)
    base_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    request_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Set on every line of a reversal group
    reversal_of_group_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    created_by_name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.reference_number}#{self.line_seq} "
            f"{self.side} {self.account_code} {self.equivalent_amount}>"
        )

    @property
    def is_debit(self) -> bool:
        return self.side == EntrySide.DEBIT

    @property
    def debit_amount(self) -> Decimal:
        return self.amount if self.is_debit else ZERO

    @property
    def credit_amount(self) -> Decimal:
        return ZERO if self.is_debit else self.amount

    @property
    def equivalent_debit_amount(self) -> Decimal:
        return self.equivalent_amount if self.is_debit else ZERO

    @property
    def equivalent_credit_amount(self) -> Decimal:
        return ZERO if self.is_debit else self.equivalent_amount
