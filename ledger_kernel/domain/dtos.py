"""
DTOs -- immutable data passed into and returned from the kernel services.

Responsibility:
    Defines the posting request line (``PostingLine``), the results returned
    by posting, reversal and correction, and read-only snapshots of accounts,
    financial years, exchange rates and ledger entries.

Architecture position:
    Kernel > Domain -- pure, no ORM or database access.  Services convert
    ORM rows into these DTOs at their boundary; callers never receive ORM
    entities.

Failure modes:
    - TypeError when a PostingLine amount or rate is a float.
    - ValueError when a PostingLine side is not debit/credit.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.domain.money import ZERO, convert, to_decimal


class Side(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"

    @property
    def opposite(self) -> Side:
        return Side.CREDIT if self is Side.DEBIT else Side.DEBIT


class PostingStatus(str, Enum):
    POSTED = "posted"
    ALREADY_POSTED = "already_posted"


@dataclass(frozen=True)
class PostingLine:
    """
    One debit or credit intent in a posting request.

    ``exchange_rate`` and ``equivalent_amount`` are normally left unset so the
    engine resolves the rate for ``currency`` on ``transaction_date``.
    Reversals lock both to the values of the line being mirrored, so the
    equivalents come out identical; the engine accepts locked values only
    when posting a reversal.
    """

    account_id: UUID
    side: Side
    amount: Decimal
    currency: str
    transaction_date: date
    description: str | None = None
    exchange_rate: Decimal | None = None
    equivalent_amount: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "side", Side(self.side))
        object.__setattr__(self, "amount", to_decimal(self.amount))
        if self.exchange_rate is not None:
            object.__setattr__(self, "exchange_rate", to_decimal(self.exchange_rate))
        if self.equivalent_amount is not None:
            if self.exchange_rate is None:
                raise ValueError("equivalent_amount requires a locked exchange_rate")
            object.__setattr__(
                self, "equivalent_amount", to_decimal(self.equivalent_amount)
            )

    @classmethod
    def debit(
        cls,
        account_id: UUID,
        amount: Decimal | int | str,
        currency: str,
        transaction_date: date,
        description: str | None = None,
    ) -> PostingLine:
        return cls(account_id, Side.DEBIT, amount, currency, transaction_date, description)

    @classmethod
    def credit(
        cls,
        account_id: UUID,
        amount: Decimal | int | str,
        currency: str,
        transaction_date: date,
        description: str | None = None,
    ) -> PostingLine:
        return cls(account_id, Side.CREDIT, amount, currency, transaction_date, description)

    def mirrored(self) -> PostingLine:
        """Same line with the side swapped."""
        return replace(self, side=self.side.opposite)


@dataclass(frozen=True)
class PostingResult:
    """Outcome of a successful post call (new or idempotent replay)."""

    posting_group_id: UUID
    status: PostingStatus
    reference_number: str
    transaction_type: str
    entry_ids: tuple[UUID, ...]
    total_debits: Decimal
    total_credits: Decimal
    base_currency: str

    @property
    def is_new(self) -> bool:
        return self.status == PostingStatus.POSTED


@dataclass(frozen=True)
class ReversalResult:
    original_group_id: UUID
    original_reference_number: str
    reversal_reference_number: str
    reversal: PostingResult

    @property
    def reversal_group_id(self) -> UUID:
        return self.reversal.posting_group_id


@dataclass(frozen=True)
class CorrectionResult:
    correction_id: UUID
    entry_id: UUID
    reference_number: str
    old_account_id: UUID
    old_account_code: str
    new_account_id: UUID
    new_account_code: str


@dataclass(frozen=True)
class AccountInfo:
    id: UUID
    tenant_id: UUID
    code: str
    name: str
    nature: str
    account_type: str
    is_active: bool
    parent_id: UUID | None = None
    description: str | None = None


@dataclass(frozen=True)
class FinancialYearInfo:
    id: UUID
    tenant_id: UUID
    name: str
    start_date: date
    end_date: date
    is_current: bool
    is_active: bool
    is_closed: bool
    closed_at: datetime | None = None
    closed_by_id: UUID | None = None
    closing_notes: str | None = None

    @property
    def is_open(self) -> bool:
        return self.is_active and not self.is_closed


@dataclass(frozen=True)
class ResolvedRate:
    """Rate from ``currency`` to ``base_currency`` for a given date."""

    currency: str
    base_currency: str
    rate: Decimal
    rate_id: UUID | None = None
    effective_date: date | None = None

    @property
    def is_base(self) -> bool:
        return self.currency == self.base_currency

    def equivalent(self, amount: Decimal) -> Decimal:
        return convert(amount, self.rate)


@dataclass(frozen=True)
class ExchangeRateInfo:
    id: UUID
    tenant_id: UUID
    from_currency: str
    to_currency: str
    rate: Decimal
    effective_date: date
    is_active: bool
    source: str | None = None


@dataclass(frozen=True)
class LedgerEntryInfo:
    """Read-only snapshot of one ledger entry."""

    id: UUID
    tenant_id: UUID
    posting_group_id: UUID
    reference_number: str
    transaction_type: str
    transaction_type_name: str
    line_seq: int
    financial_year_id: UUID
    financial_year_name: str
    transaction_date: date
    system_date: datetime
    description: str | None
    account_id: UUID
    account_code: str
    account_name: str
    account_nature: str
    account_type: str
    side: Side
    currency: str
    amount: Decimal
    exchange_rate: Decimal
    equivalent_amount: Decimal
    base_currency: str
    created_by_id: UUID
    created_by_name: str
    reversal_of_group_id: UUID | None = None

    @property
    def equivalent_debit(self) -> Decimal:
        return self.equivalent_amount if self.side == Side.DEBIT else ZERO

    @property
    def equivalent_credit(self) -> Decimal:
        return self.equivalent_amount if self.side == Side.CREDIT else ZERO

    @classmethod
    def from_model(cls, entry) -> LedgerEntryInfo:
        """Boundary converter from a LedgerEntry ORM row."""
        return cls(
            id=entry.id,
            tenant_id=entry.tenant_id,
            posting_group_id=entry.posting_group_id,
            reference_number=entry.reference_number,
            transaction_type=entry.transaction_type,
            transaction_type_name=entry.transaction_type_name,
            line_seq=entry.line_seq,
            financial_year_id=entry.financial_year_id,
            financial_year_name=entry.financial_year_name,
            transaction_date=entry.transaction_date,
            system_date=entry.system_date,
            description=entry.description,
            account_id=entry.account_id,
            account_code=entry.account_code,
            account_name=entry.account_name,
            account_nature=str(getattr(entry.account_nature, "value", entry.account_nature)),
            account_type=str(getattr(entry.account_type, "value", entry.account_type)),
            side=Side(getattr(entry.side, "value", entry.side)),
            currency=entry.currency,
            amount=Decimal(entry.amount),
            exchange_rate=Decimal(entry.exchange_rate),
            equivalent_amount=Decimal(entry.equivalent_amount),
            base_currency=entry.base_currency,
            created_by_id=entry.created_by_id,
            created_by_name=entry.created_by_name,
            reversal_of_group_id=entry.reversal_of_group_id,
        )


@dataclass(frozen=True)
class TenantInfo:
    id: UUID
    name: str
    base_currency: str
    is_active: bool
