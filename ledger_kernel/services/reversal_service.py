"""
ReversalService -- cancel a posted group by posting its mirror image.

Responsibility:
    Loads the posting group behind a reference number and posts a new group
    with every line's side swapped, under a derived reference number
    (``<ref>-REV``) and transaction type (``<TYPE>_REVERSAL``).

Architecture position:
    Kernel > Services.  Delegates the actual write to PostingEngine, so the
    reversal passes the same tenant guard, period gate, balance check and
    idempotency key as any other posting.

Invariants enforced:
    - The original group is never modified.
    - Mirrored lines carry the original exchange rate and equivalent
      amount, so the reversal's equivalents cancel the original exactly
      even when rates have moved since.
    - A group is reversed at most once; a reversal group is never reversed.
    - Accounts deactivated since the original posting may still receive
      the reversal lines.

Failure modes:
    - NothingToReverseError: no group for the reference (in this tenant).
    - AmbiguousReversalError: several transaction types under the reference.
    - ReversalOfReversalError: the reference names a reversal group.
    - AlreadyReversedError: a reversal of the group already exists, or a
      group is already posted under the derived reference and type.
    - ValueError at construction: a suffix longer than
      REVERSAL_SUFFIX_MAX_LENGTH (the room the ledger columns keep for it).
    - Any PostingEngine error, e.g. PeriodClosedError for the reversal date.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import PostingLine, ReversalResult, Side
from ledger_kernel.domain.tenant import TenantContext
from ledger_kernel.exceptions import (
    AlreadyReversedError,
    AmbiguousReversalError,
    NothingToReverseError,
    ReversalOfReversalError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.ledger_entry import REVERSAL_SUFFIX_MAX_LENGTH, LedgerEntry
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.posting_engine import PostingEngine, guard_tenant

logger = get_logger("services.reversal")


class ReversalService(BaseService[LedgerEntry]):
    """Posts reversals of existing posting groups."""

    def __init__(
        self,
        session: Session,
        engine: PostingEngine | None = None,
        clock: Clock | None = None,
        reference_suffix: str = "-REV",
        type_suffix: str = "_REVERSAL",
    ):
        for suffix in (reference_suffix, type_suffix):
            if not suffix or len(suffix) > REVERSAL_SUFFIX_MAX_LENGTH:
                raise ValueError(
                    f"reversal suffix must be 1..{REVERSAL_SUFFIX_MAX_LENGTH} characters: {suffix!r}"
                )
        super().__init__(session)
        self._engine = engine or PostingEngine(session, clock=clock)
        self._reference_suffix = reference_suffix
        self._type_suffix = type_suffix

    def reversal_reference(self, reference_number: str) -> str:
        return f"{reference_number}{self._reference_suffix}"

    def reversal_type(self, transaction_type: str) -> str:
        return f"{transaction_type}{self._type_suffix}".upper()

    def reverse(
        self,
        context: TenantContext,
        tenant_id: UUID,
        original_reference_number: str,
        *,
        transaction_type: str | None = None,
        reversal_date: date | None = None,
    ) -> ReversalResult:
        """
        Reverse the posting group recorded under ``original_reference_number``.

        Args:
            transaction_type: Required when several groups share the reference
                (e.g. SALES_INVOICE and INVOICE_PAYMENT).
            reversal_date: Transaction date for the reversal lines; defaults
                to each original line's date.  Use a date in an open year to
                reverse a posting from a closed year.

        Returns:
            ReversalResult wrapping the PostingResult of the new group.
        """
        tenant_id = guard_tenant(context, tenant_id, "reverse")
        reference_number = (original_reference_number or "").strip()
        if transaction_type is not None:
            transaction_type = transaction_type.strip().upper()

        original = self._load_group(tenant_id, reference_number, transaction_type)
        head = original[0]
        group_id = head.posting_group_id

        if head.reversal_of_group_id is not None:
            raise ReversalOfReversalError(reference_number)

        reversal_reference = self.reversal_reference(reference_number)
        reversal_type = self.reversal_type(head.transaction_type)
        existing = self.session.execute(
            select(LedgerEntry.reference_number)
            .where(
                LedgerEntry.tenant_id == tenant_id,
                or_(
                    LedgerEntry.reversal_of_group_id == group_id,
                    and_(
                        LedgerEntry.reference_number == reversal_reference,
                        LedgerEntry.transaction_type == reversal_type,
                    ),
                ),
            )
            .limit(1)
        ).scalar_one_or_none()
        if existing is not None:
            raise AlreadyReversedError(reference_number, existing)

        description = f"Reversal of {reference_number}"
        lines = [
            PostingLine(
                account_id=row.account_id,
                side=Side(row.side).opposite,
                amount=row.amount,
                currency=row.currency,
                transaction_date=reversal_date or row.transaction_date,
                description=description,
                exchange_rate=row.exchange_rate,
                equivalent_amount=row.equivalent_amount,
            )
            for row in original
        ]

        result = self._engine.post(
            context,
            tenant_id,
            reversal_reference,
            reversal_type,
            lines,
            reversal_of=group_id,
        )

        logger.info(
            "posting_reversed",
            extra={
                "tenant_id": str(tenant_id),
                "original_reference": reference_number,
                "original_group_id": str(group_id),
                "reversal_reference": reversal_reference,
                "reversal_group_id": str(result.posting_group_id),
                "line_count": len(lines),
            },
        )

        return ReversalResult(
            original_group_id=group_id,
            original_reference_number=reference_number,
            reversal_reference_number=reversal_reference,
            reversal=result,
        )

    def _load_group(
        self,
        tenant_id: UUID,
        reference_number: str,
        transaction_type: str | None,
    ) -> list[LedgerEntry]:
        query = select(LedgerEntry).where(
            LedgerEntry.tenant_id == tenant_id,
            LedgerEntry.reference_number == reference_number,
        )
        if transaction_type is not None:
            query = query.where(LedgerEntry.transaction_type == transaction_type)
        rows = self.session.execute(
            query.order_by(LedgerEntry.transaction_type, LedgerEntry.line_seq)
        ).scalars().all()

        if not rows:
            raise NothingToReverseError(reference_number)

        types = {row.transaction_type for row in rows}
        if len(types) > 1:
            raise AmbiguousReversalError(reference_number, list(types))
        return list(rows)
