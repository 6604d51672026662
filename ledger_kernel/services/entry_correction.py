"""
EntryCorrectionService -- the narrow repair path for a wrong account.

Responsibility:
    Moves one posted ledger entry to a different account of the same tenant
    when a caller defect posted it to the wrong one.  Amounts, sides, dates,
    rates and references never change; anything beyond the account is
    corrected by reversing and reposting.

Architecture position:
    Kernel > Services.  The only writer allowed to update a LedgerEntry,
    through ``account_correction_grant`` in db/immutability.py.

Invariants enforced:
    - The entry is loaded FOR UPDATE, filtered by tenant.
    - The entry's financial year must still be open.
    - Entries of a reversed group, and reversal lines themselves, are not
      corrected (the reversal already mirrors the original account).
    - Every correction writes exactly one LedgerEntryCorrection row with the
      old and new account snapshot, reason and actor.
    - Group balance is unaffected: only the account moves.

Failure modes:
    - LedgerEntryNotFoundError: unknown entry for the tenant.
    - CorrectionNotAllowedError: a precondition is not met.
    - AccountNotFoundError / AccountInactiveError: bad replacement account.
    - NoOpenPeriodError / PeriodClosedError: the entry's year is not open.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.immutability import account_correction_grant
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import CorrectionResult
from ledger_kernel.domain.tenant import TenantContext
from ledger_kernel.exceptions import (
    AccountInactiveError,
    CorrectionNotAllowedError,
    LedgerEntryNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.correction import LedgerEntryCorrection
from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.services.account_directory import AccountDirectory
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.posting_engine import guard_tenant

logger = get_logger("services.entry_correction")


class EntryCorrectionService(BaseService[LedgerEntry]):
    """Audited account correction of a posted entry."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        accounts: AccountDirectory | None = None,
        periods: PeriodService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._accounts = accounts or AccountDirectory(session)
        self._periods = periods or PeriodService(session, self._clock)

    def correct_account(
        self,
        context: TenantContext,
        tenant_id: UUID,
        entry_id: UUID,
        new_account_id: UUID,
        reason: str,
    ) -> CorrectionResult:
        tenant_id = guard_tenant(context, tenant_id, "correct_account")

        entry = self.session.execute(
            select(LedgerEntry)
            .where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.id == entry_id,
            )
            .with_for_update()
        ).scalar_one_or_none()
        if entry is None:
            raise LedgerEntryNotFoundError(entry_id)

        reason = (reason or "").strip()
        if not reason:
            raise CorrectionNotAllowedError(entry_id, "a reason is required")
        if entry.account_id == new_account_id:
            raise CorrectionNotAllowedError(entry_id, "entry is already on that account")
        if entry.reversal_of_group_id is not None:
            raise CorrectionNotAllowedError(entry_id, "reversal lines cannot be corrected")

        reversed_by = self.session.execute(
            select(LedgerEntry.reference_number)
            .where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.reversal_of_group_id == entry.posting_group_id,
            )
            .limit(1)
        ).scalar_one_or_none()
        if reversed_by is not None:
            raise CorrectionNotAllowedError(
                entry_id, f"posting group was reversed by {reversed_by}"
            )

        self._periods.assert_open_for_date(tenant_id, entry.transaction_date)

        new_account = self._accounts.resolve_account(tenant_id, new_account_id)
        if not new_account.is_active:
            raise AccountInactiveError(new_account.id, new_account.code)

        correction = LedgerEntryCorrection(
            tenant_id=tenant_id,
            ledger_entry_id=entry.id,
            reference_number=entry.reference_number,
            old_account_id=entry.account_id,
            old_account_code=entry.account_code,
            old_account_name=entry.account_name,
            new_account_id=new_account.id,
            new_account_code=new_account.code,
            new_account_name=new_account.name,
            reason=reason,
            corrected_by_id=context.actor_id,
            corrected_by_name=context.actor_name,
            corrected_at=self._clock.now(),
        )
        self.session.add(correction)

        old_account_id = entry.account_id
        old_account_code = entry.account_code
        with account_correction_grant(self.session, entry.id):
            entry.account_id = new_account.id
            entry.account_code = new_account.code
            entry.account_name = new_account.name
            entry.account_nature = new_account.nature
            entry.account_type = new_account.account_type
            self.session.flush()

        logger.info(
            "ledger_entry_account_corrected",
            extra={
                "tenant_id": str(tenant_id),
                "entry_id": str(entry.id),
                "reference_number": entry.reference_number,
                "old_account_code": old_account_code,
                "new_account_code": new_account.code,
                "actor_id": str(context.actor_id),
            },
        )

        return CorrectionResult(
            correction_id=correction.id,
            entry_id=entry.id,
            reference_number=entry.reference_number,
            old_account_id=old_account_id,
            old_account_code=old_account_code,
            new_account_id=new_account.id,
            new_account_code=new_account.code,
        )
