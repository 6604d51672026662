"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: entries by reference or posting
    group, trial balance, account balance, account statement, the
    correction audit trail, and the unbalanced-group diagnostic.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - No stored balances.  Every total is computed from general_ledger rows
      at query time, in base-currency equivalents.
    - Every query filters by tenant_id; another tenant's ids return nothing.
    - Statements are ordered by transaction_date, then reference_number,
      then line_seq -- never by insertion order.

Failure modes:
    - Empty results / zero balances when nothing is posted.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import LedgerEntryInfo, Side
from ledger_kernel.models.account import Account, AccountNature
from ledger_kernel.models.correction import LedgerEntryCorrection
from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.selectors.base import BaseSelector

_ZERO = Decimal("0")
_SCALE = Decimal("0.0001")
_ONE_DAY = timedelta(days=1)


def _dec(value) -> Decimal:
    """Aggregates come back as Decimal, float (SQLite) or None."""
    if value is None:
        return _ZERO
    return Decimal(str(value)).quantize(_SCALE, rounding=ROUND_HALF_UP)


def _signed(nature: str, debit_total: Decimal, credit_total: Decimal) -> Decimal:
    """Balance in the account's natural direction."""
    if nature == AccountNature.CREDIT.value:
        return credit_total - debit_total
    return debit_total - credit_total


@dataclass(frozen=True)
class TrialBalanceRow:
    """A single account row of a trial balance."""

    account_id: UUID
    account_code: str
    account_name: str
    account_nature: str
    account_type: str
    debit_total: Decimal
    credit_total: Decimal

    @property
    def net_balance(self) -> Decimal:
        return _signed(self.account_nature, self.debit_total, self.credit_total)


@dataclass(frozen=True)
class AccountBalance:
    """Base-currency balance of one account."""

    account_id: UUID
    account_nature: str
    debit_total: Decimal
    credit_total: Decimal
    line_count: int

    @property
    def net_balance(self) -> Decimal:
        return _signed(self.account_nature, self.debit_total, self.credit_total)


@dataclass(frozen=True)
class StatementLine:
    entry: LedgerEntryInfo
    running_balance: Decimal


@dataclass(frozen=True)
class AccountStatement:
    account_id: UUID
    date_from: date
    date_to: date
    opening_balance: Decimal
    lines: tuple[StatementLine, ...]

    @property
    def closing_balance(self) -> Decimal:
        if self.lines:
            return self.lines[-1].running_balance
        return self.opening_balance


@dataclass(frozen=True)
class UnbalancedGroup:
    posting_group_id: UUID
    reference_number: str
    transaction_type: str
    debit_total: Decimal
    credit_total: Decimal


@dataclass(frozen=True)
class CorrectionRecord:
    id: UUID
    ledger_entry_id: UUID
    reference_number: str
    old_account_code: str
    new_account_code: str
    reason: str
    corrected_by_name: str
    corrected_at: datetime


class LedgerSelector(BaseSelector[LedgerEntry]):
    """
    Reporting aggregator over the general ledger.

    Contract:
        All amounts are base-currency equivalents with 4 decimal places.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    @staticmethod
    def _sums():
        debit_sum = func.sum(
            case(
                (LedgerEntry.side == Side.DEBIT.value, LedgerEntry.equivalent_amount),
                else_=_ZERO,
            )
        ).label("debit_total")
        credit_sum = func.sum(
            case(
                (LedgerEntry.side == Side.CREDIT.value, LedgerEntry.equivalent_amount),
                else_=_ZERO,
            )
        ).label("credit_total")
        return debit_sum, credit_sum

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def entries_by_reference(
        self,
        tenant_id: UUID,
        reference_number: str,
        transaction_type: str | None = None,
    ) -> list[LedgerEntryInfo]:
        query = select(LedgerEntry).where(
            LedgerEntry.tenant_id == tenant_id,
            LedgerEntry.reference_number == reference_number,
        )
        if transaction_type is not None:
            query = query.where(LedgerEntry.transaction_type == transaction_type.upper())
        rows = self.session.execute(
            query.order_by(LedgerEntry.transaction_type, LedgerEntry.line_seq)
        ).scalars().all()
        return [LedgerEntryInfo.from_model(r) for r in rows]

    def posting_group(self, tenant_id: UUID, posting_group_id: UUID) -> list[LedgerEntryInfo]:
        rows = self.session.execute(
            select(LedgerEntry)
            .where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.posting_group_id == posting_group_id,
            )
            .order_by(LedgerEntry.line_seq)
        ).scalars().all()
        return [LedgerEntryInfo.from_model(r) for r in rows]

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def trial_balance(
        self,
        tenant_id: UUID,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[TrialBalanceRow]:
        """
        Trial balance by account, ordered by account code.

        Sum of debit_total over all rows equals sum of credit_total for a
        balanced ledger.

        Rows are keyed by account and carry the account's current code and
        name.  Entries keep the code and name snapshotted at posting time; use
        entries_by_reference() or account_statement() to read those.
        """
        debit_sum, credit_sum = self._sums()
        query = (
            select(
                LedgerEntry.account_id,
                Account.code,
                Account.name,
                Account.nature,
                Account.account_type,
                debit_sum,
                credit_sum,
            )
            .join(Account, LedgerEntry.account_id == Account.id)
            .where(
                LedgerEntry.tenant_id == tenant_id,
                Account.tenant_id == tenant_id,
            )
            .group_by(
                LedgerEntry.account_id,
                Account.code,
                Account.name,
                Account.nature,
                Account.account_type,
            )
            .order_by(Account.code)
        )
        if date_from is not None:
            query = query.where(LedgerEntry.transaction_date >= date_from)
        if date_to is not None:
            query = query.where(LedgerEntry.transaction_date <= date_to)

        return [
            TrialBalanceRow(
                account_id=row.account_id,
                account_code=row.code,
                account_name=row.name,
                account_nature=str(getattr(row.nature, "value", row.nature)),
                account_type=str(getattr(row.account_type, "value", row.account_type)),
                debit_total=_dec(row.debit_total),
                credit_total=_dec(row.credit_total),
            )
            for row in self.session.execute(query).all()
        ]

    def account_balance(
        self,
        tenant_id: UUID,
        account_id: UUID,
        as_of: date | None = None,
    ) -> AccountBalance:
        debit_sum, credit_sum = self._sums()
        query = select(
            debit_sum,
            credit_sum,
            func.count(LedgerEntry.id).label("line_count"),
        ).where(
            LedgerEntry.tenant_id == tenant_id,
            LedgerEntry.account_id == account_id,
        )
        if as_of is not None:
            query = query.where(LedgerEntry.transaction_date <= as_of)
        row = self.session.execute(query).one()

        nature = self.session.execute(
            select(Account.nature).where(
                Account.tenant_id == tenant_id,
                Account.id == account_id,
            )
        ).scalar_one_or_none()

        return AccountBalance(
            account_id=account_id,
            account_nature=str(getattr(nature, "value", nature or AccountNature.DEBIT.value)),
            debit_total=_dec(row.debit_total),
            credit_total=_dec(row.credit_total),
            line_count=row.line_count or 0,
        )

    def account_statement(
        self,
        tenant_id: UUID,
        account_id: UUID,
        date_from: date,
        date_to: date,
    ) -> AccountStatement:
        """
        Lines of one account between two dates (inclusive) with a running
        balance in the account's natural direction.
        """
        if date_from > date_to:
            raise ValueError(f"date_from ({date_from}) is after date_to ({date_to})")

        opening = self.account_balance(tenant_id, account_id, as_of=date_from - _ONE_DAY)
        rows = self.session.execute(
            select(LedgerEntry)
            .where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.account_id == account_id,
                LedgerEntry.transaction_date >= date_from,
                LedgerEntry.transaction_date <= date_to,
            )
            .order_by(
                LedgerEntry.transaction_date,
                LedgerEntry.reference_number,
                LedgerEntry.line_seq,
            )
        ).scalars().all()

        running = opening.net_balance
        lines = []
        for row in rows:
            info = LedgerEntryInfo.from_model(row)
            running += _signed(opening.account_nature, info.equivalent_debit, info.equivalent_credit)
            lines.append(StatementLine(entry=info, running_balance=running))

        return AccountStatement(
            account_id=account_id,
            date_from=date_from,
            date_to=date_to,
            opening_balance=opening.net_balance,
            lines=tuple(lines),
        )

    # ------------------------------------------------------------------
    # Audit / diagnostics
    # ------------------------------------------------------------------

    def corrections_for_entry(self, tenant_id: UUID, entry_id: UUID) -> list[CorrectionRecord]:
        rows = self.session.execute(
            select(LedgerEntryCorrection)
            .where(
                LedgerEntryCorrection.tenant_id == tenant_id,
                LedgerEntryCorrection.ledger_entry_id == entry_id,
            )
            .order_by(LedgerEntryCorrection.corrected_at)
        ).scalars().all()
        return [
            CorrectionRecord(
                id=r.id,
                ledger_entry_id=r.ledger_entry_id,
                reference_number=r.reference_number,
                old_account_code=r.old_account_code,
                new_account_code=r.new_account_code,
                reason=r.reason,
                corrected_by_name=r.corrected_by_name,
                corrected_at=r.corrected_at,
            )
            for r in rows
        ]

    def unbalanced_groups(self, tenant_id: UUID) -> list[UnbalancedGroup]:
        """Posting groups whose equivalents do not balance.  Always empty
        unless rows were written around the posting engine."""
        debit_sum, credit_sum = self._sums()
        rows = self.session.execute(
            select(
                LedgerEntry.posting_group_id,
                LedgerEntry.reference_number,
                LedgerEntry.transaction_type,
                debit_sum,
                credit_sum,
            )
            .where(LedgerEntry.tenant_id == tenant_id)
            .group_by(
                LedgerEntry.posting_group_id,
                LedgerEntry.reference_number,
                LedgerEntry.transaction_type,
            )
        ).all()

        unbalanced = []
        for row in rows:
            debits, credits = _dec(row.debit_total), _dec(row.credit_total)
            if debits != credits:
                unbalanced.append(UnbalancedGroup(
                    posting_group_id=row.posting_group_id,
                    reference_number=row.reference_number,
                    transaction_type=row.transaction_type,
                    debit_total=debits,
                    credit_total=credits,
                ))
        return unbalanced
