"""
PostingEngine -- turns a posting request into a balanced, immutable
posting group.

Responsibility:
    Validates a posting request (tenant, reference number, transaction type,
    lines), resolves every line's account, exchange rate and financial year,
    proves the group balances in base-currency equivalents, and inserts one
    LedgerEntry per line.  Repeated requests with the same key return the
    existing group.

Architecture position:
    Kernel > Services -- the core of the ledger.  Upstream flows (sales
    invoice approval, payment capture, stock adjustment approval) call
    ``post``; ReversalService calls it with mirrored lines.

Invariants enforced:
    - Tenant guard: the tenant id must equal the authenticated context's
      tenant id.  Mismatches are rejected and logged as security events.
    - Every line amount is > 0 after quantization to 4 places.
    - sum(debit equivalents) == sum(credit equivalents) (within the
      configured tolerance, default zero) or nothing is written.
    - All rows of a group are inserted in one SAVEPOINT and flushed together
      inside the caller's transaction: a partially written group is never
      observable.
    - Idempotency on (tenant, reference_number, transaction_type).  Same
      lines -> ALREADY_POSTED with the original group id.  Different lines
      -> IdempotencyConflictError.
    - The account code/name/nature/type, the rate and the financial year
      are snapshotted onto each row at posting time.
    - Flush-only: never commits.

Failure modes (all raised before any row is written):
    - TenantMismatchError: cross-tenant attempt.
    - InvalidPostingError: malformed request (caller bug), with line_index.
    - AccountNotFoundError / AccountInactiveError, with line_index.
    - NoOpenPeriodError / PeriodClosedError, with line_index.
    - InvalidCurrencyError / NoExchangeRateError, with line_index.
    - UnbalancedPostingError: internal invariant failure, logged at ERROR
      with an incident id.
    - IdempotencyConflictError: key reused with different lines.

Audit relevance:
    ``posting_completed`` is logged with group id, line count, totals and
    duration.  Each row records the posting actor.
"""

import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountInfo,
    FinancialYearInfo,
    PostingLine,
    PostingResult,
    PostingStatus,
    ResolvedRate,
    Side,
)
from ledger_kernel.domain.money import (
    AMOUNT_SCALE,
    MAX_RATE,
    MIN_RATE,
    ZERO,
    convert,
    normalize_currency,
    quantize_amount,
    quantize_rate,
)
from ledger_kernel.domain.posting_templates import transaction_type_name as default_type_name
from ledger_kernel.domain.tenant import TenantContext
from ledger_kernel.exceptions import (
    AccountInactiveError,
    IdempotencyConflictError,
    InvalidCurrencyError,
    InvalidPostingError,
    LedgerKernelError,
    TenantMismatchError,
    UnbalancedPostingError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.ledger_entry import (
    REFERENCE_NUMBER_LENGTH,
    REVERSAL_SUFFIX_MAX_LENGTH,
    TRANSACTION_TYPE_LENGTH,
    LedgerEntry,
)
from ledger_kernel.services.account_directory import AccountDirectory
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.currency_resolver import CurrencyResolver
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.utils.hashing import hash_posting_lines

logger = get_logger("services.posting")

MAX_DESCRIPTION_LENGTH = 500


@dataclass
class _PreparedLine:
    index: int
    line: PostingLine
    account: AccountInfo
    year: FinancialYearInfo
    currency: str
    amount: Decimal
    rate: Decimal
    equivalent: Decimal
    locked: bool


def guard_tenant(context: TenantContext, tenant_id: UUID | str, operation: str) -> UUID:
    """
    Reject a tenant id that differs from the authenticated one.

    Raises:
        TenantMismatchError
    """
    if str(tenant_id) != str(context.tenant_id):
        logger.warning(
            "tenant_mismatch_rejected",
            extra={
                "security_event": True,
                "operation": operation,
                "context_tenant_id": str(context.tenant_id),
                "requested_tenant_id": str(tenant_id),
                "actor_id": str(context.actor_id),
            },
        )
        raise TenantMismatchError(context.tenant_id, tenant_id)
    return context.tenant_id


class PostingEngine(BaseService[LedgerEntry]):
    """
    Ledger posting engine.

    Contract:
        ``post()`` returns a ``PostingResult`` whose ``posting_group_id``
        identifies the group; ``status`` is POSTED for a new group and
        ALREADY_POSTED for an idempotent replay.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        accounts: AccountDirectory | None = None,
        periods: PeriodService | None = None,
        currencies: CurrencyResolver | None = None,
        balance_tolerance: Decimal = ZERO,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._accounts = accounts or AccountDirectory(session)
        self._periods = periods or PeriodService(session, self._clock)
        self._currencies = currencies or CurrencyResolver(session)
        self._balance_tolerance = Decimal(balance_tolerance)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def post(
        self,
        context: TenantContext,
        tenant_id: UUID,
        reference_number: str,
        transaction_type: str,
        lines: Sequence[PostingLine],
        *,
        transaction_type_name: str | None = None,
        reversal_of: UUID | None = None,
    ) -> PostingResult:
        """
        Post a balanced group of ledger entries.

        Args:
            context: Authenticated tenant and actor.
            tenant_id: Tenant the caller intends to post for; must match
                ``context.tenant_id``.
            reference_number: Business document reference, e.g. INV-20251114-0001.
            transaction_type: e.g. SALES_INVOICE, INVOICE_PAYMENT.
            lines: Debit/credit intents.
            transaction_type_name: Human name; derived from the type if omitted.
            reversal_of: Group id being reversed (set by ReversalService).
                Reversal lines may target accounts deactivated since the
                original posting, may carry a locked exchange_rate and
                equivalent_amount, and their keys may exceed the caller
                limits by the reversal suffix.  Locked values on any other
                posting are rejected.

        Returns:
            PostingResult (POSTED or ALREADY_POSTED).
        """
        started = time.monotonic()
        tenant_id = guard_tenant(context, tenant_id, "post")
        is_reversal = reversal_of is not None
        reference_number, transaction_type = self._validate_header(
            reference_number, transaction_type, is_reversal
        )
        lines = tuple(lines)
        self._validate_lines(lines, is_reversal)
        request_hash = hash_posting_lines(lines)

        with LogContext.bind(
            tenant_id=tenant_id,
            actor_id=context.actor_id,
            reference_number=reference_number,
        ):
            existing = self._existing_group(
                tenant_id, reference_number, transaction_type, request_hash
            )
            if existing is not None:
                logger.info(
                    "posting_already_exists",
                    extra={
                        "transaction_type": transaction_type,
                        "posting_group_id": str(existing.posting_group_id),
                    },
                )
                return existing

            base_currency = self._currencies.base_currency(tenant_id)
            prepared = self._prepare(tenant_id, lines, allow_inactive=is_reversal)
            self._absorb_rounding(prepared)
            debits, credits = self._check_balance(
                reference_number, transaction_type, prepared, base_currency
            )

            group_id = uuid4()
            entries = [
                self._build_entry(
                    context=context,
                    tenant_id=tenant_id,
                    group_id=group_id,
                    reference_number=reference_number,
                    transaction_type=transaction_type,
                    transaction_type_name=transaction_type_name or default_type_name(transaction_type),
                    prepared=p,
                    base_currency=base_currency,
                    request_hash=request_hash,
                    reversal_of=reversal_of,
                )
                for p in prepared
            ]

            try:
                with self.session.begin_nested():
                    self.session.add_all(entries)
                    self.session.flush()
            except IntegrityError:
                # A concurrent post with the same key won the insert race
                logger.warning(
                    "concurrent_posting_conflict",
                    extra={"transaction_type": transaction_type},
                )
                existing = self._existing_group(
                    tenant_id, reference_number, transaction_type, request_hash
                )
                if existing is None:
                    raise
                return existing

            duration_ms = round((time.monotonic() - started) * 1000, 2)
            logger.info(
                "posting_completed",
                extra={
                    "posting_group_id": str(group_id),
                    "transaction_type": transaction_type,
                    "line_count": len(entries),
                    "total_debits": str(debits),
                    "total_credits": str(credits),
                    "base_currency": base_currency,
                    "reversal_of": str(reversal_of) if reversal_of else None,
                    "duration_ms": duration_ms,
                },
            )

            return PostingResult(
                posting_group_id=group_id,
                status=PostingStatus.POSTED,
                reference_number=reference_number,
                transaction_type=transaction_type,
                entry_ids=tuple(e.id for e in entries),
                total_debits=debits,
                total_credits=credits,
                base_currency=base_currency,
            )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_header(
        reference_number: str,
        transaction_type: str,
        is_reversal: bool,
    ) -> tuple[str, str]:
        if not isinstance(reference_number, str) or not reference_number.strip():
            raise InvalidPostingError("reference_number is required")
        if not isinstance(transaction_type, str) or not transaction_type.strip():
            raise InvalidPostingError("transaction_type is required")
        reference_number = reference_number.strip()
        transaction_type = transaction_type.strip().upper()
        # reversal keys carry the derived suffix on top of the original key
        extra = REVERSAL_SUFFIX_MAX_LENGTH if is_reversal else 0
        if len(reference_number) > REFERENCE_NUMBER_LENGTH + extra:
            raise InvalidPostingError(
                f"reference_number exceeds {REFERENCE_NUMBER_LENGTH + extra} characters"
            )
        if len(transaction_type) > TRANSACTION_TYPE_LENGTH + extra:
            raise InvalidPostingError(
                f"transaction_type exceeds {TRANSACTION_TYPE_LENGTH + extra} characters"
            )
        return reference_number, transaction_type

    @staticmethod
    def _validate_lines(lines: tuple[PostingLine, ...], is_reversal: bool) -> None:
        if not lines:
            raise InvalidPostingError("at least one line is required")
        for index, line in enumerate(lines):
            if not isinstance(line, PostingLine):
                raise InvalidPostingError("line is not a PostingLine", index)
            if not isinstance(line.account_id, UUID):
                raise InvalidPostingError("account_id must be a UUID", index)
            if not isinstance(line.transaction_date, date):
                raise InvalidPostingError("transaction_date must be a date", index)
            if not isinstance(line.currency, str):
                raise InvalidPostingError("currency must be a string", index)
            if quantize_amount(line.amount) <= ZERO:
                raise InvalidPostingError("amount must be greater than zero", index)
            if line.description and len(line.description) > MAX_DESCRIPTION_LENGTH:
                raise InvalidPostingError(
                    f"description exceeds {MAX_DESCRIPTION_LENGTH} characters", index
                )
            if line.exchange_rate is not None and not is_reversal:
                # only a reversal may bypass rate resolution
                raise InvalidPostingError(
                    "exchange_rate and equivalent_amount are only accepted on reversal lines",
                    index,
                )
            if line.exchange_rate is not None and not (
                MIN_RATE <= quantize_rate(line.exchange_rate) <= MAX_RATE
            ):
                raise InvalidPostingError("locked exchange_rate is out of range", index)
            if line.equivalent_amount is not None and quantize_amount(line.equivalent_amount) <= ZERO:
                raise InvalidPostingError("locked equivalent_amount must be positive", index)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _prepare(
        self,
        tenant_id: UUID,
        lines: tuple[PostingLine, ...],
        allow_inactive: bool,
    ) -> list[_PreparedLine]:
        accounts: dict[UUID, AccountInfo] = {}
        years: dict[date, FinancialYearInfo] = {}
        rates: dict[tuple[str, date], ResolvedRate] = {}
        prepared: list[_PreparedLine] = []

        for index, line in enumerate(lines):
            try:
                account = accounts.get(line.account_id)
                if account is None:
                    account = self._accounts.resolve_account(tenant_id, line.account_id)
                    accounts[line.account_id] = account
                if not account.is_active and not allow_inactive:
                    raise AccountInactiveError(account.id, account.code)

                if line.exchange_rate is not None:
                    # Locked rate: only the code is checked, the rate table is not read
                    currency = normalize_currency(line.currency)
                    if currency is None:
                        raise InvalidCurrencyError(line.currency)
                else:
                    key = (line.currency, line.transaction_date)
                    resolved = rates.get(key)
                    if resolved is None:
                        resolved = self._currencies.resolve(
                            tenant_id, line.currency, line.transaction_date
                        )
                        rates[key] = resolved
                    currency = resolved.currency

                year = years.get(line.transaction_date)
                if year is None:
                    year = self._periods.assert_open_for_date(tenant_id, line.transaction_date)
                    years[line.transaction_date] = year
            except LedgerKernelError as exc:
                exc.line_index = index
                raise

            amount = quantize_amount(line.amount)
            locked = line.exchange_rate is not None
            rate = quantize_rate(line.exchange_rate) if locked else resolved.rate
            if line.equivalent_amount is not None:
                equivalent = quantize_amount(line.equivalent_amount)
            else:
                equivalent = convert(amount, rate)

            prepared.append(_PreparedLine(
                index=index,
                line=line,
                account=account,
                year=year,
                currency=currency,
                amount=amount,
                rate=rate,
                equivalent=equivalent,
                locked=locked,
            ))

        return prepared

    @staticmethod
    def _absorb_rounding(prepared: list[_PreparedLine]) -> None:
        """
        Absorb per-line conversion rounding within same-currency, same-rate
        subsets that balance exactly in their original currency.

        Each converted line is rounded to 4 places independently, so a
        subset that balances in the transaction currency can be off by a
        few units of the last place in base currency.  The residue (never
        more than half a unit per line) is added to the largest line on
        the short side.  Lines with a locked rate are left as supplied.
        """
        subsets: dict[tuple[str, Decimal], list[_PreparedLine]] = {}
        for p in prepared:
            if not p.locked:
                subsets.setdefault((p.currency, p.rate), []).append(p)

        for subset in subsets.values():
            original_debits = sum((p.amount for p in subset if p.line.side == Side.DEBIT), ZERO)
            original_credits = sum((p.amount for p in subset if p.line.side == Side.CREDIT), ZERO)
            if original_debits != original_credits:
                continue
            residue = (
                sum((p.equivalent for p in subset if p.line.side == Side.DEBIT), ZERO)
                - sum((p.equivalent for p in subset if p.line.side == Side.CREDIT), ZERO)
            )
            if residue == ZERO or abs(residue) > AMOUNT_SCALE * len(subset):
                continue
            short_side = Side.CREDIT if residue > ZERO else Side.DEBIT
            target = max(
                (p for p in subset if p.line.side == short_side),
                key=lambda p: (p.equivalent, -p.index),
            )
            target.equivalent += abs(residue)
            logger.debug(
                "rounding_residue_absorbed",
                extra={"line_index": target.index, "residue": str(residue)},
            )

    def _check_balance(
        self,
        reference_number: str,
        transaction_type: str,
        prepared: list[_PreparedLine],
        base_currency: str,
    ) -> tuple[Decimal, Decimal]:
        debits = sum((p.equivalent for p in prepared if p.line.side == Side.DEBIT), ZERO)
        credits = sum((p.equivalent for p in prepared if p.line.side == Side.CREDIT), ZERO)

        if abs(debits - credits) > self._balance_tolerance:
            incident_id = uuid4().hex[:12]
            logger.error(
                "unbalanced_posting_rejected",
                extra={
                    "incident_id": incident_id,
                    "transaction_type": transaction_type,
                    "total_debits": str(debits),
                    "total_credits": str(credits),
                    "difference": str(debits - credits),
                    "base_currency": base_currency,
                    "lines": [
                        {
                            "index": p.index,
                            "account_code": p.account.code,
                            "side": p.line.side.value,
                            "amount": str(p.amount),
                            "currency": p.currency,
                            "rate": str(p.rate),
                            "equivalent": str(p.equivalent),
                        }
                        for p in prepared
                    ],
                },
            )
            raise UnbalancedPostingError(
                reference_number, debits, credits, base_currency, incident_id
            )

        logger.debug(
            "balance_validated",
            extra={"total_debits": str(debits), "total_credits": str(credits)},
        )
        return debits, credits

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _existing_group(
        self,
        tenant_id: UUID,
        reference_number: str,
        transaction_type: str,
        request_hash: str,
    ) -> PostingResult | None:
        rows = self.session.execute(
            select(LedgerEntry)
            .where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.reference_number == reference_number,
                LedgerEntry.transaction_type == transaction_type,
            )
            .order_by(LedgerEntry.line_seq)
        ).scalars().all()
        if not rows:
            return None
        if rows[0].request_hash != request_hash:
            logger.warning(
                "idempotency_conflict",
                extra={"transaction_type": transaction_type},
            )
            raise IdempotencyConflictError(reference_number, transaction_type)

        debits = sum((Decimal(r.equivalent_amount) for r in rows if r.side == Side.DEBIT.value), ZERO)
        credits = sum((Decimal(r.equivalent_amount) for r in rows if r.side == Side.CREDIT.value), ZERO)
        return PostingResult(
            posting_group_id=rows[0].posting_group_id,
            status=PostingStatus.ALREADY_POSTED,
            reference_number=reference_number,
            transaction_type=transaction_type,
            entry_ids=tuple(r.id for r in rows),
            total_debits=quantize_amount(debits),
            total_credits=quantize_amount(credits),
            base_currency=rows[0].base_currency,
        )

    def _build_entry(
        self,
        *,
        context: TenantContext,
        tenant_id: UUID,
        group_id: UUID,
        reference_number: str,
        transaction_type: str,
        transaction_type_name: str,
        prepared: _PreparedLine,
        base_currency: str,
        request_hash: str,
        reversal_of: UUID | None,
    ) -> LedgerEntry:
        account = prepared.account
        return LedgerEntry(
            id=uuid4(),
            tenant_id=tenant_id,
            posting_group_id=group_id,
            reference_number=reference_number,
            transaction_type=transaction_type,
            transaction_type_name=transaction_type_name,
            line_seq=prepared.index + 1,
            financial_year_id=prepared.year.id,
            financial_year_name=prepared.year.name,
            transaction_date=prepared.line.transaction_date,
            system_date=self._clock.now(),
            description=prepared.line.description,
            account_id=account.id,
            account_code=account.code,
            account_name=account.name,
            account_nature=account.nature,
            account_type=account.account_type,
            side=prepared.line.side.value,
            currency=prepared.currency,
            amount=prepared.amount,
            exchange_rate=prepared.rate,
            equivalent_amount=prepared.equivalent,
            base_currency=base_currency,
            request_hash=request_hash,
            reversal_of_group_id=reversal_of,
            created_by_id=context.actor_id,
            created_by_name=context.actor_name,
        )
