"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
CONVENTIONS
===============================================================================

Every failure the kernel can signal has:
  1. A TYPED exception class (catch by type, not by message text)
  2. A CODE attribute (machine-readable, safe to return from an API)
  3. Structured ATTRIBUTES (which account, which date, which line)

    try:
        engine.post(context, tenant_id, "INV-20251114-0001", "SALES_INVOICE", lines)
    except PeriodClosedError as e:
        render(code=e.code, year=e.year_name, closed_at=e.closed_at)

When a failure is attributable to one posting line, the engine sets
``line_index`` (0-based) on the exception before re-raising it.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- LedgerEntryNotFoundError
    |   +-- TenantNotFoundError
    |   +-- FinancialYearNotFoundError
    |
    +-- AccountError
    |   +-- AccountInactiveError
    |   +-- DuplicateAccountCodeError
    |
    +-- PeriodError
    |   +-- NoOpenPeriodError
    |   +-- PeriodClosedError
    |   +-- PeriodOverlapError
    |   +-- PeriodAlreadyClosedError
    |   +-- PeriodCloseNotAllowedError
    |   +-- PeriodImmutableError
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |   +-- NoExchangeRateError
    |   +-- InvalidExchangeRateError
    |   +-- DuplicateExchangeRateError
    |
    +-- PostingError
    |   +-- InvalidPostingError
    |   +-- UnbalancedPostingError
    |   +-- IdempotencyConflictError
    |
    +-- ReversalError
    |   +-- NothingToReverseError
    |   +-- AlreadyReversedError
    |   +-- AmbiguousReversalError
    |   +-- ReversalOfReversalError
    |
    +-- CorrectionError
    |   +-- CorrectionNotAllowedError
    |
    +-- TenantMismatchError
    +-- ConcurrencyError
    |   +-- PostingTimeoutError
    +-- ImmutabilityViolationError
    +-- SchemaVersionMismatchError

===============================================================================
ERROR CODES
===============================================================================

Code                          | Exception                    | Audience
------------------------------|------------------------------|----------------
NOT_FOUND                     | NotFoundError                | caller bug
ACCOUNT_NOT_FOUND             | AccountNotFoundError         | caller bug
NO_OPEN_PERIOD                | NoOpenPeriodError            | user
PERIOD_CLOSED                 | PeriodClosedError            | user
NO_EXCHANGE_RATE              | NoExchangeRateError          | operator
UNBALANCED_POSTING            | UnbalancedPostingError       | support (5xx)
IDEMPOTENCY_CONFLICT          | IdempotencyConflictError     | caller bug
NOTHING_TO_REVERSE            | NothingToReverseError        | user
ALREADY_REVERSED              | AlreadyReversedError         | user
TENANT_MISMATCH               | TenantMismatchError          | security
POSTING_TIMEOUT               | PostingTimeoutError          | retryable
IMMUTABILITY_VIOLATION        | ImmutabilityViolationError   | caller bug
SCHEMA_VERSION_MISMATCH       | SchemaVersionMismatchError   | operator
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID


class LedgerKernelError(Exception):
    """Base exception for all ledger kernel errors."""

    code: str = "LEDGER_KERNEL_ERROR"

    # Set by the posting engine when a specific request line caused the failure.
    line_index: int | None = None


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(LedgerKernelError):
    """A referenced record does not exist for the calling tenant."""

    code: str = "NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    """
    Account does not exist for the tenant.

    An account id owned by another tenant produces exactly this error, with
    the same message, so callers cannot probe for foreign ids.
    """

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: UUID | str):
        self.account_id = str(account_id)
        super().__init__(f"Account not found: {account_id}")


class LedgerEntryNotFoundError(NotFoundError):
    """Ledger entry does not exist for the tenant."""

    code: str = "LEDGER_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: UUID | str):
        self.entry_id = str(entry_id)
        super().__init__(f"Ledger entry not found: {entry_id}")


class TenantNotFoundError(NotFoundError):
    """Tenant (company) does not exist."""

    code: str = "TENANT_NOT_FOUND"

    def __init__(self, tenant_id: UUID | str):
        self.tenant_id = str(tenant_id)
        super().__init__(f"Tenant not found: {tenant_id}")


class FinancialYearNotFoundError(NotFoundError):
    """Financial year does not exist for the tenant."""

    code: str = "FINANCIAL_YEAR_NOT_FOUND"

    def __init__(self, year_id: UUID | str):
        self.year_id = str(year_id)
        super().__init__(f"Financial year not found: {year_id}")


# =============================================================================
# Accounts
# =============================================================================


class AccountError(LedgerKernelError):
    """Base for account-related errors."""

    code: str = "ACCOUNT_ERROR"


class AccountInactiveError(AccountError):
    """Account is inactive and cannot receive new postings."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_id: UUID | str, account_code: str):
        self.account_id = str(account_id)
        self.account_code = account_code
        super().__init__(f"Account {account_code} is inactive")


class DuplicateAccountCodeError(AccountError):
    """Account code already used within the tenant."""

    code: str = "DUPLICATE_ACCOUNT_CODE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account code already exists: {account_code}")


# =============================================================================
# Financial periods
# =============================================================================


class PeriodError(LedgerKernelError):
    """Base for financial year errors."""

    code: str = "PERIOD_ERROR"


class NoOpenPeriodError(PeriodError):
    """No active financial year covers the transaction date."""

    code: str = "NO_OPEN_PERIOD"

    def __init__(self, transaction_date: date | str):
        self.transaction_date = str(transaction_date)
        super().__init__(
            f"no open financial year found for date {transaction_date}"
        )


class PeriodClosedError(PeriodError):
    """
    The financial year covering the transaction date is closed.

    Carries the closing metadata so the caller can tell the user which year
    was closed, when, and why.
    """

    code: str = "PERIOD_CLOSED"

    def __init__(
        self,
        transaction_date: date | str,
        year_id: UUID | str,
        year_name: str,
        closed_at: datetime | None,
        closing_notes: str | None,
    ):
        self.transaction_date = str(transaction_date)
        self.year_id = str(year_id)
        self.year_name = year_name
        self.closed_at = closed_at.isoformat() if closed_at else None
        self.closing_notes = closing_notes
        super().__init__(
            f"Financial year {year_name} is closed; cannot post "
            f"transactions dated {transaction_date}"
        )


class PeriodOverlapError(PeriodError):
    """New financial year date range overlaps an existing year."""

    code: str = "PERIOD_OVERLAP"

    def __init__(
        self,
        new_year_name: str,
        existing_year_name: str,
        overlap_start: str,
        overlap_end: str,
    ):
        self.new_year_name = new_year_name
        self.existing_year_name = existing_year_name
        self.overlap_start = overlap_start
        self.overlap_end = overlap_end
        super().__init__(
            f"Financial year {new_year_name} overlaps {existing_year_name} "
            f"({overlap_start} to {overlap_end})"
        )


class PeriodAlreadyClosedError(PeriodError):
    """Financial year is already closed."""

    code: str = "PERIOD_ALREADY_CLOSED"

    def __init__(self, year_name: str):
        self.year_name = year_name
        super().__init__(f"Financial year {year_name} is already closed")


class PeriodCloseNotAllowedError(PeriodError):
    """Financial year does not meet the preconditions for closing."""

    code: str = "PERIOD_CLOSE_NOT_ALLOWED"

    def __init__(self, year_name: str, reason: str):
        self.year_name = year_name
        self.reason = reason
        super().__init__(f"Financial year {year_name} cannot be closed: {reason}")


class PeriodImmutableError(PeriodError):
    """Closed financial years cannot be modified or reopened."""

    code: str = "PERIOD_IMMUTABLE"

    def __init__(self, year_name: str, operation: str):
        self.year_name = year_name
        self.operation = operation
        super().__init__(
            f"Cannot {operation} financial year {year_name}: closing is terminal"
        )


# =============================================================================
# Currency
# =============================================================================


class CurrencyError(LedgerKernelError):
    """Base for currency and exchange rate errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Currency code is not a 3-letter code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid currency code: {currency!r}")


class NoExchangeRateError(CurrencyError):
    """No active rate to the base currency on or before the date."""

    code: str = "NO_EXCHANGE_RATE"

    def __init__(self, currency: str, base_currency: str, as_of: date | str):
        self.currency = currency
        self.base_currency = base_currency
        self.as_of = str(as_of)
        super().__init__(
            f"No exchange rate from {currency} to {base_currency} "
            f"effective on or before {as_of}"
        )


class InvalidExchangeRateError(CurrencyError):
    """Exchange rate value is outside the accepted range."""

    code: str = "INVALID_EXCHANGE_RATE"

    def __init__(self, rate: Decimal | str, reason: str):
        self.rate = str(rate)
        self.reason = reason
        super().__init__(f"Invalid exchange rate {rate}: {reason}")


class DuplicateExchangeRateError(CurrencyError):
    """A rate for the currency pair already exists on that date."""

    code: str = "DUPLICATE_EXCHANGE_RATE"

    def __init__(self, from_currency: str, to_currency: str, effective_date: date):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.effective_date = str(effective_date)
        super().__init__(
            f"Exchange rate {from_currency}->{to_currency} already exists "
            f"for {effective_date}"
        )


# =============================================================================
# Posting
# =============================================================================


class PostingError(LedgerKernelError):
    """Base for posting errors."""

    code: str = "POSTING_ERROR"


class InvalidPostingError(PostingError):
    """Posting request is malformed (caller bug)."""

    code: str = "INVALID_POSTING"

    def __init__(self, reason: str, line_index: int | None = None):
        self.reason = reason
        self.line_index = line_index
        where = f" (line {line_index})" if line_index is not None else ""
        super().__init__(f"Invalid posting request{where}: {reason}")


class UnbalancedPostingError(PostingError):
    """
    Debit and credit equivalents differ.

    This is an internal invariant failure: correctly built lines never reach
    it. ``str()`` exposes only the incident id; totals are kept
    as attributes and in the ERROR log record for support staff.
    """

    code: str = "UNBALANCED_POSTING"

    def __init__(
        self,
        reference_number: str,
        debits: Decimal,
        credits: Decimal,
        base_currency: str,
        incident_id: str,
    ):
        self.reference_number = reference_number
        self.debits = str(debits)
        self.credits = str(credits)
        self.difference = str(debits - credits)
        self.base_currency = base_currency
        self.incident_id = incident_id
        super().__init__(
            f"Posting could not be completed. Support reference: {incident_id}"
        )


class IdempotencyConflictError(PostingError):
    """The idempotency key was already used with different lines."""

    code: str = "IDEMPOTENCY_CONFLICT"

    def __init__(self, reference_number: str, transaction_type: str):
        self.reference_number = reference_number
        self.transaction_type = transaction_type
        super().__init__(
            f"{transaction_type} {reference_number} was already posted "
            f"with different lines"
        )


# =============================================================================
# Reversal
# =============================================================================


class ReversalError(LedgerKernelError):
    """Base for reversal errors."""

    code: str = "REVERSAL_ERROR"


class NothingToReverseError(ReversalError):
    """No ledger entries exist for the reference number."""

    code: str = "NOTHING_TO_REVERSE"

    def __init__(self, reference_number: str):
        self.reference_number = reference_number
        super().__init__(f"No ledger entries found for reference {reference_number}")


class AlreadyReversedError(ReversalError):
    """A reversal for this posting group already exists."""

    code: str = "ALREADY_REVERSED"

    def __init__(self, reference_number: str, reversal_reference: str):
        self.reference_number = reference_number
        self.reversal_reference = reversal_reference
        super().__init__(
            f"Reference {reference_number} is already reversed by "
            f"{reversal_reference}"
        )


class AmbiguousReversalError(ReversalError):
    """Several transaction types share the reference; one must be chosen."""

    code: str = "AMBIGUOUS_REVERSAL"

    def __init__(self, reference_number: str, transaction_types: list[str]):
        self.reference_number = reference_number
        self.transaction_types = sorted(transaction_types)
        super().__init__(
            f"Reference {reference_number} has several posting groups "
            f"({', '.join(self.transaction_types)}); specify transaction_type"
        )


class ReversalOfReversalError(ReversalError):
    """Reversal groups are final; repost instead of reversing them."""

    code: str = "REVERSAL_OF_REVERSAL"

    def __init__(self, reference_number: str):
        self.reference_number = reference_number
        super().__init__(f"Reference {reference_number} is itself a reversal")


# =============================================================================
# Corrections
# =============================================================================


class CorrectionError(LedgerKernelError):
    """Base for the account repair path."""

    code: str = "CORRECTION_ERROR"


class CorrectionNotAllowedError(CorrectionError):
    """The account correction preconditions are not met."""

    code: str = "CORRECTION_NOT_ALLOWED"

    def __init__(self, entry_id: UUID | str, reason: str):
        self.entry_id = str(entry_id)
        self.reason = reason
        super().__init__(f"Cannot correct ledger entry {entry_id}: {reason}")


# =============================================================================
# Security / concurrency / integrity
# =============================================================================


class TenantMismatchError(LedgerKernelError):
    """
    Requested tenant differs from the authenticated tenant.

    The message never echoes the requested id.
    """

    code: str = "TENANT_MISMATCH"

    def __init__(self, context_tenant_id: UUID, requested_tenant_id: UUID | str):
        self.context_tenant_id = str(context_tenant_id)
        self.requested_tenant_id = str(requested_tenant_id)
        super().__init__("Request is not scoped to the authenticated tenant")


class ConcurrencyError(LedgerKernelError):
    """Base for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class PostingTimeoutError(ConcurrencyError):
    """
    The posting transaction exceeded its timeout and was rolled back.

    Nothing was written; the same post call may be retried.
    """

    code: str = "POSTING_TIMEOUT"

    def __init__(self, timeout_seconds: float, elapsed_seconds: float | None = None):
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds
        super().__init__(
            f"Posting transaction exceeded {timeout_seconds}s and was rolled back"
        )


class ImmutabilityViolationError(LedgerKernelError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


class SchemaVersionMismatchError(LedgerKernelError):
    """Connected database schema differs from the schema this code expects."""

    code: str = "SCHEMA_VERSION_MISMATCH"

    def __init__(
        self,
        expected_version: int,
        found_version: int | None,
        expected_checksum: str,
        found_checksum: str | None,
    ):
        self.expected_version = expected_version
        self.found_version = found_version
        self.expected_checksum = expected_checksum
        self.found_checksum = found_checksum
        super().__init__(
            f"Database schema version {found_version} (checksum "
            f"{(found_checksum or '-')[:12]}) does not match expected version "
            f"{expected_version} (checksum {expected_checksum[:12]})"
        )
