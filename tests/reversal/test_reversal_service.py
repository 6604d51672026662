"""
Reversal of posted groups.

Verifies:
- Mirrored lines with the original rates and equivalents locked
- Reference and transaction type naming of the reversal group
- Already-reversed, reversal-of-reversal and ambiguous references are refused
- Closed-year originals can be reversed into an open year
- Reversal lines may hit accounts deactivated since the original posting
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.domain.dtos import PostingStatus, Side
from ledger_kernel.exceptions import (
    AlreadyReversedError,
    AmbiguousReversalError,
    NothingToReverseError,
    PeriodClosedError,
    ReversalOfReversalError,
    TenantMismatchError,
)
from tests.helpers import find_logs, simple_lines


@pytest.fixture
def posted_invoice(ledger, context, posting_ready):
    return ledger.posting.post(
        context, context.tenant_id, "INV-20250310-0001", "SALES_INVOICE",
        simple_lines(posting_ready["receivable"], posting_ready["revenue"], amount="250.00"),
    )


class TestReverse:

    def test_reversal_mirrors_original(self, ledger, context, posted_invoice, captured_logs):
        result = ledger.reversals.reverse(context, context.tenant_id, "INV-20250310-0001")

        assert result.original_group_id == posted_invoice.posting_group_id
        assert result.reversal_reference_number == "INV-20250310-0001-REV"
        assert result.reversal.status == PostingStatus.POSTED
        assert result.reversal.transaction_type == "SALES_INVOICE_REVERSAL"

        original = ledger.ledger.posting_group(context.tenant_id, posted_invoice.posting_group_id)
        mirror = ledger.ledger.posting_group(context.tenant_id, result.reversal_group_id)
        assert len(mirror) == len(original)
        for o, m in zip(original, mirror):
            assert m.account_id == o.account_id
            assert m.side == o.side.opposite
            assert m.amount == o.amount
            assert m.equivalent_amount == o.equivalent_amount
            assert m.transaction_date == o.transaction_date
            assert m.reversal_of_group_id == posted_invoice.posting_group_id
            assert m.description == "Reversal of INV-20250310-0001"
            assert m.transaction_type_name == "Sales Invoice Reversal"

        assert len(find_logs(captured_logs(), "posting_reversed")) == 1

    def test_reversal_nets_accounts_to_zero(self, ledger, context, posting_ready, posted_invoice):
        ledger.reversals.reverse(context, context.tenant_id, "INV-20250310-0001")
        for role in ("receivable", "revenue"):
            balance = ledger.ledger.account_balance(context.tenant_id, posting_ready[role].id)
            assert balance.net_balance == Decimal("0")
            assert balance.line_count == 2

    def test_foreign_currency_reversal_uses_original_rate(self, ledger, context, posting_ready):
        acc = posting_ready
        original = ledger.posting.post(
            context, context.tenant_id, "INV-EUR-9", "SALES_INVOICE",
            simple_lines(acc["receivable"], acc["revenue"], amount="100", currency="EUR"),
        )
        # A later rate applies to the reversal date but must not be used
        result = ledger.reversals.reverse(
            context, context.tenant_id, "INV-EUR-9", reversal_date=date(2025, 8, 1)
        )
        assert result.reversal.total_debits == original.total_debits == Decimal("105.0000")
        mirror = ledger.ledger.posting_group(context.tenant_id, result.reversal_group_id)
        assert all(e.exchange_rate == Decimal("1.05") for e in mirror)
        assert all(e.transaction_date == date(2025, 8, 1) for e in mirror)

    def test_reversal_survives_deactivated_rate(self, ledger, context, posting_ready, eur_rates):
        acc = posting_ready
        ledger.posting.post(
            context, context.tenant_id, "INV-EUR-10", "SALES_INVOICE",
            simple_lines(acc["receivable"], acc["revenue"], amount="100", currency="EUR"),
        )
        for rate in eur_rates:
            ledger.currencies.deactivate_rate(context, rate.id)
        result = ledger.reversals.reverse(context, context.tenant_id, "INV-EUR-10")
        assert result.reversal.total_credits == Decimal("105.0000")

    def test_reversal_to_inactive_account(self, ledger, context, posting_ready, posted_invoice):
        ledger.accounts.set_account_active(context, posting_ready["revenue"].id, False)
        result = ledger.reversals.reverse(context, context.tenant_id, "INV-20250310-0001")
        assert result.reversal.is_new

    def test_custom_suffixes(self, session, context, posted_invoice, deterministic_clock):
        from ledger_kernel.services.reversal_service import ReversalService

        service = ReversalService(
            session, clock=deterministic_clock, reference_suffix="/R", type_suffix="_REV"
        )
        result = service.reverse(context, context.tenant_id, "INV-20250310-0001")
        assert result.reversal_reference_number == "INV-20250310-0001/R"
        assert result.reversal.transaction_type == "SALES_INVOICE_REV"

    def test_max_length_reference_can_be_reversed(self, ledger, context, posting_ready):
        reference = "R" * 100
        ledger.posting.post(
            context, context.tenant_id, reference, "SALES_INVOICE",
            simple_lines(posting_ready["receivable"], posting_ready["revenue"]),
        )
        result = ledger.reversals.reverse(context, context.tenant_id, reference)
        assert result.reversal_reference_number == reference + "-REV"
        assert result.reversal.status == PostingStatus.POSTED
        assert len(ledger.ledger.entries_by_reference(context.tenant_id, reference + "-REV")) == 2

    @pytest.mark.parametrize("suffixes", [
        {"reference_suffix": ""},
        {"reference_suffix": "-" + "R" * 20},
        {"type_suffix": "_" + "X" * 20},
    ])
    def test_suffix_must_fit_ledger_columns(self, session, suffixes):
        from ledger_kernel.services.reversal_service import ReversalService

        with pytest.raises(ValueError):
            ReversalService(session, **suffixes)


class TestReversalRefusals:

    def test_unknown_reference(self, ledger, context, posting_ready):
        with pytest.raises(NothingToReverseError):
            ledger.reversals.reverse(context, context.tenant_id, "INV-MISSING")

    def test_other_tenants_reference_not_found(self, ledger, other_context, posted_invoice):
        with pytest.raises(NothingToReverseError):
            ledger.reversals.reverse(other_context, other_context.tenant_id, "INV-20250310-0001")

    def test_tenant_mismatch(self, ledger, context, other_tenant, posted_invoice):
        with pytest.raises(TenantMismatchError):
            ledger.reversals.reverse(context, other_tenant.id, "INV-20250310-0001")

    def test_reverse_twice(self, ledger, context, posted_invoice):
        ledger.reversals.reverse(context, context.tenant_id, "INV-20250310-0001")
        with pytest.raises(AlreadyReversedError) as exc_info:
            ledger.reversals.reverse(context, context.tenant_id, "INV-20250310-0001")
        assert exc_info.value.reversal_reference == "INV-20250310-0001-REV"

    def test_derived_reference_already_posted(self, ledger, context, posting_ready, posted_invoice):
        ledger.posting.post(
            context, context.tenant_id, "INV-20250310-0001-REV", "SALES_INVOICE_REVERSAL",
            simple_lines(posting_ready["cash"], posting_ready["revenue"], amount="10.00"),
        )
        with pytest.raises(AlreadyReversedError) as exc_info:
            ledger.reversals.reverse(context, context.tenant_id, "INV-20250310-0001")
        assert exc_info.value.reversal_reference == "INV-20250310-0001-REV"

    def test_derived_reference_under_other_type_does_not_block(
        self, ledger, context, posting_ready, posted_invoice
    ):
        ledger.posting.post(
            context, context.tenant_id, "INV-20250310-0001-REV", "MANUAL_JOURNAL",
            simple_lines(posting_ready["cash"], posting_ready["revenue"], amount="10.00"),
        )
        result = ledger.reversals.reverse(context, context.tenant_id, "INV-20250310-0001")
        assert result.reversal.status == PostingStatus.POSTED

    def test_reversal_cannot_be_reversed(self, ledger, context, posted_invoice):
        ledger.reversals.reverse(context, context.tenant_id, "INV-20250310-0001")
        with pytest.raises(ReversalOfReversalError):
            ledger.reversals.reverse(context, context.tenant_id, "INV-20250310-0001-REV")

    def test_shared_reference_needs_type(self, ledger, context, posting_ready, posted_invoice):
        acc = posting_ready
        ledger.posting.post(
            context, context.tenant_id, "INV-20250310-0001", "INVOICE_PAYMENT",
            simple_lines(acc["cash"], acc["receivable"], amount="250.00"),
        )
        with pytest.raises(AmbiguousReversalError) as exc_info:
            ledger.reversals.reverse(context, context.tenant_id, "INV-20250310-0001")
        assert exc_info.value.transaction_types == ["INVOICE_PAYMENT", "SALES_INVOICE"]

        result = ledger.reversals.reverse(
            context, context.tenant_id, "INV-20250310-0001", transaction_type="invoice_payment"
        )
        assert result.reversal.transaction_type == "INVOICE_PAYMENT_REVERSAL"


class TestClosedYearReversal:

    @pytest.fixture
    def closed_posting(self, ledger, context, posting_ready, prior_year):
        posted = ledger.posting.post(
            context, context.tenant_id, "INV-20241120-0007", "SALES_INVOICE",
            simple_lines(posting_ready["receivable"], posting_ready["revenue"], on=date(2024, 11, 20)),
        )
        ledger.periods.close_year(context, prior_year.id)
        return posted

    def test_default_date_in_closed_year_refused(self, ledger, context, closed_posting):
        with pytest.raises(PeriodClosedError):
            ledger.reversals.reverse(context, context.tenant_id, "INV-20241120-0007")

    def test_reversal_dated_in_open_year(self, ledger, context, closed_posting):
        result = ledger.reversals.reverse(
            context, context.tenant_id, "INV-20241120-0007", reversal_date=date(2025, 1, 5)
        )
        mirror = ledger.ledger.posting_group(context.tenant_id, result.reversal_group_id)
        assert all(e.financial_year_name == "FY2025" for e in mirror)
        assert [e.side for e in mirror] == [Side.CREDIT, Side.DEBIT]
