"""
Ledger read queries.

Verifies:
- Trial balance totals balance and respect the date window
- Account balances in the account's natural direction
- Statements: opening balance, ordering, running balance
- Every query is tenant-scoped
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.domain.dtos import PostingLine
from tests.helpers import simple_lines


@pytest.fixture
def activity(ledger, context, posting_ready):
    """Three invoices, a payment and a FY2024 opening sale."""
    acc = posting_ready
    post = ledger.posting.post
    tid = context.tenant_id
    post(context, tid, "INV-2024-1", "SALES_INVOICE",
         simple_lines(acc["receivable"], acc["revenue"], amount="40", on=date(2024, 12, 15)))
    post(context, tid, "INV-0002", "SALES_INVOICE",
         simple_lines(acc["receivable"], acc["revenue"], amount="200", on=date(2025, 2, 1)))
    post(context, tid, "INV-0001", "SALES_INVOICE",
         simple_lines(acc["receivable"], acc["revenue"], amount="100", on=date(2025, 2, 1)))
    post(context, tid, "INV-0003", "SALES_INVOICE",
         simple_lines(acc["receivable"], acc["revenue"], amount="100", currency="EUR",
                      on=date(2025, 3, 1)))
    post(context, tid, "PAY-0001", "INVOICE_PAYMENT",
         simple_lines(acc["cash"], acc["receivable"], amount="150", on=date(2025, 3, 15)))
    return acc


class TestEntries:

    def test_entries_by_reference(self, ledger, context, activity):
        entries = ledger.ledger.entries_by_reference(context.tenant_id, "INV-0003")
        assert [e.line_seq for e in entries] == [1, 2]
        assert all(e.currency == "EUR" for e in entries)

    def test_entries_by_reference_and_type(self, ledger, context, activity):
        assert ledger.ledger.entries_by_reference(context.tenant_id, "INV-0003", "invoice_payment") == []

    def test_posting_group(self, ledger, context, activity):
        first = ledger.ledger.entries_by_reference(context.tenant_id, "PAY-0001")[0]
        group = ledger.ledger.posting_group(context.tenant_id, first.posting_group_id)
        assert [e.line_seq for e in group] == [1, 2]
        assert {e.reference_number for e in group} == {"PAY-0001"}

    def test_other_tenant_sees_nothing(self, ledger, other_context, activity):
        assert ledger.ledger.entries_by_reference(other_context.tenant_id, "INV-0001") == []
        first = ledger.ledger.entries_by_reference(activity["cash"].tenant_id, "PAY-0001")[0]
        assert ledger.ledger.posting_group(other_context.tenant_id, first.posting_group_id) == []
        assert ledger.ledger.trial_balance(other_context.tenant_id) == []


class TestTrialBalance:

    def test_full_trial_balance(self, ledger, context, activity):
        rows = ledger.ledger.trial_balance(context.tenant_id)
        assert [r.account_code for r in rows] == ["1000", "1100", "4000"]

        by_code = {r.account_code: r for r in rows}
        assert by_code["1100"].debit_total == Decimal("445.0000")
        assert by_code["1100"].credit_total == Decimal("150.0000")
        assert by_code["1100"].net_balance == Decimal("295.0000")
        assert by_code["4000"].net_balance == Decimal("445.0000")
        assert by_code["1000"].net_balance == Decimal("150.0000")

        assert sum(r.debit_total for r in rows) == sum(r.credit_total for r in rows)

    def test_date_window(self, ledger, context, activity):
        rows = ledger.ledger.trial_balance(
            context.tenant_id, date_from=date(2025, 1, 1), date_to=date(2025, 2, 28)
        )
        by_code = {r.account_code: r for r in rows}
        assert set(by_code) == {"1100", "4000"}
        assert by_code["4000"].credit_total == Decimal("300.0000")

    def test_empty_ledger(self, ledger, context, posting_ready):
        assert ledger.ledger.trial_balance(context.tenant_id) == []

    def test_renamed_account_reported_under_current_name(self, ledger, context, activity):
        ledger.accounts.rename_account(context, activity["receivable"].id, "Trade Debtors")

        rows = ledger.ledger.trial_balance(context.tenant_id)
        by_code = {r.account_code: r for r in rows}
        assert by_code["1100"].account_name == "Trade Debtors"
        assert by_code["1100"].net_balance == Decimal("295.0000")

        entries = ledger.ledger.entries_by_reference(context.tenant_id, "PAY-0001")
        assert "Trade Debtors" not in {e.account_name for e in entries}


class TestAccountBalance:

    def test_balance_as_of(self, ledger, context, activity):
        receivable = activity["receivable"].id
        assert ledger.ledger.account_balance(
            context.tenant_id, receivable, as_of=date(2024, 12, 31)
        ).net_balance == Decimal("40.0000")
        full = ledger.ledger.account_balance(context.tenant_id, receivable)
        assert full.net_balance == Decimal("295.0000")
        assert full.line_count == 5

    def test_credit_nature_is_positive(self, ledger, context, activity):
        revenue = ledger.ledger.account_balance(context.tenant_id, activity["revenue"].id)
        assert revenue.account_nature == "credit"
        assert revenue.net_balance == Decimal("445.0000")

    def test_unused_account(self, ledger, context, activity):
        balance = ledger.ledger.account_balance(context.tenant_id, activity["tax"].id)
        assert balance.net_balance == Decimal("0")
        assert balance.line_count == 0


class TestAccountStatement:

    def test_statement(self, ledger, context, activity):
        statement = ledger.ledger.account_statement(
            context.tenant_id, activity["receivable"].id, date(2025, 1, 1), date(2025, 12, 31)
        )
        assert statement.opening_balance == Decimal("40.0000")
        assert [l.entry.reference_number for l in statement.lines] == [
            "INV-0001", "INV-0002", "INV-0003", "PAY-0001",
        ]
        assert [l.running_balance for l in statement.lines] == [
            Decimal("140.0000"),
            Decimal("340.0000"),
            Decimal("445.0000"),
            Decimal("295.0000"),
        ]
        assert statement.closing_balance == Decimal("295.0000")

    def test_empty_window_keeps_opening(self, ledger, context, activity):
        statement = ledger.ledger.account_statement(
            context.tenant_id, activity["receivable"].id, date(2025, 11, 1), date(2025, 11, 30)
        )
        assert statement.lines == ()
        assert statement.closing_balance == statement.opening_balance == Decimal("295.0000")

    def test_inverted_window(self, ledger, context, activity):
        with pytest.raises(ValueError):
            ledger.ledger.account_statement(
                context.tenant_id, activity["receivable"].id, date(2025, 2, 1), date(2025, 1, 1)
            )


class TestDiagnostics:

    def test_no_unbalanced_groups_through_engine(self, ledger, context, activity):
        assert ledger.ledger.unbalanced_groups(context.tenant_id) == []

    def test_unbalanced_group_detected(self, ledger, session, context, posting_ready, deterministic_clock):
        from ledger_kernel.services.posting_engine import PostingEngine

        loose = PostingEngine(session, clock=deterministic_clock, balance_tolerance=Decimal("1"))
        lines = [
            PostingLine.debit(posting_ready["cash"].id, Decimal("10.50"), "USD", date(2025, 4, 1)),
            PostingLine.credit(posting_ready["revenue"].id, Decimal("10.00"), "USD", date(2025, 4, 1)),
        ]
        loose.post(context, context.tenant_id, "JV-LOOSE", "MANUAL_JOURNAL", lines)

        groups = ledger.ledger.unbalanced_groups(context.tenant_id)
        assert len(groups) == 1
        assert groups[0].reference_number == "JV-LOOSE"
        assert groups[0].debit_total - groups[0].credit_total == Decimal("0.5000")
