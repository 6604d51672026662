"""
Chart of accounts lookups and setup.

Verifies:
- resolve_account is tenant-scoped and hides foreign ids behind not-found
- Codes are unique per tenant, not globally
- Rename and activation changes, including on accounts already posted to
"""

from uuid import uuid4

import pytest

from ledger_kernel.exceptions import AccountNotFoundError, DuplicateAccountCodeError
from tests.helpers import simple_lines


class TestResolveAccount:

    def test_resolves_snapshot(self, ledger, context, accounts):
        info = ledger.accounts.resolve_account(context.tenant_id, accounts["tax"].id)
        assert info.code == "2100"
        assert info.nature == "credit"
        assert info.account_type == "liability"
        assert info.is_active is True

    def test_missing_account(self, ledger, context, accounts):
        with pytest.raises(AccountNotFoundError):
            ledger.accounts.resolve_account(context.tenant_id, uuid4())

    def test_foreign_account_looks_missing(self, ledger, context, other_context, accounts):
        foreign = ledger.accounts.create_account(other_context, "9000", "Foreign", "debit", "asset")
        missing_id = uuid4()

        with pytest.raises(AccountNotFoundError) as foreign_err:
            ledger.accounts.resolve_account(context.tenant_id, foreign.id)
        with pytest.raises(AccountNotFoundError) as missing_err:
            ledger.accounts.resolve_account(context.tenant_id, missing_id)

        assert str(foreign_err.value).replace(str(foreign.id), "<id>") == \
            str(missing_err.value).replace(str(missing_id), "<id>")

    def test_find_by_code_and_list(self, ledger, context, accounts):
        assert ledger.accounts.find_by_code(context.tenant_id, "4000").id == accounts["revenue"].id
        assert ledger.accounts.find_by_code(context.tenant_id, "9999") is None
        codes = [a.code for a in ledger.accounts.list_accounts(context.tenant_id)]
        assert codes == sorted(codes)
        assert len(codes) == len(accounts)


class TestCreateAccount:

    def test_duplicate_code_in_tenant(self, ledger, context, accounts):
        with pytest.raises(DuplicateAccountCodeError) as exc_info:
            ledger.accounts.create_account(context, "1000", "Petty Cash", "debit", "asset")
        assert exc_info.value.account_code == "1000"

    def test_same_code_in_other_tenant(self, ledger, other_context, accounts):
        other = ledger.accounts.create_account(other_context, "1000", "Kasse", "debit", "asset")
        assert other.tenant_id == other_context.tenant_id

    @pytest.mark.parametrize("code,name,nature,account_type", [
        ("", "Cash", "debit", "asset"),
        ("1000", "  ", "debit", "asset"),
        ("1000", "Cash", "sideways", "asset"),
        ("1000", "Cash", "debit", "income"),
    ])
    def test_invalid_input(self, ledger, context, code, name, nature, account_type):
        with pytest.raises(ValueError):
            ledger.accounts.create_account(context, code, name, nature, account_type)

    def test_parent_must_belong_to_tenant(self, ledger, context, other_context, accounts):
        foreign = ledger.accounts.create_account(other_context, "1000", "Kasse", "debit", "asset")
        with pytest.raises(AccountNotFoundError):
            ledger.accounts.create_account(
                context, "1010", "Sub Cash", "debit", "asset", parent_id=foreign.id
            )

        child = ledger.accounts.create_account(
            context, "1010", "Sub Cash", "debit", "asset", parent_id=accounts["cash"].id
        )
        assert child.parent_id == accounts["cash"].id


class TestAccountUpdates:

    def test_rename_after_posting(self, ledger, context, posting_ready):
        acc = posting_ready
        ledger.posting.post(
            context, context.tenant_id, "INV-0001", "SALES_INVOICE",
            simple_lines(acc["receivable"], acc["revenue"]),
        )
        renamed = ledger.accounts.rename_account(
            context, acc["revenue"].id, "Product Revenue", description="Goods only"
        )
        assert renamed.name == "Product Revenue"
        assert renamed.description == "Goods only"

        # ledger rows keep the snapshot taken at posting time
        entries = ledger.ledger.entries_by_reference(context.tenant_id, "INV-0001")
        assert {e.account_name for e in entries} == {"Accounts Receivable", "Sales Revenue"}

    def test_rename_requires_name(self, ledger, context, accounts):
        with pytest.raises(ValueError):
            ledger.accounts.rename_account(context, accounts["cash"].id, " ")

    def test_deactivate_and_filter(self, ledger, context, accounts):
        ledger.accounts.set_account_active(context, accounts["adjustment"].id, False)
        active = {a.code for a in ledger.accounts.list_accounts(context.tenant_id, active_only=True)}
        assert "5100" not in active
        assert "5000" in active

    def test_update_in_other_tenant_refused(self, ledger, other_context, accounts):
        with pytest.raises(AccountNotFoundError):
            ledger.accounts.set_account_active(other_context, accounts["cash"].id, False)
