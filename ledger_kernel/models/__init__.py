"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import Account, AccountNature, AccountType
from ledger_kernel.models.correction import LedgerEntryCorrection
from ledger_kernel.models.exchange_rate import ExchangeRate
from ledger_kernel.models.financial_year import FinancialYear
from ledger_kernel.models.ledger_entry import ACCOUNT_SNAPSHOT_FIELDS, EntrySide, LedgerEntry
from ledger_kernel.models.schema_version import SchemaVersion
from ledger_kernel.models.tenant import Tenant

__all__ = [
    "ACCOUNT_SNAPSHOT_FIELDS",
    "Account",
    "AccountNature",
    "AccountType",
    "EntrySide",
    "ExchangeRate",
    "FinancialYear",
    "LedgerEntry",
    "LedgerEntryCorrection",
    "SchemaVersion",
    "Tenant",
]
