"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_directory import AccountDirectory
from ledger_kernel.services.currency_resolver import CurrencyResolver
from ledger_kernel.services.entry_correction import EntryCorrectionService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.posting_engine import PostingEngine
from ledger_kernel.services.reversal_service import ReversalService
from ledger_kernel.services.tenant_service import TenantService

__all__ = [
    "AccountDirectory",
    "CurrencyResolver",
    "EntryCorrectionService",
    "PeriodService",
    "PostingEngine",
    "ReversalService",
    "TenantService",
]
