"""Selectors for the ledger kernel (read side)."""

from ledger_kernel.selectors.ledger_selector import (
    AccountBalance,
    AccountStatement,
    CorrectionRecord,
    LedgerSelector,
    StatementLine,
    TrialBalanceRow,
    UnbalancedGroup,
)

__all__ = [
    "AccountBalance",
    "AccountStatement",
    "CorrectionRecord",
    "LedgerSelector",
    "StatementLine",
    "TrialBalanceRow",
    "UnbalancedGroup",
]
