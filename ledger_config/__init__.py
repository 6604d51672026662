"""
ledger_config -- runtime settings and process bootstrap for the ledger kernel.

Sits above ``ledger_kernel``; the kernel MUST NEVER import from
``ledger_config``.  Values flow down as constructor and function arguments.
"""

from ledger_config.bootstrap import LedgerServices, bootstrap, build_services
from ledger_config.settings import LedgerSettings, get_settings, load_settings

__all__ = [
    "LedgerServices",
    "LedgerSettings",
    "bootstrap",
    "build_services",
    "get_settings",
    "load_settings",
]
