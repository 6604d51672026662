"""
Ledger Kernel - multi-tenant general ledger posting engine

A double-entry posting kernel with:
- Balanced, all-or-nothing posting groups
- Idempotent posting keyed on (tenant, reference number, transaction type)
- Financial year gating (closing is terminal)
- Multi-currency equivalents in the tenant's base currency
- Mirrored reversals and one narrow, audited account repair path
"""

__version__ = "0.1.0"
