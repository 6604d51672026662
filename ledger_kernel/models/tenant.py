"""
Module: ledger_kernel.models.tenant
Responsibility: ORM persistence for tenants (companies).  Every other ledger
    table carries a tenant_id that refers to a row here.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - base_currency is fixed at tenant setup; the currency resolver treats it
      as the target of every equivalent amount.
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class Tenant(TrackedBase):
    """A company whose ledger data is isolated from every other company."""

    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Base (system) currency; equivalent amounts are expressed in it
    base_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Tenant {self.name} ({self.base_currency})>"
