"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the chart of accounts, one chart per
    tenant.  Every ledger entry snapshots the account it was posted to.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code is unique per tenant (uq_account_tenant_code).
    - tenant_id, code, nature and account_type are frozen once a ledger
      entry references the account; only name, description and is_active
      may change afterwards (db/immutability.py).

Failure modes:
    - AccountNotFoundError when a posting references a missing or foreign
      account.
    - AccountInactiveError when a new posting targets an inactive account.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class AccountType(str, Enum):
    """Account category in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class AccountNature(str, Enum):
    """Side that increases the account balance."""

    DEBIT = "debit"
    CREDIT = "credit"


class Account(TrackedBase):
    """A chart-of-accounts entry owned by a single tenant."""

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_account_tenant_code"),
        Index("idx_account_tenant_active", "tenant_id", "is_active"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    nature: Mapped[AccountNature] = mapped_column(String(10), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"
