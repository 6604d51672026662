"""
Module: ledger_kernel.models.exchange_rate
Responsibility: ORM persistence for tenant-scoped exchange rates used to
    compute base-currency equivalents.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One rate per (tenant, from_currency, to_currency, effective_date)
      (uq_exchange_rate_pair_date).
    - rate is stored as Numeric(15, 6); the accepted range
      [0.000001, 999999.999999] is validated by CurrencyResolver.record_rate.

Audit relevance:
    Ledger entries copy the rate value they were posted with, so later
    deactivation of a rate never changes historical equivalents.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class ExchangeRate(TrackedBase):
    """Rate converting one unit of from_currency into to_currency."""

    __tablename__ = "exchange_rates"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "from_currency",
            "to_currency",
            "effective_date",
            name="uq_exchange_rate_pair_date",
        ),
        Index(
            "idx_exchange_rate_lookup",
            "tenant_id",
            "from_currency",
            "to_currency",
            "effective_date",
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    from_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    to_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    rate: Mapped[Decimal] = mapped_column(Numeric(15, 6), nullable=False)

    effective_date: Mapped[date] = mapped_column(Date, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Free-form provenance, e.g. "central-bank" or "manual"
    source: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ExchangeRate {self.from_currency}->{self.to_currency} "
            f"{self.rate} @ {self.effective_date}>"
        )
