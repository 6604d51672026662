"""
Module: ledger_kernel.models.financial_year
Responsibility: ORM persistence for tenant-scoped financial years, the
    periods that gate which transaction dates accept postings.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - name is unique per tenant.
    - Years of one tenant never overlap (PeriodService.create_year).
    - Open -> Closed is one-way.  A closed row is immutable
      (db/immutability.py); there is no reopen path.

Failure modes:
    - NoOpenPeriodError / PeriodClosedError raised by PeriodService when a
      posting date is not covered by an open year.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class FinancialYear(TrackedBase):
    """A financial year for one tenant, open or closed to new postings."""

    __tablename__ = "financial_years"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_financial_year_tenant_name"),
        Index("idx_financial_year_dates", "tenant_id", "start_date", "end_date"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Inclusive on both ends
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    is_current: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    is_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    closing_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        state = "closed" if self.is_closed else "open"
        return f"<FinancialYear {self.name} {self.start_date}..{self.end_date} ({state})>"

    @property
    def is_open(self) -> bool:
        return bool(self.is_active) and not self.is_closed
