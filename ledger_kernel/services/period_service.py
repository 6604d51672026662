"""
PeriodService -- financial year lifecycle and the posting date gate.

Responsibility:
    Decides whether a transaction date may receive postings for a tenant
    (``assert_open_for_date``) and manages the financial year lifecycle:
    create, mark current, close.  Closing is terminal.

Architecture position:
    Kernel > Services.  PostingEngine calls ``assert_open_for_date`` for
    every distinct transaction date inside the posting transaction;
    EntryCorrectionService calls it before the account repair.

Invariants enforced:
    - At most one financial year covers any date for a tenant (overlap is
      rejected at creation).
    - The gate reads the covering year with a shared row lock (FOR SHARE)
      inside the caller's transaction.  ``close_year`` takes FOR UPDATE on
      the same row, so a close waits for in-flight postings and a posting
      never commits into a year that closed after it was checked.
    - Open -> Closed only.  ``reopen_year`` always refuses a closed year.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - NoOpenPeriodError: no active year covers the date.
    - PeriodClosedError: the covering year is closed (carries id, name,
      closed_at, closing_notes for display).
    - PeriodOverlapError / ValueError on invalid year creation.
    - PeriodAlreadyClosedError / PeriodCloseNotAllowedError on close.
    - PeriodImmutableError on reopen or edits of a closed year.

Audit relevance:
    Creation and close are logged with tenant, year name and actor.  Gate
    rejections are logged at WARNING.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import FinancialYearInfo
from ledger_kernel.domain.tenant import TenantContext
from ledger_kernel.exceptions import (
    FinancialYearNotFoundError,
    NoOpenPeriodError,
    PeriodAlreadyClosedError,
    PeriodClosedError,
    PeriodCloseNotAllowedError,
    PeriodImmutableError,
    PeriodOverlapError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.financial_year import FinancialYear
from ledger_kernel.services.base import BaseService

logger = get_logger("services.period")


class PeriodService(BaseService[FinancialYear]):
    """
    Financial period gate and lifecycle.

    Contract:
        Accepts tenant ids / contexts and dates, returns frozen
        ``FinancialYearInfo`` DTOs.  Lifecycle methods flush within the
        caller's transaction.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    @staticmethod
    def _to_dto(year: FinancialYear) -> FinancialYearInfo:
        return FinancialYearInfo(
            id=year.id,
            tenant_id=year.tenant_id,
            name=year.name,
            start_date=year.start_date,
            end_date=year.end_date,
            is_current=year.is_current,
            is_active=year.is_active,
            is_closed=year.is_closed,
            closed_at=year.closed_at,
            closed_by_id=year.closed_by_id,
            closing_notes=year.closing_notes,
        )

    def _get_year(self, tenant_id: UUID, year_id: UUID, for_update: bool = False) -> FinancialYear:
        query = select(FinancialYear).where(
            FinancialYear.tenant_id == tenant_id,
            FinancialYear.id == year_id,
        )
        if for_update:
            query = query.with_for_update()
        year = self.session.execute(query).scalar_one_or_none()
        if year is None:
            raise FinancialYearNotFoundError(year_id)
        return year

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    def assert_open_for_date(self, tenant_id: UUID, transaction_date: date) -> FinancialYearInfo:
        """
        Assert that ``transaction_date`` falls in an open financial year.

        Must run inside the posting transaction: the covering row stays
        share-locked until that transaction ends.

        Returns:
            The covering year, for the ledger entry snapshot.

        Raises:
            NoOpenPeriodError: no year covers the date, or it is inactive.
            PeriodClosedError: the covering year is closed.
        """
        year = self.session.execute(
            select(FinancialYear)
            .where(
                FinancialYear.tenant_id == tenant_id,
                FinancialYear.start_date <= transaction_date,
                FinancialYear.end_date >= transaction_date,
            )
            .with_for_update(read=True)
        ).scalars().first()

        if year is None or not year.is_active:
            logger.warning(
                "posting_date_without_open_year",
                extra={"tenant_id": str(tenant_id), "transaction_date": str(transaction_date)},
            )
            raise NoOpenPeriodError(transaction_date)

        if year.is_closed:
            logger.warning(
                "posting_into_closed_year_rejected",
                extra={
                    "tenant_id": str(tenant_id),
                    "transaction_date": str(transaction_date),
                    "year_name": year.name,
                },
            )
            raise PeriodClosedError(
                transaction_date=transaction_date,
                year_id=year.id,
                year_name=year.name,
                closed_at=year.closed_at,
                closing_notes=year.closing_notes,
            )

        return self._to_dto(year)

    def get_year_for_date(self, tenant_id: UUID, check_date: date) -> FinancialYearInfo | None:
        year = self.session.execute(
            select(FinancialYear).where(
                FinancialYear.tenant_id == tenant_id,
                FinancialYear.start_date <= check_date,
                FinancialYear.end_date >= check_date,
            )
        ).scalars().first()
        return self._to_dto(year) if year else None

    def is_date_in_open_year(self, tenant_id: UUID, check_date: date) -> bool:
        year = self.get_year_for_date(tenant_id, check_date)
        return year is not None and year.is_open

    def list_open_years(self, tenant_id: UUID) -> list[FinancialYearInfo]:
        rows = self.session.execute(
            select(FinancialYear)
            .where(
                FinancialYear.tenant_id == tenant_id,
                FinancialYear.is_closed.is_(False),
                FinancialYear.is_active.is_(True),
            )
            .order_by(FinancialYear.start_date)
        ).scalars().all()
        return [self._to_dto(y) for y in rows]

    def get_year(self, tenant_id: UUID, year_id: UUID) -> FinancialYearInfo:
        return self._to_dto(self._get_year(tenant_id, year_id))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_year(
        self,
        context: TenantContext,
        name: str,
        start_date: date,
        end_date: date,
        is_current: bool = False,
    ) -> FinancialYearInfo:
        """
        Create an open financial year.

        Raises:
            ValueError: blank name or start_date after end_date.
            PeriodOverlapError: the range overlaps another year of the tenant,
                or the name is already used.
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("Financial year name is required")
        if start_date > end_date:
            raise ValueError(
                f"start_date ({start_date}) cannot be after end_date ({end_date})"
            )

        self._validate_no_overlap(context.tenant_id, name, start_date, end_date)

        if is_current:
            self._clear_current(context.tenant_id)

        year = FinancialYear(
            tenant_id=context.tenant_id,
            name=name,
            start_date=start_date,
            end_date=end_date,
            is_current=is_current,
            is_active=True,
            is_closed=False,
            created_by_id=context.actor_id,
        )
        self.session.add(year)
        self.session.flush()

        logger.info(
            "financial_year_created",
            extra={
                "tenant_id": str(context.tenant_id),
                "year_name": name,
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )
        return self._to_dto(year)

    def _validate_no_overlap(
        self,
        tenant_id: UUID,
        new_name: str,
        start_date: date,
        end_date: date,
    ) -> None:
        # Two ranges overlap iff start1 <= end2 AND start2 <= end1
        overlapping = self.session.execute(
            select(FinancialYear).where(
                FinancialYear.tenant_id == tenant_id,
                FinancialYear.start_date <= end_date,
                FinancialYear.end_date >= start_date,
            )
        ).scalars().first()

        if overlapping is not None:
            raise PeriodOverlapError(
                new_year_name=new_name,
                existing_year_name=overlapping.name,
                overlap_start=str(max(start_date, overlapping.start_date)),
                overlap_end=str(min(end_date, overlapping.end_date)),
            )

        duplicate = self.session.execute(
            select(FinancialYear.id).where(
                FinancialYear.tenant_id == tenant_id,
                FinancialYear.name == new_name,
            )
        ).first()
        if duplicate is not None:
            raise PeriodOverlapError(
                new_year_name=new_name,
                existing_year_name=new_name,
                overlap_start=str(start_date),
                overlap_end=str(end_date),
            )

    def _clear_current(self, tenant_id: UUID) -> None:
        self.session.execute(
            update(FinancialYear)
            .where(
                FinancialYear.tenant_id == tenant_id,
                FinancialYear.is_current.is_(True),
                FinancialYear.is_closed.is_(False),
            )
            .values(is_current=False)
            .execution_options(synchronize_session="fetch")
        )

    def set_current_year(self, context: TenantContext, year_id: UUID) -> FinancialYearInfo:
        """
        Mark one open year as current, clearing the flag on the others.

        Raises:
            PeriodImmutableError: the year is closed.
        """
        year = self._get_year(context.tenant_id, year_id, for_update=True)
        if year.is_closed:
            raise PeriodImmutableError(year.name, "make current")
        self._clear_current(context.tenant_id)
        year.is_current = True
        year.updated_by_id = context.actor_id
        self.session.flush()
        logger.info("financial_year_made_current", extra={"year_name": year.name})
        return self._to_dto(year)

    def set_year_active(
        self,
        context: TenantContext,
        year_id: UUID,
        is_active: bool,
    ) -> FinancialYearInfo:
        """Activate or deactivate an open year.  Inactive years accept no postings."""
        year = self._get_year(context.tenant_id, year_id, for_update=True)
        if year.is_closed:
            raise PeriodImmutableError(year.name, "change status of")
        year.is_active = is_active
        year.updated_by_id = context.actor_id
        self.session.flush()
        logger.info(
            "financial_year_status_changed",
            extra={"year_name": year.name, "is_active": is_active},
        )
        return self._to_dto(year)

    def close_year(
        self,
        context: TenantContext,
        year_id: UUID,
        notes: str | None = None,
        today: date | None = None,
    ) -> FinancialYearInfo:
        """
        Close a financial year.  Terminal.

        Uses SELECT ... FOR UPDATE, which waits for postings holding the
        year's shared lock to finish.

        Preconditions (else PeriodCloseNotAllowedError):
            - the year is active
            - the year is not the current year
            - the year has ended (today > end_date)

        Raises:
            FinancialYearNotFoundError: unknown id for the tenant.
            PeriodAlreadyClosedError: already closed.
            PeriodCloseNotAllowedError: a precondition is not met.
        """
        year = self._get_year(context.tenant_id, year_id, for_update=True)

        if year.is_closed:
            raise PeriodAlreadyClosedError(year.name)
        if not year.is_active:
            raise PeriodCloseNotAllowedError(year.name, "year is inactive")
        if year.is_current:
            raise PeriodCloseNotAllowedError(year.name, "year is the current financial year")
        today = today or self._clock.today()
        if today <= year.end_date:
            raise PeriodCloseNotAllowedError(year.name, f"year has not ended (ends {year.end_date})")

        year.is_closed = True
        year.closed_at = self._clock.now()
        year.closed_by_id = context.actor_id
        year.closing_notes = notes
        year.updated_by_id = context.actor_id
        self.session.flush()

        logger.info(
            "financial_year_closed",
            extra={
                "tenant_id": str(context.tenant_id),
                "year_name": year.name,
                "closed_by_id": str(context.actor_id),
            },
        )
        return self._to_dto(year)

    def reopen_year(self, context: TenantContext, year_id: UUID) -> FinancialYearInfo:
        """
        Closing is terminal: a closed year is never reopened.

        Corrections to a closed year are posted as reversals dated in an
        open year.

        Raises:
            PeriodImmutableError: always, for a closed year.
        """
        year = self._get_year(context.tenant_id, year_id)
        if year.is_closed:
            logger.warning("financial_year_reopen_refused", extra={"year_name": year.name})
            raise PeriodImmutableError(year.name, "reopen")
        return self._to_dto(year)
