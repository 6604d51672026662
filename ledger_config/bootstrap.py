"""
Process bootstrap and service wiring (``ledger_config.bootstrap``).

``bootstrap()`` runs once at process start: logging, engine, schema check,
immutability listeners.  ``build_services()`` wires the kernel services for
one session, passing down the values from ``LedgerSettings``.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from ledger_config.settings import LedgerSettings
from ledger_kernel.db.engine import init_engine_from_url
from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.db.migrations import assert_schema_current, upgrade
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import configure_logging, get_logger
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_directory import AccountDirectory
from ledger_kernel.services.currency_resolver import CurrencyResolver
from ledger_kernel.services.entry_correction import EntryCorrectionService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.posting_engine import PostingEngine
from ledger_kernel.services.reversal_service import ReversalService

logger = get_logger("config.bootstrap")


def bootstrap(
    settings: LedgerSettings,
    create_schema: bool = False,
    clock: Clock | None = None,
) -> Engine:
    """
    Prepare the process for posting.

    With ``create_schema`` pending migrations are applied first; otherwise
    the database must already be at the code's schema version.

    Raises:
        SchemaVersionMismatchError: the database schema differs from the code's.
    """
    configure_logging(level=settings.log_level)
    engine = init_engine_from_url(
        settings.database_url,
        echo=settings.echo_sql,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        isolation_level=settings.isolation_level,
    )
    if create_schema:
        upgrade(engine, clock)
    assert_schema_current(engine)
    register_immutability_listeners()

    logger.info(
        "ledger_bootstrapped",
        extra={
            "dialect": engine.dialect.name,
            "posting_timeout_seconds": settings.posting_timeout_seconds,
            "balance_tolerance": str(settings.balance_tolerance),
        },
    )
    return engine


@dataclass(frozen=True)
class LedgerServices:
    """Kernel services bound to one session."""

    accounts: AccountDirectory
    periods: PeriodService
    currencies: CurrencyResolver
    posting: PostingEngine
    reversals: ReversalService
    corrections: EntryCorrectionService
    ledger: LedgerSelector


def build_services(
    session: Session,
    settings: LedgerSettings,
    clock: Clock | None = None,
) -> LedgerServices:
    clock = clock or SystemClock()
    accounts = AccountDirectory(session)
    periods = PeriodService(session, clock)
    currencies = CurrencyResolver(session)
    posting = PostingEngine(
        session,
        clock=clock,
        accounts=accounts,
        periods=periods,
        currencies=currencies,
        balance_tolerance=settings.balance_tolerance,
    )
    return LedgerServices(
        accounts=accounts,
        periods=periods,
        currencies=currencies,
        posting=posting,
        reversals=ReversalService(
            session,
            engine=posting,
            reference_suffix=settings.reversal_reference_suffix,
            type_suffix=settings.reversal_type_suffix,
        ),
        corrections=EntryCorrectionService(
            session, clock=clock, accounts=accounts, periods=periods
        ),
        ledger=LedgerSelector(session),
    )
