"""
Pytest fixtures for the ledger kernel test suite.

Provides:
- A session-scoped engine with the schema migrated once per run
- Per-test sessions isolated by an outer transaction that is rolled back
- Tenant, account, financial year and exchange rate fixtures
- Structured log capture

Environment Variables:
- DATABASE_URL: SQLAlchemy URL.  Defaults to in-memory SQLite; set a
  postgresql+psycopg2:// URL to run against PostgreSQL (required by the
  tests marked ``postgres``).
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from ledger_config import LedgerSettings, build_services
from ledger_kernel.db.base import Base
from ledger_kernel.db.engine import init_engine_from_url, reset_engine
from ledger_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.db.migrations import upgrade
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.tenant import TenantContext
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.services.tenant_service import TenantService
from tests.helpers import TEST_ACTOR_ID, make_context

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///:memory:"


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.posting.post(...)
            logs = captured_logs()
            assert any(r["message"] == "posting_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Session-scoped DB infrastructure
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """One engine and one migrated schema for the whole run."""
    eng = init_engine_from_url(get_database_url(), echo=False, pool_size=10, max_overflow=10)
    Base.metadata.drop_all(eng)
    upgrade(eng)
    register_immutability_listeners()
    yield eng
    unregister_immutability_listeners()
    Base.metadata.drop_all(eng)
    reset_engine()


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture
def connection(db_engine):
    """
    Dedicated connection holding an outer transaction.

    Sessions bound to it join through SAVEPOINTs, so a ``commit()`` inside a
    test only releases a savepoint and teardown rolls everything back.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    yield conn
    if trans.is_active:
        trans.rollback()
    conn.close()


@pytest.fixture
def session_factory(connection):
    """Factory for extra sessions sharing the test's outer transaction."""

    def _factory() -> Session:
        return Session(
            bind=connection,
            join_transaction_mode="create_savepoint",
            expire_on_commit=False,
        )

    return _factory


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    """Fixed at 2025-06-15 09:00 UTC."""
    return DeterministicClock()


# =============================================================================
# Tenant / master data fixtures
# =============================================================================


@pytest.fixture
def tenant(session):
    return TenantService(session).create_tenant("Acme Trading", "USD", TEST_ACTOR_ID)


@pytest.fixture
def context(tenant) -> TenantContext:
    return make_context(tenant.id)


@pytest.fixture
def ledger(session, deterministic_clock):
    """All kernel services wired with default settings."""
    return build_services(session, LedgerSettings(), clock=deterministic_clock)


@pytest.fixture
def accounts(ledger, context) -> dict:
    """A small chart of accounts keyed by role."""
    spec = {
        "cash": ("1000", "Cash at Bank", "debit", "asset"),
        "receivable": ("1100", "Accounts Receivable", "debit", "asset"),
        "inventory": ("1200", "Inventory", "debit", "asset"),
        "wht": ("1300", "Withholding Tax Receivable", "debit", "asset"),
        "tax": ("2100", "Output Tax Payable", "credit", "liability"),
        "revenue": ("4000", "Sales Revenue", "credit", "revenue"),
        "discount": ("4100", "Sales Discounts", "debit", "expense"),
        "cogs": ("5000", "Cost of Goods Sold", "debit", "expense"),
        "adjustment": ("5100", "Stock Adjustment", "debit", "expense"),
    }
    return {
        role: ledger.accounts.create_account(context, code, name, nature, account_type)
        for role, (code, name, nature, account_type) in spec.items()
    }


@pytest.fixture
def prior_year(ledger, context):
    return ledger.periods.create_year(context, "FY2024", date(2024, 1, 1), date(2024, 12, 31))


@pytest.fixture
def current_year(ledger, context, prior_year):
    return ledger.periods.create_year(
        context, "FY2025", date(2025, 1, 1), date(2025, 12, 31), is_current=True
    )


@pytest.fixture
def eur_rates(ledger, context):
    """EUR->USD 1.05 from 2024-01-01 and 1.10 from 2025-07-01."""
    return (
        ledger.currencies.record_rate(context, "EUR", "USD", Decimal("1.05"), date(2024, 1, 1)),
        ledger.currencies.record_rate(context, "EUR", "USD", Decimal("1.10"), date(2025, 7, 1)),
    )


@pytest.fixture
def posting_ready(accounts, current_year, eur_rates):
    """Chart of accounts, open FY2025 (FY2024 also open) and EUR rates."""
    return accounts


@pytest.fixture
def other_tenant(session):
    return TenantService(session).create_tenant("Globex", "EUR", TEST_ACTOR_ID)


@pytest.fixture
def other_context(other_tenant) -> TenantContext:
    return make_context(other_tenant.id)

