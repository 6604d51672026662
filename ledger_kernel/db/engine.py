"""
Module: ledger_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scopes.  Single point of database connection
    configuration for the kernel.
Architecture position: Kernel > DB.  May import from db/base.py.  Imports
    models only inside create_tables/drop_tables.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED by default (configurable), with
      explicit row locks (FOR SHARE on the financial year during posting,
      FOR UPDATE on close) closing the check-then-write window.
    - SQLite (local runs and tests) gets foreign keys switched on and
      driver-level BEGIN handling so SAVEPOINTs behave.
    - posting_scope() bounds every posting transaction in time; on overrun
      the transaction is rolled back and PostingTimeoutError is raised.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory is called
      before init_engine_from_url().
    - PostingTimeoutError from posting_scope() on timeout overrun or a
      driver-reported statement/lock timeout.
"""

import atexit
import time
from collections.abc import Callable
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from ledger_kernel.exceptions import PostingTimeoutError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

# query_canceled (statement_timeout) and lock_not_available (lock_timeout)
_PG_TIMEOUT_CODES = frozenset({"57014", "55P03"})


def _install_sqlite_hooks(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself so SAVEPOINT works under pysqlite
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    isolation_level: str = "READ COMMITTED",
) -> Engine:
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: SQLAlchemy URL (postgresql+psycopg2://... or sqlite+pysqlite://...).
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (server databases).
        max_overflow: Max connections beyond pool_size.
        pool_pre_ping: Test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
        isolation_level: Transaction isolation for server databases.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    dialect = url.get_backend_name()

    if dialect == "sqlite":
        in_memory = url.database in (None, "", ":memory:")
        _engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool if in_memory else None,
        )
        _install_sqlite_hooks(_engine)
    else:
        _engine = create_engine(
            url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level=isolation_level,
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": pool_size if dialect != "sqlite" else None,
            "isolation_level": isolation_level if dialect != "sqlite" else "SERIALIZABLE",
            "echo": echo,
        },
    )

    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory, e.g. for one session per worker thread.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Commits on normal exit; rolls back and re-raises on exception.

    Usage:
        with session_scope() as session:
            PeriodService(session).create_year(context, "FY2025", ...)
    """
    session = get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _is_timeout_error(exc: OperationalError) -> bool:
    orig = exc.orig
    if getattr(orig, "pgcode", None) in _PG_TIMEOUT_CODES:
        return True
    return "database is locked" in str(orig).lower()


def _apply_server_timeouts(session: Session, timeout_seconds: float) -> None:
    bind = session.get_bind()
    if bind.dialect.name != "postgresql":
        return
    millis = max(1, int(timeout_seconds * 1000))
    # SET LOCAL does not take bind parameters; millis is an int.
    session.execute(text(f"SET LOCAL statement_timeout = {millis}"))
    session.execute(text(f"SET LOCAL lock_timeout = {millis}"))


@contextmanager
def posting_scope(
    timeout_seconds: float = 5.0,
    session_factory: Callable[[], Session] | None = None,
    monotonic: Callable[[], float] = time.monotonic,
) -> Generator[Session, None, None]:
    """
    Time-bounded transactional scope for post/reverse/correct calls.

    Postconditions:
        - Normal exit within the timeout: committed.
        - Any exception: rolled back, no partial rows, exception re-raised.
        - Timeout exceeded (measured at exit) or the database cancelled a
          statement/lock wait: rolled back and PostingTimeoutError raised.
          The caller may retry the same post call; idempotency makes the
          retry safe.

    Usage:
        with posting_scope(timeout_seconds=settings.posting_timeout_seconds) as session:
            PostingEngine(session).post(context, tenant_id, ref, "SALES_INVOICE", lines)
    """
    factory = session_factory or get_session_factory()
    session = factory()
    started = monotonic()
    try:
        _apply_server_timeouts(session, timeout_seconds)
        yield session
        elapsed = monotonic() - started
        if elapsed > timeout_seconds:
            raise PostingTimeoutError(timeout_seconds, round(elapsed, 3))
        session.commit()
    except PostingTimeoutError as exc:
        session.rollback()
        logger.warning(
            "posting_timeout",
            extra={"timeout_seconds": timeout_seconds, "elapsed_seconds": exc.elapsed_seconds},
        )
        raise
    except OperationalError as exc:
        session.rollback()
        if _is_timeout_error(exc):
            elapsed = round(monotonic() - started, 3)
            logger.warning(
                "posting_timeout",
                extra={"timeout_seconds": timeout_seconds, "elapsed_seconds": elapsed},
            )
            raise PostingTimeoutError(timeout_seconds, elapsed) from exc
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """
    Create all ledger tables that do not exist yet.

    Prefer ledger_kernel.db.migrations.upgrade(), which also records the
    schema version.
    """
    from ledger_kernel import models  # noqa: F401  (registers all tables)
    from ledger_kernel.db.base import Base

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from ledger_kernel import models  # noqa: F401
    from ledger_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory (test cleanup)."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)


def is_postgres() -> bool:
    """Check if the current engine is PostgreSQL."""
    if _engine is None:
        return False
    return _engine.dialect.name == "postgresql"
