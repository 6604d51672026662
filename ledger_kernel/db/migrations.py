"""
Module: ledger_kernel.db.migrations
Responsibility: Forward-only, versioned schema history and the startup
    assertion that the connected database matches the schema this code was
    built for.
Architecture position: Kernel > DB.  Imports models lazily to compute the
    metadata checksum.

Invariants enforced:
    - Migrations are applied in ascending version order, each exactly once,
      and each application is recorded in ledger_schema_version together
      with the checksum of the ORM metadata.
    - There is no downgrade path.  A database whose recorded version is
      newer than the newest migration known to the code is rejected.
    - assert_schema_current() fails fast when the recorded version or
      checksum differs from the code's, so a drifted deployment never
      starts posting.

Failure modes:
    - SchemaVersionMismatchError from assert_schema_current() or upgrade().
"""

import hashlib
import json
from collections.abc import Callable
from dataclasses import dataclass
from uuid import uuid4

from sqlalchemy import MetaData, UniqueConstraint, inspect, select
from sqlalchemy.engine import Connection, Engine

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import SchemaVersionMismatchError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.migrations")


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    apply: Callable[[Connection], None]


def _initial_schema(connection: Connection) -> None:
    from ledger_kernel.db.base import Base

    Base.metadata.create_all(connection)


MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, "initial ledger schema", _initial_schema),
)


def latest_version() -> int:
    return max(m.version for m in MIGRATIONS)


def compute_schema_checksum(metadata: MetaData | None = None) -> str:
    """
    SHA-256 over the table, column and constraint layout of the ORM metadata.

    Deterministic: tables, columns and constraints are sorted by name.
    """
    if metadata is None:
        from ledger_kernel import models  # noqa: F401
        from ledger_kernel.db.base import Base

        metadata = Base.metadata

    layout = {}
    for table in sorted(metadata.tables.values(), key=lambda t: t.name):
        layout[table.name] = {
            "columns": [
                [col.name, type(col.type).__name__, col.nullable, col.primary_key]
                for col in sorted(table.columns, key=lambda c: c.name)
            ],
            "unique": sorted(
                c.name or "" for c in table.constraints
                if isinstance(c, UniqueConstraint)
            ),
        }
    canonical = json.dumps(layout, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def current_version(connection: Connection) -> tuple[int | None, str | None]:
    """Highest recorded (version, checksum), or (None, None) on a bare database."""
    from ledger_kernel.models.schema_version import SchemaVersion

    if not inspect(connection).has_table(SchemaVersion.__tablename__):
        return None, None
    row = connection.execute(
        select(SchemaVersion.version, SchemaVersion.checksum)
        .order_by(SchemaVersion.version.desc())
        .limit(1)
    ).first()
    if row is None:
        return None, None
    return row.version, row.checksum


def upgrade(engine: Engine, clock: Clock | None = None) -> int:
    """
    Apply pending migrations.  Returns the resulting schema version.

    ``clock`` stamps applied_at on each recorded version; defaults to
    SystemClock.

    Raises:
        SchemaVersionMismatchError: the database is ahead of this code.
    """
    from ledger_kernel.models.schema_version import SchemaVersion

    clock = clock or SystemClock()
    checksum = compute_schema_checksum()
    with engine.begin() as connection:
        found, found_checksum = current_version(connection)
        if found is not None and found > latest_version():
            raise SchemaVersionMismatchError(
                latest_version(), found, checksum, found_checksum
            )
        for migration in sorted(MIGRATIONS, key=lambda m: m.version):
            if found is not None and migration.version <= found:
                continue
            migration.apply(connection)
            connection.execute(
                SchemaVersion.__table__.insert().values(
                    id=uuid4(),
                    version=migration.version,
                    description=migration.description,
                    checksum=checksum,
                    applied_at=clock.now(),
                )
            )
            logger.info(
                "schema_migration_applied",
                extra={"version": migration.version, "description": migration.description},
            )
    return latest_version()


def assert_schema_current(engine: Engine) -> None:
    """
    Fail fast unless the database is at the latest version with a matching
    checksum.

    Raises:
        SchemaVersionMismatchError
    """
    expected_checksum = compute_schema_checksum()
    with engine.connect() as connection:
        found, found_checksum = current_version(connection)
        missing = _missing_columns(connection)
    if (
        found != latest_version()
        or found_checksum != expected_checksum
        or missing
    ):
        logger.error(
            "schema_version_mismatch",
            extra={
                "expected_version": latest_version(),
                "found_version": found,
                "missing_columns": missing,
            },
        )
        raise SchemaVersionMismatchError(
            latest_version(), found, expected_checksum, found_checksum
        )
    logger.info("schema_version_verified", extra={"version": found})


def _missing_columns(connection: Connection) -> list[str]:
    """Tables/columns the ORM expects but the live database lacks."""
    from ledger_kernel.db.base import Base

    inspector = inspect(connection)
    missing: list[str] = []
    for table in sorted(Base.metadata.tables.values(), key=lambda t: t.name):
        if not inspector.has_table(table.name):
            missing.append(table.name)
            continue
        live = {col["name"] for col in inspector.get_columns(table.name)}
        missing.extend(
            f"{table.name}.{col.name}" for col in table.columns if col.name not in live
        )
    return missing
