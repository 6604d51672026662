"""
Forward-only schema migrations and the startup schema check.

Each test uses its own in-memory SQLite engine so the shared test schema is
never touched.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, func, select, text, update

from ledger_kernel.db.base import Base
from ledger_kernel.db.migrations import (
    MIGRATIONS,
    assert_schema_current,
    compute_schema_checksum,
    current_version,
    latest_version,
    upgrade,
)
from ledger_kernel.exceptions import SchemaVersionMismatchError
from ledger_kernel.models.schema_version import SchemaVersion
from tests.helpers import find_logs


@pytest.fixture
def bare_engine():
    eng = create_engine("sqlite://")
    yield eng
    eng.dispose()


def _version_rows(engine) -> int:
    with engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(SchemaVersion.__table__)).scalar_one()


class TestUpgrade:

    def test_fresh_database(self, bare_engine, captured_logs):
        assert upgrade(bare_engine) == latest_version()
        assert_schema_current(bare_engine)

        with bare_engine.connect() as conn:
            version, checksum = current_version(conn)
        assert version == latest_version()
        assert checksum == compute_schema_checksum()
        assert find_logs(captured_logs(), "schema_migration_applied")
        assert find_logs(captured_logs(), "schema_version_verified")

    def test_upgrade_is_idempotent(self, bare_engine):
        upgrade(bare_engine)
        upgrade(bare_engine)
        assert _version_rows(bare_engine) == len(MIGRATIONS)

    def test_applied_at_from_clock(self, bare_engine, deterministic_clock):
        upgrade(bare_engine, deterministic_clock)
        with bare_engine.connect() as conn:
            stamps = conn.execute(select(SchemaVersion.__table__.c.applied_at)).scalars().all()
        # SQLite drops the offset on read
        expected = deterministic_clock.now().replace(tzinfo=None)
        assert [s.replace(tzinfo=None) for s in stamps] == [expected] * len(MIGRATIONS)

    def test_database_ahead_of_code_rejected(self, bare_engine):
        upgrade(bare_engine)
        with bare_engine.begin() as conn:
            conn.execute(SchemaVersion.__table__.insert().values(
                id=uuid4(),
                version=99,
                description="from the future",
                checksum="0" * 64,
                applied_at=datetime.now(timezone.utc),
            ))
        with pytest.raises(SchemaVersionMismatchError) as exc_info:
            upgrade(bare_engine)
        assert exc_info.value.found_version == 99
        assert exc_info.value.expected_version == latest_version()


class TestAssertSchemaCurrent:

    def test_bare_database(self, bare_engine, captured_logs):
        with pytest.raises(SchemaVersionMismatchError) as exc_info:
            assert_schema_current(bare_engine)
        assert exc_info.value.found_version is None
        assert find_logs(captured_logs(), "schema_version_mismatch")

    def test_tables_without_version_record(self, bare_engine):
        Base.metadata.create_all(bare_engine)
        with pytest.raises(SchemaVersionMismatchError):
            assert_schema_current(bare_engine)

    def test_checksum_drift(self, bare_engine):
        upgrade(bare_engine)
        with bare_engine.begin() as conn:
            conn.execute(update(SchemaVersion.__table__).values(checksum="f" * 64))
        with pytest.raises(SchemaVersionMismatchError) as exc_info:
            assert_schema_current(bare_engine)
        assert exc_info.value.found_checksum == "f" * 64

    def test_missing_column(self, bare_engine):
        upgrade(bare_engine)
        with bare_engine.begin() as conn:
            conn.execute(text("ALTER TABLE general_ledger DROP COLUMN description"))
        with pytest.raises(SchemaVersionMismatchError):
            assert_schema_current(bare_engine)


class TestSchemaChecksum:

    def test_deterministic(self):
        assert compute_schema_checksum() == compute_schema_checksum()

    def test_changes_with_layout(self):
        from sqlalchemy import Column, Integer, MetaData, Table

        metadata = MetaData()
        Table("t", metadata, Column("id", Integer, primary_key=True))
        before = compute_schema_checksum(metadata)
        Table("u", metadata, Column("id", Integer, primary_key=True))
        assert compute_schema_checksum(metadata) != before
