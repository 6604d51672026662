"""Shared constants and builders for the ledger kernel tests."""

import os
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import text

from ledger_kernel.db.base import Base
from ledger_kernel.domain.dtos import PostingLine
from ledger_kernel.domain.tenant import TenantContext

TEST_ACTOR_ID = UUID("00000000-0000-4000-8000-000000000001")
TEST_ACTOR_NAME = "Test Accountant"

POSTING_DATE = date(2025, 3, 10)


def make_context(tenant_id, actor_id=TEST_ACTOR_ID, actor_name=TEST_ACTOR_NAME) -> TenantContext:
    return TenantContext.from_authenticated(
        tenant_id=tenant_id, actor_id=actor_id, actor_name=actor_name
    )


def simple_lines(debit_account, credit_account, amount="100.00", currency="USD", on=POSTING_DATE):
    return [
        PostingLine.debit(debit_account.id, Decimal(amount), currency, on),
        PostingLine.credit(credit_account.id, Decimal(amount), currency, on),
    ]


def find_logs(records: list[dict], message: str) -> list[dict]:
    return [r for r in records if r["message"] == message]


def is_postgres_url() -> bool:
    return os.environ.get("DATABASE_URL", "").startswith("postgresql")


def truncate_all_tables(engine) -> None:
    """Raw cleanup for tests that really commit (bypasses ORM listeners)."""
    names = [
        t.name for t in reversed(Base.metadata.sorted_tables)
        if t.name != "ledger_schema_version"
    ]
    with engine.begin() as conn:
        if engine.dialect.name == "postgresql":
            conn.execute(text("TRUNCATE " + ", ".join(names) + " CASCADE"))
        else:
            for name in names:
                conn.execute(text(f"DELETE FROM {name}"))
