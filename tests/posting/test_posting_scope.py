"""
Time-bounded posting transaction scope.

Verifies:
- Work inside the timeout is committed
- Exceeding the timeout rolls back and raises PostingTimeoutError
- Any other exception rolls back and propagates unchanged
- A database lock/statement timeout surfaces as PostingTimeoutError
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from ledger_kernel.db.engine import posting_scope
from ledger_kernel.exceptions import InvalidPostingError, PostingTimeoutError
from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.services.posting_engine import PostingEngine
from tests.helpers import find_logs, simple_lines


def _fake_monotonic(*readings):
    values = iter(readings)
    return lambda: next(values)


def _posted(session_factory, reference_number) -> list:
    check = session_factory()
    try:
        return check.execute(
            select(LedgerEntry.id).where(LedgerEntry.reference_number == reference_number)
        ).scalars().all()
    finally:
        check.close()


class TestPostingScope:

    def test_commits_within_timeout(self, session_factory, context, posting_ready, deterministic_clock):
        with posting_scope(
            timeout_seconds=5.0,
            session_factory=session_factory,
            monotonic=_fake_monotonic(100.0, 100.2),
        ) as scoped:
            PostingEngine(scoped, clock=deterministic_clock).post(
                context, context.tenant_id, "INV-SCOPE-OK", "SALES_INVOICE",
                simple_lines(posting_ready["receivable"], posting_ready["revenue"]),
            )

        assert len(_posted(session_factory, "INV-SCOPE-OK")) == 2

    def test_timeout_exceeded_rolls_back(
        self, session_factory, context, posting_ready, deterministic_clock, captured_logs
    ):
        with pytest.raises(PostingTimeoutError) as exc_info:
            with posting_scope(
                timeout_seconds=5.0,
                session_factory=session_factory,
                monotonic=_fake_monotonic(100.0, 106.5),
            ) as scoped:
                PostingEngine(scoped, clock=deterministic_clock).post(
                    context, context.tenant_id, "INV-SCOPE-SLOW", "SALES_INVOICE",
                    simple_lines(posting_ready["receivable"], posting_ready["revenue"]),
                )

        assert exc_info.value.timeout_seconds == 5.0
        assert exc_info.value.elapsed_seconds == 6.5
        assert _posted(session_factory, "INV-SCOPE-SLOW") == []
        assert len(find_logs(captured_logs(), "posting_timeout")) == 1

    def test_exception_rolls_back_and_propagates(self, session_factory, context, posting_ready, deterministic_clock):
        with pytest.raises(InvalidPostingError):
            with posting_scope(
                session_factory=session_factory,
                monotonic=_fake_monotonic(0.0, 0.1),
            ) as scoped:
                engine = PostingEngine(scoped, clock=deterministic_clock)
                engine.post(
                    context, context.tenant_id, "INV-SCOPE-A", "SALES_INVOICE",
                    simple_lines(posting_ready["receivable"], posting_ready["revenue"]),
                )
                engine.post(context, context.tenant_id, "INV-SCOPE-B", "SALES_INVOICE", [])

        assert _posted(session_factory, "INV-SCOPE-A") == []

    def test_database_lock_timeout_translated(self, session_factory, captured_logs):
        with pytest.raises(PostingTimeoutError) as exc_info:
            with posting_scope(
                timeout_seconds=2.0,
                session_factory=session_factory,
                monotonic=_fake_monotonic(0.0, 2.5),
            ):
                raise OperationalError("UPDATE general_ledger", {}, Exception("database is locked"))

        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert exc_info.value.elapsed_seconds == 2.5

    def test_other_operational_error_propagates(self, session_factory):
        with pytest.raises(OperationalError):
            with posting_scope(
                session_factory=session_factory,
                monotonic=_fake_monotonic(0.0, 0.1),
            ):
                raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))
