"""
ORM-Level Immutability Enforcement.

===============================================================================
WHAT THIS PROTECTS
===============================================================================

Posted ledger data is append-only.  Mistakes are fixed by posting a
reversal, never by editing rows.  This module registers SQLAlchemy mapper
listeners that run before UPDATE/DELETE statements are emitted:

    session.flush()
         |
         v
    [before_update] --> _check_*_update() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Entity                  | Rule
------------------------|------------------------------------------------------
LedgerEntry             | Never updated or deleted; sole exception below
LedgerEntryCorrection   | Never updated or deleted
FinancialYear           | Frozen once closed; closed years cannot be deleted
Account                 | tenant_id/code/nature/account_type frozen once any
                        | ledger entry references it; referenced accounts
                        | cannot be deleted

updated_at / updated_by_id are audit metadata and may always change.

===============================================================================
THE ACCOUNT CORRECTION GRANT
===============================================================================

The one permitted in-place edit of a ledger entry is rewriting its account
snapshot fields (ACCOUNT_SNAPSHOT_FIELDS) when a caller defect posted it to
the wrong account.  EntryCorrectionService opens an
``account_correction_grant(session, entry_id)`` around its flush.  The
listener accepts the update only when:

    - the entry id is in the session's grant set, and
    - every changed column is an account snapshot field (or audit metadata).

A grant never covers amounts, sides, dates, references or any other entry.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests may unregister temporarily to seed forbidden states.
"""

from collections.abc import Generator
from contextlib import contextmanager
from uuid import UUID

from sqlalchemy import event, func, inspect, select
from sqlalchemy.orm import Session, object_session

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

ACCOUNT_CORRECTION_GRANT = "ledger_account_correction_grant"

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

_ACCOUNT_STRUCTURAL_FIELDS = frozenset({"tenant_id", "code", "nature", "account_type"})


def _changed_fields(target) -> set[str]:
    state = inspect(target)
    return {
        attr.key
        for attr in state.attrs
        if attr.history.has_changes()
    } - _AUDIT_FIELDS


def _blocked(entity_type: str, target, reason: str, **extra) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={"entity_type": entity_type, "entity_id": str(target.id), "reason": reason, **extra},
    )
    return ImmutabilityViolationError(entity_type, str(target.id), reason)


@contextmanager
def account_correction_grant(session: Session, entry_id: UUID) -> Generator[None, None, None]:
    """Authorize an account-snapshot rewrite of one entry for the enclosed flush."""
    grants: set = session.info.setdefault(ACCOUNT_CORRECTION_GRANT, set())
    grants.add(entry_id)
    try:
        yield
    finally:
        grants.discard(entry_id)


# ---------------------------------------------------------------------------
# LedgerEntry
# ---------------------------------------------------------------------------


def _check_ledger_entry_update(mapper, connection, target):
    from ledger_kernel.models.ledger_entry import ACCOUNT_SNAPSHOT_FIELDS

    changed = _changed_fields(target)
    if not changed:
        return

    session = object_session(target)
    grants = session.info.get(ACCOUNT_CORRECTION_GRANT, set()) if session else set()
    if target.id in grants and changed <= ACCOUNT_SNAPSHOT_FIELDS:
        return

    raise _blocked(
        "LedgerEntry", target,
        "ledger entries are immutable; post a reversal instead",
        fields=sorted(changed),
    )


def _check_ledger_entry_delete(mapper, connection, target):
    raise _blocked("LedgerEntry", target, "ledger entries cannot be deleted")


def _check_correction_update(mapper, connection, target):
    if _changed_fields(target):
        raise _blocked("LedgerEntryCorrection", target, "correction records are immutable")


def _check_correction_delete(mapper, connection, target):
    raise _blocked("LedgerEntryCorrection", target, "correction records cannot be deleted")


# ---------------------------------------------------------------------------
# FinancialYear
# ---------------------------------------------------------------------------


def _was_closed(target) -> bool:
    history = inspect(target).attrs.is_closed.history
    if history.deleted:
        return bool(history.deleted[0])
    return bool(target.is_closed) and not history.added


def _check_financial_year_update(mapper, connection, target):
    if not _was_closed(target):
        return
    changed = _changed_fields(target)
    if changed:
        raise _blocked(
            "FinancialYear", target,
            "closed financial years are immutable",
            fields=sorted(changed),
        )


def _check_financial_year_delete(mapper, connection, target):
    if _was_closed(target):
        raise _blocked("FinancialYear", target, "closed financial years cannot be deleted")


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


def _is_referenced(connection, account_id) -> bool:
    from ledger_kernel.models.ledger_entry import LedgerEntry

    count = connection.execute(
        select(func.count())
        .select_from(LedgerEntry)
        .where(LedgerEntry.account_id == account_id)
    ).scalar_one()
    return count > 0


def _check_account_update(mapper, connection, target):
    structural = _changed_fields(target) & _ACCOUNT_STRUCTURAL_FIELDS
    if structural and _is_referenced(connection, target.id):
        raise _blocked(
            "Account", target,
            "structural fields of an account with ledger entries are immutable",
            fields=sorted(structural),
        )


def _check_account_delete(mapper, connection, target):
    if _is_referenced(connection, target.id):
        raise _blocked("Account", target, "accounts with ledger entries cannot be deleted")


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def _listeners():
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.correction import LedgerEntryCorrection
    from ledger_kernel.models.financial_year import FinancialYear
    from ledger_kernel.models.ledger_entry import LedgerEntry

    return (
        (LedgerEntry, "before_update", _check_ledger_entry_update),
        (LedgerEntry, "before_delete", _check_ledger_entry_delete),
        (LedgerEntryCorrection, "before_update", _check_correction_update),
        (LedgerEntryCorrection, "before_delete", _check_correction_delete),
        (FinancialYear, "before_update", _check_financial_year_update),
        (FinancialYear, "before_delete", _check_financial_year_delete),
        (Account, "before_update", _check_account_update),
        (Account, "before_delete", _check_account_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners (idempotent)."""
    for model, identifier, fn in _listeners():
        if not event.contains(model, identifier, fn):
            event.listen(model, identifier, fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """Remove all immutability listeners. FOR TESTING ONLY."""
    for model, identifier, fn in _listeners():
        if event.contains(model, identifier, fn):
            event.remove(model, identifier, fn)
    logger.debug("immutability_listeners_unregistered")
