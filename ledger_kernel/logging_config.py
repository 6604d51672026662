"""
Structured JSON logging for the ledger kernel.

Every kernel module logs through ``get_logger(<area>)`` into the
``ledger_kernel`` hierarchy.  Messages are snake_case event names
(``posting_completed``, ``period_closed``) and the payload travels in
``extra``.  Call-scoped identifiers (tenant, actor, reference number,
posting group) live in ``LogContext`` and are stamped on every line.

Kernel exceptions carry structured attributes; when a record is logged with
``exc_info`` those attributes are emitted as ``exc_<name>`` fields next to
``exc_code``.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

LOGGER_NAMESPACE = "ledger_kernel"


# ---------------------------------------------------------------------------
# Call-scoped fields
# ---------------------------------------------------------------------------


class LogContext:
    """Per-thread / per-task identifiers stamped on every log line."""

    FIELDS = (
        "correlation_id",
        "tenant_id",
        "actor_id",
        "reference_number",
        "posting_group_id",
    )

    _slots: dict[str, ContextVar[str | None]] = {
        field: ContextVar(f"ledger_kernel_{field}", default=None) for field in FIELDS
    }

    @classmethod
    def _slot(cls, field: str) -> ContextVar[str | None]:
        try:
            return cls._slots[field]
        except KeyError:
            raise KeyError(f"Unknown log context field: {field}") from None

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Assign fields; None leaves the current value in place."""
        for field, value in fields.items():
            slot = cls._slot(field)
            if value is not None:
                slot.set(str(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            field: cls._slots[field].get()
            for field in cls.FIELDS
            if cls._slots[field].get() is not None
        }

    @classmethod
    def clear(cls) -> None:
        for slot in cls._slots.values():
            slot.set(None)

    @classmethod
    def bind(cls, **fields: Any) -> "_BoundContext":
        """
        Scope fields to a ``with`` block.

        Usage::

            with LogContext.bind(reference_number=ref, tenant_id=tenant_id):
                engine.post(...)
        """
        for field in fields:
            cls._slot(field)
        return _BoundContext(fields)


class _BoundContext:
    def __init__(self, fields: dict[str, Any]):
        self._fields = fields
        self._restore: list[tuple[ContextVar, Any]] = []

    def __enter__(self) -> type[LogContext]:
        for field, value in self._fields.items():
            if value is None:
                continue
            slot = LogContext._slots[field]
            self._restore.append((slot, slot.set(str(value))))
        return LogContext

    def __exit__(self, *exc_info: Any) -> None:
        while self._restore:
            slot, token = self._restore.pop()
            slot.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("_", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, message, context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        line.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in line
        )
        if record.exc_info and record.exc_info[1] is not None:
            line.update(self._exception_fields(record.exc_info))
        return json.dumps(line, default=_json_default)

    def _exception_fields(self, exc_info) -> dict[str, Any]:
        error = exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(error).__name__,
            "exc_message": str(error),
        }
        code = getattr(error, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # structured attributes of LedgerKernelError subclasses
        fields.update(
            (f"exc_{name}", value)
            for name, value in error.__dict__.items()
            if not name.startswith("_") and name != "code"
        )
        fields["traceback"] = self.formatException(exc_info)
        return fields


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger named ``ledger_kernel.<name>``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_setup_lock = threading.Lock()
_is_configured = False


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``ledger_kernel`` logger.

    Only the first call has an effect; later calls return immediately so
    library code and the host application can both call it safely.  The
    namespace does not propagate to the root logger.
    """
    global _is_configured
    with _setup_lock:
        if _is_configured:
            return
        _is_configured = True

    namespace = logging.getLogger(LOGGER_NAMESPACE)
    namespace.setLevel(level)
    namespace.propagate = False
    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    namespace.addHandler(handler)


def reset_logging() -> None:
    """Undo configure_logging(). Tests only."""
    global _is_configured
    with _setup_lock:
        _is_configured = False
    namespace = logging.getLogger(LOGGER_NAMESPACE)
    namespace.handlers.clear()
    namespace.setLevel(logging.WARNING)
