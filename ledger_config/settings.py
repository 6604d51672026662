"""
Ledger settings (``ledger_config.settings``).

Responsibility
--------------
Loads the runtime settings of the ledger kernel from a YAML file, applies
``LEDGER_*`` environment overrides and validates the result into a frozen
``LedgerSettings``.

Architecture position
---------------------
**Config layer** -- sits above ``ledger_kernel``.  The kernel never imports
this package; ``ledger_config.bootstrap`` passes plain values down.

File layout
-----------
::

    database:
      url: postgresql+psycopg2://ledger@localhost/ledger
      echo: false
      pool_size: 20
      max_overflow: 10
      isolation_level: READ COMMITTED
    posting:
      timeout_seconds: 5
      balance_tolerance: "0"
    reversal:
      reference_suffix: -REV
      type_suffix: _REVERSAL
    logging:
      level: INFO

Every key is optional.  Unknown sections or keys are rejected.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_kernel.models.ledger_entry import REVERSAL_SUFFIX_MAX_LENGTH

CONFIG_PATH_ENV = "LEDGER_CONFIG_PATH"
ENV_PREFIX = "LEDGER_"

_ISOLATION_LEVELS = frozenset({
    "READ COMMITTED",
    "REPEATABLE READ",
    "SERIALIZABLE",
    "AUTOCOMMIT",
})

# (section, key) in the YAML file -> LedgerSettings field
_YAML_KEYS: dict[tuple[str, str], str] = {
    ("database", "url"): "database_url",
    ("database", "echo"): "echo_sql",
    ("database", "pool_size"): "pool_size",
    ("database", "max_overflow"): "max_overflow",
    ("database", "isolation_level"): "isolation_level",
    ("posting", "timeout_seconds"): "posting_timeout_seconds",
    ("posting", "balance_tolerance"): "balance_tolerance",
    ("reversal", "reference_suffix"): "reversal_reference_suffix",
    ("reversal", "type_suffix"): "reversal_type_suffix",
    ("logging", "level"): "log_level",
}


@dataclass(frozen=True)
class LedgerSettings:
    """Validated runtime settings."""

    database_url: str = "sqlite+pysqlite:///:memory:"
    echo_sql: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    isolation_level: str = "READ COMMITTED"
    posting_timeout_seconds: float = 5.0
    balance_tolerance: Decimal = Decimal("0")
    reversal_reference_suffix: str = "-REV"
    reversal_type_suffix: str = "_REVERSAL"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.database_url or not self.database_url.strip():
            raise ValueError("database_url is required")
        if self.pool_size < 1:
            raise ValueError(f"pool_size must be >= 1, got {self.pool_size}")
        if self.max_overflow < 0:
            raise ValueError(f"max_overflow must be >= 0, got {self.max_overflow}")
        if self.isolation_level not in _ISOLATION_LEVELS:
            raise ValueError(
                f"isolation_level must be one of {sorted(_ISOLATION_LEVELS)}, "
                f"got {self.isolation_level!r}"
            )
        if self.posting_timeout_seconds <= 0:
            raise ValueError(
                f"posting_timeout_seconds must be positive, got {self.posting_timeout_seconds}"
            )
        if self.balance_tolerance < 0:
            raise ValueError(
                f"balance_tolerance must not be negative, got {self.balance_tolerance}"
            )
        for name in ("reversal_reference_suffix", "reversal_type_suffix"):
            suffix = getattr(self, name)
            if not suffix:
                raise ValueError(f"{name} must not be empty")
            if len(suffix) > REVERSAL_SUFFIX_MAX_LENGTH:
                raise ValueError(
                    f"{name} must be at most {REVERSAL_SUFFIX_MAX_LENGTH} characters"
                )
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ValueError(f"Unknown log level: {self.log_level!r}")


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"Not a boolean: {value!r}")


def _to_decimal(value: Any) -> Decimal:
    try:
        # str() first so a YAML float such as 0.01 keeps its written digits
        return Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"Not a decimal: {value!r}") from e


_COERCE = {
    "database_url": str,
    "echo_sql": _to_bool,
    "pool_size": int,
    "max_overflow": int,
    "isolation_level": lambda v: str(v).strip().upper(),
    "posting_timeout_seconds": float,
    "balance_tolerance": _to_decimal,
    "reversal_reference_suffix": str,
    "reversal_type_suffix": str,
    "log_level": lambda v: str(v).strip().upper(),
}


def _coerce(name: str, value: Any) -> Any:
    try:
        return _COERCE[name](value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {name}: {value!r}") from e


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _flatten(document: Mapping[str, Any], source: str) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for section, body in document.items():
        if not isinstance(body, Mapping):
            raise ValueError(f"{source}: section {section!r} must be a mapping")
        for key, value in body.items():
            field_name = _YAML_KEYS.get((section, key))
            if field_name is None:
                raise ValueError(f"{source}: unknown setting {section}.{key}")
            values[field_name] = _coerce(field_name, value)
    return values


def load_yaml_settings(path: Path) -> dict[str, Any]:
    """Read one settings file into LedgerSettings keyword arguments."""
    with open(path) as f:
        document = yaml.safe_load(f)
    if document is None:
        return {}
    if not isinstance(document, Mapping):
        raise ValueError(f"{path}: top level must be a mapping")
    return _flatten(document, str(path))


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for f in fields(LedgerSettings):
        key = ENV_PREFIX + f.name.upper()
        if key in environ:
            overrides[f.name] = _coerce(f.name, environ[key])
    return overrides


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """
    Build settings from defaults, an optional YAML file and the environment.

    Precedence (highest first): ``LEDGER_<FIELD>`` environment variables,
    the YAML file, the ``LedgerSettings`` defaults.

    Raises:
        FileNotFoundError: ``path`` does not exist.
        ValueError: unknown keys or invalid values.
    """
    environ = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    if path is not None:
        values.update(load_yaml_settings(Path(path)))
    values.update(_env_overrides(environ))
    return replace(LedgerSettings(), **values)


def get_settings(environ: Mapping[str, str] | None = None) -> LedgerSettings:
    """Settings from the file named by ``LEDGER_CONFIG_PATH`` (if set)."""
    environ = os.environ if environ is None else environ
    return load_settings(environ.get(CONFIG_PATH_ENV) or None, environ)
