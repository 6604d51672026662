"""
Deterministic hashing utilities.

Used to fingerprint posting requests so an idempotent replay can be told
apart from a conflicting reuse of the same reference number.
"""

import hashlib
import json
from collections.abc import Iterable
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from ledger_kernel.domain.dtos import PostingLine
from ledger_kernel.domain.money import quantize_amount, quantize_rate


def _json_serializer(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # Normalize so 100, 100.0 and 100.0000 hash the same
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, stable encoding of Decimal/date/UUID."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: Any) -> str:
    return hashlib.sha256(canonicalize_json(payload).encode("utf-8")).hexdigest()


def hash_posting_lines(lines: Iterable[PostingLine]) -> str:
    """
    SHA-256 over the canonical form of posting lines, in request order.

    Amounts and locked rates/equivalents are quantized first so the hash
    matches what is actually stored.
    """
    canonical = [
        {
            "account_id": line.account_id,
            "side": line.side,
            "amount": quantize_amount(line.amount),
            "currency": line.currency.strip().upper(),
            "transaction_date": line.transaction_date,
            "description": line.description or "",
            "exchange_rate": (
                quantize_rate(line.exchange_rate)
                if line.exchange_rate is not None
                else None
            ),
            "equivalent_amount": (
                quantize_amount(line.equivalent_amount)
                if line.equivalent_amount is not None
                else None
            ),
        }
        for line in lines
    ]
    return hash_payload(canonical)
