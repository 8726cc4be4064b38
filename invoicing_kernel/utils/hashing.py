"""
Canonical JSON and SHA-256 helpers for the audit chain.

A chain written today must verify tomorrow from nothing but the stored JSON
columns, so every value that reaches a hash goes through one canonical
encoding: sorted keys, compact separators, decimals and timestamps as strings.
"""

import hashlib
import json
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS = "GENESIS"


def _encode(obj: Any) -> Any:
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    if isinstance(obj, date):  # datetime included
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if isinstance(obj, tuple):
        return list(obj)
    raise TypeError(f"Cannot encode {type(obj).__name__} as canonical JSON")


def canonicalize_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode)


def to_json_safe(data: Any) -> Any:
    """The plain-JSON form of ``data``, exactly as it will be read back from storage."""
    if data is None:
        return None
    return json.loads(canonicalize_json(data))


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    return _sha256(canonicalize_json(payload))


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Link hash of one audit record.

    Binds the record's identity and payload hash to its predecessor's link
    hash; the first record of a chain links to ``GENESIS``.
    """
    return _sha256("|".join((entity_type, str(entity_id), action, payload_hash, prev_hash or GENESIS)))
