"""
Audit trail DTOs.

``AuditEntry`` is what a caller asks the recorder to append;
``AuditRecord`` is what was persisted, chain fields included.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class AuditAction(str, Enum):
    """Types of auditable actions."""

    INVOICE_CREATED = "invoice_created"
    INVOICE_REVISED = "invoice_revised"
    INVOICE_TAX_FINALIZED = "invoice_tax_finalized"
    INVOICE_STATUS_CHANGED = "invoice_status_changed"
    INVOICE_DELETED = "invoice_deleted"

    PAYMENT_RECORDED = "payment_recorded"
    PAYMENT_VERIFIED = "payment_verified"
    PAYMENT_REVERSED = "payment_reversed"

    REMINDER_QUEUED = "reminder_queued"

    BULK_OPERATION = "bulk_operation"
    INVOICES_EXPORTED = "invoices_exported"


class AuditSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class AuditEntry:
    """An audit record not yet appended to the chain."""

    entity_type: str
    entity_id: str
    action: AuditAction
    actor_id: str
    before: Mapping[str, Any] | None = None
    after: Mapping[str, Any] | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    severity: AuditSeverity = AuditSeverity.LOW


@dataclass(frozen=True)
class AuditRecord:
    """An appended, hash-chained audit record."""

    id: UUID
    tenant_id: str
    seq: int
    entity_type: str
    entity_id: str
    action: str
    severity: str
    actor_id: str
    occurred_at: datetime
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    changed_fields: tuple[str, ...]
    metadata: dict[str, Any]
    payload_hash: str
    prev_hash: str | None
    hash: str


@dataclass(frozen=True)
class AuditQuery:
    """Filters for ``AuditorService.query``; None means unfiltered."""

    entity_type: str | None = None
    entity_id: str | None = None
    actor_id: str | None = None
    actions: tuple[AuditAction, ...] = ()
    occurred_from: datetime | None = None
    occurred_to: datetime | None = None
    limit: int = 100
    offset: int = 0


def diff_snapshots(
    before: Mapping[str, Any] | None,
    after: Mapping[str, Any] | None,
) -> tuple[str, ...]:
    """Sorted keys whose values differ between two snapshots."""
    old = before or {}
    new = after or {}
    return tuple(sorted(
        key for key in set(old) | set(new)
        if old.get(key) != new.get(key)
    ))
