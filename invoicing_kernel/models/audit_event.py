"""
Module: invoicing_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; UPDATE and DELETE are rejected by the
      listeners in db/immutability.py.
    - Hash chain per tenant: hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash).  Validated by AuditorService.
    - (tenant_id, seq) is unique; seq comes from the locked counter row in
      ``audit_sequences``.

Audit relevance:
    AuditEvent IS the audit trail.  Every invoice mutation, payment
    application, bulk operation and export produces at least one row.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from invoicing_kernel.db.base import Base
from invoicing_kernel.domain.audit import AuditAction, AuditSeverity


class AuditEvent(Base):
    """
    Audit record with hash chain for tamper evidence.

    Contract:
        Rows are append-only, never updated or deleted.  Each row's hash
        includes the previous row's hash within the same tenant.

    Non-goals:
        - This model does NOT compute hashes; AuditorService does.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        UniqueConstraint("tenant_id", "seq", name="uq_audit_tenant_seq"),
        Index("idx_audit_entity", "tenant_id", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # e.g. "Invoice", "Payment", "BulkOperation"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    severity: Mapped[str] = mapped_column(String(10), nullable=False)

    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    before: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    after: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    changed_fields: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    # "metadata" is reserved on declarative classes
    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Null for the first record of a tenant
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None


class AuditSequence(Base):
    """
    Per-tenant audit sequence counter.

    Row-level locking (``SELECT ... FOR UPDATE``) on this row serializes
    audit appends for one tenant so seq and prev_hash never fork.
    """

    __tablename__ = "audit_sequences"

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    last_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
