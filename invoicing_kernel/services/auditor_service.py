"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Appends immutable, hash-chained audit records for every invoice
    mutation, payment application, bulk operation and export.  Provides
    chain validation for tamper detection plus query and trace reads.

Architecture position:
    Kernel > Services -- imperative shell, used by the repository's unit of
    work so every audit append shares the mutation's transaction.

Invariants enforced:
    - Per-tenant sequence monotonicity via the locked ``audit_sequences``
      row (never max(seq) + 1).
    - Chain integrity: ``hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash)``; ``prev_hash`` is the tenant's previous
      record hash (None for the genesis record).
    - Append-only: records are never modified or deleted (ORM listeners in
      db/immutability.py).

Failure modes:
    - AuditChainBrokenError: recomputed hash or linkage mismatch.
    - IntegrityError: concurrent counter creation (retried once via a
      savepoint).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from invoicing_kernel.domain.audit import (
    AuditAction,
    AuditEntry,
    AuditQuery,
    AuditRecord,
    AuditSeverity,
    diff_snapshots,
)
from invoicing_kernel.domain.clock import Clock, SystemClock
from invoicing_kernel.exceptions import AuditChainBrokenError
from invoicing_kernel.logging_config import get_logger
from invoicing_kernel.models.audit_event import AuditEvent, AuditSequence
from invoicing_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTrace:
    """All audit records of one entity, oldest first."""

    entity_type: str
    entity_id: str
    entries: tuple[AuditRecord, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def first_action(self) -> str | None:
        return self.entries[0].action if self.entries else None

    @property
    def last_action(self) -> str | None:
        return self.entries[-1].action if self.entries else None


def _hashed_payload(event: AuditEvent) -> dict[str, Any]:
    """The stored fields covered by ``payload_hash``."""
    return {
        "tenant_id": event.tenant_id,
        "seq": event.seq,
        "severity": event.severity,
        "actor_id": event.actor_id,
        "occurred_at": event.occurred_at.isoformat(),
        "before": event.before,
        "after": event.after,
        "changed_fields": event.changed_fields,
        "metadata": event.details,
    }


def _to_record(event: AuditEvent) -> AuditRecord:
    return AuditRecord(
        id=event.id,
        tenant_id=event.tenant_id,
        seq=event.seq,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        action=event.action,
        severity=event.severity,
        actor_id=event.actor_id,
        occurred_at=event.occurred_at,
        before=event.before,
        after=event.after,
        changed_fields=tuple(event.changed_fields or ()),
        metadata=dict(event.details or {}),
        payload_hash=event.payload_hash,
        prev_hash=event.prev_hash,
        hash=event.hash,
    )


class AuditorService:
    """
    Creates and validates tamper-evident audit records.

    Contract:
        Works inside the caller's transaction.  Does NOT commit.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def _lock_sequence(self, tenant_id: str) -> AuditSequence:
        """Lock (creating if needed) the tenant's counter row."""
        stmt = (
            select(AuditSequence)
            .where(AuditSequence.tenant_id == tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        counter = self._session.execute(stmt).scalar_one_or_none()
        if counter is not None:
            return counter

        savepoint = self._session.begin_nested()
        try:
            counter = AuditSequence(tenant_id=tenant_id, current_value=0, last_hash=None)
            self._session.add(counter)
            self._session.flush()
            savepoint.commit()
            return counter
        except IntegrityError:
            logger.debug("audit_sequence_race_retry", extra={"tenant_id": tenant_id})
            savepoint.rollback()
            return self._session.execute(stmt).scalar_one()

    def append(self, tenant_id: str, entry: AuditEntry) -> AuditRecord:
        """
        Append ``entry`` to the tenant's chain.

        Postconditions:
            - A new AuditEvent row is flushed with ``seq`` one above the
              tenant's previous record and ``prev_hash`` equal to its hash.
        """
        counter = self._lock_sequence(tenant_id)
        seq = counter.current_value + 1
        prev_hash = counter.last_hash

        before = to_json_safe(dict(entry.before)) if entry.before is not None else None
        after = to_json_safe(dict(entry.after)) if entry.after is not None else None
        details = to_json_safe(dict(entry.metadata)) or {}

        event = AuditEvent(
            tenant_id=tenant_id,
            seq=seq,
            entity_type=entry.entity_type,
            entity_id=str(entry.entity_id),
            action=entry.action.value,
            severity=entry.severity.value,
            actor_id=entry.actor_id,
            occurred_at=self._clock.now(),
            before=before,
            after=after,
            changed_fields=list(diff_snapshots(before, after)),
            details=details,
            prev_hash=prev_hash,
        )
        event.payload_hash = hash_payload(_hashed_payload(event))
        event.hash = hash_audit_event(
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            action=event.action,
            payload_hash=event.payload_hash,
            prev_hash=prev_hash,
        )

        counter.current_value = seq
        counter.last_hash = event.hash
        self._session.add(event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": event.entity_type,
                "entity_id": event.entity_id,
                "action": event.action,
                "seq": seq,
            },
        )
        return _to_record(event)

    # Domain-specific recording methods

    def record_invoice_created(
        self,
        tenant_id: str,
        invoice_id: object,
        actor_id: str,
        after: dict[str, Any],
        invoice_number: str,
    ) -> AuditRecord:
        return self.append(tenant_id, AuditEntry(
            entity_type="Invoice",
            entity_id=str(invoice_id),
            action=AuditAction.INVOICE_CREATED,
            actor_id=actor_id,
            after=after,
            metadata={"invoice_number": invoice_number},
        ))

    def record_status_changed(
        self,
        tenant_id: str,
        invoice_id: object,
        actor_id: str,
        before: dict[str, Any],
        after: dict[str, Any],
        reason: str | None = None,
        trigger: str = "manual",
        bulk_id: str | None = None,
    ) -> AuditRecord:
        """Record a status change; write-offs are HIGH severity."""
        severity = AuditSeverity.MEDIUM
        if after.get("status") == "WRITTEN_OFF":
            severity = AuditSeverity.HIGH
        metadata: dict[str, Any] = {"reason": reason, "trigger": trigger}
        if bulk_id is not None:
            metadata["bulk_id"] = bulk_id
        return self.append(tenant_id, AuditEntry(
            entity_type="Invoice",
            entity_id=str(invoice_id),
            action=AuditAction.INVOICE_STATUS_CHANGED,
            actor_id=actor_id,
            before=before,
            after=after,
            metadata=metadata,
            severity=severity,
        ))

    def record_invoice_deleted(
        self,
        tenant_id: str,
        invoice_id: object,
        actor_id: str,
        before: dict[str, Any],
        bulk_id: str | None = None,
    ) -> AuditRecord:
        return self.append(tenant_id, AuditEntry(
            entity_type="Invoice",
            entity_id=str(invoice_id),
            action=AuditAction.INVOICE_DELETED,
            actor_id=actor_id,
            before=before,
            metadata={"bulk_id": bulk_id} if bulk_id else {},
            severity=AuditSeverity.HIGH,
        ))

    def record_payment(
        self,
        tenant_id: str,
        payment_id: object,
        action: AuditAction,
        actor_id: str,
        before: dict[str, Any] | None,
        after: dict[str, Any],
        metadata: dict[str, Any],
    ) -> AuditRecord:
        """Record a payment being recorded, verified or reversed."""
        severity = AuditSeverity.HIGH if action == AuditAction.PAYMENT_REVERSED else AuditSeverity.MEDIUM
        return self.append(tenant_id, AuditEntry(
            entity_type="Payment",
            entity_id=str(payment_id),
            action=action,
            actor_id=actor_id,
            before=before,
            after=after,
            metadata=metadata,
            severity=severity,
        ))

    # Chain validation

    def validate_chain(self, tenant_id: str) -> bool:
        """
        Validate the tenant's entire audit chain.

        Postconditions:
            - Returns True only if every record's payload hash and chained
              hash recompute to the stored values and every ``prev_hash``
              equals its predecessor's ``hash``.

        Raises:
            AuditChainBrokenError: on the first mismatch.
        """
        events = self._session.execute(
            select(AuditEvent)
            .where(AuditEvent.tenant_id == tenant_id)
            .order_by(AuditEvent.seq)
        ).scalars().all()

        previous: AuditEvent | None = None
        for event in events:
            expected_prev = previous.hash if previous is not None else None
            if event.prev_hash != expected_prev:
                logger.critical(
                    "audit_chain_broken",
                    extra={"tenant_id": tenant_id, "seq": event.seq, "check": "linkage"},
                )
                raise AuditChainBrokenError(
                    str(event.id), expected_prev or "None", event.prev_hash or "None"
                )

            payload_hash = hash_payload(_hashed_payload(event))
            if payload_hash != event.payload_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"tenant_id": tenant_id, "seq": event.seq, "check": "payload"},
                )
                raise AuditChainBrokenError(str(event.id), payload_hash, event.payload_hash)

            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                action=event.action,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if expected_hash != event.hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"tenant_id": tenant_id, "seq": event.seq, "check": "hash"},
                )
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)
            previous = event

        logger.info(
            "audit_chain_valid",
            extra={"tenant_id": tenant_id, "event_count": len(events)},
        )
        return True

    # Trace and query methods

    def query(self, tenant_id: str, filters: AuditQuery | None = None) -> list[AuditRecord]:
        """Tenant-scoped records matching ``filters``, newest first."""
        q = filters or AuditQuery()
        stmt = select(AuditEvent).where(AuditEvent.tenant_id == tenant_id)
        if q.entity_type is not None:
            stmt = stmt.where(AuditEvent.entity_type == q.entity_type)
        if q.entity_id is not None:
            stmt = stmt.where(AuditEvent.entity_id == str(q.entity_id))
        if q.actor_id is not None:
            stmt = stmt.where(AuditEvent.actor_id == q.actor_id)
        if q.actions:
            stmt = stmt.where(AuditEvent.action.in_([a.value for a in q.actions]))
        if q.occurred_from is not None:
            stmt = stmt.where(AuditEvent.occurred_at >= q.occurred_from)
        if q.occurred_to is not None:
            stmt = stmt.where(AuditEvent.occurred_at <= q.occurred_to)
        stmt = stmt.order_by(AuditEvent.seq.desc()).offset(q.offset).limit(q.limit)
        return [_to_record(e) for e in self._session.execute(stmt).scalars()]

    def trace(self, tenant_id: str, entity_type: str, entity_id: object) -> AuditTrace:
        """Every record of one entity in chain order."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.tenant_id == tenant_id,
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == str(entity_id),
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()
        return AuditTrace(
            entity_type=entity_type,
            entity_id=str(entity_id),
            entries=tuple(_to_record(e) for e in events),
        )
