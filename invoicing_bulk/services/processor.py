"""
BulkOperationProcessor -- unit-per-item parallel bulk execution.

Contract:
    ``execute()`` validates the request, resolves the referenced invoices
    under the caller's tenant, runs the action handler once per invoice in
    its own unit of work on a bounded thread pool, joins every task, and
    returns an ordered ``BulkOperationResult``.

Architecture: invoicing_bulk/services.  Imports from invoicing_bulk.domain,
    invoicing_bulk.actions, and kernel/config/services.

Invariants enforced:
    - Per-item isolation: every item commits or rolls back on its own; a
      failed item never affects another.
    - Tenant scoping: ids outside the caller's tenant are reported exactly
      like absent ids.
    - Details come back in request order regardless of completion order.
    - One aggregate audit record per call.

Failure modes:
    - MalformedBulkRequestError: request shape rejected before any work.
    - Per item: BusinessRuleViolation, NotFoundError, ValidationError,
      ConcurrencyConflict, NotificationError and UnitTimeoutError become
      failed items; any other exception becomes an INTERNAL_ERROR item.
    - InfrastructureError (other than a unit timeout) aborts the call;
      items not yet started are skipped and the error propagates.
"""

from __future__ import annotations

import contextvars
import threading
import time
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from uuid import UUID, uuid4

from invoicing_kernel.domain.audit import AuditEntry
from invoicing_kernel.domain.clock import Clock, SystemClock
from invoicing_kernel.domain.context import RequestContext
from invoicing_kernel.exceptions import (
    BusinessRuleViolation,
    ConcurrencyConflict,
    InfrastructureError,
    InvoiceNotFoundError,
    MalformedBulkRequestError,
    NotFoundError,
    NotificationError,
    UnitTimeoutError,
    ValidationError,
)
from invoicing_kernel.logging_config import LogContext, get_logger
from invoicing_kernel.repository.base import InvoiceRepository
from invoicing_config.loader import get_default_config
from invoicing_config.schema import InvoicingConfig
from invoicing_services.notifications import NotificationGateway, RecordingNotificationGateway
from invoicing_services.operations import bind_request

from invoicing_bulk.actions import ActionContext, BulkActionHandler, HandlerRegistry, default_registry
from invoicing_bulk.domain.types import (
    CANCELLED,
    DUPLICATE_ID,
    INTERNAL_ERROR,
    NOT_FOUND_REASON,
    BulkOperationRequest,
    BulkOperationResult,
    ItemOutcome,
    ItemStatus,
)

logger = get_logger("bulk.processor")

_CAPTURED_ERRORS = (
    BusinessRuleViolation,
    NotFoundError,
    ValidationError,
    ConcurrencyConflict,
    NotificationError,
)

@dataclass(frozen=True)
class _Slot:
    """One position of the request's id list."""

    index: int
    raw_id: str
    key: str | None


def _normalize(raw_id: str) -> str | None:
    try:
        return str(UUID(raw_id.strip()))
    except (ValueError, AttributeError):
        return None


def _failed(invoice_id: str, code: str, reason: str) -> ItemOutcome:
    return ItemOutcome(invoice_id=invoice_id, status=ItemStatus.FAILED, code=code, reason=reason)


class BulkOperationProcessor:
    """
    Bulk execution engine with one unit of work per item.

    Contract:
        - Per-item business failures never abort the call.
        - Cancellation is cooperative: items not started when
          ``cancel_event`` is set fail with code CANCELLED; committed items
          stay committed.

    Non-goals:
        - Does NOT retry failed or timed-out items.
    """

    def __init__(
        self,
        repository: InvoiceRepository,
        config: InvoicingConfig | None = None,
        clock: Clock | None = None,
        gateway: NotificationGateway | None = None,
        registry: HandlerRegistry | None = None,
    ):
        self._repository = repository
        self._config = config or get_default_config()
        self._clock = clock or SystemClock()
        self._gateway = gateway or RecordingNotificationGateway()
        self._registry = registry or default_registry()
        self._registry.assert_exhaustive()

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    def execute(
        self,
        ctx: RequestContext,
        request: BulkOperationRequest,
        cancel_event: threading.Event | None = None,
    ) -> BulkOperationResult:
        """
        Run ``request`` for the caller's tenant.

        Raises:
            MalformedBulkRequestError: invalid request shape.
            InfrastructureError: the repository failed; the call is aborted.
        """
        handler = self._registry.get(request.action)
        self._validate(ctx, request, handler)

        bulk_id = str(uuid4())
        cancel = cancel_event or threading.Event()
        start = time.monotonic()
        with bind_request(ctx, bulk_id=bulk_id):
            logger.info(
                "bulk_operation_started",
                extra={"action": request.action.value, "requested_count": len(request.invoice_ids)},
            )
            action_ctx = ActionContext(
                request_context=ctx,
                request=request,
                config=self._config,
                clock=self._clock,
                gateway=self._gateway,
                bulk_id=bulk_id,
                as_of=self._clock.today(),
            )

            outcomes: dict[int, ItemOutcome] = {}
            runnable = self._resolve(ctx, request, outcomes)
            self._run_all(handler, action_ctx, runnable, outcomes, cancel)

            details = tuple(outcomes[i] for i in range(len(request.invoice_ids)))
            result = BulkOperationResult(
                bulk_id=bulk_id,
                action=request.action,
                requested_count=len(details),
                success_count=sum(1 for d in details if d.succeeded),
                failed_count=sum(1 for d in details if not d.succeeded),
                cancelled_count=sum(1 for d in details if d.code == CANCELLED),
                details=details,
                summary=handler.summarize(details, action_ctx),
            )
            self._record_aggregate(ctx, handler, request, result)
            logger.info(
                "bulk_operation_completed",
                extra={
                    "action": request.action.value,
                    "requested_count": result.requested_count,
                    "success_count": result.success_count,
                    "failed_count": result.failed_count,
                    "cancelled_count": result.cancelled_count,
                    "duration_ms": int((time.monotonic() - start) * 1000),
                },
            )
        return result

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _validate(
        self,
        ctx: RequestContext,
        request: BulkOperationRequest,
        handler: BulkActionHandler,
    ) -> None:
        if not request.invoice_ids:
            raise MalformedBulkRequestError("invoiceIds", "At least one invoice id is required")
        limit = self._config.bulk.max_items
        if len(request.invoice_ids) > limit:
            raise MalformedBulkRequestError(
                "invoiceIds", f"A bulk request may reference at most {limit} invoices"
            )
        if request.tenant_id is not None and request.tenant_id != ctx.tenant_id:
            raise MalformedBulkRequestError("tenantId", "tenantId does not match the caller's tenant")
        if request.max_workers is not None and request.max_workers < 1:
            raise MalformedBulkRequestError("maxWorkers", "maxWorkers must be at least 1")
        if request.unit_timeout_seconds is not None and request.unit_timeout_seconds <= 0:
            raise MalformedBulkRequestError("unitTimeoutSeconds", "unit timeout must be positive")
        handler.validate(request, self._config)

    def _resolve(
        self,
        ctx: RequestContext,
        request: BulkOperationRequest,
        outcomes: dict[int, ItemOutcome],
    ) -> list[_Slot]:
        """Fill outcomes for unresolvable ids; return the slots to run."""
        slots = [_Slot(i, raw, _normalize(raw)) for i, raw in enumerate(request.invoice_ids)]
        keys = {s.key for s in slots if s.key is not None}
        with self._repository.unit_of_work() as uow:
            found = uow.get_invoices(keys, ctx.tenant_id)

        seen: set[str] = set()
        runnable = []
        for slot in slots:
            if slot.key is not None and slot.key in seen:
                outcomes[slot.index] = _failed(
                    slot.raw_id, DUPLICATE_ID, "Invoice id appears more than once in the request"
                )
            elif slot.key is None or slot.key not in found:
                outcomes[slot.index] = _failed(
                    slot.raw_id, InvoiceNotFoundError.code, NOT_FOUND_REASON
                )
            else:
                seen.add(slot.key)
                runnable.append(slot)
        return runnable

    def _run_all(
        self,
        handler: BulkActionHandler,
        action_ctx: ActionContext,
        slots: Sequence[_Slot],
        outcomes: dict[int, ItemOutcome],
        cancel: threading.Event,
    ) -> None:
        if not slots:
            return
        request = action_ctx.request
        workers = min(request.max_workers or self._config.bulk.max_workers, len(slots))
        abort = threading.Event()

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bulk") as pool:
            futures: dict[Future[ItemOutcome], _Slot] = {}
            for slot in slots:
                # One context copy per task; a Context cannot be entered twice at once.
                run = contextvars.copy_context().run
                futures[pool.submit(run, self._run_item, handler, action_ctx, slot, cancel, abort)] = slot
            try:
                for future in as_completed(futures):
                    outcomes[futures[future].index] = future.result()
            except Exception as exc:
                abort.set()
                for future in futures:
                    future.cancel()
                logger.error(
                    "bulk_operation_aborted",
                    extra={"error_type": type(exc).__name__, "completed_count": len(outcomes)},
                )
                raise

    def _run_item(
        self,
        handler: BulkActionHandler,
        action_ctx: ActionContext,
        slot: _Slot,
        cancel: threading.Event,
        abort: threading.Event,
    ) -> ItemOutcome:
        if cancel.is_set() or abort.is_set():
            return _failed(slot.raw_id, CANCELLED, "Operation cancelled before this item started")

        timeout = (
            action_ctx.request.unit_timeout_seconds
            or self._config.bulk.unit_timeout_seconds
        )
        with LogContext.bind(invoice_id=slot.key):
            try:
                with self._repository.unit_of_work(timeout=timeout) as uow:
                    detail = handler.execute(uow, slot.key, action_ctx)
            except UnitTimeoutError as exc:
                return _failed(slot.raw_id, exc.code, "timeout")
            except _CAPTURED_ERRORS as exc:
                logger.info(
                    "bulk_item_failed",
                    extra={"code": exc.code, "reason": str(exc)},
                )
                return _failed(slot.raw_id, exc.code, str(exc))
            except InfrastructureError:
                abort.set()
                logger.error("bulk_item_infrastructure_failure")
                raise
            except Exception:
                logger.exception("bulk_item_unexpected_error")
                return _failed(
                    slot.raw_id, INTERNAL_ERROR, "Unexpected error while processing this item"
                )
        return ItemOutcome(invoice_id=slot.raw_id, status=ItemStatus.SUCCEEDED, detail=detail)

    def _record_aggregate(
        self,
        ctx: RequestContext,
        handler: BulkActionHandler,
        request: BulkOperationRequest,
        result: BulkOperationResult,
    ) -> None:
        metadata: dict[str, object] = {
            "action": request.action.value,
            "trigger": request.trigger,
            "invoice_ids": [d.invoice_id for d in result.details if d.succeeded],
            "failed_ids": [d.invoice_id for d in result.failures],
        }
        if request.status is not None:
            metadata["status"] = request.status.value
        if request.template_id is not None:
            metadata["template_id"] = request.template_id
        if request.reason:
            metadata["reason"] = request.reason

        with self._repository.unit_of_work() as uow:
            uow.audit.append(ctx.tenant_id, AuditEntry(
                entity_type="BulkOperation",
                entity_id=result.bulk_id,
                action=handler.audit_action,
                actor_id=ctx.actor_id,
                after={
                    "requested_count": result.requested_count,
                    "success_count": result.success_count,
                    "failed_count": result.failed_count,
                    "cancelled_count": result.cancelled_count,
                },
                metadata=metadata,
                severity=handler.audit_severity,
            ))
