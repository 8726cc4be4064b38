"""
InvoiceStatusService -- manual transitions, overdue detection and insights.

Responsibility:
    Applies user-requested status changes through the transition engine,
    sweeps open invoices past due into OVERDUE, and summarizes a tenant's
    receivables by status and age.

Architecture position:
    Services -- imperative shell over ``invoicing_engines.transitions`` and
    ``invoicing_engines.aging``.  The overdue sweep is delegated to the
    bulk processor so each invoice is its own unit.

Invariants enforced:
    - Only edges of the invoice workflow are applied; guards (payment
      completion, reason, role) are evaluated before any write.
    - The first transition to SENT stamps ``tax_finalized_at``.

Failure modes:
    - InvalidTransitionError, InsufficientPaymentError, ReasonRequiredError,
      RoleNotPermittedError: rejected transition, nothing written.
    - InvoiceNotFoundError: unknown id or another tenant's invoice.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from invoicing_kernel.domain.clock import Clock, SystemClock
from invoicing_kernel.domain.context import RequestContext
from invoicing_kernel.domain.invoice import Invoice, InvoiceStatus
from invoicing_kernel.logging_config import get_logger
from invoicing_kernel.repository.base import InvoiceRepository
from invoicing_config.loader import get_default_config
from invoicing_config.schema import InvoicingConfig
from invoicing_engines.aging import OPEN_STATUSES, classify, days_overdue, is_overdue
from invoicing_engines.transitions import allowed_targets
from invoicing_services.operations import StatusChangeResult, apply_status_change, bind_request

if TYPE_CHECKING:
    from invoicing_bulk.domain.types import BulkOperationResult
    from invoicing_bulk.services.processor import BulkOperationProcessor

logger = get_logger("services.status")


@dataclass(frozen=True)
class OverdueSweep:
    """Result of ``detect_overdue``; ``bulk_result`` is None on a dry run."""

    as_of: date
    candidate_ids: tuple[str, ...]
    dry_run: bool
    bulk_result: BulkOperationResult | None = None

    @property
    def marked_count(self) -> int:
        if self.bulk_result is None:
            return 0
        return self.bulk_result.success_count


@dataclass(frozen=True)
class StatusInsights:
    """Receivables summary for one tenant."""

    as_of: date
    total_count: int
    by_status: dict[str, int]
    overdue_count: int
    outstanding_by_currency: dict[str, Decimal]
    overdue_by_currency: dict[str, Decimal]
    aging: dict[str, int] = field(default_factory=dict)


class InvoiceStatusService:
    """
    Status transitions for single invoices plus tenant-wide sweeps.

    Contract:
        ``change_status`` runs in one unit of work.  ``detect_overdue``
        runs one unit per invoice through the bulk processor.
    """

    def __init__(
        self,
        repository: InvoiceRepository,
        config: InvoicingConfig | None = None,
        clock: Clock | None = None,
        bulk_processor: BulkOperationProcessor | None = None,
    ):
        self._repository = repository
        self._config = config or get_default_config()
        self._clock = clock or SystemClock()
        self._bulk_processor = bulk_processor

    def change_status(
        self,
        ctx: RequestContext,
        invoice_id: UUID | str,
        target: InvoiceStatus | str,
        reason: str | None = None,
        force_override: bool = False,
    ) -> StatusChangeResult:
        target_status = InvoiceStatus(target)
        with bind_request(ctx, invoice_id=str(invoice_id)), \
                self._repository.unit_of_work() as uow:
            return apply_status_change(
                uow,
                ctx,
                invoice_id,
                target_status,
                config=self._config,
                clock=self._clock,
                reason=reason,
                force_override=force_override,
            )

    def allowed_transitions(
        self, ctx: RequestContext, invoice_id: UUID | str
    ) -> tuple[InvoiceStatus, ...]:
        with self._repository.unit_of_work() as uow:
            invoice = uow.get_invoice(invoice_id, ctx.tenant_id)
        return allowed_targets(invoice.status)

    def find_overdue(
        self,
        ctx: RequestContext,
        as_of: date | None = None,
        grace_period_days: int | None = None,
    ) -> list[Invoice]:
        """SENT invoices past due by more than the grace period."""
        day = as_of or self._clock.today()
        grace = self._config.overdue_grace_period_days if grace_period_days is None else grace_period_days
        with self._repository.unit_of_work() as uow:
            sent = uow.list_invoices(ctx.tenant_id, [InvoiceStatus.SENT])
        return [inv for inv in sent if is_overdue(inv, day, grace)]

    def detect_overdue(
        self,
        ctx: RequestContext,
        as_of: date | None = None,
        grace_period_days: int | None = None,
        dry_run: bool = False,
    ) -> OverdueSweep:
        """
        Move every SENT invoice past due into OVERDUE.

        With ``dry_run`` the candidates are returned and nothing changes.
        """
        day = as_of or self._clock.today()
        candidates = self.find_overdue(ctx, day, grace_period_days)
        ids = tuple(str(inv.id) for inv in candidates)
        logger.info(
            "overdue_candidates_found",
            extra={"as_of": day.isoformat(), "candidate_count": len(ids), "dry_run": dry_run},
        )
        if dry_run or not ids:
            return OverdueSweep(as_of=day, candidate_ids=ids, dry_run=dry_run)

        from invoicing_bulk.domain.types import BulkAction, BulkOperationRequest

        request = BulkOperationRequest(
            action=BulkAction.UPDATE_STATUS,
            invoice_ids=ids,
            status=InvoiceStatus.OVERDUE,
            reason=f"Past due as of {day.isoformat()}",
            trigger="overdue_detection",
        )
        result = self._processor().execute(ctx, request)
        return OverdueSweep(as_of=day, candidate_ids=ids, dry_run=False, bulk_result=result)

    def status_insights(self, ctx: RequestContext, as_of: date | None = None) -> StatusInsights:
        day = as_of or self._clock.today()
        with self._repository.unit_of_work() as uow:
            invoices = uow.list_invoices(ctx.tenant_id)

        by_status = Counter(inv.status.value for inv in invoices)
        outstanding: dict[str, Decimal] = {}
        overdue_amounts: dict[str, Decimal] = {}
        aging: Counter[str] = Counter()
        overdue_count = 0
        for inv in invoices:
            if inv.status not in OPEN_STATUSES:
                continue
            outstanding[inv.currency] = outstanding.get(inv.currency, Decimal("0")) + inv.outstanding
            age = days_overdue(inv.due_date, day)
            aging[classify(age).name] += 1
            if age > 0:
                overdue_count += 1
                overdue_amounts[inv.currency] = (
                    overdue_amounts.get(inv.currency, Decimal("0")) + inv.outstanding
                )

        return StatusInsights(
            as_of=day,
            total_count=len(invoices),
            by_status=dict(by_status),
            overdue_count=overdue_count,
            outstanding_by_currency=outstanding,
            overdue_by_currency=overdue_amounts,
            aging=dict(aging),
        )

    def _processor(self) -> BulkOperationProcessor:
        if self._bulk_processor is None:
            from invoicing_bulk.services.processor import BulkOperationProcessor

            self._bulk_processor = BulkOperationProcessor(
                self._repository, config=self._config, clock=self._clock
            )
        return self._bulk_processor
