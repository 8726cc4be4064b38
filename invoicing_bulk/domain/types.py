"""
invoicing_bulk.domain.types -- Frozen DTOs for bulk invoice operations.

ZERO I/O.  Requests arrive either as keyword construction or through
``BulkOperationRequest.from_dict`` (the camelCase transport shape); results
leave through ``BulkOperationResult.to_dict``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from invoicing_kernel.domain.invoice import InvoiceStatus
from invoicing_kernel.exceptions import MalformedBulkRequestError
from invoicing_kernel.utils.hashing import to_json_safe


class BulkAction(str, Enum):
    """Closed set of bulk actions; each member has exactly one handler."""

    UPDATE_STATUS = "update_status"
    DELETE = "delete"
    QUEUE_REMINDER = "queue_reminder"
    EXPORT = "export"


class ItemStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# Per-item failure codes that do not come from an exception class
DUPLICATE_ID = "DUPLICATE_ID"
CANCELLED = "CANCELLED"
INTERNAL_ERROR = "INTERNAL_ERROR"

NOT_FOUND_REASON = "Invoice not found or access denied"


@dataclass(frozen=True)
class BulkOperationRequest:
    """
    One bulk call.

    ``tenant_id`` is optional; when given it must match the caller's
    context.  ``status`` is required for UPDATE_STATUS and ``template_id``
    for QUEUE_REMINDER.
    """

    action: BulkAction
    invoice_ids: tuple[str, ...]
    tenant_id: str | None = None
    status: InvoiceStatus | None = None
    template_id: str | None = None
    reason: str | None = None
    force_override: bool = False
    max_workers: int | None = None
    unit_timeout_seconds: float | None = None
    trigger: str = "bulk"

    def __post_init__(self) -> None:
        object.__setattr__(self, "action", BulkAction(self.action))
        object.__setattr__(self, "invoice_ids", tuple(str(i) for i in self.invoice_ids))
        if self.status is not None:
            object.__setattr__(self, "status", InvoiceStatus(self.status))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BulkOperationRequest:
        """
        Parse the transport shape::

            {"tenantId": "...", "invoiceIds": [...], "action": "update_status",
             "status": "SENT", "templateId": null, "reason": null}

        Raises:
            MalformedBulkRequestError: missing or ill-typed fields.
        """
        if not isinstance(data, dict):
            raise MalformedBulkRequestError("request", "Request body must be an object")

        raw_action = data.get("action")
        try:
            action = BulkAction(raw_action)
        except ValueError:
            allowed = ", ".join(a.value for a in BulkAction)
            raise MalformedBulkRequestError(
                "action", f"Unknown action {raw_action!r}; expected one of {allowed}"
            ) from None

        ids = data.get("invoiceIds")
        if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
            raise MalformedBulkRequestError("invoiceIds", "invoiceIds must be a list of strings")

        raw_status = data.get("status")
        status = None
        if raw_status is not None:
            try:
                status = InvoiceStatus(str(raw_status).upper())
            except ValueError:
                raise MalformedBulkRequestError(
                    "status", f"Unknown invoice status {raw_status!r}"
                ) from None

        max_workers = data.get("maxWorkers")
        if max_workers is not None and (isinstance(max_workers, bool) or not isinstance(max_workers, int)):
            raise MalformedBulkRequestError("maxWorkers", "maxWorkers must be an integer")

        return cls(
            action=action,
            invoice_ids=tuple(ids),
            tenant_id=data.get("tenantId"),
            status=status,
            template_id=data.get("templateId"),
            reason=data.get("reason"),
            force_override=bool(data.get("forceOverride", False)),
            max_workers=max_workers,
        )


@dataclass(frozen=True)
class ItemOutcome:
    """Result for one requested id, in request order."""

    invoice_id: str
    status: ItemStatus
    code: str | None = None
    reason: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == ItemStatus.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"invoiceId": self.invoice_id, "status": self.status.value}
        if self.code is not None:
            out["code"] = self.code
        if self.reason is not None:
            out["reason"] = self.reason
        if self.detail:
            out["detail"] = to_json_safe(self.detail)
        return out


@dataclass(frozen=True)
class BulkOperationResult:
    """Aggregate outcome of one bulk call.  Never persisted."""

    bulk_id: str
    action: BulkAction
    requested_count: int
    success_count: int
    failed_count: int
    details: tuple[ItemOutcome, ...]
    cancelled_count: int = 0
    summary: dict[str, Any] | None = None

    @property
    def failures(self) -> tuple[ItemOutcome, ...]:
        return tuple(d for d in self.details if not d.succeeded)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "bulkId": self.bulk_id,
            "action": self.action.value,
            "requestedCount": self.requested_count,
            "successCount": self.success_count,
            "failedCount": self.failed_count,
            "cancelledCount": self.cancelled_count,
            "details": [d.to_dict() for d in self.details],
        }
        if self.summary is not None:
            out["summary"] = to_json_safe(self.summary)
        return out
