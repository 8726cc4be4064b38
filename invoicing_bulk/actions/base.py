"""
Bulk action handler protocol and registry.

Contract:
    ``BulkActionHandler`` defines what every action handler implements.
    ``HandlerRegistry`` maps each ``BulkAction`` member to one handler;
    ``assert_exhaustive()`` fails when any member is left without one.

Invariants enforced:
    - One handler per action.
    - A handler touches exactly one invoice per ``execute`` call, inside
      the unit of work it is given.  It never commits.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol, runtime_checkable

from invoicing_kernel.domain.audit import AuditAction, AuditSeverity
from invoicing_kernel.domain.clock import Clock
from invoicing_kernel.domain.context import RequestContext
from invoicing_kernel.repository.base import UnitOfWork
from invoicing_config.schema import InvoicingConfig
from invoicing_services.notifications import NotificationGateway

from invoicing_bulk.domain.types import BulkAction, BulkOperationRequest, ItemOutcome


@dataclass(frozen=True)
class ActionContext:
    """Everything a handler needs besides the unit of work and the id."""

    request_context: RequestContext
    request: BulkOperationRequest
    config: InvoicingConfig
    clock: Clock
    gateway: NotificationGateway
    bulk_id: str
    as_of: date


@runtime_checkable
class BulkActionHandler(Protocol):
    """
    Interface for one bulk action.

    Contract:
        - ``validate()`` rejects a malformed request before any item runs.
        - ``execute()`` processes ONE invoice inside the given unit and
          returns the item's detail mapping.  Failures are raised as typed
          errors; the processor turns them into failed items.
        - ``summarize()`` optionally builds the result summary from the
          successful items.

    Non-goals:
        - Does NOT manage transactions or threads.
    """

    @property
    def action(self) -> BulkAction: ...

    @property
    def audit_action(self) -> AuditAction: ...

    @property
    def audit_severity(self) -> AuditSeverity: ...

    def validate(self, request: BulkOperationRequest, config: InvoicingConfig) -> None: ...

    def execute(
        self,
        uow: UnitOfWork,
        invoice_id: str,
        ctx: ActionContext,
    ) -> dict[str, Any]: ...

    def summarize(
        self,
        outcomes: Sequence[ItemOutcome],
        ctx: ActionContext,
    ) -> dict[str, Any] | None: ...


class HandlerRegistry:
    """
    Registry mapping BulkAction members to handlers.

    Contract:
        - ``register()`` raises ValueError on a duplicate action.
        - ``get()`` raises KeyError for an unregistered action.
    """

    def __init__(self, handlers: Sequence[BulkActionHandler] = ()) -> None:
        self._handlers: dict[BulkAction, BulkActionHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: BulkActionHandler) -> None:
        if handler.action in self._handlers:
            raise ValueError(f"Action '{handler.action.value}' is already registered")
        self._handlers[handler.action] = handler

    def get(self, action: BulkAction) -> BulkActionHandler:
        try:
            return self._handlers[action]
        except KeyError:
            raise KeyError(
                f"No handler registered for action '{action}'. "
                f"Available: {sorted(a.value for a in self._handlers)}"
            ) from None

    def actions(self) -> tuple[BulkAction, ...]:
        return tuple(sorted(self._handlers, key=lambda a: a.value))

    def assert_exhaustive(self) -> None:
        """Raise RuntimeError unless every BulkAction member has a handler."""
        missing = [a.value for a in BulkAction if a not in self._handlers]
        if missing:
            raise RuntimeError(f"Bulk actions without a handler: {', '.join(missing)}")

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, action: BulkAction) -> bool:
        return action in self._handlers
