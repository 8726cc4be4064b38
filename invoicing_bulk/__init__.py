"""
invoicing_bulk -- Bulk operations over many invoices.

One action (status change, deletion, reminder, export) applied to a
tenant-scoped list of invoice ids, one unit of work per invoice, with
per-item failure capture and a single aggregate result.

Usage:
    from invoicing_bulk import BulkOperationProcessor, BulkOperationRequest

    processor = BulkOperationProcessor(repository, config=config, clock=clock)
    result = processor.execute(ctx, BulkOperationRequest.from_dict(body))
    response = result.to_dict()
"""

from invoicing_bulk.actions import HandlerRegistry, default_registry
from invoicing_bulk.domain.types import (
    BulkAction,
    BulkOperationRequest,
    BulkOperationResult,
    ItemOutcome,
    ItemStatus,
)
from invoicing_bulk.services.processor import BulkOperationProcessor

__all__ = [
    "BulkAction",
    "BulkOperationProcessor",
    "BulkOperationRequest",
    "BulkOperationResult",
    "HandlerRegistry",
    "ItemOutcome",
    "ItemStatus",
    "default_registry",
]
