"""
invoicing_bulk.domain -- Pure request and result types for bulk operations.

ZERO I/O.  All types are frozen dataclasses.
"""

from invoicing_bulk.domain.types import (
    CANCELLED,
    DUPLICATE_ID,
    INTERNAL_ERROR,
    NOT_FOUND_REASON,
    BulkAction,
    BulkOperationRequest,
    BulkOperationResult,
    ItemOutcome,
    ItemStatus,
)

__all__ = [
    "BulkAction",
    "BulkOperationRequest",
    "BulkOperationResult",
    "CANCELLED",
    "DUPLICATE_ID",
    "INTERNAL_ERROR",
    "ItemOutcome",
    "ItemStatus",
    "NOT_FOUND_REASON",
]
