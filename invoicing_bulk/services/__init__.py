"""invoicing_bulk.services -- Bulk execution."""

from invoicing_bulk.services.processor import BulkOperationProcessor

__all__ = ["BulkOperationProcessor"]
