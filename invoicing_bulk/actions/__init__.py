"""
invoicing_bulk.actions -- One handler per BulkAction member.

``default_registry()`` returns a registry holding every built-in handler.
Coverage of the BulkAction enum is checked when this package is imported.
"""

from invoicing_bulk.actions.base import ActionContext, BulkActionHandler, HandlerRegistry
from invoicing_bulk.actions.delete import DeleteHandler
from invoicing_bulk.actions.export import ExportHandler, export_row
from invoicing_bulk.actions.reminder import QueueReminderHandler
from invoicing_bulk.actions.status import UpdateStatusHandler


def default_registry() -> HandlerRegistry:
    return HandlerRegistry([
        UpdateStatusHandler(),
        DeleteHandler(),
        QueueReminderHandler(),
        ExportHandler(),
    ])


default_registry().assert_exhaustive()

__all__ = [
    "ActionContext",
    "BulkActionHandler",
    "DeleteHandler",
    "ExportHandler",
    "HandlerRegistry",
    "QueueReminderHandler",
    "UpdateStatusHandler",
    "default_registry",
    "export_row",
]
