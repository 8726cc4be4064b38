"""
invoicing_config -- configuration for the invoicing engine.

Responsibility:
    Frozen configuration schema, the YAML loader, and the packaged
    ``defaults.yaml``.  Services and the bulk processor receive an
    ``InvoicingConfig`` by injection; nothing reads configuration files
    at import time.

Architecture position:
    Sits above ``invoicing_kernel`` and ``invoicing_engines`` and below
    ``invoicing_services`` / ``invoicing_bulk``.  The kernel MUST NEVER
    import from this package.
"""

from invoicing_config.loader import (
    compute_checksum,
    config_from_dict,
    get_default_config,
    load_config,
)
from invoicing_config.schema import (
    BulkSettings,
    InvoicingConfig,
    ReminderSettings,
    ReminderTemplate,
)

__all__ = [
    "BulkSettings",
    "InvoicingConfig",
    "ReminderSettings",
    "ReminderTemplate",
    "compute_checksum",
    "config_from_dict",
    "get_default_config",
    "load_config",
]
