"""
InvoicingConfig schema.

Frozen dataclasses describing every tunable of the invoicing engine.  YAML
documents are parsed into these types by the loader; services receive an
InvoicingConfig by injection.  The engine-level policies
(``TransitionPolicy``, ``PaymentRules``) are embedded as-is so the values a
service reads are exactly the values the engines enforce.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from invoicing_kernel.domain.currency import CurrencyRegistry
from invoicing_kernel.domain.invoice import InvoiceStatus
from invoicing_kernel.exceptions import TemplateNotFoundError
from invoicing_engines.reconciliation import DEFAULT_DELETION_WINDOW_DAYS, PaymentRules
from invoicing_engines.transitions import TransitionPolicy


@dataclass(frozen=True)
class BulkSettings:
    """Limits for one bulk call."""

    max_items: int = 1000
    max_workers: int = 8
    unit_timeout_seconds: float | None = 30.0

    def __post_init__(self) -> None:
        if self.max_items < 1:
            raise ValueError("max_items must be at least 1")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.unit_timeout_seconds is not None and self.unit_timeout_seconds <= 0:
            raise ValueError("unit_timeout_seconds must be positive")


@dataclass(frozen=True)
class ReminderTemplate:
    """
    A reminder message template.

    ``subject`` and ``body`` may reference {{invoiceNumber}},
    {{customerName}}, {{amount}}, {{dueDate}} and {{daysPastDue}}.
    """

    template_id: str
    subject: str
    body: str


@dataclass(frozen=True)
class ReminderSettings:
    blocked_statuses: frozenset[InvoiceStatus] = field(
        default_factory=lambda: frozenset({InvoiceStatus.PAID, InvoiceStatus.WRITTEN_OFF})
    )
    templates: tuple[ReminderTemplate, ...] = ()

    def __post_init__(self) -> None:
        ids = [t.template_id for t in self.templates]
        if len(ids) != len(set(ids)):
            raise ValueError("reminder template ids must be unique")

    def has_template(self, template_id: str) -> bool:
        return any(t.template_id == template_id for t in self.templates)

    def get_template(self, template_id: str) -> ReminderTemplate:
        for template in self.templates:
            if template.template_id == template_id:
                return template
        raise TemplateNotFoundError(template_id)


@dataclass(frozen=True)
class InvoicingConfig:
    """Complete runtime configuration."""

    config_id: str = "default"
    version: int = 1
    default_currency: str = "AED"
    transition_policy: TransitionPolicy = field(default_factory=TransitionPolicy)
    payment_rules: PaymentRules = field(default_factory=PaymentRules)
    deletion_window_days: int = DEFAULT_DELETION_WINDOW_DAYS
    overdue_grace_period_days: int = 0
    payment_terms_days: int = 30
    bulk: BulkSettings = field(default_factory=BulkSettings)
    reminders: ReminderSettings = field(default_factory=ReminderSettings)
    checksum: str = ""

    def __post_init__(self) -> None:
        if not CurrencyRegistry.is_valid(self.default_currency):
            raise ValueError(f"unknown default_currency {self.default_currency}")
        if self.deletion_window_days < 0:
            raise ValueError("deletion_window_days cannot be negative")
        if self.overdue_grace_period_days < 0:
            raise ValueError("overdue_grace_period_days cannot be negative")
        if self.payment_terms_days < 0:
            raise ValueError("payment_terms_days cannot be negative")

    @property
    def payment_completion_ratio(self) -> Decimal:
        return self.transition_policy.payment_completion_ratio
