"""
Configuration Loader (``invoicing_config.loader``).

Responsibility
--------------
Loads a YAML configuration document and parses it into the typed
``invoicing_config.schema`` dataclasses.

Invariants enforced
-------------------
* Monetary and ratio values are parsed into ``Decimal`` from strings or
  integers; a YAML float is rejected so no value passes through binary
  floating point.
* Every parsed object is a frozen dataclass validated in ``__post_init__``.
* ``compute_checksum`` is a deterministic SHA-256 of the parsed document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad values  -> ``ValueError`` with the offending key in the message.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from invoicing_kernel.domain.invoice import InvoiceStatus, PaymentMethod
from invoicing_kernel.logging_config import get_logger
from invoicing_engines.reconciliation import PaymentRules
from invoicing_engines.transitions import TransitionPolicy
from invoicing_config.schema import (
    BulkSettings,
    InvoicingConfig,
    ReminderSettings,
    ReminderTemplate,
)

logger = get_logger("config.loader")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty document yields ``{}``."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_decimal(value: Any, key: str) -> Decimal:
    """Decimal from a YAML string or integer."""
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"{key}: quote decimal values in YAML (got {value!r})")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key}: not a decimal value: {value!r}") from exc


def _optional_decimal(value: Any, key: str) -> Decimal | None:
    return None if value is None else parse_decimal(value, key)


def _statuses(values: Any, key: str) -> frozenset[InvoiceStatus]:
    try:
        return frozenset(InvoiceStatus(str(v).upper()) for v in values or ())
    except ValueError as exc:
        raise ValueError(f"{key}: {exc}") from exc


def parse_transition_policy(data: dict[str, Any]) -> TransitionPolicy:
    defaults = TransitionPolicy()
    return TransitionPolicy(
        payment_completion_ratio=parse_decimal(
            data.get("payment_completion_ratio", defaults.payment_completion_ratio),
            "workflow.payment_completion_ratio",
        ),
        reason_required_for=_statuses(
            data.get("reason_required_for", [s.value for s in defaults.reason_required_for]),
            "workflow.reason_required_for",
        ),
        role_gated_statuses=_statuses(
            data.get("role_gated_statuses", [s.value for s in defaults.role_gated_statuses]),
            "workflow.role_gated_statuses",
        ),
        privileged_roles=frozenset(
            str(r).upper() for r in data.get("privileged_roles", defaults.privileged_roles)
        ),
    )


def parse_payment_rules(data: dict[str, Any]) -> PaymentRules:
    defaults = PaymentRules()
    try:
        methods = frozenset(
            PaymentMethod(str(m).upper())
            for m in data.get(
                "reference_required_for",
                [m.value for m in defaults.reference_required_for],
            )
        )
    except ValueError as exc:
        raise ValueError(f"payments.reference_required_for: {exc}") from exc
    return PaymentRules(
        minimum_amount=parse_decimal(
            data.get("minimum_amount", defaults.minimum_amount), "payments.minimum_amount"
        ),
        maximum_amount=_optional_decimal(data.get("maximum_amount"), "payments.maximum_amount"),
        allow_future_dates=bool(data.get("allow_future_dates", defaults.allow_future_dates)),
        reference_required_for=methods,
        overpayment_tolerance=parse_decimal(
            data.get("overpayment_tolerance", defaults.overpayment_tolerance),
            "payments.overpayment_tolerance",
        ),
        large_payment_threshold=parse_decimal(
            data.get("large_payment_threshold", defaults.large_payment_threshold),
            "payments.large_payment_threshold",
        ),
    )


def parse_bulk_settings(data: dict[str, Any]) -> BulkSettings:
    defaults = BulkSettings()
    timeout = data.get("unit_timeout_seconds", defaults.unit_timeout_seconds)
    return BulkSettings(
        max_items=int(data.get("max_items", defaults.max_items)),
        max_workers=int(data.get("max_workers", defaults.max_workers)),
        unit_timeout_seconds=None if timeout is None else float(timeout),
    )


def parse_reminder_settings(data: dict[str, Any]) -> ReminderSettings:
    defaults = ReminderSettings()
    templates = tuple(
        ReminderTemplate(
            template_id=t["id"],
            subject=t["subject"],
            body=t["body"],
        )
        for t in data.get("templates", [])
    )
    return ReminderSettings(
        blocked_statuses=_statuses(
            data.get("blocked_statuses", [s.value for s in defaults.blocked_statuses]),
            "reminders.blocked_statuses",
        ),
        templates=templates,
    )


def config_from_dict(data: dict[str, Any]) -> InvoicingConfig:
    """
    Build an InvoicingConfig from a parsed YAML mapping.

    Missing sections fall back to the dataclass defaults.
    """
    invoices = data.get("invoices", {}) or {}
    config = InvoicingConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        default_currency=str(invoices.get("default_currency", "AED")).upper(),
        transition_policy=parse_transition_policy(data.get("workflow", {}) or {}),
        payment_rules=parse_payment_rules(data.get("payments", {}) or {}),
        deletion_window_days=int(invoices.get("deletion_window_days", 30)),
        overdue_grace_period_days=int(invoices.get("overdue_grace_period_days", 0)),
        payment_terms_days=int(invoices.get("payment_terms_days", 30)),
        bulk=parse_bulk_settings(data.get("bulk", {}) or {}),
        reminders=parse_reminder_settings(data.get("reminders", {}) or {}),
        checksum=compute_checksum(data),
    )
    logger.info(
        "invoicing_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "template_count": len(config.reminders.templates),
        },
    )
    return config


def load_config(path: Path | str) -> InvoicingConfig:
    """Load and parse a YAML configuration file."""
    return config_from_dict(load_yaml_file(Path(path)))


def get_default_config() -> InvoicingConfig:
    """The packaged ``defaults.yaml``."""
    return load_config(DEFAULTS_PATH)
