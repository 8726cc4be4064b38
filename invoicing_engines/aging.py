"""
Module: invoicing_engines.aging
Responsibility:
    Overdue arithmetic for invoices: days past due, overdue detection,
    aging bucket classification and due-date calculation from payment terms.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The caller supplies
    ``as_of``; nothing here reads the clock.

Invariants enforced:
    - Deterministic bucket classification for identical inputs.
    - Terminal invoices are never overdue.

Usage:
    from invoicing_engines.aging import classify, days_overdue
    from datetime import date

    age = days_overdue(date(2024, 1, 15), date(2024, 2, 15))  # 31
    classify(age).name  # "31-60"
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, timedelta

from invoicing_kernel.domain.invoice import Invoice, InvoiceStatus
from invoicing_kernel.logging_config import get_logger

logger = get_logger("engines.aging")

# Statuses in which an invoice is still awaiting payment.
OPEN_STATUSES: frozenset[InvoiceStatus] = frozenset({
    InvoiceStatus.SENT,
    InvoiceStatus.OVERDUE,
    InvoiceStatus.DISPUTED,
})

# date.weekday(): Friday=4, Saturday=5
DEFAULT_WEEKEND: frozenset[int] = frozenset({4, 5})


@dataclass(frozen=True)
class AgeBucket:
    """
    A contiguous range of days past due.

    ``max_days`` of None means unbounded.
    """

    name: str
    min_days: int
    max_days: int | None

    def __post_init__(self) -> None:
        if self.min_days < 0:
            raise ValueError("min_days cannot be negative")
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, age_days: int) -> bool:
        if age_days < self.min_days:
            return False
        return self.max_days is None or age_days <= self.max_days


STANDARD_BUCKETS: tuple[AgeBucket, ...] = (
    AgeBucket("current", 0, 0),
    AgeBucket("1-30", 1, 30),
    AgeBucket("31-60", 31, 60),
    AgeBucket("61-90", 61, 90),
    AgeBucket("90+", 91, None),
)


def days_overdue(due_date: date, as_of: date) -> int:
    """Whole days past ``due_date``; 0 when not yet due."""
    return max(0, (as_of - due_date).days)


def is_overdue(invoice: Invoice, as_of: date, grace_period_days: int = 0) -> bool:
    """True when an open invoice is past its due date plus the grace period."""
    if invoice.status not in OPEN_STATUSES:
        return False
    return days_overdue(invoice.due_date, as_of) > grace_period_days


def classify(age_days: int, buckets: Sequence[AgeBucket] = STANDARD_BUCKETS) -> AgeBucket:
    """
    Return the bucket containing ``age_days``.

    Negative ages (not yet due) fall into the first bucket.

    Raises:
        ValueError: no bucket contains the age.
    """
    if age_days < 0:
        return buckets[0]
    for bucket in buckets:
        if bucket.contains(age_days):
            return bucket
    raise ValueError(f"No bucket for age {age_days} days")


def calculate_due_date(
    issue_date: date,
    payment_terms_days: int,
    weekend: frozenset[int] = DEFAULT_WEEKEND,
) -> date:
    """
    ``issue_date + payment_terms_days``, rolled forward past weekend days.
    """
    if payment_terms_days < 0:
        raise ValueError("payment_terms_days cannot be negative")
    due = issue_date + timedelta(days=payment_terms_days)
    while due.weekday() in weekend:
        due += timedelta(days=1)
    return due
