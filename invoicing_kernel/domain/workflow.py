"""
Invoice workflow (``invoicing_kernel.domain.workflow``).

Responsibility
--------------
Declares the invoice status state machine as data: guards, transitions,
and the workflow value object.  The transition validator in
``invoicing_engines.transitions`` evaluates it; nothing here performs I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing user transitions.
* Payment-reversal edges (out of PAID) live in ``REVERSAL_TRANSITIONS`` and
  are never offered to user transition requests.
"""

from __future__ import annotations

from dataclasses import dataclass

from invoicing_kernel.domain.invoice import InvoiceStatus
from invoicing_kernel.logging_config import get_logger

logger = get_logger("domain.workflow")


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the validator does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid status transition."""
    from_state: InvoiceStatus
    to_state: InvoiceStatus
    action: str
    guards: tuple[Guard, ...] = ()


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for the invoice lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    """
    name: str
    description: str
    initial_state: InvoiceStatus
    states: tuple[InvoiceStatus, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[InvoiceStatus, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"initial_state {self.initial_state} not in states")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"transition {t.action} references unknown state")
            if t.from_state in self.terminal_states:
                raise ValueError(f"terminal state {t.from_state} has outgoing transition")

    def find(self, from_state: InvoiceStatus, to_state: InvoiceStatus) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def targets_from(self, from_state: InvoiceStatus) -> tuple[InvoiceStatus, ...]:
        return tuple(t.to_state for t in self.transitions if t.from_state == from_state)


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

PAYMENT_COMPLETE = Guard(
    name="payment_complete",
    description="Verified payments reach the completion ratio of the invoice total",
)

REASON_PROVIDED = Guard(
    name="reason_provided",
    description="A non-empty reason accompanies the status change",
)

PRIVILEGED_ACTOR = Guard(
    name="privileged_actor",
    description="Actor role may write off or dispute invoices",
)


# -----------------------------------------------------------------------------
# Invoice Workflow
# -----------------------------------------------------------------------------

S = InvoiceStatus

_WRITE_OFF_GUARDS = (REASON_PROVIDED, PRIVILEGED_ACTOR)

INVOICE_WORKFLOW = Workflow(
    name="invoice",
    description="Customer invoice lifecycle",
    initial_state=S.DRAFT,
    states=tuple(InvoiceStatus),
    transitions=(
        Transition(S.DRAFT, S.SENT, action="send"),
        Transition(S.DRAFT, S.WRITTEN_OFF, action="write_off", guards=_WRITE_OFF_GUARDS),
        Transition(S.DRAFT, S.CANCELLED, action="cancel"),
        Transition(S.SENT, S.PAID, action="mark_paid", guards=(PAYMENT_COMPLETE,)),
        Transition(S.SENT, S.OVERDUE, action="mark_overdue"),
        Transition(S.SENT, S.DISPUTED, action="dispute", guards=_WRITE_OFF_GUARDS),
        Transition(S.SENT, S.WRITTEN_OFF, action="write_off", guards=_WRITE_OFF_GUARDS),
        Transition(S.OVERDUE, S.PAID, action="mark_paid", guards=(PAYMENT_COMPLETE,)),
        Transition(S.OVERDUE, S.DISPUTED, action="dispute", guards=_WRITE_OFF_GUARDS),
        Transition(S.OVERDUE, S.WRITTEN_OFF, action="write_off", guards=_WRITE_OFF_GUARDS),
        Transition(S.DISPUTED, S.PAID, action="mark_paid", guards=(PAYMENT_COMPLETE,)),
        Transition(S.DISPUTED, S.OVERDUE, action="mark_overdue"),
        Transition(S.DISPUTED, S.SENT, action="resolve_dispute"),
        Transition(S.DISPUTED, S.WRITTEN_OFF, action="write_off", guards=_WRITE_OFF_GUARDS),
    ),
    terminal_states=(S.PAID, S.WRITTEN_OFF, S.CANCELLED),
)

# Reached only when verified payments on a PAID invoice drop below its total.
REVERSAL_TRANSITIONS: tuple[Transition, ...] = (
    Transition(S.PAID, S.SENT, action="reverse_payment_not_due"),
    Transition(S.PAID, S.OVERDUE, action="reverse_payment_past_due"),
)

logger.debug(
    "invoice_workflow_defined",
    extra={
        "workflow": INVOICE_WORKFLOW.name,
        "transition_count": len(INVOICE_WORKFLOW.transitions),
        "guards": [PAYMENT_COMPLETE.name, REASON_PROVIDED.name, PRIVILEGED_ACTOR.name],
    },
)
