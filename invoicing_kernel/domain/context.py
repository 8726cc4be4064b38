"""Caller identity supplied by the transport/auth layer."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RequestContext:
    """
    Tenant and actor for one core call.

    The core trusts this context and never re-derives it.  ``actor_role`` is
    optional; role-gated transitions are only checked when it is present.
    """

    tenant_id: str
    actor_id: str
    actor_role: str | None = None
    correlation_id: str | None = None

    def __post_init__(self) -> None:
        if not self.tenant_id:
            raise ValueError("tenant_id is required")
        if not self.actor_id:
            raise ValueError("actor_id is required")
