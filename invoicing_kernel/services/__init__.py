"""Kernel services that run inside a caller-owned transaction."""

from invoicing_kernel.services.auditor_service import AuditorService, AuditTrace

__all__ = ["AuditorService", "AuditTrace"]
