"""
Invoicing Kernel - invoice lifecycle and payment reconciliation core.

Provides:
- Decimal-only money and currency handling
- A validated invoice status workflow
- Atomic payment application with overpayment protection
- Tenant-scoped transactional repository
- Full auditability via a per-tenant hash chain
"""

__version__ = "0.1.0"
