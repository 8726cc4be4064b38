"""Transactional repository: the protocol and its SQLAlchemy implementation."""

from invoicing_kernel.repository.base import InvoiceRepository, UnitOfWork
from invoicing_kernel.repository.sql_repository import SqlInvoiceRepository, SqlUnitOfWork

__all__ = [
    "InvoiceRepository",
    "SqlInvoiceRepository",
    "SqlUnitOfWork",
    "UnitOfWork",
]
