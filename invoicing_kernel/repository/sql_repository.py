"""
SqlInvoiceRepository -- SQLAlchemy implementation of InvoiceRepository.

Responsibility:
    Runs each unit of work in its own Session and transaction, converts
    ORM rows to frozen domain DTOs, and translates driver failures into
    the kernel's typed errors.

Architecture position:
    Kernel > Repository -- the only code outside db/ and models/ that
    touches a Session.  Services receive the repository by injection.

Invariants enforced:
    - Tenant scoping: every query filters on tenant_id; other tenants'
      rows are indistinguishable from absent ones.
    - Row lock on read: ``get_invoice`` issues SELECT ... FOR UPDATE unless
      called with ``lock=False`` for read-only projections, and
      ``invoices.version`` is the mapper's version_id_col.
    - Commit on success, rollback on every exception path, session closed
      in all cases.
    - Deadline: a unit that overruns its timeout is rolled back.

Failure modes:
    - ConcurrencyConflict: StaleDataError (version check failed).
    - UnitTimeoutError: deadline exceeded.
    - InfrastructureError: any other SQLAlchemyError.  The driver text is
      logged, never put into the raised message.
"""

from __future__ import annotations

import time
from collections.abc import Generator, Iterable, Sequence
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from invoicing_kernel.db.engine import create_session_factory
from invoicing_kernel.db.immutability import register_immutability_listeners
from invoicing_kernel.domain.audit import AuditEntry, AuditRecord
from invoicing_kernel.domain.clock import Clock, SystemClock
from invoicing_kernel.domain.currency import quantize_amount
from invoicing_kernel.domain.invoice import (
    Invoice,
    InvoiceStatus,
    LineItem,
    PaymentMethod,
    PaymentRecord,
)
from invoicing_kernel.exceptions import (
    ConcurrencyConflict,
    InfrastructureError,
    InvoiceNotFoundError,
    InvoicingError,
    PaymentNotFoundError,
    UnitTimeoutError,
    ValidationError,
)
from invoicing_kernel.logging_config import get_logger
from invoicing_kernel.models.invoice import (
    InvoiceModel,
    LineItemModel,
    PaymentModel,
    ReminderLogModel,
)
from invoicing_kernel.services.auditor_service import AuditorService

logger = get_logger("repository.sql")


def _as_uuid(value: UUID | str) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, AttributeError):
        return None


def _plain(value: Decimal) -> Decimal:
    """Drop the storage scale's trailing zeros without exponent notation."""
    if value == value.to_integral_value():
        return value.quantize(Decimal("1"))
    return value.normalize()


def _to_line_item(model: LineItemModel) -> LineItem:
    return LineItem(
        description=model.description,
        quantity=_plain(model.quantity),
        unit_price=_plain(model.unit_price),
        tax_rate=_plain(model.tax_rate),
    )


def _to_payment(model: PaymentModel, currency: str) -> PaymentRecord:
    return PaymentRecord(
        id=model.id,
        invoice_id=model.invoice_id,
        amount=quantize_amount(model.amount, currency),
        method=model.method,
        payment_date=model.payment_date,
        verified=model.verified,
        reference=model.reference,
        notes=model.notes,
        created_at=model.created_at,
    )


def _to_invoice(model: InvoiceModel) -> Invoice:
    currency = model.currency
    return Invoice(
        id=model.id,
        tenant_id=model.tenant_id,
        invoice_number=model.invoice_number,
        customer_name=model.customer_name,
        currency=currency,
        subtotal=quantize_amount(model.subtotal, currency),
        tax_amount=quantize_amount(model.tax_amount, currency),
        total_amount=quantize_amount(model.total_amount, currency),
        status=model.status,
        due_date=model.due_date,
        created_at=model.created_at,
        issue_date=model.issue_date,
        customer_email=model.customer_email,
        tax_id=model.tax_id,
        tax_finalized_at=model.tax_finalized_at,
        version=model.version,
        line_items=tuple(_to_line_item(li) for li in model.line_items),
        payments=tuple(_to_payment(p, currency) for p in model.payments),
        reminder_count=len(model.reminder_logs),
    )


def _line_models(line_items: Sequence[LineItem]) -> list[LineItemModel]:
    return [
        LineItemModel(
            position=index,
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            tax_rate=item.tax_rate,
        )
        for index, item in enumerate(line_items)
    ]


class SqlUnitOfWork:
    """One Session, one transaction.  Created only by SqlInvoiceRepository."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        deadline: float | None,
        timeout: float | None,
    ):
        self._session = session
        self._clock = clock
        self._deadline = deadline
        self._timeout = timeout
        self._audit = AuditorService(session, clock)
        self.last_invoice_id: str | None = None

    @property
    def audit(self) -> AuditorService:
        return self._audit

    def check_deadline(self) -> None:
        if self._deadline is not None and time.monotonic() > self._deadline:
            raise UnitTimeoutError(self._timeout or 0.0)

    # Invoices

    def _load_invoice(self, invoice_id: UUID | str, tenant_id: str, lock: bool = True) -> InvoiceModel:
        self.check_deadline()
        uid = _as_uuid(invoice_id)
        if uid is None:
            raise InvoiceNotFoundError(invoice_id)
        stmt = select(InvoiceModel).where(
            InvoiceModel.id == uid,
            InvoiceModel.tenant_id == tenant_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        model = self._session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise InvoiceNotFoundError(invoice_id)
        self.last_invoice_id = str(uid)
        return model

    def get_invoice(self, invoice_id: UUID | str, tenant_id: str, *, lock: bool = True) -> Invoice:
        return _to_invoice(self._load_invoice(invoice_id, tenant_id, lock=lock))

    def get_invoices(
        self, invoice_ids: Iterable[UUID | str], tenant_id: str
    ) -> dict[str, Invoice]:
        self.check_deadline()
        wanted = {uid for uid in (_as_uuid(i) for i in invoice_ids) if uid is not None}
        if not wanted:
            return {}
        rows = self._session.execute(
            select(InvoiceModel).where(
                InvoiceModel.tenant_id == tenant_id,
                InvoiceModel.id.in_(wanted),
            )
        ).scalars()
        return {str(m.id): _to_invoice(m) for m in rows}

    def list_invoices(
        self,
        tenant_id: str,
        statuses: Sequence[InvoiceStatus] | None = None,
    ) -> list[Invoice]:
        self.check_deadline()
        stmt = select(InvoiceModel).where(InvoiceModel.tenant_id == tenant_id)
        if statuses:
            stmt = stmt.where(InvoiceModel.status.in_(list(statuses)))
        stmt = stmt.order_by(InvoiceModel.due_date, InvoiceModel.invoice_number)
        return [_to_invoice(m) for m in self._session.execute(stmt).scalars()]

    def add_invoice(
        self,
        *,
        tenant_id: str,
        invoice_number: str,
        customer_name: str,
        currency: str,
        line_items: Sequence[LineItem],
        subtotal: Decimal,
        tax_amount: Decimal,
        total_amount: Decimal,
        due_date: date,
        actor_id: str,
        issue_date: date | None = None,
        customer_email: str | None = None,
        tax_id: str | None = None,
    ) -> Invoice:
        self.check_deadline()
        model = InvoiceModel(
            tenant_id=tenant_id,
            invoice_number=invoice_number,
            customer_name=customer_name,
            customer_email=customer_email,
            currency=currency,
            subtotal=subtotal,
            tax_amount=tax_amount,
            total_amount=total_amount,
            status=InvoiceStatus.DRAFT,
            due_date=due_date,
            issue_date=issue_date,
            tax_id=tax_id,
            created_at=self._clock.now(),
            created_by=actor_id,
            line_items=_line_models(line_items),
        )
        self._session.add(model)
        try:
            self._session.flush()
        except IntegrityError as exc:
            logger.info(
                "invoice_number_conflict",
                extra={"invoice_number": invoice_number, "error": str(exc.orig)},
            )
            raise ValidationError(
                "invoice_number", f"Invoice number {invoice_number} already exists"
            ) from None
        self.last_invoice_id = str(model.id)
        return _to_invoice(model)

    def replace_line_items(
        self,
        invoice_id: UUID | str,
        tenant_id: str,
        line_items: Sequence[LineItem],
        subtotal: Decimal,
        tax_amount: Decimal,
        total_amount: Decimal,
        actor_id: str,
    ) -> Invoice:
        model = self._load_invoice(invoice_id, tenant_id)
        model.line_items = _line_models(line_items)
        model.subtotal = subtotal
        model.tax_amount = tax_amount
        model.total_amount = total_amount
        model.updated_at = self._clock.now()
        model.updated_by = actor_id
        self._session.flush()
        return _to_invoice(model)

    def update_status(
        self,
        invoice_id: UUID | str,
        tenant_id: str,
        status: InvoiceStatus,
        actor_id: str,
    ) -> Invoice:
        model = self._load_invoice(invoice_id, tenant_id)
        model.status = status
        model.updated_at = self._clock.now()
        model.updated_by = actor_id
        self._session.flush()
        return _to_invoice(model)

    def mark_tax_finalized(
        self,
        invoice_id: UUID | str,
        tenant_id: str,
        finalized_at: datetime,
        actor_id: str,
    ) -> Invoice:
        model = self._load_invoice(invoice_id, tenant_id)
        model.tax_finalized_at = finalized_at
        model.updated_at = self._clock.now()
        model.updated_by = actor_id
        self._session.flush()
        return _to_invoice(model)

    def touch(self, invoice_id: UUID | str, tenant_id: str, actor_id: str) -> None:
        model = self._load_invoice(invoice_id, tenant_id)
        model.updated_at = self._clock.now()
        model.updated_by = actor_id
        self._session.flush()

    def delete_invoice(self, invoice_id: UUID | str, tenant_id: str) -> None:
        model = self._load_invoice(invoice_id, tenant_id)
        self._session.delete(model)
        self._session.flush()

    # Payments

    def add_payment(
        self,
        *,
        invoice_id: UUID | str,
        tenant_id: str,
        amount: Decimal,
        method: PaymentMethod,
        payment_date: date,
        verified: bool,
        actor_id: str,
        reference: str | None = None,
        notes: str | None = None,
    ) -> PaymentRecord:
        invoice = self._load_invoice(invoice_id, tenant_id)
        payment = PaymentModel(
            tenant_id=tenant_id,
            amount=amount,
            method=method,
            payment_date=payment_date,
            verified=verified,
            reference=reference,
            notes=notes,
            created_at=self._clock.now(),
            created_by=actor_id,
        )
        invoice.payments.append(payment)
        invoice.updated_at = self._clock.now()
        invoice.updated_by = actor_id
        self._session.flush()
        return _to_payment(payment, invoice.currency)

    def _load_payment(self, payment_id: UUID | str, tenant_id: str) -> PaymentModel:
        self.check_deadline()
        uid = _as_uuid(payment_id)
        if uid is None:
            raise PaymentNotFoundError(payment_id)
        model = self._session.execute(
            select(PaymentModel).where(
                PaymentModel.id == uid,
                PaymentModel.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if model is None:
            raise PaymentNotFoundError(payment_id)
        return model

    def get_payment(self, payment_id: UUID | str, tenant_id: str) -> PaymentRecord:
        model = self._load_payment(payment_id, tenant_id)
        return _to_payment(model, model.invoice.currency)

    def set_payment_verified(
        self,
        payment_id: UUID | str,
        tenant_id: str,
        verified: bool,
        actor_id: str,
    ) -> PaymentRecord:
        payment = self._load_payment(payment_id, tenant_id)
        invoice = self._load_invoice(payment.invoice_id, tenant_id)
        payment.verified = verified
        payment.updated_at = self._clock.now()
        payment.updated_by = actor_id
        invoice.updated_at = self._clock.now()
        invoice.updated_by = actor_id
        self._session.flush()
        return _to_payment(payment, invoice.currency)

    # Reminders and audit

    def add_reminder_log(
        self,
        *,
        invoice_id: UUID | str,
        tenant_id: str,
        template_id: str,
        recipient: str,
        subject: str,
        actor_id: str,
    ) -> None:
        invoice = self._load_invoice(invoice_id, tenant_id)
        invoice.reminder_logs.append(ReminderLogModel(
            tenant_id=tenant_id,
            template_id=template_id,
            recipient=recipient,
            subject=subject,
            queued_at=self._clock.now(),
            queued_by=actor_id,
        ))
        self._session.flush()

    def append_audit(self, tenant_id: str, entry: AuditEntry) -> AuditRecord:
        self.check_deadline()
        return self._audit.append(tenant_id, entry)


class SqlInvoiceRepository:
    """
    InvoiceRepository over a SQLAlchemy Engine.

    Usage:
        repo = SqlInvoiceRepository(engine, clock=clock)
        with repo.unit_of_work(timeout=5.0) as uow:
            invoice = uow.get_invoice(invoice_id, ctx.tenant_id)
    """

    def __init__(
        self,
        engine: Engine,
        clock: Clock | None = None,
        session_factory: sessionmaker[Session] | None = None,
    ):
        self._engine = engine
        self._clock = clock or SystemClock()
        self._session_factory = session_factory or create_session_factory(engine)
        register_immutability_listeners()

    @property
    def clock(self) -> Clock:
        return self._clock

    @contextmanager
    def unit_of_work(self, timeout: float | None = None) -> Generator[SqlUnitOfWork, None, None]:
        """
        One atomic unit.

        Postconditions: on normal exit the deadline is checked and the
            session committed.  On any exception the session is rolled
            back and a typed error raised.  The session is always closed.
        """
        deadline = time.monotonic() + timeout if timeout is not None else None
        session = self._session_factory()
        uow = SqlUnitOfWork(session, self._clock, deadline, timeout)
        try:
            yield uow
            uow.check_deadline()
            session.commit()
        except StaleDataError as exc:
            session.rollback()
            logger.warning(
                "concurrency_conflict",
                extra={"invoice_id": uow.last_invoice_id, "error": str(exc)},
            )
            raise ConcurrencyConflict("Invoice", uow.last_invoice_id or "unknown") from None
        except UnitTimeoutError:
            session.rollback()
            logger.warning(
                "unit_of_work_timeout",
                extra={"invoice_id": uow.last_invoice_id, "timeout_seconds": timeout},
            )
            raise
        except InvoicingError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(
                "repository_failure",
                extra={"error_type": type(exc).__name__, "error": str(exc)},
            )
            raise InfrastructureError("unit_of_work") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
