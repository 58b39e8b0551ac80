"""Acceso a datos de invoices y payments (clave: payment_hash)."""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models import Invoice, InvoiceStatus, Payment, PaymentStatus, utcnow

INVOICE = "invoice"
PAYMENT = "payment"

# node_a genera invoices, node_b hace pagos
NODE_TYPES = {"node_a": INVOICE, "node_b": PAYMENT}


@dataclass
class TransactionPage:
    transactions: list
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit


@dataclass
class RecordedTotals:
    received: int
    sent: int
    fees: int

    @property
    def net(self) -> int:
        return self.received - self.sent - self.fees


class TransactionStore:
    def __init__(self, session: Session):
        self.session = session

    # --- invoices ---

    def add_invoice(self, invoice: Invoice) -> Invoice:
        self.session.add(invoice)
        self.session.commit()
        self.session.refresh(invoice)
        return invoice

    def get_invoice(self, payment_hash: str) -> Optional[Invoice]:
        return self.session.get(Invoice, payment_hash)

    def mark_invoice_settled(self, payment_hash: str, preimage: str, settled_at) -> bool:
        """Marca como succeeded la invoice local con ese hash, si existe y no es final."""
        invoice = self.get_invoice(payment_hash)
        if invoice is None or invoice.status is InvoiceStatus.SUCCEEDED:
            return False
        invoice.status = InvoiceStatus.SUCCEEDED
        invoice.preimage = preimage
        invoice.settled_at = settled_at
        invoice.updated_at = settled_at
        self.session.commit()
        return True

    # --- payments ---

    def get_payment(self, payment_hash: str) -> Optional[Payment]:
        """Último payment registrado para el hash."""
        stmt = (
            select(Payment)
            .where(Payment.payment_hash == payment_hash)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def get_payment_by_key(self, idempotency_key: str) -> Optional[Payment]:
        stmt = select(Payment).where(Payment.idempotency_key == idempotency_key)
        return self.session.execute(stmt).scalar_one_or_none()

    def insert_payment(self, payment: Payment) -> Payment:
        """Inserta y confirma; una clave de idempotencia repetida lanza IntegrityError."""
        self.session.add(payment)
        self.session.commit()
        self.session.refresh(payment)
        return payment

    def save(self, record):
        record.updated_at = utcnow()
        self.session.commit()
        self.session.refresh(record)
        return record

    def rollback(self):
        self.session.rollback()

    # --- listados y agregados ---

    def list_transactions(
        self,
        type: Optional[str] = None,
        status: Optional[str] = None,
        node: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> TransactionPage:
        kinds = [INVOICE, PAYMENT]
        if type:
            kinds = [k for k in kinds if k == type]
        if node:
            kinds = [k for k in kinds if k == NODE_TYPES[node]]

        offset = (page - 1) * limit
        rows, total = [], 0
        for kind in kinds:
            model, status_enum = (Invoice, InvoiceStatus) if kind == INVOICE else (Payment, PaymentStatus)
            stmt = select(model)
            count_stmt = select(func.count()).select_from(model)
            if status:
                if status not in status_enum._value2member_map_:
                    # p.ej. "failed" no existe para invoices
                    continue
                stmt = stmt.where(model.status == status_enum(status))
                count_stmt = count_stmt.where(model.status == status_enum(status))
            # Basta con traer offset+limit de cada tabla para paginar la mezcla
            stmt = stmt.order_by(model.created_at.desc()).limit(offset + limit)
            rows.extend((kind, r) for r in self.session.execute(stmt).scalars())
            total += self.session.execute(count_stmt).scalar_one()

        rows.sort(key=lambda item: item[1].created_at, reverse=True)
        return TransactionPage(
            transactions=rows[offset:offset + limit], total=total, page=page, limit=limit
        )

    def recorded_totals(self) -> RecordedTotals:
        received = self.session.execute(
            select(func.coalesce(func.sum(Invoice.amount), 0))
            .where(Invoice.status == InvoiceStatus.SUCCEEDED)
        ).scalar_one()
        sent, fees = self.session.execute(
            select(
                func.coalesce(func.sum(Payment.amount), 0),
                func.coalesce(func.sum(Payment.fee), 0),
            ).where(Payment.status == PaymentStatus.SUCCEEDED)
        ).one()
        return RecordedTotals(received=int(received), sent=int(sent), fees=int(fees))
