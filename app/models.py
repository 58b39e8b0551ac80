# app/models.py

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, String, Text
from sqlalchemy import Enum as SAEnum

from app.core.db import Base


def utcnow() -> datetime:
    # Guardamos UTC sin tzinfo: SQLite no conserva la zona horaria
    return datetime.now(timezone.utc).replace(tzinfo=None)


class InvoiceStatus(str, Enum):
    """pending → succeeded (settled) | pending → expired. Ambos finales."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    EXPIRED = "expired"

    def __str__(self) -> str:
        return self.value

    @property
    def is_final(self) -> bool:
        return self is not InvoiceStatus.PENDING


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


def _values(enum_cls):
    return [member.value for member in enum_cls]


class Invoice(Base):
    __tablename__ = "invoices"
    payment_hash    = Column(String(64), primary_key=True)
    payment_request = Column(Text,       nullable=False)
    amount          = Column(BigInteger, nullable=False)  # satoshis
    status          = Column(SAEnum(InvoiceStatus, name="invoice_status", values_callable=_values),
                             nullable=False, default=InvoiceStatus.PENDING)
    description     = Column(Text)
    preimage        = Column(String(64))
    expires_at      = Column(DateTime,   nullable=False)
    settled_at      = Column(DateTime)
    created_at      = Column(DateTime,   nullable=False, default=utcnow)
    updated_at      = Column(DateTime,   nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_invoices_status", "status"),
        Index("idx_invoices_created", "created_at"),
    )


class Payment(Base):
    __tablename__ = "payments"
    id              = Column(Integer,    primary_key=True, autoincrement=True)
    payment_hash    = Column(String(64), nullable=False, index=True)
    payment_request = Column(Text,       nullable=False)
    amount          = Column(BigInteger, nullable=False)  # satoshis
    fee             = Column(BigInteger, default=0)
    status          = Column(SAEnum(PaymentStatus, name="payment_status", values_callable=_values),
                             nullable=False, default=PaymentStatus.PENDING)
    description     = Column(Text)
    preimage        = Column(String(64))
    destination     = Column(String(66))
    error_message   = Column(Text)
    retry_count     = Column(BigInteger, default=0)  # informativo, no hay reintentos automáticos
    idempotency_key = Column(String(64), unique=True)
    settled_at      = Column(DateTime)
    created_at      = Column(DateTime,   nullable=False, default=utcnow)
    updated_at      = Column(DateTime,   nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_payments_status", "status"),
        Index("idx_payments_created", "created_at"),
    )
