# app/services/status.py
#
# Traducción del vocabulario del nodo al de la aplicación. Funciones puras.

from datetime import datetime

from app.models import InvoiceStatus, PaymentStatus


def invoice_status_from_node(confirmed: bool, expires_at: datetime, now: datetime) -> InvoiceStatus:
    if confirmed:
        return InvoiceStatus.SUCCEEDED
    # Expira cuando el tiempo ya pasó, no cuando es igual
    if now > expires_at:
        return InvoiceStatus.EXPIRED
    return InvoiceStatus.PENDING


def invoice_status_from_update(confirmed: bool, canceled: bool) -> InvoiceStatus:
    if confirmed:
        return InvoiceStatus.SUCCEEDED
    if canceled:
        return InvoiceStatus.EXPIRED
    return InvoiceStatus.PENDING


def payment_status_from_node(confirmed: bool, failed: bool) -> PaymentStatus:
    if confirmed:
        return PaymentStatus.SUCCEEDED
    if failed:
        return PaymentStatus.FAILED
    return PaymentStatus.PENDING


_PAYMENT_OUTCOMES = {
    "pending": PaymentStatus.PENDING,
    "in_flight": PaymentStatus.PENDING,
    "succeeded": PaymentStatus.SUCCEEDED,
    "failed": PaymentStatus.FAILED,
    # Payment no tiene "expired": una invoice expirada/cancelada es un pago fallido
    "expired": PaymentStatus.FAILED,
    "canceled": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.FAILED,
}


def normalize_payment_outcome(outcome) -> PaymentStatus:
    """Lleva cualquier resultado reportado por el nodo al enum de Payment.

    Valores desconocidos se tratan como fallo.
    """
    key = str(outcome).lower()
    return _PAYMENT_OUTCOMES.get(key, PaymentStatus.FAILED)
