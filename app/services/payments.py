"""Envío de pagos protegido por clave de idempotencia.

Flujo de submit_payment:
    1. Si hay clave y ya existe un Payment con ella → se devuelve (cached).
    2. Se decodifica la invoice con el nodo emisor.
    3. Invoice ya vencida → InvoiceExpired, sin pagar ni guardar nada.
    4. Con clave: se reserva la clave insertando el Payment en `pending`
       antes de pagar. Si la inserción choca con la restricción única es
       que otra petición concurrente se nos adelantó, y devolvemos su fila.
    5. Se paga y se guarda el resultado (succeeded/failed) en esa única fila.
    6. Si salió bien, la Invoice local con el mismo hash queda succeeded.

Un pago fallido no es una excepción: se guarda y se devuelve como resultado.
Sólo NodeUnavailable (transporte) se propaga.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.errors import InvoiceExpired
from app.models import Payment, PaymentStatus, utcnow
from app.services.node import NodeClient, NodePaymentError
from app.services.status import normalize_payment_outcome
from app.services.store import TransactionStore

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    payment: Payment
    cached: bool = False


class PaymentService:
    def __init__(self, store: TransactionStore, sender: NodeClient, clock: Callable = utcnow):
        self.store = store
        self.sender = sender
        self.clock = clock

    def submit_payment(self, payment_request: str, idempotency_key: Optional[str] = None) -> SubmissionResult:
        if idempotency_key:
            existing = self.store.get_payment_by_key(idempotency_key)
            if existing is not None:
                logger.info(f"↪ Pago cacheado por idempotency key {idempotency_key}")
                return SubmissionResult(existing, cached=True)

        decoded = self.sender.decode_invoice(payment_request)
        if decoded.expires_at < self.clock():
            logger.warning(f"Invoice {decoded.payment_hash[:16]}… expirada, no se paga")
            raise InvoiceExpired("Invoice has expired")

        payment = Payment(
            payment_hash=decoded.payment_hash,
            payment_request=payment_request,
            amount=decoded.amount,
            fee=0,
            status=PaymentStatus.PENDING,
            description=decoded.description or None,
            destination=decoded.destination,
            retry_count=0,
            idempotency_key=idempotency_key,
        )

        if idempotency_key:
            try:
                self.store.insert_payment(payment)
            except IntegrityError:
                self.store.rollback()
                existing = self.store.get_payment_by_key(idempotency_key)
                if existing is None:
                    raise
                logger.info(f"↪ Idempotency key {idempotency_key} reservada por otra petición")
                return SubmissionResult(existing, cached=True)

        self._execute(payment)

        if idempotency_key:
            self.store.save(payment)
        else:
            self.store.insert_payment(payment)
        logger.info(f"✔ Pago {payment.payment_hash[:16]}… registrado como {payment.status}")

        if payment.status is PaymentStatus.SUCCEEDED:
            self._settle_local_invoice(payment)
        return SubmissionResult(payment)

    def _execute(self, payment: Payment):
        """Llama al nodo y vuelca el resultado en el Payment (sin guardar)."""
        logger.info(f"⚡ Pagando {payment.amount} sats a {payment.destination}")
        try:
            result = self.sender.pay_invoice(payment.payment_request)
        except NodePaymentError as e:
            logger.warning(f"Pago {payment.payment_hash[:16]}… fallido: {e.message}")
            payment.status = PaymentStatus.FAILED
            payment.error_message = e.message or "Payment failed"
            return

        payment.status = normalize_payment_outcome(result.status)
        payment.fee = result.fee or 0
        if payment.status is PaymentStatus.SUCCEEDED:
            payment.preimage = result.preimage
            payment.settled_at = self.clock()
        elif payment.status is PaymentStatus.FAILED:
            payment.error_message = f"Payment {result.status}"

    def _settle_local_invoice(self, payment: Payment):
        # Best-effort: el pago ya está hecho y guardado, esto no debe tumbarlo
        try:
            if self.store.mark_invoice_settled(payment.payment_hash, payment.preimage, payment.settled_at):
                logger.info(f"✔ Invoice local {payment.payment_hash[:16]}… marcada como succeeded")
        except SQLAlchemyError:
            self.store.rollback()
            logger.exception(f"No se pudo actualizar la invoice local {payment.payment_hash[:16]}…")
