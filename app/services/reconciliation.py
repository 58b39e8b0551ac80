"""Reconciliación del estado guardado con el estado vivo del nodo."""

import logging
from dataclasses import dataclass
from typing import Callable, Union

from app.core.errors import NodeUnavailable, NotFound
from app.models import Invoice, InvoiceStatus, Payment, PaymentStatus, utcnow
from app.services.node import NodeClient
from app.services.status import invoice_status_from_node, payment_status_from_node
from app.services.store import TransactionStore

logger = logging.getLogger(__name__)

SOURCE_NODE = "node"
SOURCE_STORE = "store"


@dataclass
class Reconciled:
    record: Union[Invoice, Payment]
    # "node" si se mezcló el estado vivo, "store" si el nodo no respondió
    source: str

    @property
    def stale(self) -> bool:
        return self.source == SOURCE_STORE


class ReconciliationService:
    def __init__(
        self,
        store: TransactionStore,
        receiver: NodeClient,
        sender: NodeClient,
        clock: Callable = utcnow,
    ):
        self.store = store
        self.receiver = receiver
        self.sender = sender
        self.clock = clock

    def reconcile_invoice(self, payment_hash: str) -> Reconciled:
        invoice = self.store.get_invoice(payment_hash)
        if invoice is None:
            raise NotFound("Invoice not found")

        try:
            live = self.receiver.get_invoice_state(payment_hash)
        except NodeUnavailable as e:
            logger.warning(f"Invoice {payment_hash[:16]}…: nodo no disponible, devolvemos lo guardado ({e})")
            return Reconciled(invoice, SOURCE_STORE)

        now = self.clock()
        # La expiración la manda el registro local, fijada al crear
        status = invoice_status_from_node(live.confirmed, invoice.expires_at, now)
        if invoice.status.is_final or status == invoice.status:
            return Reconciled(invoice, SOURCE_NODE)

        logger.info(f"Invoice {payment_hash[:16]}…: {invoice.status} → {status}")
        invoice.status = status
        if live.preimage:
            invoice.preimage = live.preimage
        if status is InvoiceStatus.SUCCEEDED:
            invoice.settled_at = now
        self.store.save(invoice)
        return Reconciled(invoice, SOURCE_NODE)

    def reconcile_payment(self, payment_hash: str) -> Reconciled:
        payment = self.store.get_payment(payment_hash)
        if payment is None:
            raise NotFound("Payment not found")

        try:
            live = self.sender.get_payment_state(payment_hash)
        except NodeUnavailable as e:
            logger.warning(f"Payment {payment_hash[:16]}…: nodo no disponible, devolvemos lo guardado ({e})")
            return Reconciled(payment, SOURCE_STORE)

        if not live.found:
            # El nodo no conoce el pago (p.ej. falló antes de salir): manda lo guardado
            return Reconciled(payment, SOURCE_NODE)

        status = payment_status_from_node(live.confirmed, live.failed)
        if payment.status is PaymentStatus.SUCCEEDED or status == payment.status:
            return Reconciled(payment, SOURCE_NODE)

        logger.info(f"Payment {payment_hash[:16]}…: {payment.status} → {status}")
        payment.status = status
        if live.preimage:
            payment.preimage = live.preimage
        if status is PaymentStatus.SUCCEEDED:
            payment.settled_at = self.clock()
        if status is not PaymentStatus.FAILED:
            payment.error_message = None
        self.store.save(payment)
        return Reconciled(payment, SOURCE_NODE)
