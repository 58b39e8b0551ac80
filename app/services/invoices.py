import logging
from datetime import timedelta
from typing import Callable, Optional

from app.core.config import DEFAULT_INVOICE_EXPIRY
from app.models import Invoice, InvoiceStatus, utcnow
from app.services.node import DecodedInvoice, NodeClient
from app.services.store import TransactionStore

logger = logging.getLogger(__name__)


class InvoiceService:
    def __init__(self, store: TransactionStore, receiver: NodeClient, sender: NodeClient,
                 clock: Callable = utcnow):
        self.store = store
        self.receiver = receiver
        self.sender = sender
        self.clock = clock

    def create_invoice(self, amount: int, description: Optional[str] = None,
                       expiry: Optional[int] = None) -> Invoice:
        """Crea la invoice en el nodo receptor y la guarda como pending."""
        expiry = expiry or DEFAULT_INVOICE_EXPIRY
        created = self.receiver.create_invoice(amount, description, expiry)
        now = self.clock()

        invoice = Invoice(
            payment_hash=created.payment_hash,
            payment_request=created.payment_request,
            amount=amount,
            status=InvoiceStatus.PENDING,
            description=description,
            expires_at=now + timedelta(seconds=expiry),
            created_at=now,
            updated_at=now,
        )
        self.store.add_invoice(invoice)
        logger.info(f"✔ Invoice {invoice.payment_hash[:16]}… creada por {amount} sats")
        return invoice

    def decode_invoice(self, payment_request: str) -> DecodedInvoice:
        return self.sender.decode_invoice(payment_request)
