# app/routes/deps.py
#
# Los clientes de nodo se construyen al arrancar y viven en app.state;
# los tests los sustituyen por nodos falsos.

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.services.invoices import InvoiceService
from app.services.node import NodeClient
from app.services.payments import PaymentService
from app.services.reconciliation import ReconciliationService
from app.services.store import TransactionStore


def get_receiver(request: Request) -> NodeClient:
    return request.app.state.receiver


def get_sender(request: Request) -> NodeClient:
    return request.app.state.sender


def get_store(db: Session = Depends(get_db)) -> TransactionStore:
    return TransactionStore(db)


def get_invoice_service(
    store: TransactionStore = Depends(get_store),
    receiver: NodeClient = Depends(get_receiver),
    sender: NodeClient = Depends(get_sender),
) -> InvoiceService:
    return InvoiceService(store, receiver, sender)


def get_payment_service(
    store: TransactionStore = Depends(get_store),
    sender: NodeClient = Depends(get_sender),
) -> PaymentService:
    return PaymentService(store, sender)


def get_reconciliation_service(
    store: TransactionStore = Depends(get_store),
    receiver: NodeClient = Depends(get_receiver),
    sender: NodeClient = Depends(get_sender),
) -> ReconciliationService:
    return ReconciliationService(store, receiver, sender)
