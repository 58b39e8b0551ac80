import logging
from fastapi import APIRouter, Depends, Path, status

from app.models import Invoice, InvoiceStatus
from app.routes.deps import get_invoice_service, get_reconciliation_service
from app.schemas import (
    PAYMENT_HASH_PATTERN,
    DecodedInvoiceResponse,
    Envelope,
    InvoiceCreate,
    InvoiceResponse,
    InvoiceStatusResponse,
    PaymentRequestBody,
)
from app.services.invoices import InvoiceService
from app.services.reconciliation import ReconciliationService

t_logger = logging.getLogger(__name__)

router = APIRouter()


def invoice_view(invoice: Invoice) -> dict:
    return dict(
        payment_hash=invoice.payment_hash,
        payment_request=invoice.payment_request,
        amount=invoice.amount,
        description=invoice.description,
        status=invoice.status.value,
        preimage=invoice.preimage,
        expires_at=invoice.expires_at,
        settled_at=invoice.settled_at,
        created_at=invoice.created_at,
    )


@router.post("", response_model=Envelope[InvoiceResponse], status_code=status.HTTP_201_CREATED)
def create_invoice(
    payload: InvoiceCreate,
    service: InvoiceService = Depends(get_invoice_service),
):
    t_logger.info(f"→ create_invoice payload recibido: {payload}")
    invoice = service.create_invoice(payload.amount, payload.description, payload.expiry)
    return Envelope(data=InvoiceResponse(**invoice_view(invoice)))


@router.post("/decode", response_model=Envelope[DecodedInvoiceResponse])
def decode_invoice(
    payload: PaymentRequestBody,
    service: InvoiceService = Depends(get_invoice_service),
):
    decoded = service.decode_invoice(payload.payment_request)
    return Envelope(data=DecodedInvoiceResponse(
        payment_hash=decoded.payment_hash,
        amount=decoded.amount,
        description=decoded.description,
        expires_at=decoded.expires_at,
        destination=decoded.destination,
        created_at=decoded.created_at,
    ))


@router.get("/{payment_hash}", response_model=Envelope[InvoiceStatusResponse])
def get_invoice(
    payment_hash: str = Path(..., pattern=PAYMENT_HASH_PATTERN),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    result = service.reconcile_invoice(payment_hash.lower())
    invoice = result.record
    return Envelope(data=InvoiceStatusResponse(
        **invoice_view(invoice),
        settled=invoice.status is InvoiceStatus.SUCCEEDED,
        source=result.source,
    ))
