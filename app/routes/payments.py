import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Path, Response, status

from app.models import Payment
from app.routes.deps import get_payment_service, get_reconciliation_service
from app.schemas import (
    PAYMENT_HASH_PATTERN,
    Envelope,
    PaymentRequestBody,
    PaymentResponse,
    PaymentStatusResponse,
)
from app.services.payments import PaymentService
from app.services.reconciliation import ReconciliationService

t_logger = logging.getLogger(__name__)

router = APIRouter()


def payment_view(payment: Payment) -> dict:
    return dict(
        payment_hash=payment.payment_hash,
        payment_request=payment.payment_request,
        amount=payment.amount,
        fee=payment.fee or 0,
        status=payment.status.value,
        preimage=payment.preimage,
        description=payment.description,
        destination=payment.destination,
        error_message=payment.error_message,
        retry_count=payment.retry_count or 0,
        settled_at=payment.settled_at,
        created_at=payment.created_at,
    )


@router.post("", response_model=Envelope[PaymentResponse], status_code=status.HTTP_201_CREATED)
def submit_payment(
    payload: PaymentRequestBody,
    response: Response,
    idempotency_key: Optional[str] = Header(
        None, alias="x-idempotency-key", min_length=8, max_length=64
    ),
    service: PaymentService = Depends(get_payment_service),
):
    result = service.submit_payment(payload.payment_request, idempotency_key)
    if result.cached:
        response.status_code = status.HTTP_200_OK
    return Envelope(data=PaymentResponse(**payment_view(result.payment), cached=result.cached))


@router.get("/{payment_hash}", response_model=Envelope[PaymentStatusResponse])
def get_payment(
    payment_hash: str = Path(..., pattern=PAYMENT_HASH_PATTERN),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    result = service.reconcile_payment(payment_hash.lower())
    return Envelope(data=PaymentStatusResponse(**payment_view(result.record), source=result.source))
