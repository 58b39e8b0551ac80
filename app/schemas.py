from pydantic import BaseModel, Field
from typing import Generic, List, Optional, TypeVar
from datetime import datetime

from app.core.config import MAX_INVOICE_EXPIRY, MIN_INVOICE_EXPIRY

PAYMENT_HASH_PATTERN = r"^[0-9a-fA-F]{64}$"
PAYMENT_REQUEST_PATTERN = r"^ln(bc|tb|bcrt)"

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T


class InvoiceCreate(BaseModel):
    amount: int = Field(..., ge=1, description="Satoshis")
    description: Optional[str] = Field(None, max_length=256)
    expiry: Optional[int] = Field(None, ge=MIN_INVOICE_EXPIRY, le=MAX_INVOICE_EXPIRY)


class PaymentRequestBody(BaseModel):
    payment_request: str = Field(..., pattern=PAYMENT_REQUEST_PATTERN)


class InvoiceResponse(BaseModel):
    payment_hash: str
    payment_request: str
    amount: int
    description: Optional[str] = None
    status: str
    preimage: Optional[str] = None
    expires_at: datetime
    settled_at: Optional[datetime] = None
    created_at: datetime


class InvoiceStatusResponse(InvoiceResponse):
    settled: bool
    source: str


class DecodedInvoiceResponse(BaseModel):
    payment_hash: str
    amount: int
    description: str
    expires_at: datetime
    destination: str
    created_at: datetime


class PaymentResponse(BaseModel):
    payment_hash: str
    payment_request: str
    amount: int
    fee: int
    status: str
    preimage: Optional[str] = None
    description: Optional[str] = None
    destination: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    settled_at: Optional[datetime] = None
    created_at: datetime
    cached: bool = False


class PaymentStatusResponse(PaymentResponse):
    source: str


class TransactionItem(BaseModel):
    payment_hash: str
    type: str
    amount: int
    status: str
    description: Optional[str] = None
    fee: Optional[int] = None
    created_at: datetime
    settled_at: Optional[datetime] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class TransactionListResponse(BaseModel):
    transactions: List[TransactionItem]
    pagination: Pagination


class RecordedBalance(BaseModel):
    total_received: int
    total_sent: int
    total_fees: int
    net_balance: int


class NodeBalance(BaseModel):
    total_balance: int
    confirmed_balance: int
    channel_balance: int
    pending_channel_balance: int


class BalanceResponse(BaseModel):
    recorded: RecordedBalance
    node_a: Optional[NodeBalance] = None
    node_b: Optional[NodeBalance] = None


class NodeInfoResponse(BaseModel):
    identity_pubkey: str
    alias: str
    num_active_channels: int
    num_pending_channels: int
    synced_to_chain: bool
    block_height: int
    version: str


class NodesResponse(BaseModel):
    node_a: NodeInfoResponse
    node_b: NodeInfoResponse
