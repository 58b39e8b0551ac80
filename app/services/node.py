"""Contrato de capacidades del nodo Lightning.

El resto de la aplicación sólo depende de esta interfaz; las implementaciones
reales (gRPC y REST) viven en lnd_grpc.py y lnd_rest.py, y los tests usan un
nodo falso.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, Optional


class NodePaymentError(Exception):
    """El nodo ejecutó el intento de pago y no se completó."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class CreatedInvoice:
    payment_hash: str
    payment_request: str
    secret: Optional[str] = None


@dataclass(frozen=True)
class DecodedInvoice:
    payment_hash: str
    amount: int
    description: str
    expires_at: datetime
    destination: str
    created_at: datetime


@dataclass(frozen=True)
class PayResult:
    payment_hash: str
    preimage: str
    fee: int = 0
    status: str = "succeeded"


@dataclass(frozen=True)
class InvoiceState:
    confirmed: bool
    expires_at: datetime
    preimage: Optional[str] = None


@dataclass(frozen=True)
class PaymentState:
    confirmed: bool
    failed: bool
    preimage: Optional[str] = None
    found: bool = True


@dataclass(frozen=True)
class Balances:
    onchain: int
    channel: int
    pending_channel: int

    @property
    def total(self) -> int:
        return self.onchain + self.channel


@dataclass(frozen=True)
class NodeInfo:
    pubkey: str
    alias: str
    active_channels: int
    pending_channels: int
    synced: bool
    block_height: int
    version: str


@dataclass(frozen=True)
class InvoiceUpdate:
    payment_hash: str
    confirmed: bool
    canceled: bool
    amount: int
    secret: Optional[str] = None
    confirmed_at: Optional[datetime] = None


def from_unix(ts) -> datetime:
    """Timestamp unix del nodo → datetime UTC sin tzinfo (como se guarda en DB)."""
    return datetime.fromtimestamp(int(ts), timezone.utc).replace(tzinfo=None)


class NodeClient:
    """Interfaz que debe cumplir cualquier cliente de nodo."""

    name = "node"

    def create_invoice(self, amount: int, description: Optional[str] = None,
                       expiry_seconds: int = 3600) -> CreatedInvoice:
        raise NotImplementedError("Subclasses must implement create_invoice")

    def decode_invoice(self, payment_request: str) -> DecodedInvoice:
        raise NotImplementedError("Subclasses must implement decode_invoice")

    def pay_invoice(self, payment_request: str) -> PayResult:
        """Paga la invoice; lanza NodePaymentError si el pago no se completa."""
        raise NotImplementedError("Subclasses must implement pay_invoice")

    def get_invoice_state(self, payment_hash: str) -> InvoiceState:
        raise NotImplementedError("Subclasses must implement get_invoice_state")

    def get_payment_state(self, payment_hash: str) -> PaymentState:
        raise NotImplementedError("Subclasses must implement get_payment_state")

    def get_balances(self) -> Balances:
        raise NotImplementedError("Subclasses must implement get_balances")

    def get_node_info(self) -> NodeInfo:
        raise NotImplementedError("Subclasses must implement get_node_info")

    def subscribe_invoice_updates(self) -> Iterator[InvoiceUpdate]:
        """Stream bloqueante de actualizaciones de invoices."""
        raise NotImplementedError("Subclasses must implement subscribe_invoice_updates")

    def close(self) -> None:
        pass
