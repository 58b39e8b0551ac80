import logging

import grpc
from lndgrpc import LNDClient

from app.core.config import NodeConfig
from app.core.errors import InvalidInput, NodeUnavailable
from app.services.node import (
    Balances,
    CreatedInvoice,
    DecodedInvoice,
    InvoiceState,
    InvoiceUpdate,
    NodeClient,
    NodeInfo,
    NodePaymentError,
    PayResult,
    PaymentState,
    from_unix,
)

logger = logging.getLogger(__name__)

# Códigos gRPC que indican problema de transporte/credenciales, no de negocio
TRANSPORT_CODES = {
    grpc.StatusCode.UNAVAILABLE,
    grpc.StatusCode.UNAUTHENTICATED,
    grpc.StatusCode.PERMISSION_DENIED,
    grpc.StatusCode.DEADLINE_EXCEEDED,
}

# lnrpc.Invoice.InvoiceState
INVOICE_CANCELED = 2
# lnrpc.Payment.PaymentStatus
PAYMENT_SUCCEEDED = 2
PAYMENT_FAILED = 3


def is_transport_error(error: grpc.RpcError) -> bool:
    code = error.code() if hasattr(error, "code") else None
    return code in TRANSPORT_CODES


def _details(error: grpc.RpcError) -> str:
    if hasattr(error, "details") and error.details():
        return error.details()
    return str(error)


class LndGrpcClient(NodeClient):
    def __init__(self, config: NodeConfig):
        self.name = config.name
        self.client = LNDClient(
            ip_address=config.grpc_host,
            network=config.network,
            macaroon_filepath=config.macaroon_path,
            cert_filepath=config.tls_cert_path,
            admin=True
        )

    def _call(self, method, *args, **kwargs):
        try:
            return method(*args, **kwargs)
        except grpc.RpcError as e:
            if is_transport_error(e):
                logger.error(f"[{self.name}] nodo no disponible: {_details(e)}")
                raise NodeUnavailable(f"{self.name} unreachable: {_details(e)}") from e
            raise

    def _query(self, method, *args, **kwargs):
        # Como el REST: cualquier error del nodo en una consulta es "no disponible"
        try:
            return self._call(method, *args, **kwargs)
        except grpc.RpcError as e:
            logger.error(f"[{self.name}] error en {getattr(method, '__name__', method)}: {_details(e)}")
            raise NodeUnavailable(f"{self.name} error: {_details(e)}") from e

    def create_invoice(self, amount, description=None, expiry_seconds=3600):
        response = self._query(
            self.client.add_invoice,
            value=amount,
            memo=description or "Lightning Payment",
            expiry=expiry_seconds,
        )
        return CreatedInvoice(
            payment_hash=response.r_hash.hex(),
            payment_request=response.payment_request,
        )

    def decode_invoice(self, payment_request):
        try:
            decoded = self._call(self.client.decode_pay_req, payment_request)
        except grpc.RpcError as e:
            raise InvalidInput(f"Invalid Lightning invoice: {_details(e)}") from e
        return DecodedInvoice(
            payment_hash=decoded.payment_hash,
            amount=int(decoded.num_satoshis),
            description=decoded.description or "",
            expires_at=from_unix(int(decoded.timestamp) + int(decoded.expiry)),
            destination=decoded.destination,
            created_at=from_unix(decoded.timestamp),
        )

    def pay_invoice(self, payment_request):
        try:
            payment = self._call(self.client.send_payment, payment_request)
        except grpc.RpcError as e:
            raise NodePaymentError(_details(e)) from e
        if payment.payment_error:
            raise NodePaymentError(payment.payment_error)
        fee = payment.payment_route.total_fees if payment.HasField("payment_route") else 0
        return PayResult(
            payment_hash=payment.payment_hash.hex(),
            preimage=payment.payment_preimage.hex(),
            fee=int(fee),
        )

    def get_invoice_state(self, payment_hash):
        invoice = self._query(self.client.lookup_invoice, r_hash_str=payment_hash)
        return InvoiceState(
            confirmed=invoice.settled,
            preimage=invoice.r_preimage.hex() if invoice.settled else None,
            expires_at=from_unix(int(invoice.creation_date) + int(invoice.expiry)),
        )

    def get_payment_state(self, payment_hash):
        response = self._query(self.client.list_payments, include_incomplete=True)
        for payment in response.payments:
            if payment.payment_hash != payment_hash:
                continue
            return PaymentState(
                confirmed=payment.status == PAYMENT_SUCCEEDED,
                failed=payment.status == PAYMENT_FAILED,
                preimage=payment.payment_preimage or None,
            )
        return PaymentState(confirmed=False, failed=False, found=False)

    def get_balances(self):
        chain = self._query(self.client.wallet_balance)
        channels = self._query(self.client.channel_balance)
        return Balances(
            onchain=int(chain.confirmed_balance),
            channel=int(channels.balance),
            pending_channel=int(channels.pending_open_balance),
        )

    def get_node_info(self):
        info = self._query(self.client.get_info)
        return NodeInfo(
            pubkey=info.identity_pubkey,
            alias=info.alias or "Unknown",
            active_channels=info.num_active_channels,
            pending_channels=info.num_pending_channels,
            synced=info.synced_to_chain,
            block_height=info.block_height,
            version=info.version or "Unknown",
        )

    def subscribe_invoice_updates(self):
        try:
            for invoice in self.client.subscribe_invoices():
                yield InvoiceUpdate(
                    payment_hash=invoice.r_hash.hex(),
                    confirmed=invoice.settled,
                    canceled=invoice.state == INVOICE_CANCELED,
                    amount=int(invoice.value),
                    secret=invoice.r_preimage.hex() if invoice.settled else None,
                    confirmed_at=from_unix(invoice.settle_date) if invoice.settled else None,
                )
        except grpc.RpcError as e:
            if is_transport_error(e):
                raise NodeUnavailable(f"{self.name} subscription lost: {_details(e)}") from e
            raise
