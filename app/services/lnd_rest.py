import base64
import json
import logging
import os

import requests

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


def b64_to_hex(value) -> str:
    """LND REST devuelve los bytes (r_hash, preimage) en base64."""
    if not value:
        return ""
    return base64.b64decode(value).hex()


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    return body.get("message") or body.get("error") or f"HTTP {resp.status_code}"


class LndRestClient(NodeClient):
    def __init__(self, config: NodeConfig, timeout: int = 30):
        self.name = config.name
        self.base_url = f"https://{config.rest_host}"
        self.timeout = timeout
        self.session = requests.Session()
        # Sin cert configurado se valida contra las CAs del sistema
        self.session.verify = config.tls_cert_path or True
        self.session.headers.update({"Content-Type": "application/json"})
        if config.macaroon_path:
            if not os.path.isfile(config.macaroon_path):
                raise RuntimeError(f"Macaroon no encontrado en {config.macaroon_path}")
            with open(config.macaroon_path, "rb") as f:
                self.session.headers["Grpc-Metadata-macaroon"] = f.read().hex()

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"[LND-REST {self.name}] Error de conexión: {e}")
            raise NodeUnavailable(f"{self.name} unreachable: {e}") from e
        if resp.status_code in (401, 403):
            raise NodeUnavailable(f"{self.name} rejected credentials: {_error_message(resp)}")
        return resp

    def _json(self, method: str, path: str, **kwargs) -> dict:
        resp = self._request(method, path, **kwargs)
        if resp.status_code >= 400:
            raise NodeUnavailable(f"{self.name} error on {path}: {_error_message(resp)}")
        return resp.json()

    def create_invoice(self, amount, description=None, expiry_seconds=3600):
        payload = {
            "value": amount,
            "memo": description or "Lightning Payment",
            "expiry": expiry_seconds,
        }
        data = self._json("POST", "/v1/invoices", json=payload)
        return CreatedInvoice(
            payment_hash=b64_to_hex(data["r_hash"]),
            payment_request=data["payment_request"],
        )

    def decode_invoice(self, payment_request):
        resp = self._request("GET", f"/v1/payreq/{payment_request}")
        if resp.status_code >= 400:
            raise InvalidInput(f"Invalid Lightning invoice: {_error_message(resp)}")
        data = resp.json()
        timestamp = int(data.get("timestamp", 0))
        return DecodedInvoice(
            payment_hash=data["payment_hash"],
            amount=int(data.get("num_satoshis", 0)),
            description=data.get("description", ""),
            expires_at=from_unix(timestamp + int(data.get("expiry", 3600))),
            destination=data.get("destination", ""),
            created_at=from_unix(timestamp),
        )

    def pay_invoice(self, payment_request):
        resp = self._request(
            "POST", "/v1/channels/transactions", json={"payment_request": payment_request}
        )
        if resp.status_code >= 400:
            raise NodePaymentError(_error_message(resp))
        data = resp.json()
        if data.get("payment_error"):
            raise NodePaymentError(data["payment_error"])
        route = data.get("payment_route") or {}
        return PayResult(
            payment_hash=b64_to_hex(data.get("payment_hash")),
            preimage=b64_to_hex(data.get("payment_preimage")),
            fee=int(route.get("total_fees", 0)),
        )

    def get_invoice_state(self, payment_hash):
        data = self._json("GET", f"/v1/invoice/{payment_hash}")
        settled = data.get("settled", False)
        return InvoiceState(
            confirmed=settled,
            preimage=b64_to_hex(data.get("r_preimage")) if settled else None,
            expires_at=from_unix(int(data.get("creation_date", 0)) + int(data.get("expiry", 0))),
        )

    def get_payment_state(self, payment_hash):
        data = self._json("GET", "/v1/payments", params={"include_incomplete": "true"})
        for payment in data.get("payments", []):
            if payment.get("payment_hash") != payment_hash:
                continue
            status = payment.get("status", "UNKNOWN")
            return PaymentState(
                confirmed=status == "SUCCEEDED",
                failed=status == "FAILED",
                preimage=payment.get("payment_preimage") or None,
            )
        return PaymentState(confirmed=False, failed=False, found=False)

    def get_balances(self):
        chain = self._json("GET", "/v1/balance/blockchain")
        channels = self._json("GET", "/v1/balance/channels")
        return Balances(
            onchain=int(chain.get("confirmed_balance", 0)),
            channel=int(channels.get("balance", 0)),
            pending_channel=int(channels.get("pending_open_balance", 0)),
        )

    def get_node_info(self):
        info = self._json("GET", "/v1/getinfo")
        return NodeInfo(
            pubkey=info["identity_pubkey"],
            alias=info.get("alias") or "Unknown",
            active_channels=int(info.get("num_active_channels", 0)),
            pending_channels=int(info.get("num_pending_channels", 0)),
            synced=info.get("synced_to_chain", False),
            block_height=int(info.get("block_height", 0)),
            version=info.get("version") or "Unknown",
        )

    def subscribe_invoice_updates(self):
        # Stream de JSON por líneas; sin timeout de lectura porque es de larga duración
        try:
            resp = self.session.get(
                f"{self.base_url}/v1/invoices/subscribe", stream=True, timeout=(self.timeout, None)
            )
        except requests.RequestException as e:
            raise NodeUnavailable(f"{self.name} subscription failed: {e}") from e
        with resp:
            if resp.status_code >= 400:
                raise NodeUnavailable(f"{self.name} subscription rejected: {_error_message(resp)}")
            try:
                for line in resp.iter_lines():
                    if not line:
                        continue
                    invoice = json.loads(line).get("result", {})
                    settled = invoice.get("settled", False)
                    yield InvoiceUpdate(
                        payment_hash=b64_to_hex(invoice.get("r_hash")),
                        confirmed=settled,
                        canceled=invoice.get("state") == "CANCELED",
                        amount=int(invoice.get("value", 0)),
                        secret=b64_to_hex(invoice.get("r_preimage")) if settled else None,
                        confirmed_at=from_unix(invoice["settle_date"]) if settled else None,
                    )
            except requests.RequestException as e:
                raise NodeUnavailable(f"{self.name} subscription lost: {e}") from e

    def close(self):
        self.session.close()
