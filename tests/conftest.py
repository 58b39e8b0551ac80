"""Fixtures compartidas: nodo Lightning falso, reloj fijo y SQLite temporal."""

import hashlib
import os
from datetime import datetime, timedelta

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy.orm import sessionmaker

from app.core.db import get_db, init_db, make_engine
from app.core.errors import InvalidInput, NodeUnavailable
from app.services.node import (
    Balances,
    CreatedInvoice,
    DecodedInvoice,
    InvoiceState,
    NodeClient,
    NodeInfo,
    NodePaymentError,
    PayResult,
    PaymentState,
)
from app.services.store import TransactionStore


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int):
        self.now += timedelta(seconds=seconds)


class FakeNode(NodeClient):
    """Nodo en memoria que cumple el contrato de NodeClient."""

    def __init__(self, name: str, clock: FrozenClock):
        self.name = name
        self.clock = clock
        self.invoices = {}
        self.payments = {}
        self.decoded = {}
        self.preimages = {}
        self.pay_calls = []
        self.pay_error = None
        self.pay_status = "succeeded"
        self.fee = 1
        self.unavailable = False
        self.on_decode = None
        self.updates = []
        self.subscribe_gate = None
        self._counter = 0

    def _check(self):
        if self.unavailable:
            raise NodeUnavailable(f"{self.name} unreachable")

    def _new_secret(self):
        self._counter += 1
        preimage = f"{self._counter:064x}"
        return preimage, hashlib.sha256(bytes.fromhex(preimage)).hexdigest()

    # --- helpers de test ---

    def settle(self, payment_hash: str):
        self.invoices[payment_hash]["confirmed"] = True

    def add_payable(self, amount=1000, description="Coffee", expires_in=3600) -> str:
        """Registra una invoice de otro nodo que este nodo puede pagar."""
        preimage, payment_hash = self._new_secret()
        request = f"lnbcrt{amount}n1fake{self._counter}"
        now = self.clock()
        self.decoded[request] = DecodedInvoice(
            payment_hash=payment_hash,
            amount=amount,
            description=description,
            expires_at=now + timedelta(seconds=expires_in),
            destination="02" + "cd" * 32,
            created_at=now,
        )
        self.preimages[payment_hash] = preimage
        return request

    # --- contrato ---

    def create_invoice(self, amount, description=None, expiry_seconds=3600):
        self._check()
        preimage, payment_hash = self._new_secret()
        self.invoices[payment_hash] = {
            "confirmed": False,
            "preimage": preimage,
            "expires_at": self.clock() + timedelta(seconds=expiry_seconds),
            "amount": amount,
        }
        return CreatedInvoice(payment_hash, f"lnbcrt{amount}n1fake{self._counter}", preimage)

    def decode_invoice(self, payment_request):
        self._check()
        if self.on_decode:
            self.on_decode(payment_request)
        if payment_request not in self.decoded:
            raise InvalidInput("Invalid Lightning invoice")
        return self.decoded[payment_request]

    def pay_invoice(self, payment_request):
        self._check()
        self.pay_calls.append(payment_request)
        decoded = self.decoded[payment_request]
        preimage = self.preimages[decoded.payment_hash]
        if self.pay_error:
            self.payments[decoded.payment_hash] = PaymentState(confirmed=False, failed=True)
            raise NodePaymentError(self.pay_error)
        self.payments[decoded.payment_hash] = PaymentState(confirmed=True, failed=False, preimage=preimage)
        return PayResult(decoded.payment_hash, preimage, fee=self.fee, status=self.pay_status)

    def get_invoice_state(self, payment_hash):
        self._check()
        invoice = self.invoices[payment_hash]
        return InvoiceState(
            confirmed=invoice["confirmed"],
            expires_at=invoice["expires_at"],
            preimage=invoice["preimage"] if invoice["confirmed"] else None,
        )

    def get_payment_state(self, payment_hash):
        self._check()
        return self.payments.get(payment_hash, PaymentState(confirmed=False, failed=False, found=False))

    def get_balances(self):
        self._check()
        return Balances(onchain=100_000, channel=50_000, pending_channel=0)

    def get_node_info(self):
        self._check()
        return NodeInfo(
            pubkey="02" + "ab" * 32,
            alias=self.name,
            active_channels=1,
            pending_channels=0,
            synced=True,
            block_height=150,
            version="0.17.0-beta",
        )

    def subscribe_invoice_updates(self):
        self._check()
        if self.subscribe_gate is not None:
            self.subscribe_gate.wait(timeout=5)
        yield from self.updates


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 1, 1, 12, 0, 0))


@pytest.fixture
def receiver(clock):
    return FakeNode("node_a", clock)


@pytest.fixture
def sender(clock):
    return FakeNode("node_b", clock)


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def store(session):
    return TransactionStore(session)


@pytest.fixture
def app(receiver, sender, session_factory):
    from main import create_app

    app = create_app(receiver=receiver, sender=sender)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client
