import asyncio
import logging
from datetime import datetime
from types import SimpleNamespace

import pytest
from fastapi import WebSocketDisconnect

from app.core.errors import NodeUnavailable
from app.routes.live import invoice_updates
from app.services.live_updates import (
    STATE_CLOSED,
    STATE_FAILED,
    InvoiceUpdateBroadcaster,
    normalize_invoice_update,
)
from app.services.node import InvoiceUpdate

HASH = "ab" * 32


def update(**kwargs):
    fields = dict(payment_hash=HASH, confirmed=False, canceled=False, amount=1000)
    fields.update(kwargs)
    return InvoiceUpdate(**fields)


class TestNormalizeInvoiceUpdate:
    def test_confirmed_update(self):
        event = normalize_invoice_update(update(
            confirmed=True, secret="11" * 32, confirmed_at=datetime(2024, 1, 1, 12, 0, 10)
        ))

        assert event == {
            "payment_hash": HASH,
            "status": "succeeded",
            "amount": 1000,
            "preimage": "11" * 32,
            "settled_at": "2024-01-01T12:00:10",
        }

    def test_canceled_update_is_expired(self):
        assert normalize_invoice_update(update(canceled=True))["status"] == "expired"

    def test_open_update_is_pending(self):
        event = normalize_invoice_update(update())
        assert event["status"] == "pending"
        assert event["preimage"] is None
        assert event["settled_at"] is None


class TestBroadcaster:
    @pytest.mark.asyncio
    async def test_publish_reaches_every_connected_listener(self, receiver):
        broadcaster = InvoiceUpdateBroadcaster(receiver)
        first, second = broadcaster.subscribe(), broadcaster.subscribe()

        broadcaster.publish({"payment_hash": HASH, "status": "pending"})

        assert first.get_nowait()["payment_hash"] == HASH
        assert second.get_nowait()["payment_hash"] == HASH

    @pytest.mark.asyncio
    async def test_late_listener_misses_earlier_events(self, receiver):
        broadcaster = InvoiceUpdateBroadcaster(receiver)
        broadcaster.publish({"payment_hash": HASH, "status": "pending"})

        late = broadcaster.subscribe()

        assert late.empty()

    @pytest.mark.asyncio
    async def test_unsubscribed_listener_stops_receiving(self, receiver):
        broadcaster = InvoiceUpdateBroadcaster(receiver)
        queue = broadcaster.subscribe()
        broadcaster.unsubscribe(queue)

        broadcaster.publish({"payment_hash": HASH, "status": "pending"})

        assert queue.empty()
        assert broadcaster.listener_count == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_event_for_that_listener_only(self, receiver):
        broadcaster = InvoiceUpdateBroadcaster(receiver, queue_size=1)
        slow, fast = broadcaster.subscribe(), broadcaster.subscribe()
        broadcaster.publish({"payment_hash": HASH, "status": "pending"})
        fast.get_nowait()

        broadcaster.publish({"payment_hash": HASH, "status": "succeeded"})

        assert slow.qsize() == 1
        assert slow.get_nowait()["status"] == "pending"
        assert fast.get_nowait()["status"] == "succeeded"

    @pytest.mark.asyncio
    async def test_subscription_events_are_forwarded(self, receiver):
        receiver.updates = [update(), update(confirmed=True, secret="22" * 32)]
        broadcaster = InvoiceUpdateBroadcaster(receiver)
        queue = broadcaster.subscribe()

        broadcaster.start(asyncio.get_running_loop())
        first = await asyncio.wait_for(queue.get(), timeout=2)
        second = await asyncio.wait_for(queue.get(), timeout=2)

        assert [first["status"], second["status"]] == ["pending", "succeeded"]
        assert second["preimage"] == "22" * 32
        broadcaster._thread.join(timeout=2)
        assert broadcaster.state == STATE_CLOSED

    @pytest.mark.asyncio
    async def test_subscription_error_is_reported_not_raised(self, receiver):
        receiver.unavailable = True
        broadcaster = InvoiceUpdateBroadcaster(receiver)

        broadcaster.start(asyncio.get_running_loop())
        broadcaster._thread.join(timeout=2)

        assert broadcaster.state == STATE_FAILED
        assert "unreachable" in broadcaster.last_error

    def test_errors_during_stream_mark_failed(self, receiver):
        def broken_stream():
            yield update()
            raise NodeUnavailable("node_a subscription lost")

        receiver.subscribe_invoice_updates = broken_stream
        broadcaster = InvoiceUpdateBroadcaster(receiver)
        loop = asyncio.new_event_loop()
        try:
            broadcaster.start(loop)
            broadcaster._thread.join(timeout=2)
        finally:
            loop.close()

        assert broadcaster.state == STATE_FAILED
        assert broadcaster.last_error == "node_a subscription lost"


class FailingSocket:
    """WebSocket cuyo envío falla, como si el cliente ya hubiera cerrado."""

    def __init__(self, broadcaster):
        self.app = SimpleNamespace(state=SimpleNamespace(broadcaster=broadcaster))
        self.broadcaster = broadcaster
        self.send_failed = asyncio.Event()

    async def accept(self):
        pass

    async def receive_text(self):
        self.broadcaster.publish({"payment_hash": HASH, "status": "pending"})
        await asyncio.wait_for(self.send_failed.wait(), timeout=2)
        raise WebSocketDisconnect(1000)

    async def send_json(self, data):
        self.send_failed.set()
        raise RuntimeError("socket closed")


@pytest.mark.asyncio
async def test_websocket_send_error_is_collected(receiver, caplog):
    broadcaster = InvoiceUpdateBroadcaster(receiver)
    caplog.set_level(logging.WARNING, logger="app.routes.live")

    await invoice_updates(FailingSocket(broadcaster))

    assert broadcaster.listener_count == 0
    assert any("socket closed" in r.getMessage() for r in caplog.records)
