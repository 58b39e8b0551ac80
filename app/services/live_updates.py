"""Reenvío de la suscripción de invoices del nodo receptor a los clientes WS.

Un hilo consume el stream bloqueante del nodo y entrega cada evento,
ya normalizado, al event loop con call_soon_threadsafe. El registro de
oyentes sólo se toca desde el event loop, así que altas/bajas concurrentes
no necesitan lock. Cada oyente tiene su propia cola: quien se conecta tarde
no recibe eventos anteriores, y si su cola está llena el evento se descarta.
"""

import asyncio
import logging
import threading
from typing import Optional

from app.services.node import InvoiceUpdate, NodeClient
from app.services.status import invoice_status_from_update

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_RUNNING = "running"
STATE_FAILED = "failed"
STATE_CLOSED = "closed"


def normalize_invoice_update(update: InvoiceUpdate) -> dict:
    return {
        "payment_hash": update.payment_hash,
        "status": invoice_status_from_update(update.confirmed, update.canceled).value,
        "amount": update.amount,
        "preimage": update.secret or None,
        "settled_at": update.confirmed_at.isoformat() if update.confirmed_at else None,
    }


class InvoiceUpdateBroadcaster:
    def __init__(self, node: NodeClient, queue_size: int = 100):
        self.node = node
        self.queue_size = queue_size
        self.state = STATE_IDLE
        self.last_error: Optional[str] = None
        self._listeners: set = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self) -> asyncio.Queue:
        queue = asyncio.Queue(maxsize=self.queue_size)
        self._listeners.add(queue)
        logger.info(f"Cliente conectado ({len(self._listeners)} activos)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        self._listeners.discard(queue)
        logger.info(f"Cliente desconectado ({len(self._listeners)} activos)")

    def publish(self, event: dict):
        for queue in tuple(self._listeners):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Cola llena, se descarta evento {event['payment_hash'][:16]}…")

    def start(self, loop: asyncio.AbstractEventLoop):
        """Arranca la única suscripción del proceso contra el nodo receptor."""
        if self._thread is not None:
            return
        self._loop = loop
        self.state = STATE_RUNNING
        self._thread = threading.Thread(target=self._consume, name="invoice-subscription", daemon=True)
        self._thread.start()
        logger.info("📡 Suscrito a actualizaciones de invoices")

    def stop(self):
        # El hilo es daemon: muere con el proceso. Con REST el stream se corta al
        # cerrar la sesión del cliente; con gRPC sigue abierto hasta salir
        self.state = STATE_CLOSED
        self._listeners.clear()

    def _consume(self):
        try:
            for update in self.node.subscribe_invoice_updates():
                event = normalize_invoice_update(update)
                logger.info(f"Invoice {event['payment_hash'][:16]}… actualizada: {event['status']}")
                self._loop.call_soon_threadsafe(self.publish, event)
        except Exception as e:
            if self.state == STATE_CLOSED:
                return
            # No se reintenta: queda en estado failed y visible en /api/health
            self.state = STATE_FAILED
            self.last_error = str(e)
            logger.error(f"❌ Error en la suscripción de invoices, no se restablece: {e}", exc_info=True)
            return
        if self.state == STATE_RUNNING:
            self.state = STATE_CLOSED
            logger.error("❌ La suscripción de invoices terminó; no se recibirán más eventos")
