# app/routes/live.py

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/invoices")
async def invoice_updates(websocket: WebSocket):
    """Empuja al cliente los eventos de invoice a partir del momento en que conecta."""
    broadcaster = websocket.app.state.broadcaster
    await websocket.accept()
    queue = broadcaster.subscribe()

    async def forward():
        while True:
            event = await queue.get()
            await websocket.send_json({"event": "invoice:updated", "data": event})

    sender = asyncio.create_task(forward())
    try:
        # Solo leemos para enterarnos de la desconexión
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Cliente WS desconectado")
    finally:
        broadcaster.unsubscribe(queue)
        sender.cancel()
        # Recogemos el resultado de la tarea: cancelada o con el error del envío
        results = await asyncio.gather(sender, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.warning(f"Envío WS interrumpido: {result}")
