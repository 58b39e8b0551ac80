# app/core/middleware.py

import logging
import time
import uuid
from contextvars import ContextVar

from fastapi import Request

logger = logging.getLogger("app.requests")

_request_id: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """Añade el request_id actual a cada registro de log."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        return True


async def request_logger(request: Request, call_next):
    # Respetamos el x-request-id del cliente si viene, si no generamos uno
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    token = _request_id.set(request_id)
    start = time.time()
    logger.info("→ %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        duration = round((time.time() - start) * 1000, 1)
        response.headers["x-request-id"] = request_id
        logger.info(
            "← %s %s -> %s (%sms)",
            request.method, request.url.path, response.status_code, duration,
        )
        return response
    finally:
        _request_id.reset(token)
