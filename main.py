# main.py

# 1) Lo primero: cargar el .env
from app.core.config import load_config
load_config()

# 2) Ahora importamos el resto con la certeza de que DATABASE_URL existe
import asyncio
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import get_cors_origin, get_log_level
from app.core.db import init_db
from app.core.errors import LightningAppError
from app.core.middleware import RequestIdFilter, request_logger
from app.routes import invoices, live, payments, transactions
from app.services.clients import build_node_clients, check_node
from app.services.live_updates import InvoiceUpdateBroadcaster

logging.basicConfig(
    level=get_log_level(),
    format="%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdFilter())
logger = logging.getLogger("app")


def create_app(receiver=None, sender=None) -> FastAPI:
    """Construye la app. Sin clientes explícitos se crean desde el entorno al arrancar."""
    app = FastAPI(
        title="Lightning Payments Demo",
        version="0.1.0"
    )

    @app.on_event("startup")
    async def startup_event():
        # 3) Inicializar la base de datos (create_all o migraciones)
        init_db()
        if receiver is None or sender is None:
            app.state.receiver, app.state.sender = build_node_clients()
        else:
            app.state.receiver, app.state.sender = receiver, sender

        if not (check_node(app.state.receiver) and check_node(app.state.sender)):
            logger.warning("⚠️ No todos los nodos Lightning responden, revisá que estén levantados")

        app.state.broadcaster = InvoiceUpdateBroadcaster(app.state.receiver)
        app.state.broadcaster.start(asyncio.get_running_loop())
        logger.info("🚀 App arrancada, ready to receive requests")

    @app.on_event("shutdown")
    async def shutdown_event():
        app.state.broadcaster.stop()
        app.state.receiver.close()
        app.state.sender.close()
        logger.info("Servidor detenido")

    @app.exception_handler(LightningAppError)
    async def app_error_handler(request: Request, exc: LightningAppError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.message, "code": exc.code},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Invalid input",
                "code": "InvalidInput",
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Error no controlado en {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[get_cors_origin()],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_logger)

    @app.get("/api/health", tags=["Health"])
    def health():
        broadcaster = getattr(app.state, "broadcaster", None)
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "invoice_subscription": {
                "state": broadcaster.state if broadcaster else "idle",
                "error": broadcaster.last_error if broadcaster else None,
                "listeners": broadcaster.listener_count if broadcaster else 0,
            },
        }

    # Rutas principales
    app.include_router(invoices.router, prefix="/api/invoice", tags=["Invoices"])
    app.include_router(payments.router, prefix="/api/payment", tags=["Payments"])
    app.include_router(transactions.router, prefix="/api", tags=["Transactions"])
    app.include_router(live.router, tags=["Live"])
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
