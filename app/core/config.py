# app/core/config.py

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_INVOICE_EXPIRY = 3600
MIN_INVOICE_EXPIRY = 60
MAX_INVOICE_EXPIRY = 86400


def load_config():
    """Carga el .env antes de que cualquier módulo lea variables de entorno."""
    load_dotenv()


@dataclass(frozen=True)
class NodeConfig:
    name: str
    grpc_host: str
    rest_host: str
    tls_cert_path: Optional[str]
    macaroon_path: Optional[str]
    network: str = "regtest"


def _node_config(name: str, prefix: str, grpc_default: str, rest_default: str) -> NodeConfig:
    return NodeConfig(
        name=name,
        grpc_host=os.getenv(f"{prefix}_GRPC_HOST", grpc_default),
        rest_host=os.getenv(f"{prefix}_REST_HOST", rest_default),
        tls_cert_path=os.getenv(f"{prefix}_TLS_CERT_PATH"),
        macaroon_path=os.getenv(f"{prefix}_MACAROON_PATH"),
        network=os.getenv("LND_NETWORK", "regtest"),
    )


def get_node_a_config() -> NodeConfig:
    """Nodo A (Alice): genera invoices y recibe pagos."""
    return _node_config("node_a", "NODE_A", "127.0.0.1:10009", "127.0.0.1:8080")


def get_node_b_config() -> NodeConfig:
    """Nodo B (Bob): decodifica y paga invoices."""
    return _node_config("node_b", "NODE_B", "127.0.0.1:10010", "127.0.0.1:8081")


def get_transport() -> str:
    transport = os.getenv("LND_TRANSPORT", "grpc").lower()
    if transport not in ("grpc", "rest"):
        raise RuntimeError(f"LND_TRANSPORT inválido: {transport} (usar grpc o rest)")
    return transport


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


def get_cors_origin() -> str:
    return os.getenv("CORS_ORIGIN", "http://localhost:3000")
