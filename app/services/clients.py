# app/services/clients.py

import logging

from app.core.config import NodeConfig, get_node_a_config, get_node_b_config, get_transport
from app.core.errors import NodeUnavailable
from app.services.node import NodeClient

logger = logging.getLogger(__name__)


def build_node_client(config: NodeConfig, transport: str) -> NodeClient:
    # Import diferido: cada transporte arrastra su propia dependencia
    if transport == "rest":
        from app.services.lnd_rest import LndRestClient
        return LndRestClient(config)
    from app.services.lnd_grpc import LndGrpcClient
    return LndGrpcClient(config)


def build_node_clients():
    """Devuelve (receptor, emisor) según la configuración del entorno."""
    transport = get_transport()
    return (
        build_node_client(get_node_a_config(), transport),
        build_node_client(get_node_b_config(), transport),
    )


def check_node(node: NodeClient) -> bool:
    try:
        info = node.get_node_info()
    except NodeUnavailable as e:
        logger.error(f"❌ No se pudo conectar con {node.name}: {e}")
        return False
    logger.info(f"🟢 Conectado a {node.name}: {info.alias} ({info.pubkey[:16]}…)")
    return True
