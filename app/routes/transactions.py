# app/routes/transactions.py

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from app.core.errors import NodeUnavailable
from app.routes.deps import get_receiver, get_sender, get_store
from app.schemas import (
    BalanceResponse,
    Envelope,
    NodeBalance,
    NodeInfoResponse,
    NodesResponse,
    Pagination,
    RecordedBalance,
    TransactionItem,
    TransactionListResponse,
)
from app.services.node import NodeClient
from app.services.store import PAYMENT, TransactionStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/transactions", response_model=Envelope[TransactionListResponse])
def list_transactions(
    type: Optional[Literal["invoice", "payment"]] = None,
    status: Optional[Literal["pending", "succeeded", "failed", "expired"]] = None,
    node: Optional[Literal["node_a", "node_b"]] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    store: TransactionStore = Depends(get_store),
):
    result = store.list_transactions(type=type, status=status, node=node, page=page, limit=limit)
    items = [
        TransactionItem(
            payment_hash=record.payment_hash,
            type=kind,
            amount=record.amount,
            status=record.status.value,
            description=record.description,
            fee=record.fee if kind == PAYMENT else None,
            created_at=record.created_at,
            settled_at=record.settled_at,
        )
        for kind, record in result.transactions
    ]
    return Envelope(data=TransactionListResponse(
        transactions=items,
        pagination=Pagination(
            page=result.page, limit=result.limit, total=result.total, total_pages=result.total_pages
        ),
    ))


def _live_balance(node: NodeClient) -> Optional[NodeBalance]:
    try:
        balances = node.get_balances()
    except NodeUnavailable as e:
        logger.warning(f"No se pudo obtener el balance de {node.name}: {e}")
        return None
    return NodeBalance(
        total_balance=balances.total,
        confirmed_balance=balances.onchain,
        channel_balance=balances.channel,
        pending_channel_balance=balances.pending_channel,
    )


@router.get("/balance", response_model=Envelope[BalanceResponse])
def get_balance(
    store: TransactionStore = Depends(get_store),
    receiver: NodeClient = Depends(get_receiver),
    sender: NodeClient = Depends(get_sender),
):
    totals = store.recorded_totals()
    return Envelope(data=BalanceResponse(
        recorded=RecordedBalance(
            total_received=totals.received,
            total_sent=totals.sent,
            total_fees=totals.fees,
            net_balance=totals.net,
        ),
        node_a=_live_balance(receiver),
        node_b=_live_balance(sender),
    ))


def _node_info(node: NodeClient) -> NodeInfoResponse:
    info = node.get_node_info()
    return NodeInfoResponse(
        identity_pubkey=info.pubkey,
        alias=info.alias,
        num_active_channels=info.active_channels,
        num_pending_channels=info.pending_channels,
        synced_to_chain=info.synced,
        block_height=info.block_height,
        version=info.version,
    )


@router.get("/nodes", response_model=Envelope[NodesResponse])
def get_nodes(
    receiver: NodeClient = Depends(get_receiver),
    sender: NodeClient = Depends(get_sender),
):
    return Envelope(data=NodesResponse(node_a=_node_info(receiver), node_b=_node_info(sender)))
