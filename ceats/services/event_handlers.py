from __future__ import annotations

import logging

from ceats.services.event_bus import event_bus
from ceats.services.legacy_sync import sync_estado
from ceats.services.order_events import PEDIDO_CREATED, PEDIDO_ESTADO_CHANGED

logger = logging.getLogger(__name__)


def handle_pedido_created(payload: dict) -> None:
    logger.info(
        "Pedido creado codigo=%s sucursal_id=%s origen=%s total=%s %s",
        payload["codigo"],
        payload["sucursal_id"],
        payload.get("origen"),
        payload.get("total"),
        payload.get("currency"),
        extra={"codigo": payload["codigo"]},
    )


def handle_pedido_estado_changed(payload: dict) -> None:
    logger.info(
        "Pedido %s: %s -> %s",
        payload["codigo"],
        payload.get("previous_estado"),
        payload["estado"],
        extra={"codigo": payload["codigo"]},
    )
    sync_estado(payload["codigo"], payload["estado"], payload.get("motivo_cancelacion"))


def register_handlers() -> None:
    event_bus.subscribe(PEDIDO_CREATED, handle_pedido_created)
    event_bus.subscribe(PEDIDO_ESTADO_CHANGED, handle_pedido_estado_changed)


register_handlers()
