from __future__ import annotations

from ceats.models.pedido import Pedido
from ceats.services.event_bus import event_bus

PEDIDO_CREATED = "pedido.created"
PEDIDO_ESTADO_CHANGED = "pedido.estado.changed"


def build_pedido_payload(pedido: Pedido, previous_estado: str | None = None) -> dict:
    return {
        "pedido_id": pedido.pedido_id,
        "codigo": pedido.codigo,
        "sucursal_id": pedido.sucursal_id,
        "estado": pedido.estado,
        "previous_estado": previous_estado,
        "motivo_cancelacion": pedido.motivo_cancelacion,
        "nombre": pedido.nombre,
        "celular": pedido.celular,
        "total": float(pedido.total or 0),
        "currency": pedido.currency,
        "origen": pedido.origen,
    }


def emit_pedido_created(pedido: Pedido) -> None:
    event_bus.emit(PEDIDO_CREATED, build_pedido_payload(pedido))


def emit_pedido_estado_changed(pedido: Pedido, previous_estado: str | None) -> None:
    if previous_estado is not None and previous_estado == pedido.estado:
        return
    event_bus.emit(PEDIDO_ESTADO_CHANGED, build_pedido_payload(pedido, previous_estado=previous_estado))
