from __future__ import annotations

from typing import Any, Dict, Iterable, List

from ceats.models.pedido import Pedido
from ceats.services.pedidos import (
    ESTADO_CANCELADO,
    ESTADO_COMPLETADO,
    ESTADO_LISTO,
    ESTADO_PENDIENTE,
    ESTADO_PREPARANDO,
    TERMINAL_ESTADOS,
    decode_items,
    normalize_estado,
    pedido_to_dict,
)

# columna del tablero -> estado que muestra
BOARD_COLUMNS = (
    ("nuevos", ESTADO_PENDIENTE),
    ("preparando", ESTADO_PREPARANDO),
    ("listos", ESTADO_LISTO),
)

_NEXT_ACTIONS = {
    ESTADO_PENDIENTE: (ESTADO_PREPARANDO, ESTADO_CANCELADO),
    ESTADO_PREPARANDO: (ESTADO_LISTO, ESTADO_CANCELADO),
    ESTADO_LISTO: (ESTADO_COMPLETADO, ESTADO_CANCELADO),
}


def is_terminal(estado: str | None) -> bool:
    return normalize_estado(estado) in TERMINAL_ESTADOS


def next_actions(estado: str | None) -> List[str]:
    return list(_NEXT_ACTIONS.get(normalize_estado(estado), ()))


def _item_subtotal(item: Dict[str, Any]) -> float:
    try:
        quantity = float(item.get("quantity", item.get("cantidad", 1)) or 0)
        price = float(item.get("price", item.get("precio", 0)) or 0)
    except (TypeError, ValueError):
        return 0.0
    return quantity * price


def board_card(pedido: Pedido) -> Dict[str, Any]:
    items = decode_items(pedido.pedido)
    card = pedido_to_dict(pedido)
    card["items"] = items
    card["subtotal"] = round(sum(_item_subtotal(item) for item in items), 2)
    card["acciones"] = next_actions(pedido.estado)
    return card


def build_board(pedidos: Iterable[Pedido]) -> Dict[str, List[Dict[str, Any]]]:
    """Agrupa pedidos activos por columna; terminales y estados libres quedan fuera."""
    column_for = {estado: column for column, estado in BOARD_COLUMNS}
    board: Dict[str, List[Dict[str, Any]]] = {column: [] for column, _ in BOARD_COLUMNS}
    for pedido in pedidos:
        column = column_for.get(normalize_estado(pedido.estado))
        if column is None:
            continue
        board[column].append(board_card(pedido))
    return board
