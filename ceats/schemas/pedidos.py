from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, Field


class PedidoCreate(BaseModel):
    """Entrada común de creación de pedidos (ruta HTTP y webhook de WhatsApp).

    Todos los campos son opcionales acá: la validación de obligatorios la hace
    `ceats.services.pedidos.validate_pedido` para responder 400 con los campos
    faltantes, igual para ambos orígenes.
    """

    codigo: Optional[str] = None
    estado: Optional[str] = None
    nombre: Optional[str] = None
    celular: Optional[str] = None
    sucursal_id: Optional[str] = None
    pedido: Optional[Union[str, list[Any], dict[str, Any]]] = None
    instrucciones: Optional[str] = None
    entregar_a: Optional[str] = None
    domicilio: Optional[str] = None
    deliver_or_rest: Optional[str] = None
    total: Optional[float] = None
    currency: Optional[str] = None
    pago: Optional[str] = None
    fecha: Optional[str] = None
    hora: Optional[str] = None
    tiempo: Optional[str] = None


class EstadoUpdate(BaseModel):
    estado: Optional[str] = None
    motivo: Optional[str] = Field(default=None, max_length=1000)
