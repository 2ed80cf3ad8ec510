from __future__ import annotations

import json
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ceats.models.pedido import Pedido
from ceats.schemas.pedidos import PedidoCreate
from ceats.services.order_events import emit_pedido_created

logger = logging.getLogger(__name__)

ESTADO_PENDIENTE = "Pendiente"
ESTADO_PREPARANDO = "Preparando"
ESTADO_LISTO = "Listo"
ESTADO_COMPLETADO = "Completado"
ESTADO_CANCELADO = "Cancelado"

ESTADOS = (ESTADO_PENDIENTE, ESTADO_PREPARANDO, ESTADO_LISTO, ESTADO_COMPLETADO, ESTADO_CANCELADO)
TERMINAL_ESTADOS = frozenset({ESTADO_COMPLETADO, ESTADO_CANCELADO})

DELIVERY_DOMICILIO = "domicilio"
DELIVERY_RECOGER = "recoger"
DELIVERY_TYPES = (DELIVERY_DOMICILIO, DELIVERY_RECOGER)

REQUIRED_FIELDS = ("codigo", "nombre", "celular", "sucursal_id", "pedido", "total", "currency", "fecha", "hora")

_CANONICAL_ESTADOS = {estado.lower(): estado for estado in ESTADOS}


def normalize_estado(raw: Optional[str]) -> str:
    """Estados conocidos se normalizan a su forma canónica; el resto queda como texto libre."""
    value = (raw or "").strip()
    return _CANONICAL_ESTADOS.get(value.lower(), value)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def serialize_items(value: Any) -> str:
    if isinstance(value, str):
        try:
            json.loads(value)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="El campo pedido debe ser un JSON válido",
            ) from exc
        return value
    return json.dumps(value, ensure_ascii=False)


def decode_items(raw: Any) -> List[Dict[str, Any]]:
    if raw is None:
        return []
    value = raw
    if isinstance(raw, str):
        try:
            value = json.loads(raw)
        except ValueError:
            return []
    if isinstance(value, dict):
        value = value.get("items") or value.get("products") or [value]
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _to_money(value: float) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def validate_pedido(data: PedidoCreate) -> Dict[str, Any]:
    """Valida y normaliza la entrada; levanta 400 con el detalle del problema."""
    missing = [field for field in REQUIRED_FIELDS if _is_blank(getattr(data, field))]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Faltan campos requeridos: {', '.join(missing)}",
        )

    deliver_or_rest = (data.deliver_or_rest or DELIVERY_RECOGER).strip().lower()
    if deliver_or_rest not in DELIVERY_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="deliver_or_rest debe ser 'domicilio' o 'recoger'",
        )
    if deliver_or_rest == DELIVERY_DOMICILIO and _is_blank(data.domicilio):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="El domicilio es requerido para pedidos a domicilio",
        )
    if deliver_or_rest == DELIVERY_RECOGER and _is_blank(data.entregar_a):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="El campo entregar_a es requerido para pedidos para recoger",
        )
    if data.total < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El total no puede ser negativo")

    estado = normalize_estado(data.estado) or ESTADO_PENDIENTE

    return {
        "codigo": data.codigo.strip(),
        "sucursal_id": data.sucursal_id.strip(),
        "estado": estado,
        "deliver_or_rest": deliver_or_rest,
        "nombre": data.nombre.strip(),
        "celular": data.celular.strip(),
        "entregar_a": _clean(data.entregar_a) or data.nombre.strip(),
        "domicilio": _clean(data.domicilio),
        "pedido": serialize_items(data.pedido),
        "instrucciones": _clean(data.instrucciones),
        "total": _to_money(data.total),
        "currency": data.currency.strip().upper(),
        "pago": _clean(data.pago),
        "fecha": data.fecha.strip(),
        "hora": data.hora.strip(),
        "tiempo": _clean(data.tiempo),
    }


def create_pedido(
    db: Session,
    *,
    sucursal_id: str,
    data: PedidoCreate,
    origen: str = "manual",
) -> Pedido:
    """Único punto de creación de pedidos (ruta autenticada y webhook).

    La sucursal de la ruta manda sobre la del cuerpo.
    """
    values = validate_pedido(data.model_copy(update={"sucursal_id": sucursal_id}))
    pedido = Pedido(origen=origen, **values)

    try:
        db.add(pedido)
        db.commit()
        db.refresh(pedido)
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Ya existe un pedido con el código {values['codigo']}",
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error creando pedido codigo=%s", values["codigo"])
        raise HTTPException(status_code=500, detail="Error al crear el pedido") from exc

    emit_pedido_created(pedido)
    return pedido


def apply_estado(pedido: Pedido, estado: str, motivo: Optional[str] = None) -> bool:
    """Aplica el nuevo estado; devuelve False si no hubo cambio (idempotente)."""
    nuevo = normalize_estado(estado)
    if pedido.estado == nuevo:
        return False
    pedido.estado = nuevo
    if nuevo == ESTADO_CANCELADO:
        pedido.motivo_cancelacion = _clean(motivo)
    return True


def pedido_to_dict(p: Pedido, nombre_sucursal: Optional[str] = None) -> Dict[str, Any]:
    data = {
        "pedido_id": p.pedido_id,
        "codigo": p.codigo,
        "sucursal_id": p.sucursal_id,
        "estado": p.estado,
        "deliver_or_rest": p.deliver_or_rest,
        "nombre": p.nombre,
        "celular": p.celular,
        "entregar_a": p.entregar_a,
        "domicilio": p.domicilio,
        "pedido": p.pedido,
        "instrucciones": p.instrucciones,
        "total": float(p.total) if p.total is not None else 0.0,
        "currency": p.currency,
        "pago": p.pago,
        "fecha": p.fecha,
        "hora": p.hora,
        "tiempo": p.tiempo,
        "origen": p.origen,
        "motivo_cancelacion": p.motivo_cancelacion,
        "created_at": p.created_at.isoformat() if p.created_at else None,
        "updated_at": p.updated_at.isoformat() if p.updated_at else None,
    }
    if nombre_sucursal is not None:
        data["nombre_sucursal"] = nombre_sucursal
    return data
