from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy import desc, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ceats.core.database import get_db
from ceats.deps import require_admin, require_admin_or_empleado
from ceats.models.pedido import Pedido
from ceats.models.sucursal import Sucursal
from ceats.models.usuario import Usuario
from ceats.schemas.pedidos import EstadoUpdate, PedidoCreate
from ceats.services.authorization_service import DENIED_DETAILS, AuthorizationService
from ceats.services.order_board import BOARD_COLUMNS, build_board
from ceats.services.order_events import emit_pedido_estado_changed
from ceats.services.pedidos import (
    ESTADO_COMPLETADO,
    apply_estado,
    create_pedido,
    normalize_estado,
    pedido_to_dict,
)

router = APIRouter(prefix="/api", tags=["pedidos"])
logger = logging.getLogger(__name__)


def _get_pedido(db: Session, codigo: str) -> Pedido:
    pedido = db.query(Pedido).filter(Pedido.codigo == codigo).first()
    if not pedido:
        raise HTTPException(status_code=404, detail="Pedido no encontrado")
    return pedido


def _ensure_pedido_scope(db: Session, request: Request, user: Usuario, pedido: Pedido) -> Sucursal:
    """Re-resuelve la sucursal del pedido y aplica el chequeo de alcance."""
    sucursal = db.query(Sucursal).filter(Sucursal.sucursal_id == pedido.sucursal_id).first()
    if sucursal is None:
        raise HTTPException(status_code=404, detail="Sucursal del pedido no encontrada")
    AuthorizationService.ensure_resource_scope(
        request=request,
        user=user,
        restaurante_id=sucursal.restaurante_id,
        sucursal_id=sucursal.sucursal_id,
    )
    return sucursal


def _ensure_sucursal_scope(db: Session, request: Request, user: Usuario, sucursal_id: str) -> Sucursal:
    """Chequea alcance antes de revelar si la sucursal existe."""
    is_admin = AuthorizationService.is_admin(user)
    if not is_admin:
        AuthorizationService.ensure_resource_scope(
            request=request,
            user=user,
            restaurante_id=user.restaurante_id,
            sucursal_id=sucursal_id,
        )

    sucursal = (
        db.query(Sucursal)
        .filter(Sucursal.sucursal_id == sucursal_id, Sucursal.is_active.is_(True))
        .first()
    )
    if sucursal is None:
        if is_admin:
            AuthorizationService.log_access_denied(
                reason="tenant_mismatch",
                user=user,
                request=request,
                resource=f"sucursal={sucursal_id}",
            )
            raise HTTPException(status_code=403, detail=DENIED_DETAILS["tenant_mismatch"])
        raise HTTPException(status_code=404, detail="Sucursal no encontrada")

    AuthorizationService.ensure_resource_scope(
        request=request,
        user=user,
        restaurante_id=sucursal.restaurante_id,
        sucursal_id=sucursal.sucursal_id,
    )
    return sucursal


# Las rutas fijas van antes de /pedidos/{codigo}
@router.get("/pedidos.json")
def list_all_pedidos(
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    rows = (
        db.query(Pedido, Sucursal.nombre_sucursal)
        .join(Sucursal, Sucursal.sucursal_id == Pedido.sucursal_id)
        .filter(Sucursal.restaurante_id == user.restaurante_id)
        .order_by(desc(Pedido.created_at))
        .all()
    )
    return [pedido_to_dict(pedido, nombre_sucursal=nombre) for pedido, nombre in rows]


@router.get("/pedidos/resumen")
def resumen_pedidos(
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    base = (
        db.query(Pedido)
        .join(Sucursal, Sucursal.sucursal_id == Pedido.sucursal_id)
        .filter(Sucursal.restaurante_id == user.restaurante_id)
    )

    por_estado = {
        estado: int(total)
        for estado, total in base.with_entities(Pedido.estado, func.count(Pedido.pedido_id))
        .group_by(Pedido.estado)
        .all()
    }
    ingresos = (
        base.filter(Pedido.estado == ESTADO_COMPLETADO)
        .with_entities(func.coalesce(func.sum(Pedido.total), 0))
        .scalar()
    )
    por_sucursal = [
        {"sucursal_id": sucursal_id, "nombre_sucursal": nombre, "pedidos": int(total)}
        for sucursal_id, nombre, total in base.with_entities(
            Sucursal.sucursal_id, Sucursal.nombre_sucursal, func.count(Pedido.pedido_id)
        )
        .group_by(Sucursal.sucursal_id, Sucursal.nombre_sucursal)
        .all()
    ]
    return {
        "success": True,
        "total_pedidos": sum(por_estado.values()),
        "por_estado": por_estado,
        "ingresos_completados": float(ingresos or 0),
        "por_sucursal": por_sucursal,
    }


@router.get("/pedidos/sucursal/{sucursal_id}")
def list_pedidos_sucursal(
    sucursal_id: str,
    request: Request,
    estado: Optional[str] = Query(None, description="Filtra por estado (historial)"),
    user: Usuario = Depends(require_admin_or_empleado),
    db: Session = Depends(get_db),
):
    _ensure_sucursal_scope(db, request, user, sucursal_id)

    query = db.query(Pedido).filter(Pedido.sucursal_id == sucursal_id)
    if estado:
        query = query.filter(Pedido.estado == normalize_estado(estado))
    pedidos = query.order_by(desc(Pedido.created_at)).all()
    return [pedido_to_dict(p) for p in pedidos]


@router.get("/pedidos/sucursal/{sucursal_id}/tablero")
def tablero_sucursal(
    sucursal_id: str,
    request: Request,
    user: Usuario = Depends(require_admin_or_empleado),
    db: Session = Depends(get_db),
):
    sucursal = _ensure_sucursal_scope(db, request, user, sucursal_id)
    activos = [estado for _, estado in BOARD_COLUMNS]
    pedidos = (
        db.query(Pedido)
        .filter(Pedido.sucursal_id == sucursal_id, Pedido.estado.in_(activos))
        .order_by(Pedido.created_at.asc())
        .all()
    )
    return {
        "success": True,
        "sucursal_id": sucursal.sucursal_id,
        "nombre_sucursal": sucursal.nombre_sucursal,
        "columnas": build_board(pedidos),
    }


@router.post("/pedidos/{sucursal_id}", status_code=201)
def crear_pedido(
    sucursal_id: str,
    payload: PedidoCreate,
    request: Request,
    user: Usuario = Depends(require_admin_or_empleado),
    db: Session = Depends(get_db),
):
    _ensure_sucursal_scope(db, request, user, sucursal_id)
    pedido = create_pedido(db, sucursal_id=sucursal_id, data=payload, origen="manual")
    logger.info("Pedido creado codigo=%s sucursal_id=%s usuario_id=%s", pedido.codigo, sucursal_id, user.usuario_id)
    return {"success": True, "pedido": pedido_to_dict(pedido)}


@router.get("/pedidos/{codigo}")
def get_pedido(
    codigo: str,
    request: Request,
    user: Usuario = Depends(require_admin_or_empleado),
    db: Session = Depends(get_db),
):
    pedido = _get_pedido(db, codigo)
    sucursal = _ensure_pedido_scope(db, request, user, pedido)
    return pedido_to_dict(pedido, nombre_sucursal=sucursal.nombre_sucursal)


@router.post("/pedidos/{codigo}/estado")
def update_estado(
    codigo: str,
    payload: EstadoUpdate,
    request: Request,
    background_tasks: BackgroundTasks,
    user: Usuario = Depends(require_admin_or_empleado),
    db: Session = Depends(get_db),
):
    pedido = _get_pedido(db, codigo)
    _ensure_pedido_scope(db, request, user, pedido)

    if not (payload.estado or "").strip():
        raise HTTPException(status_code=400, detail="El campo estado es requerido")

    previous_estado = pedido.estado
    if not apply_estado(pedido, payload.estado, payload.motivo):
        return {"success": True, "changed": False, "pedido": pedido_to_dict(pedido)}

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error actualizando estado codigo=%s", codigo)
        raise HTTPException(status_code=500, detail="Error al actualizar el estado del pedido") from exc
    db.refresh(pedido)

    logger.info(
        "Estado actualizado codigo=%s %s -> %s usuario_id=%s",
        codigo,
        previous_estado,
        pedido.estado,
        user.usuario_id,
    )
    background_tasks.add_task(emit_pedido_estado_changed, pedido, previous_estado)
    return {"success": True, "changed": True, "pedido": pedido_to_dict(pedido)}


@router.delete("/pedidos/{codigo}")
def delete_pedido(
    codigo: str,
    request: Request,
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    pedido = _get_pedido(db, codigo)
    _ensure_pedido_scope(db, request, user, pedido)
    try:
        db.delete(pedido)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error eliminando pedido codigo=%s", codigo)
        raise HTTPException(status_code=500, detail="Error al eliminar el pedido") from exc
    logger.info("Pedido eliminado codigo=%s por usuario_id=%s", codigo, user.usuario_id)
    return {"success": True, "message": "Pedido eliminado correctamente"}
