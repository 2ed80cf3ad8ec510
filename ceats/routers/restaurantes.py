from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ceats.core.database import get_db
from ceats.deps import require_admin, require_admin_or_empleado
from ceats.models.restaurante import Restaurante
from ceats.models.usuario import Usuario
from ceats.services.authorization_service import AuthorizationService

router = APIRouter(prefix="/api/restaurantes", tags=["restaurantes"])
logger = logging.getLogger(__name__)


class RestauranteCreate(BaseModel):
    nombre: str = Field(..., min_length=1)
    nombre_contacto_legal: str = Field(..., min_length=1)
    apellidos_contacto_legal: Optional[str] = None
    email_contacto_legal: EmailStr
    telefono_contacto_legal: str = Field(..., min_length=1)
    direccion_fiscal: str = Field(..., min_length=1)
    rfc: Optional[str] = Field(None, max_length=20)


class RestauranteUpdate(BaseModel):
    nombre: Optional[str] = Field(None, min_length=1)
    nombre_contacto_legal: Optional[str] = Field(None, min_length=1)
    apellidos_contacto_legal: Optional[str] = None
    telefono_contacto_legal: Optional[str] = Field(None, min_length=1)
    direccion_fiscal: Optional[str] = Field(None, min_length=1)
    rfc: Optional[str] = Field(None, max_length=20)


def _restaurante_to_dict(r: Restaurante) -> Dict[str, Any]:
    return {
        "restaurante_id": r.restaurante_id,
        "nombre": r.nombre,
        "nombre_contacto_legal": r.nombre_contacto_legal,
        "apellidos_contacto_legal": r.apellidos_contacto_legal,
        "email_contacto_legal": r.email_contacto_legal,
        "telefono_contacto_legal": r.telefono_contacto_legal,
        "direccion_fiscal": r.direccion_fiscal,
        "rfc": r.rfc,
        "is_active": bool(r.is_active),
        "created_at": r.created_at.isoformat() if r.created_at else None,
        "updated_at": r.updated_at.isoformat() if r.updated_at else None,
    }


def _get_active_restaurante(db: Session, restaurante_id: str) -> Restaurante:
    restaurante = (
        db.query(Restaurante)
        .filter(Restaurante.restaurante_id == restaurante_id, Restaurante.is_active.is_(True))
        .first()
    )
    if not restaurante:
        raise HTTPException(status_code=404, detail="Restaurante no encontrado")
    return restaurante


@router.get("")
def get_my_restaurante(
    user: Usuario = Depends(require_admin_or_empleado),
    db: Session = Depends(get_db),
):
    return {"success": True, "restaurante": _restaurante_to_dict(_get_active_restaurante(db, user.restaurante_id))}


@router.post("", status_code=201)
def create_restaurante(payload: RestauranteCreate, db: Session = Depends(get_db)):
    email = str(payload.email_contacto_legal).strip().lower()
    if db.query(Restaurante).filter(Restaurante.email_contacto_legal == email).first():
        raise HTTPException(status_code=409, detail="Ya existe un restaurante con ese email")

    restaurante = Restaurante(
        nombre=payload.nombre.strip(),
        nombre_contacto_legal=payload.nombre_contacto_legal.strip(),
        apellidos_contacto_legal=(payload.apellidos_contacto_legal or "").strip() or None,
        email_contacto_legal=email,
        telefono_contacto_legal=payload.telefono_contacto_legal.strip(),
        direccion_fiscal=payload.direccion_fiscal.strip(),
        rfc=(payload.rfc or "").strip().upper() or None,
    )
    try:
        db.add(restaurante)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Ya existe un restaurante con ese email") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error creando restaurante email=%s", email)
        raise HTTPException(status_code=500, detail="Error al crear el restaurante") from exc

    db.refresh(restaurante)
    return {"success": True, "restaurante": _restaurante_to_dict(restaurante)}


@router.put("/{restaurante_id}")
def update_restaurante(
    restaurante_id: str,
    payload: RestauranteUpdate,
    request: Request,
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    AuthorizationService.ensure_resource_scope(request=request, user=user, restaurante_id=restaurante_id)
    restaurante = _get_active_restaurante(db, restaurante_id)

    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No hay campos para actualizar")
    for field, value in changes.items():
        setattr(restaurante, field, value.strip() if isinstance(value, str) else value)

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error actualizando restaurante_id=%s", restaurante_id)
        raise HTTPException(status_code=500, detail="Error al actualizar el restaurante") from exc
    db.refresh(restaurante)
    return {"success": True, "restaurante": _restaurante_to_dict(restaurante)}


@router.delete("/{restaurante_id}")
def delete_restaurante(
    restaurante_id: str,
    request: Request,
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    AuthorizationService.ensure_resource_scope(request=request, user=user, restaurante_id=restaurante_id)
    restaurante = _get_active_restaurante(db, restaurante_id)
    restaurante.is_active = False
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error eliminando restaurante_id=%s", restaurante_id)
        raise HTTPException(status_code=500, detail="Error al eliminar el restaurante") from exc
    logger.info("Restaurante desactivado restaurante_id=%s por usuario_id=%s", restaurante_id, user.usuario_id)
    return {"success": True, "message": "Restaurante eliminado correctamente"}
