from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ceats.core.database import get_db
from ceats.deps import require_admin, require_admin_or_empleado
from ceats.models.sucursal import Sucursal
from ceats.models.usuario import Usuario
from ceats.services.auth import hash_password
from ceats.services.authorization_service import AuthorizationService, Role

router = APIRouter(prefix="/api/usuarios", tags=["usuarios"])
logger = logging.getLogger(__name__)


class UsuarioCreate(BaseModel):
    nombre: str = Field(..., min_length=1)
    apellidos: str = ""
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: str = Field(..., min_length=1)
    sucursal_id: Optional[str] = None
    fecha_nacimiento: Optional[date] = None


class UsuarioUpdate(BaseModel):
    nombre: Optional[str] = Field(None, min_length=1)
    apellidos: Optional[str] = None
    fecha_nacimiento: Optional[date] = None
    password: Optional[str] = Field(None, min_length=6)
    role: Optional[str] = None
    sucursal_id: Optional[str] = None


def usuario_to_dict(u: Usuario) -> Dict[str, Any]:
    return {
        "usuario_id": u.usuario_id,
        "restaurante_id": u.restaurante_id,
        "sucursal_id": u.sucursal_id,
        "nombre": u.nombre,
        "apellidos": u.apellidos,
        "email": u.email,
        "role": u.role,
        "fecha_nacimiento": u.fecha_nacimiento.isoformat() if u.fecha_nacimiento else None,
        "is_email_verified": bool(u.is_email_verified),
        "is_active": bool(u.is_active),
        "is_first_login": bool(u.is_first_login),
        "created_at": u.created_at.isoformat() if u.created_at else None,
    }


def _parse_role(raw: str) -> Role:
    role = Role.parse(raw)
    if role is None:
        allowed = ", ".join(r.value for r in Role)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Rol inválido. Valores permitidos: {allowed}")
    return role


def _resolve_branch(db: Session, *, role: Role, sucursal_id: Optional[str], restaurante_id: str) -> Optional[str]:
    """Admin nunca tiene sucursal; los demás roles la necesitan y tiene que ser del restaurante."""
    if role is Role.ADMIN:
        return None
    if not sucursal_id:
        raise HTTPException(status_code=400, detail="sucursal_id es requerido para roles de sucursal")
    sucursal = (
        db.query(Sucursal)
        .filter(
            Sucursal.sucursal_id == sucursal_id,
            Sucursal.restaurante_id == restaurante_id,
            Sucursal.is_active.is_(True),
        )
        .first()
    )
    if not sucursal:
        raise HTTPException(status_code=400, detail="La sucursal no existe o no pertenece a tu restaurante")
    return sucursal.sucursal_id


def _get_active_usuario(db: Session, usuario_id: str) -> Usuario:
    usuario = (
        db.query(Usuario)
        .filter(Usuario.usuario_id == usuario_id, Usuario.is_active.is_(True))
        .first()
    )
    if not usuario:
        raise HTTPException(status_code=404, detail="Usuario no encontrado")
    return usuario


def _ensure_can_manage(request: Request, user: Usuario, target: Usuario) -> None:
    if AuthorizationService.is_admin(user):
        AuthorizationService.ensure_resource_scope(request=request, user=user, restaurante_id=target.restaurante_id)
    else:
        AuthorizationService.ensure_resource_scope(
            request=request,
            user=user,
            restaurante_id=target.restaurante_id,
            usuario_id=target.usuario_id,
        )


@router.get("/{restaurante_id}")
def list_usuarios(
    restaurante_id: str,
    request: Request,
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    AuthorizationService.ensure_resource_scope(request=request, user=user, restaurante_id=restaurante_id)
    usuarios = (
        db.query(Usuario)
        .filter(Usuario.restaurante_id == restaurante_id, Usuario.is_active.is_(True))
        .order_by(Usuario.created_at.asc())
        .all()
    )
    return {"success": True, "usuarios": [usuario_to_dict(u) for u in usuarios]}


@router.post("", status_code=201)
def create_usuario(
    payload: UsuarioCreate,
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    role = _parse_role(payload.role)
    sucursal_id = _resolve_branch(db, role=role, sucursal_id=payload.sucursal_id, restaurante_id=user.restaurante_id)

    email = str(payload.email).strip().lower()
    if db.query(Usuario).filter(Usuario.email == email).first():
        raise HTTPException(status_code=409, detail="Ya existe un usuario con ese email")

    # lo da de alta el admin: email confiable, pero la contraseña inicial se cambia
    usuario = Usuario(
        restaurante_id=user.restaurante_id,
        sucursal_id=sucursal_id,
        nombre=payload.nombre.strip(),
        apellidos=payload.apellidos.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        role=role.value,
        fecha_nacimiento=payload.fecha_nacimiento,
        is_email_verified=True,
        is_first_login=True,
    )
    try:
        db.add(usuario)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Ya existe un usuario con ese email") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error creando usuario email=%s", email)
        raise HTTPException(status_code=500, detail="Error al crear el usuario") from exc

    db.refresh(usuario)
    logger.info("Usuario creado usuario_id=%s role=%s por usuario_id=%s", usuario.usuario_id, role.value, user.usuario_id)
    return {"success": True, "usuario": usuario_to_dict(usuario)}


@router.put("/{usuario_id}")
def update_usuario(
    usuario_id: str,
    payload: UsuarioUpdate,
    request: Request,
    user: Usuario = Depends(require_admin_or_empleado),
    db: Session = Depends(get_db),
):
    target = _get_active_usuario(db, usuario_id)
    _ensure_can_manage(request, user, target)

    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No hay campos para actualizar")

    if ("role" in changes or "sucursal_id" in changes) and not AuthorizationService.is_admin(user):
        AuthorizationService.log_access_denied(reason="role_denied", user=user, request=request)
        raise HTTPException(status_code=403, detail="Solo un administrador puede cambiar rol o sucursal")

    if "role" in changes or "sucursal_id" in changes:
        role = _parse_role(changes.get("role") or target.role)
        target.role = role.value
        target.sucursal_id = _resolve_branch(
            db,
            role=role,
            sucursal_id=changes.get("sucursal_id", target.sucursal_id),
            restaurante_id=target.restaurante_id,
        )

    for field in ("nombre", "apellidos", "fecha_nacimiento"):
        if field in changes:
            value = changes[field]
            setattr(target, field, value.strip() if isinstance(value, str) else value)
    if changes.get("password"):
        target.password_hash = hash_password(changes["password"])

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error actualizando usuario_id=%s", usuario_id)
        raise HTTPException(status_code=500, detail="Error al actualizar el usuario") from exc
    db.refresh(target)
    return {"success": True, "usuario": usuario_to_dict(target)}


@router.delete("/{usuario_id}")
def delete_usuario(
    usuario_id: str,
    request: Request,
    user: Usuario = Depends(require_admin_or_empleado),
    db: Session = Depends(get_db),
):
    target = _get_active_usuario(db, usuario_id)
    _ensure_can_manage(request, user, target)

    if AuthorizationService.is_admin(user) and str(target.usuario_id) == str(user.usuario_id):
        raise HTTPException(status_code=400, detail="No puedes eliminar tu propio usuario administrador")

    target.is_active = False
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error eliminando usuario_id=%s", usuario_id)
        raise HTTPException(status_code=500, detail="Error al eliminar el usuario") from exc
    logger.info("Usuario desactivado usuario_id=%s por usuario_id=%s", usuario_id, user.usuario_id)
    return {"success": True, "message": "Usuario eliminado correctamente"}
