from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from pydantic import AliasChoices, BaseModel, EmailStr, Field
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ceats.core.database import get_db
from ceats.deps import require_admin, require_admin_or_empleado
from ceats.models.sucursal import Sucursal
from ceats.models.usuario import Usuario
from ceats.services.auth import hash_password
from ceats.services.auth_service import AuthService
from ceats.services.authorization_service import AuthorizationService
from ceats.services.email import send_sucursal_verification_email
from ceats.services.verification import (
    VerificationError,
    issue_sucursal_code,
    reissue_sucursal_code,
    verify_sucursal,
)

router = APIRouter(prefix="/api/sucursales", tags=["sucursales"])
logger = logging.getLogger(__name__)


class SucursalCreate(BaseModel):
    nombre_sucursal: str = Field(..., min_length=1, validation_alias=AliasChoices("nombre_sucursal", "nombre"))
    direccion: str = Field(..., min_length=1)
    telefono_contacto: str = Field(..., min_length=1, validation_alias=AliasChoices("telefono_contacto", "telefono"))
    # el usuario de la sucursal se crea con este email al verificarla
    email_contacto_sucursal: EmailStr = Field(..., validation_alias=AliasChoices("email_contacto_sucursal", "email"))
    restaurante_id: Optional[str] = None
    ciudad: Optional[str] = None
    estado: Optional[str] = None
    codigo_postal: Optional[str] = Field(None, max_length=10)
    latitud: Optional[float] = Field(None, ge=-90, le=90)
    longitud: Optional[float] = Field(None, ge=-180, le=180)


class SucursalUpdate(BaseModel):
    nombre_sucursal: Optional[str] = Field(None, min_length=1)
    direccion: Optional[str] = Field(None, min_length=1)
    telefono_contacto: Optional[str] = Field(None, min_length=1)
    email_contacto_sucursal: Optional[EmailStr] = None
    ciudad: Optional[str] = None
    estado: Optional[str] = None
    codigo_postal: Optional[str] = Field(None, max_length=10)
    latitud: Optional[float] = Field(None, ge=-90, le=90)
    longitud: Optional[float] = Field(None, ge=-180, le=180)


class SucursalVerifyPayload(BaseModel):
    sucursal_id: str = Field(..., min_length=1)
    verification_code: str = Field(..., min_length=6, max_length=6)


class SucursalResendPayload(BaseModel):
    sucursal_id: str = Field(..., min_length=1)


class SucursalLoginPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ChangePasswordPayload(BaseModel):
    email: EmailStr
    current_password: str = Field(..., min_length=1, validation_alias=AliasChoices("currentPassword", "current_password"))
    new_password: str = Field(..., min_length=6, validation_alias=AliasChoices("newPassword", "new_password"))


def sucursal_to_dict(s: Sucursal, usuarios_count: Optional[int] = None) -> Dict[str, Any]:
    data = {
        "sucursal_id": s.sucursal_id,
        "restaurante_id": s.restaurante_id,
        "nombre_sucursal": s.nombre_sucursal,
        "direccion": s.direccion,
        "telefono_contacto": s.telefono_contacto,
        "email_contacto_sucursal": s.email_contacto_sucursal,
        "ciudad": s.ciudad,
        "estado": s.estado,
        "codigo_postal": s.codigo_postal,
        "latitud": s.latitud,
        "longitud": s.longitud,
        "is_verified": bool(s.is_verified),
        "is_active": bool(s.is_active),
        "created_at": s.created_at.isoformat() if s.created_at else None,
    }
    if usuarios_count is not None:
        data["usuarios_count"] = usuarios_count
    return data


def get_active_sucursal(db: Session, sucursal_id: str) -> Sucursal:
    sucursal = (
        db.query(Sucursal)
        .filter(Sucursal.sucursal_id == sucursal_id, Sucursal.is_active.is_(True))
        .first()
    )
    if not sucursal:
        raise HTTPException(status_code=404, detail="Sucursal no encontrada")
    return sucursal


def _create_sucursal(
    payload: SucursalCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    user: Usuario,
    db: Session,
):
    restaurante_id = payload.restaurante_id or user.restaurante_id
    AuthorizationService.ensure_resource_scope(request=request, user=user, restaurante_id=restaurante_id)

    sucursal = Sucursal(
        restaurante_id=restaurante_id,
        nombre_sucursal=payload.nombre_sucursal.strip(),
        direccion=payload.direccion.strip(),
        telefono_contacto=payload.telefono_contacto.strip(),
        email_contacto_sucursal=str(payload.email_contacto_sucursal).strip().lower(),
        ciudad=payload.ciudad,
        estado=payload.estado,
        codigo_postal=payload.codigo_postal,
        latitud=payload.latitud,
        longitud=payload.longitud,
        is_verified=False,
    )
    code = issue_sucursal_code(sucursal)
    try:
        db.add(sucursal)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error creando sucursal restaurante_id=%s", restaurante_id)
        raise HTTPException(status_code=500, detail="Error al crear la sucursal") from exc
    db.refresh(sucursal)

    background_tasks.add_task(
        send_sucursal_verification_email,
        sucursal.email_contacto_sucursal,
        sucursal.nombre_sucursal,
        code,
    )
    logger.info("Sucursal creada sucursal_id=%s restaurante_id=%s", sucursal.sucursal_id, restaurante_id)
    return {
        "success": True,
        "message": "Sucursal registrada. Se envió el código de verificación.",
        "sucursal": sucursal_to_dict(sucursal),
    }


@router.post("", status_code=201)
def create_sucursal(
    payload: SucursalCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return _create_sucursal(payload, request, background_tasks, user, db)


@router.post("/register", status_code=201)
def register_sucursal(
    payload: SucursalCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return _create_sucursal(payload, request, background_tasks, user, db)


@router.post("/verify")
def verify_sucursal_code(
    payload: SucursalVerifyPayload,
    request: Request,
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    sucursal = get_active_sucursal(db, payload.sucursal_id)
    AuthorizationService.ensure_resource_scope(request=request, user=user, restaurante_id=sucursal.restaurante_id)

    try:
        result = verify_sucursal(db, sucursal, payload.verification_code)
        db.commit()
    except VerificationError as exc:
        db.rollback()
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Ya existe un usuario con el email de la sucursal") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error verificando sucursal_id=%s", payload.sucursal_id)
        raise HTTPException(status_code=500, detail="Error al verificar la sucursal") from exc

    db.refresh(result.sucursal)
    db.refresh(result.usuario)
    return {
        "success": True,
        "message": "Sucursal verificada. Se creó el usuario de la sucursal.",
        "sucursal": sucursal_to_dict(result.sucursal),
        "usuario": {
            "usuario_id": result.usuario.usuario_id,
            "email": result.usuario.email,
            "role": result.usuario.role,
            "sucursal_id": result.usuario.sucursal_id,
        },
        "tempPassword": result.temp_password,
    }


@router.post("/resend-code")
def resend_sucursal_code(
    payload: SucursalResendPayload,
    request: Request,
    background_tasks: BackgroundTasks,
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    sucursal = get_active_sucursal(db, payload.sucursal_id)
    AuthorizationService.ensure_resource_scope(request=request, user=user, restaurante_id=sucursal.restaurante_id)

    try:
        code = reissue_sucursal_code(sucursal)
        db.commit()
    except VerificationError as exc:
        db.rollback()
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error reenviando código sucursal_id=%s", payload.sucursal_id)
        raise HTTPException(status_code=500, detail="Error al generar el código de verificación") from exc

    background_tasks.add_task(
        send_sucursal_verification_email,
        sucursal.email_contacto_sucursal,
        sucursal.nombre_sucursal,
        code,
    )
    logger.info("Código de sucursal reenviado sucursal_id=%s por usuario_id=%s", sucursal.sucursal_id, user.usuario_id)
    return {"success": True, "message": "Se envió un nuevo código de verificación."}


@router.post("/login")
def login_sucursal(payload: SucursalLoginPayload, db: Session = Depends(get_db)):
    user = AuthService.authenticate(db, payload.email, payload.password)
    return AuthService.login_response(user)


@router.post("/change-password")
def change_password(payload: ChangePasswordPayload, db: Session = Depends(get_db)):
    user = AuthService.authenticate(db, payload.email, payload.current_password)
    if payload.new_password == payload.current_password:
        raise HTTPException(status_code=400, detail="La nueva contraseña debe ser distinta de la actual")

    user.password_hash = hash_password(payload.new_password)
    user.is_first_login = False
    db.commit()
    logger.info("Contraseña cambiada usuario_id=%s", user.usuario_id)
    return {"success": True, "message": "Contraseña actualizada. Ya puedes iniciar sesión."}


@router.get("/{restaurante_id}")
def list_sucursales(
    restaurante_id: str,
    request: Request,
    user: Usuario = Depends(require_admin_or_empleado),
    db: Session = Depends(get_db),
):
    query = db.query(Sucursal).filter(
        Sucursal.restaurante_id == restaurante_id,
        Sucursal.is_active.is_(True),
    )
    if AuthorizationService.is_admin(user):
        AuthorizationService.ensure_resource_scope(request=request, user=user, restaurante_id=restaurante_id)
    else:
        AuthorizationService.ensure_resource_scope(
            request=request,
            user=user,
            restaurante_id=restaurante_id,
            sucursal_id=user.sucursal_id,
        )
        query = query.filter(Sucursal.sucursal_id == user.sucursal_id)

    sucursales = query.order_by(Sucursal.created_at.asc()).all()
    counts = dict(
        db.query(Usuario.sucursal_id, func.count(Usuario.usuario_id))
        .filter(Usuario.restaurante_id == restaurante_id, Usuario.is_active.is_(True))
        .group_by(Usuario.sucursal_id)
        .all()
    )
    return {
        "success": True,
        "sucursales": [sucursal_to_dict(s, usuarios_count=int(counts.get(s.sucursal_id, 0))) for s in sucursales],
    }


@router.put("/{sucursal_id}")
def update_sucursal(
    sucursal_id: str,
    payload: SucursalUpdate,
    request: Request,
    user: Usuario = Depends(require_admin_or_empleado),
    db: Session = Depends(get_db),
):
    sucursal = get_active_sucursal(db, sucursal_id)
    AuthorizationService.ensure_resource_scope(
        request=request,
        user=user,
        restaurante_id=sucursal.restaurante_id,
        sucursal_id=sucursal.sucursal_id,
    )

    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No hay campos para actualizar")
    if "email_contacto_sucursal" in changes:
        # ya verificada, el email es el login de su usuario
        if sucursal.is_verified:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="El email de una sucursal verificada no se puede cambiar",
            )
        if changes["email_contacto_sucursal"] is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El email de la sucursal es requerido")
        changes["email_contacto_sucursal"] = str(changes["email_contacto_sucursal"]).lower()
    for field, value in changes.items():
        setattr(sucursal, field, value.strip() if isinstance(value, str) else value)

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error actualizando sucursal_id=%s", sucursal_id)
        raise HTTPException(status_code=500, detail="Error al actualizar la sucursal") from exc
    db.refresh(sucursal)
    return {"success": True, "sucursal": sucursal_to_dict(sucursal)}


@router.delete("/{sucursal_id}")
def delete_sucursal(
    sucursal_id: str,
    request: Request,
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    sucursal = get_active_sucursal(db, sucursal_id)
    AuthorizationService.ensure_resource_scope(request=request, user=user, restaurante_id=sucursal.restaurante_id)

    active_users = (
        db.query(Usuario)
        .filter(Usuario.sucursal_id == sucursal_id, Usuario.is_active.is_(True))
        .count()
    )
    if active_users:
        raise HTTPException(
            status_code=409,
            detail=f"No se puede eliminar la sucursal: tiene {active_users} usuario(s) activo(s)",
        )

    sucursal.is_active = False
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error eliminando sucursal_id=%s", sucursal_id)
        raise HTTPException(status_code=500, detail="Error al eliminar la sucursal") from exc
    logger.info("Sucursal desactivada sucursal_id=%s por usuario_id=%s", sucursal_id, user.usuario_id)
    return {"success": True, "message": "Sucursal eliminada correctamente"}
