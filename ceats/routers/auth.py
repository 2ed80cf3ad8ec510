# ceats/routers/auth.py
from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ceats.core.database import get_db
from ceats.models.restaurante import Restaurante
from ceats.models.usuario import Usuario
from ceats.services.auth import create_session_token, hash_password
from ceats.services.auth_service import AuthService
from ceats.services.authorization_service import Role
from ceats.services.email import send_verification_email, send_welcome_email
from ceats.services.verification import VerificationError, issue_user_code, verify_user_email

router = APIRouter(prefix="/api", tags=["auth"])
logger = logging.getLogger(__name__)


class LoginPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterRestauranteroPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    nombre_restaurante: str = Field(..., min_length=1, alias="nombreRestaurante")
    nombre_contacto_legal: str = Field(..., min_length=1, alias="nombreContactoLegal")
    apellidos_contacto_legal: str = Field(..., min_length=1, alias="apellidosContactoLegal")
    email_contacto_legal: EmailStr = Field(..., alias="emailContactoLegal")
    password: str = Field(..., min_length=6)
    telefono_contacto_legal: str = Field(..., min_length=1, alias="telefonoContactoLegal")
    direccion_fiscal: str = Field(..., min_length=1, alias="direccionFiscal")
    fecha_nacimiento_contacto_legal: date = Field(..., alias="fechaNacimientoContactoLegal")

    @field_validator("fecha_nacimiento_contacto_legal")
    @classmethod
    def _not_in_future(cls, value: date) -> date:
        if value > date.today():
            raise ValueError("La fecha de nacimiento no puede ser futura")
        return value


class VerifyEmailPayload(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=6, max_length=6)


class ResendVerificationPayload(BaseModel):
    email: EmailStr


@router.post("/login")
def login(payload: LoginPayload, db: Session = Depends(get_db)):
    user = AuthService.authenticate(db, payload.email, payload.password)
    logger.info("Login usuario_id=%s role=%s", user.usuario_id, user.role)
    return AuthService.login_response(user)


@router.post("/auth/token")
def token(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """Endpoint usado por el botón Authorize de Swagger UI (form-data username/password)."""
    user = AuthService.authenticate(db, form_data.username, form_data.password)
    if user.is_first_login:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Debes cambiar tu contraseña temporal antes de continuar",
        )
    return {"access_token": create_session_token(user), "token_type": "bearer"}


@router.post("/register-restaurantero", status_code=201)
def register_restaurantero(
    payload: RegisterRestauranteroPayload,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    email = str(payload.email_contacto_legal).strip().lower()
    duplicated = (
        db.query(Usuario).filter(Usuario.email == email).first()
        or db.query(Restaurante).filter(Restaurante.email_contacto_legal == email).first()
    )
    if duplicated:
        raise HTTPException(status_code=409, detail="El email ya está registrado")

    try:
        restaurante = Restaurante(
            nombre=payload.nombre_restaurante.strip(),
            nombre_contacto_legal=payload.nombre_contacto_legal.strip(),
            apellidos_contacto_legal=payload.apellidos_contacto_legal.strip(),
            email_contacto_legal=email,
            telefono_contacto_legal=payload.telefono_contacto_legal.strip(),
            direccion_fiscal=payload.direccion_fiscal.strip(),
        )
        db.add(restaurante)
        db.flush()  # genera restaurante_id

        usuario = Usuario(
            restaurante_id=restaurante.restaurante_id,
            sucursal_id=None,
            nombre=payload.nombre_contacto_legal.strip(),
            apellidos=payload.apellidos_contacto_legal.strip(),
            email=email,
            password_hash=hash_password(payload.password),
            role=Role.ADMIN.value,
            fecha_nacimiento=payload.fecha_nacimiento_contacto_legal,
            is_email_verified=False,
            is_first_login=False,
        )
        code = issue_user_code(usuario)
        db.add(usuario)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="El email ya está registrado") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error registrando restaurantero email=%s", email)
        raise HTTPException(status_code=500, detail="Error al registrar el restaurante") from exc

    db.refresh(usuario)
    background_tasks.add_task(send_verification_email, email, usuario.nombre, code)
    logger.info(
        "Restaurantero registrado restaurante_id=%s usuario_id=%s",
        restaurante.restaurante_id,
        usuario.usuario_id,
    )
    return {
        "success": True,
        "message": "Registro exitoso. Revisa tu email para verificar la cuenta.",
        "restauranteID": restaurante.restaurante_id,
        "usuarioId": usuario.usuario_id,
    }


@router.post("/auth/verify-email")
def verify_email(
    payload: VerifyEmailPayload,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    email = str(payload.email).strip().lower()
    usuario = db.query(Usuario).filter(Usuario.email == email).first()
    if not usuario:
        raise HTTPException(status_code=404, detail="Usuario no encontrado")

    try:
        verify_user_email(usuario, payload.code)
    except VerificationError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc

    db.commit()
    background_tasks.add_task(send_welcome_email, usuario.email, usuario.nombre)
    return {"success": True, "message": "Email verificado correctamente"}


@router.post("/auth/resend-verification")
def resend_verification(
    payload: ResendVerificationPayload,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    email = str(payload.email).strip().lower()
    usuario = db.query(Usuario).filter(Usuario.email == email).first()
    if not usuario:
        raise HTTPException(status_code=404, detail="Usuario no encontrado")
    if usuario.is_email_verified:
        raise HTTPException(status_code=400, detail="El email ya ha sido verificado")

    code = issue_user_code(usuario)
    db.commit()
    background_tasks.add_task(send_verification_email, usuario.email, usuario.nombre, code)
    return {"success": True, "message": "Código de verificación reenviado"}
