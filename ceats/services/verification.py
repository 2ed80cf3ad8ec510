from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from ceats.core.config import VERIFICATION_CODE_TTL_HOURS
from ceats.models.sucursal import Sucursal
from ceats.models.usuario import Usuario
from ceats.services.auth import hash_password
from ceats.services.authorization_service import Role

logger = logging.getLogger(__name__)


class VerificationError(Exception):
    """Código inválido, expirado o entidad ya verificada."""

    def __init__(self, detail: str, status_code: int = 400) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite devuelve datetimes naive aunque la columna sea timezone=True
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def generate_verification_code() -> str:
    return str(100000 + secrets.randbelow(900000))


def verification_expiry(now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(hours=VERIFICATION_CODE_TTL_HOURS)


def is_expired(expires_at: datetime | None, now: datetime | None = None) -> bool:
    expires = as_utc(expires_at)
    return expires is None or expires < (now or utcnow())


def check_code(*, expected: str | None, expires_at: datetime | None, provided: str, now: datetime | None = None) -> None:
    if not expected or str(provided).strip() != expected:
        raise VerificationError("Código de verificación inválido")
    if is_expired(expires_at, now):
        raise VerificationError("El código de verificación ha expirado")


def issue_user_code(usuario: Usuario) -> str:
    code = generate_verification_code()
    usuario.verification_code = code
    usuario.verification_expires = verification_expiry()
    return code


def issue_sucursal_code(sucursal: Sucursal) -> str:
    code = generate_verification_code()
    sucursal.verification_code = code
    sucursal.verification_expires = verification_expiry()
    return code


def reissue_sucursal_code(sucursal: Sucursal) -> str:
    """Genera un código nuevo para una sucursal pendiente; invalida el anterior. No hace commit."""
    if sucursal.is_verified:
        raise VerificationError("La sucursal ya ha sido verificada")
    if not (sucursal.email_contacto_sucursal or "").strip():
        raise VerificationError("La sucursal no tiene email de contacto para enviar el código")
    return issue_sucursal_code(sucursal)


def verify_user_email(usuario: Usuario, code: str) -> None:
    if usuario.is_email_verified:
        raise VerificationError("El email ya ha sido verificado")
    check_code(expected=usuario.verification_code, expires_at=usuario.verification_expires, provided=code)
    usuario.is_email_verified = True
    usuario.verification_code = None
    usuario.verification_expires = None


@dataclass
class BranchVerification:
    sucursal: Sucursal
    usuario: Usuario
    temp_password: str


def verify_sucursal(db: Session, sucursal: Sucursal, code: str) -> BranchVerification:
    """Marca la sucursal como verificada y crea su usuario empleado.

    El código se reutiliza como contraseña temporal (sólo se guarda su hash)
    y el usuario queda con is_first_login=True. No hace commit.
    """
    if sucursal.is_verified:
        raise VerificationError("La sucursal ya ha sido verificada")
    check_code(expected=sucursal.verification_code, expires_at=sucursal.verification_expires, provided=code)

    email = (sucursal.email_contacto_sucursal or "").strip().lower()
    if not email:
        raise VerificationError("La sucursal no tiene email de contacto para crear su usuario")
    if db.query(Usuario).filter(Usuario.email == email).first():
        raise VerificationError("Ya existe un usuario con el email de la sucursal", status_code=409)

    temp_password = sucursal.verification_code
    sucursal.is_verified = True
    sucursal.verification_code = None
    sucursal.verification_expires = None

    usuario = Usuario(
        restaurante_id=sucursal.restaurante_id,
        sucursal_id=sucursal.sucursal_id,
        nombre=sucursal.nombre_sucursal,
        apellidos="",
        email=email,
        password_hash=hash_password(temp_password),
        role=Role.EMPLEADO.value,
        is_email_verified=True,
        is_first_login=True,
        is_active=True,
    )
    db.add(usuario)
    db.flush()
    logger.info(
        "Sucursal verificada: sucursal_id=%s usuario_id=%s",
        sucursal.sucursal_id,
        usuario.usuario_id,
    )
    return BranchVerification(sucursal=sucursal, usuario=usuario, temp_password=temp_password)
