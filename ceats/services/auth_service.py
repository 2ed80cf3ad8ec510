from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import HTTPException, status
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from ceats.models.usuario import Usuario
from ceats.services.auth import create_session_token, session_claims, verify_password

logger = logging.getLogger(__name__)

UNVERIFIED_DETAIL = "El email no ha sido verificado. Revisa tu correo para completar el registro."
INVALID_CREDENTIALS_DETAIL = "Credenciales inválidas"


class AuthService:
    """Login por email/contraseña compartido por /api/login y /api/sucursales/login."""

    @staticmethod
    def find_active_user(db: Session, email: str) -> Usuario | None:
        normalized = (email or "").strip().lower()
        try:
            return (
                db.query(Usuario)
                .filter(Usuario.email == normalized, Usuario.is_active.is_(True))
                .first()
            )
        except OperationalError as exc:
            logger.exception("Base de datos no disponible durante login")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Servicio no disponible, intenta más tarde",
            ) from exc

    @classmethod
    def authenticate(cls, db: Session, email: str, password: str) -> Usuario:
        user = cls.find_active_user(db, email)
        if user is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS_DETAIL)

        # antes de la contraseña: la respuesta no revela si era correcta
        if not user.is_email_verified:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=UNVERIFIED_DETAIL)

        if not verify_password(password, user.password_hash):
            logger.info("Login fallido usuario_id=%s", user.usuario_id)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS_DETAIL)
        return user

    @staticmethod
    def login_response(user: Usuario) -> Dict[str, Any]:
        if user.is_first_login:
            return {
                "success": True,
                "requiresPasswordChange": True,
                "email": user.email,
                "message": "Debes cambiar tu contraseña temporal antes de continuar",
            }

        claims = session_claims(user)
        return {
            "success": True,
            "token": create_session_token(user),
            **claims,
        }
