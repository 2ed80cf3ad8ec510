from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

from ceats.core.config import JWT_ALGORITHM, JWT_EXPIRE_MINUTES, JWT_SECRET_KEY


# =========================
# PASSWORD (bcrypt directo)
# =========================
def _normalize_password_for_bcrypt(password: str) -> bytes:
    """bcrypt sólo considera 72 bytes; truncamos para no romper con claves largas."""
    pw = (password or "").encode("utf-8")
    return pw[:72]


def hash_password(password: str) -> str:
    hashed = bcrypt.hashpw(_normalize_password_for_bcrypt(password), bcrypt.gensalt())
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(
            _normalize_password_for_bcrypt(plain_password),
            (password_hash or "").encode("utf-8"),
        )
    except ValueError:
        # hash corrupto o en otro formato
        return False


# =========================
# JWT HELPERS
# =========================
def session_claims(usuario) -> Dict[str, Any]:
    return {
        "usuario_id": str(usuario.usuario_id),
        "email": usuario.email,
        "role": str(usuario.role),
        "restaurante_id": str(usuario.restaurante_id),
        "sucursal_id": str(usuario.sucursal_id) if usuario.sucursal_id else None,
        "nombre": usuario.nombre,
        "apellidos": usuario.apellidos,
    }


def create_access_token(
    usuario_id: str,
    extra: Optional[Dict[str, Any]] = None,
    expires_minutes: int = JWT_EXPIRE_MINUTES,
) -> str:
    """
    "sub" tiene que ser STRING (python-jose valida el tipo al decodificar).
    """
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=expires_minutes)

    payload: Dict[str, Any] = {
        "sub": str(usuario_id),
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if extra:
        payload.update(extra)

    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def create_session_token(usuario) -> str:
    return create_access_token(str(usuario.usuario_id), extra=session_claims(usuario))


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Devuelve el payload del JWT o levanta ValueError si es inválido o expiró.
    """
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        raise ValueError("Token inválido o expirado") from e
