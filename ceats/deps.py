# ceats/deps.py
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from ceats.core.database import get_db
from ceats.models.usuario import Usuario
from ceats.services.auth import decode_access_token
from ceats.services.authorization_service import AuthorizationService, Role

# Swagger "Authorize" (OAuth2 password flow) llama a este endpoint.
# auto_error=False: sin token respondemos 401 nosotros, token inválido es 403.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)

logger = logging.getLogger(__name__)


def _extract_usuario_id(payload: Dict[str, Any]) -> Optional[str]:
    """Acepta `sub` (estándar JWT) o `usuario_id`."""
    raw = payload.get("sub") or payload.get("usuario_id")
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Usuario:
    """Lee el JWT, lo valida y devuelve el usuario activo del banco."""
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token de acceso requerido",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_access_token(token)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token inválido o expirado")

    usuario_id = _extract_usuario_id(payload)
    if usuario_id is None or Role.parse(payload.get("role")) is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token inválido o expirado")

    user = (
        db.query(Usuario)
        .filter(Usuario.usuario_id == usuario_id, Usuario.is_active.is_(True))
        .first()
    )
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Usuario no encontrado o inactivo",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # ids planos: el middleware los lee cuando la sesión ya está cerrada
    request.state.user = user
    request.state.restaurante_id = str(user.restaurante_id)
    request.state.usuario_id = str(user.usuario_id)
    return user


def require_role(roles: Iterable[Role | str]):
    allowed = [Role.parse(role) for role in roles]

    def _dependency(
        request: Request,
        user: Usuario = Depends(get_current_user),
    ) -> Usuario:
        AuthorizationService.ensure_role(request=request, user=user, roles=allowed)
        return user

    return _dependency


require_admin = require_role([Role.ADMIN])
require_admin_or_empleado = require_role([Role.ADMIN, Role.EMPLEADO, Role.GERENTE])
