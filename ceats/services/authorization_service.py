from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, Optional

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ADMIN = "admin"
    EMPLEADO = "empleado"
    GERENTE = "gerente"

    @classmethod
    def parse(cls, raw: object) -> Optional["Role"]:
        if isinstance(raw, Role):
            return raw
        try:
            return cls(str(raw or "").strip().lower())
        except ValueError:
            return None


BRANCH_ROLES = frozenset({Role.EMPLEADO, Role.GERENTE})

DENIED_DETAILS = {
    "role_denied": "Permisos insuficientes",
    "tenant_mismatch": "No tienes permisos para acceder a recursos de otro restaurante",
    "branch_mismatch": "Solo puedes acceder a recursos de tu sucursal",
    "self_only": "Solo puedes acceder a tu propio usuario",
}


def _same(left: object, right: object) -> bool:
    return left is not None and right is not None and str(left) == str(right)


def scope_denial_reason(
    user,
    *,
    restaurante_id: object = None,
    sucursal_id: object = None,
    usuario_id: object = None,
) -> str | None:
    """Motivo de rechazo para que `user` acceda a un recurso, o None si puede.

    - admin: el recurso tiene que ser de su restaurante.
    - empleado/gerente: el recurso tiene que ser de su sucursal (o él mismo,
      cuando el recurso es un usuario).
    """
    role = Role.parse(getattr(user, "role", None))
    if role is None:
        return "role_denied"

    if restaurante_id is not None and not _same(getattr(user, "restaurante_id", None), restaurante_id):
        return "tenant_mismatch"

    if role is Role.ADMIN:
        if restaurante_id is None:
            return "tenant_mismatch"
        return None

    if usuario_id is not None:
        return None if _same(getattr(user, "usuario_id", None), usuario_id) else "self_only"

    if not _same(getattr(user, "sucursal_id", None), sucursal_id):
        return "branch_mismatch"
    return None


class AuthorizationService:
    """Chequeos de rol y de alcance (restaurante/sucursal) en un solo lugar."""

    @staticmethod
    def log_access_denied(*, reason: str, user, request: Request | None, resource: str | None = None) -> None:
        endpoint = f"{request.method} {request.url.path}" if request is not None else None
        logger.warning(
            "Access denied (%s): usuario_id=%s role=%s restaurante_id=%s sucursal_id=%s resource=%s endpoint=%s",
            reason,
            getattr(user, "usuario_id", None),
            getattr(user, "role", None),
            getattr(user, "restaurante_id", None),
            getattr(user, "sucursal_id", None),
            resource,
            endpoint,
        )

    @classmethod
    def ensure_role(cls, *, request: Request | None, user, roles: Iterable[Role]) -> Role:
        allowed = {Role.parse(role) for role in roles}
        role = Role.parse(getattr(user, "role", None))
        if role is None or role not in allowed:
            cls.log_access_denied(reason="role_denied", user=user, request=request)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=DENIED_DETAILS["role_denied"])
        return role

    @classmethod
    def ensure_resource_scope(
        cls,
        *,
        request: Request | None,
        user,
        restaurante_id: object = None,
        sucursal_id: object = None,
        usuario_id: object = None,
    ) -> None:
        reason = scope_denial_reason(
            user,
            restaurante_id=restaurante_id,
            sucursal_id=sucursal_id,
            usuario_id=usuario_id,
        )
        if reason is None:
            return
        cls.log_access_denied(
            reason=reason,
            user=user,
            request=request,
            resource=f"restaurante={restaurante_id} sucursal={sucursal_id} usuario={usuario_id}",
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=DENIED_DETAILS[reason])

    @staticmethod
    def is_admin(user) -> bool:
        return Role.parse(getattr(user, "role", None)) is Role.ADMIN
