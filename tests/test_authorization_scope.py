from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from ceats.services.authorization_service import AuthorizationService, Role, scope_denial_reason
from tests.fixtures_data import (
    HAPPY_PATH_ADMIN,
    HAPPY_PATH_EMPLEADO,
    RESTAURANTE_A,
    RESTAURANTE_B,
    SUCURSAL_A1,
    SUCURSAL_A2,
    TENANT_ACCESS_DENIED,
)


def _build_request(path: str = "/api/pedidos/sucursal/x") -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "query_string": b"",
        "headers": [],
        "path_params": {},
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
        "scheme": "http",
    }
    return Request(scope)


def test_role_parse_accepts_known_roles_case_insensitively():
    assert Role.parse("ADMIN") is Role.ADMIN
    assert Role.parse(" gerente ") is Role.GERENTE
    assert Role.parse("superuser") is None
    assert Role.parse(None) is None


def test_user_without_required_role_receives_403():
    user = SimpleNamespace(**HAPPY_PATH_EMPLEADO)

    with pytest.raises(HTTPException) as exc:
        AuthorizationService.ensure_role(request=_build_request(), user=user, roles=[Role.ADMIN])

    assert exc.value.status_code == 403
    assert exc.value.detail == "Permisos insuficientes"


def test_admin_of_other_restaurante_is_denied():
    admin = SimpleNamespace(**HAPPY_PATH_ADMIN)

    with pytest.raises(HTTPException) as exc:
        AuthorizationService.ensure_resource_scope(
            request=_build_request(),
            user=admin,
            restaurante_id=RESTAURANTE_B,
            sucursal_id="otra",
        )

    assert exc.value.status_code == TENANT_ACCESS_DENIED["expected_status_code"]
    assert exc.value.detail == TENANT_ACCESS_DENIED["tenant_detail"]


def test_admin_can_reach_any_branch_of_own_restaurante():
    admin = SimpleNamespace(**HAPPY_PATH_ADMIN)

    AuthorizationService.ensure_resource_scope(
        request=_build_request(),
        user=admin,
        restaurante_id=RESTAURANTE_A,
        sucursal_id=SUCURSAL_A2,
    )


def test_empleado_limited_to_own_branch():
    empleado = SimpleNamespace(**HAPPY_PATH_EMPLEADO)

    AuthorizationService.ensure_resource_scope(
        request=_build_request(),
        user=empleado,
        restaurante_id=RESTAURANTE_A,
        sucursal_id=SUCURSAL_A1,
    )
    with pytest.raises(HTTPException) as exc:
        AuthorizationService.ensure_resource_scope(
            request=_build_request(),
            user=empleado,
            restaurante_id=RESTAURANTE_A,
            sucursal_id=SUCURSAL_A2,
        )

    assert exc.value.status_code == 403
    assert exc.value.detail == TENANT_ACCESS_DENIED["branch_detail"]


def test_non_admin_user_resource_is_self_only():
    empleado = SimpleNamespace(**HAPPY_PATH_EMPLEADO)

    assert scope_denial_reason(empleado, restaurante_id=RESTAURANTE_A, usuario_id=empleado.usuario_id) is None
    assert scope_denial_reason(empleado, restaurante_id=RESTAURANTE_A, usuario_id="otro") == "self_only"


def test_unknown_role_is_always_denied():
    user = SimpleNamespace(usuario_id="x", restaurante_id=RESTAURANTE_A, sucursal_id=SUCURSAL_A1, role="cajero")

    assert scope_denial_reason(user, restaurante_id=RESTAURANTE_A, sucursal_id=SUCURSAL_A1) == "role_denied"


def test_access_denied_is_logged_with_reason(caplog):
    empleado = SimpleNamespace(**HAPPY_PATH_EMPLEADO)

    with caplog.at_level("WARNING", logger="ceats.services.authorization_service"):
        with pytest.raises(HTTPException):
            AuthorizationService.ensure_resource_scope(
                request=_build_request(),
                user=empleado,
                restaurante_id=RESTAURANTE_B,
                sucursal_id=SUCURSAL_A1,
            )

    assert "Access denied (tenant_mismatch)" in caplog.text
