from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from ceats.deps import get_current_user, require_admin, require_admin_or_empleado
from ceats.services.auth import create_access_token, create_session_token
from tests.fixtures_data import HAPPY_PATH_ADMIN, HAPPY_PATH_EMPLEADO


def _build_request(path: str = "/api/pedidos.json") -> Request:
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


class _FakeQuery:
    def __init__(self, result):
        self._result = result

    def filter(self, *args, **kwargs):
        return self

    def first(self):
        return self._result


class _FakeDB:
    def __init__(self, user=None):
        self.user = user

    def query(self, model):
        return _FakeQuery(self.user)


def test_missing_token_returns_401():
    with pytest.raises(HTTPException) as exc:
        get_current_user(request=_build_request(), token=None, db=_FakeDB())

    assert exc.value.status_code == 401


def test_invalid_token_returns_403():
    with pytest.raises(HTTPException) as exc:
        get_current_user(request=_build_request(), token="no-es-un-jwt", db=_FakeDB())

    assert exc.value.status_code == 403


def test_expired_token_returns_403():
    token = create_access_token("u-1", extra={"role": "admin"}, expires_minutes=-1)

    with pytest.raises(HTTPException) as exc:
        get_current_user(request=_build_request(), token=token, db=_FakeDB())

    assert exc.value.status_code == 403


def test_token_with_unknown_role_is_rejected():
    token = create_access_token("u-1", extra={"role": "superuser"})

    with pytest.raises(HTTPException) as exc:
        get_current_user(request=_build_request(), token=token, db=_FakeDB(SimpleNamespace(**HAPPY_PATH_ADMIN)))

    assert exc.value.status_code == 403


def test_inactive_or_missing_user_returns_401():
    admin = SimpleNamespace(**HAPPY_PATH_ADMIN)
    token = create_session_token(admin)

    with pytest.raises(HTTPException) as exc:
        get_current_user(request=_build_request(), token=token, db=_FakeDB(None))

    assert exc.value.status_code == 401


def test_valid_token_sets_request_state_user():
    admin = SimpleNamespace(**HAPPY_PATH_ADMIN)
    request = _build_request()

    user = get_current_user(request=request, token=create_session_token(admin), db=_FakeDB(admin))

    assert user is admin
    assert request.state.user is admin
    assert request.state.restaurante_id == HAPPY_PATH_ADMIN["restaurante_id"]
    assert request.state.usuario_id == HAPPY_PATH_ADMIN["usuario_id"]


def test_require_admin_rejects_empleado():
    empleado = SimpleNamespace(**HAPPY_PATH_EMPLEADO)

    with pytest.raises(HTTPException) as exc:
        require_admin(request=_build_request(), user=empleado)

    assert exc.value.status_code == 403
    assert exc.value.detail == "Permisos insuficientes"


def test_require_admin_or_empleado_accepts_gerente():
    gerente = SimpleNamespace(**{**HAPPY_PATH_EMPLEADO, "role": "gerente"})

    assert require_admin_or_empleado(request=_build_request(), user=gerente) is gerente
