from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ceats import main
from ceats.core.database import Base, get_db
from ceats.core.metrics import request_metrics
from ceats.models.pedido import Pedido
from ceats.models.restaurante import Restaurante
from ceats.models.sucursal import Sucursal
from ceats.models.usuario import Usuario
from ceats.services.auth import create_session_token
from tests.fixtures_data import (
    HAPPY_PATH_PEDIDO_PAYLOAD,
    RESTAURANTE_A,
    RESTAURANTE_B,
    SUCURSAL_A1,
    SUCURSAL_A2,
    SUCURSAL_B1,
    TENANT_ACCESS_DENIED,
)


def _restaurante(restaurante_id: str, email: str) -> Restaurante:
    return Restaurante(
        restaurante_id=restaurante_id,
        nombre=f"Restaurante {email}",
        nombre_contacto_legal="Contacto",
        email_contacto_legal=email,
        telefono_contacto_legal="3300000000",
        direccion_fiscal="Dirección fiscal",
    )


def _sucursal(sucursal_id: str, restaurante_id: str, nombre: str) -> Sucursal:
    return Sucursal(
        sucursal_id=sucursal_id,
        restaurante_id=restaurante_id,
        nombre_sucursal=nombre,
        direccion="Calle 1",
        telefono_contacto="3300000001",
        is_verified=True,
    )


def _usuario(usuario_id: str, restaurante_id: str, sucursal_id, role: str, email: str) -> Usuario:
    return Usuario(
        usuario_id=usuario_id,
        restaurante_id=restaurante_id,
        sucursal_id=sucursal_id,
        nombre=role.title(),
        apellidos="",
        email=email,
        password_hash="x",
        role=role,
        is_email_verified=True,
    )


@pytest.fixture
def env():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    db.add_all(
        [
            _restaurante(RESTAURANTE_A, "a@restaurante.mx"),
            _restaurante(RESTAURANTE_B, "b@restaurante.mx"),
            _sucursal(SUCURSAL_A1, RESTAURANTE_A, "Centro"),
            _sucursal(SUCURSAL_A2, RESTAURANTE_A, "Norte"),
            _sucursal(SUCURSAL_B1, RESTAURANTE_B, "Otra"),
            _usuario("admin-a", RESTAURANTE_A, None, "admin", "admin@a.mx"),
            _usuario("admin-b", RESTAURANTE_B, None, "admin", "admin@b.mx"),
            _usuario("emp-a1", RESTAURANTE_A, SUCURSAL_A1, "empleado", "emp@a.mx"),
        ]
    )
    db.commit()
    tokens = {u.usuario_id: create_session_token(u) for u in db.query(Usuario).all()}
    db.close()

    def override_get_db():
        session = testing_session_local()
        try:
            yield session
        finally:
            session.close()

    main.app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(main.app), testing_session_local, tokens
    finally:
        main.app.dependency_overrides.clear()
        Base.metadata.drop_all(bind=engine)


def _auth(tokens, usuario_id):
    return {"Authorization": f"Bearer {tokens[usuario_id]}"}


def _create(client, tokens, usuario_id="emp-a1", sucursal_id=SUCURSAL_A1, **overrides):
    return client.post(
        f"/api/pedidos/{sucursal_id}",
        json={**HAPPY_PATH_PEDIDO_PAYLOAD, **overrides},
        headers=_auth(tokens, usuario_id),
    )


def test_create_without_estado_is_pendiente(env):
    client, _, tokens = env

    response = _create(client, tokens)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["pedido"]["estado"] == "Pendiente"
    assert body["pedido"]["sucursal_id"] == SUCURSAL_A1
    assert body["pedido"]["currency"] == "MXN"


def test_duplicate_codigo_returns_409(env):
    client, _, tokens = env
    request_metrics.reset()

    assert _create(client, tokens).status_code == 201
    response = _create(client, tokens)

    assert response.status_code == 409
    assert "PED-0001" in response.json()["detail"]
    assert response.headers["X-Request-ID"]
    # el middleware atribuye la respuesta al restaurante aun después del rollback
    snapshot = request_metrics.snapshot_for_restaurante(RESTAURANTE_A)
    assert snapshot["requests"] == 2
    assert snapshot["errors"] == 1


def test_domicilio_without_address_returns_400(env):
    client, _, tokens = env

    response = _create(client, tokens, deliver_or_rest="domicilio", domicilio=None)

    assert response.status_code == 400


def test_malformed_body_returns_400_instead_of_422(env):
    client, _, tokens = env

    response = _create(client, tokens, total="mucho")

    assert response.status_code == 400
    assert response.json()["detail"] == "Faltan campos requeridos o son inválidos"


def test_missing_token_returns_401(env):
    client, _, _ = env

    response = client.get(f"/api/pedidos/sucursal/{SUCURSAL_A1}")

    assert response.status_code == 401


def test_empleado_cannot_list_other_branch(env):
    client, _, tokens = env

    response = client.get(f"/api/pedidos/sucursal/{SUCURSAL_A2}", headers=_auth(tokens, "emp-a1"))

    assert response.status_code == 403
    assert response.json()["detail"] == TENANT_ACCESS_DENIED["branch_detail"]


def test_admin_cannot_list_branch_of_other_restaurante(env):
    client, _, tokens = env

    response = client.get(f"/api/pedidos/sucursal/{SUCURSAL_B1}", headers=_auth(tokens, "admin-a"))

    assert response.status_code == 403
    assert response.json()["detail"] == TENANT_ACCESS_DENIED["tenant_detail"]


def test_admin_lists_any_branch_of_own_restaurante(env):
    client, _, tokens = env
    _create(client, tokens)

    response = client.get(f"/api/pedidos/sucursal/{SUCURSAL_A1}", headers=_auth(tokens, "admin-a"))

    assert response.status_code == 200
    assert [p["codigo"] for p in response.json()] == ["PED-0001"]


def test_list_can_filter_by_estado(env):
    client, _, tokens = env
    _create(client, tokens)
    _create(client, tokens, codigo="PED-0002", estado="Completado")

    response = client.get(
        f"/api/pedidos/sucursal/{SUCURSAL_A1}",
        params={"estado": "completado"},
        headers=_auth(tokens, "emp-a1"),
    )

    assert [p["codigo"] for p in response.json()] == ["PED-0002"]


def test_get_pedido_is_scope_checked(env):
    client, _, tokens = env
    _create(client, tokens)

    assert client.get("/api/pedidos/PED-0001", headers=_auth(tokens, "admin-a")).status_code == 200
    assert client.get("/api/pedidos/PED-0001", headers=_auth(tokens, "admin-b")).status_code == 403
    assert client.get("/api/pedidos/NO-EXISTE", headers=_auth(tokens, "admin-a")).status_code == 404


def test_update_estado_twice_is_idempotent(env):
    client, session_factory, tokens = env
    _create(client, tokens)

    with patch("ceats.routers.pedidos.emit_pedido_estado_changed") as emit:
        first = client.post("/api/pedidos/PED-0001/estado", json={"estado": "Preparando"}, headers=_auth(tokens, "emp-a1"))
        second = client.post("/api/pedidos/PED-0001/estado", json={"estado": "Preparando"}, headers=_auth(tokens, "emp-a1"))

    assert first.status_code == 200
    assert first.json()["changed"] is True
    assert second.status_code == 200
    assert second.json()["changed"] is False
    assert emit.call_count == 1

    db = session_factory()
    try:
        assert db.query(Pedido).filter(Pedido.codigo == "PED-0001").one().estado == "Preparando"
    finally:
        db.close()


def test_update_estado_requires_estado(env):
    client, _, tokens = env
    _create(client, tokens)

    response = client.post("/api/pedidos/PED-0001/estado", json={}, headers=_auth(tokens, "emp-a1"))

    assert response.status_code == 400


def test_cancel_persists_reason(env):
    client, _, tokens = env
    _create(client, tokens)

    response = client.post(
        "/api/pedidos/PED-0001/estado",
        json={"estado": "Cancelado", "motivo": "Sin existencias"},
        headers=_auth(tokens, "admin-a"),
    )

    assert response.status_code == 200
    assert response.json()["pedido"]["motivo_cancelacion"] == "Sin existencias"


def test_tablero_groups_orders(env):
    client, _, tokens = env
    _create(client, tokens)
    _create(client, tokens, codigo="PED-0002", estado="Listo")
    _create(client, tokens, codigo="PED-0003", estado="Completado")

    response = client.get(f"/api/pedidos/sucursal/{SUCURSAL_A1}/tablero", headers=_auth(tokens, "emp-a1"))

    columnas = response.json()["columnas"]
    assert [c["codigo"] for c in columnas["nuevos"]] == ["PED-0001"]
    assert [c["codigo"] for c in columnas["listos"]] == ["PED-0002"]
    assert columnas["preparando"] == []
    assert columnas["nuevos"][0]["acciones"] == ["Preparando", "Cancelado"]


def test_pedidos_json_is_admin_only_and_tenant_scoped(env):
    client, _, tokens = env
    _create(client, tokens)
    _create(client, tokens, usuario_id="admin-b", sucursal_id=SUCURSAL_B1, codigo="PED-B-1")

    assert client.get("/api/pedidos.json", headers=_auth(tokens, "emp-a1")).status_code == 403

    response = client.get("/api/pedidos.json", headers=_auth(tokens, "admin-a"))
    assert response.status_code == 200
    assert [(p["codigo"], p["nombre_sucursal"]) for p in response.json()] == [("PED-0001", "Centro")]


def test_resumen_counts_per_estado(env):
    client, _, tokens = env
    _create(client, tokens)
    _create(client, tokens, codigo="PED-0002", estado="Completado", total=200)

    response = client.get("/api/pedidos/resumen", headers=_auth(tokens, "admin-a"))

    body = response.json()
    assert body["total_pedidos"] == 2
    assert body["por_estado"] == {"Pendiente": 1, "Completado": 1}
    assert body["ingresos_completados"] == 200.0


def test_delete_is_admin_only(env):
    client, _, tokens = env
    _create(client, tokens)

    assert client.delete("/api/pedidos/PED-0001", headers=_auth(tokens, "emp-a1")).status_code == 403
    assert client.delete("/api/pedidos/PED-0001", headers=_auth(tokens, "admin-b")).status_code == 403
    assert client.delete("/api/pedidos/PED-0001", headers=_auth(tokens, "admin-a")).status_code == 200
    assert client.get("/api/pedidos/PED-0001", headers=_auth(tokens, "admin-a")).status_code == 404


def test_empleado_gets_403_for_unknown_sucursal(env):
    client, _, tokens = env

    response = client.get("/api/pedidos/sucursal/no-existe", headers=_auth(tokens, "emp-a1"))

    assert response.status_code == 403
    assert response.json()["detail"] == TENANT_ACCESS_DENIED["branch_detail"]


def test_admin_gets_403_for_unknown_sucursal(env):
    client, _, tokens = env

    listing = client.get("/api/pedidos/sucursal/no-existe", headers=_auth(tokens, "admin-a"))
    board = client.get("/api/pedidos/sucursal/no-existe/tablero", headers=_auth(tokens, "admin-a"))

    assert listing.status_code == 403
    assert board.status_code == 403
    assert listing.json()["detail"] == TENANT_ACCESS_DENIED["tenant_detail"]
