from datetime import timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ceats import main
from ceats.core.database import Base, get_db
from ceats.models.restaurante import Restaurante
from ceats.models.usuario import Usuario
from ceats.services.verification import utcnow
from tests.fixtures_data import HAPPY_PATH_PEDIDO_PAYLOAD, REGISTER_RESTAURANTERO_PAYLOAD, SUCURSAL_PAYLOAD


@pytest.fixture
def env():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    main.app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(main.app), testing_session_local
    finally:
        main.app.dependency_overrides.clear()
        Base.metadata.drop_all(bind=engine)


def _register(client):
    with patch("ceats.routers.auth.send_verification_email") as send_mock:
        response = client.post("/api/register-restaurantero", json=REGISTER_RESTAURANTERO_PAYLOAD)
    code = send_mock.call_args.args[2] if send_mock.called else None
    return response, code


def _login(client, email, password, path="/api/login"):
    return client.post(path, json={"email": email, "password": password})


def test_restaurantero_to_first_pedido_flow(env):
    client, session_local = env
    email = REGISTER_RESTAURANTERO_PAYLOAD["emailContactoLegal"]
    password = REGISTER_RESTAURANTERO_PAYLOAD["password"]

    response, code = _register(client)
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["restauranteID"]
    assert len(code) == 6 and code.isdigit()

    # sin verificar: mismo mensaje con contraseña correcta o incorrecta
    for attempt in (password, "incorrecta"):
        blocked = _login(client, email, attempt)
        assert blocked.status_code == 401
        assert "no ha sido verificado" in blocked.json()["detail"]

    with patch("ceats.routers.auth.send_welcome_email") as welcome_mock:
        verified = client.post("/api/auth/verify-email", json={"email": email, "code": code})
    assert verified.status_code == 200
    welcome_mock.assert_called_once()

    login = _login(client, email, password)
    assert login.status_code == 200
    admin = login.json()
    assert admin["role"] == "admin"
    assert admin["restaurante_id"] == body["restauranteID"]
    admin_headers = {"Authorization": f"Bearer {admin['token']}"}

    with patch("ceats.routers.sucursales.send_sucursal_verification_email") as branch_mail:
        created = client.post("/api/sucursales", json=SUCURSAL_PAYLOAD, headers=admin_headers)
    assert created.status_code == 201
    sucursal_id = created.json()["sucursal"]["sucursal_id"]
    branch_code = branch_mail.call_args.args[2]

    verify = client.post(
        "/api/sucursales/verify",
        json={"sucursal_id": sucursal_id, "verification_code": branch_code},
        headers=admin_headers,
    )
    assert verify.status_code == 200
    verify_body = verify.json()
    assert verify_body["sucursal"]["is_verified"] is True
    assert verify_body["tempPassword"] == branch_code
    assert verify_body["usuario"]["role"] == "empleado"

    db = session_local()
    try:
        empleados = db.query(Usuario).filter(Usuario.sucursal_id == sucursal_id).all()
        assert len(empleados) == 1
        assert empleados[0].is_first_login is True
    finally:
        db.close()

    branch_email = SUCURSAL_PAYLOAD["email_contacto_sucursal"]
    first = _login(client, branch_email, branch_code, path="/api/sucursales/login")
    assert first.status_code == 200
    assert first.json()["requiresPasswordChange"] is True
    assert "token" not in first.json()

    changed = client.post(
        "/api/sucursales/change-password",
        json={"email": branch_email, "currentPassword": branch_code, "newPassword": "nueva-clave"},
    )
    assert changed.status_code == 200

    second = _login(client, branch_email, "nueva-clave", path="/api/sucursales/login")
    assert second.status_code == 200
    empleado = second.json()
    assert empleado["role"] == "empleado"
    assert empleado["sucursal_id"] == sucursal_id

    pedido = client.post(
        f"/api/pedidos/{sucursal_id}",
        json=HAPPY_PATH_PEDIDO_PAYLOAD,
        headers={"Authorization": f"Bearer {empleado['token']}"},
    )
    assert pedido.status_code == 201
    assert pedido.json()["pedido"]["estado"] == "Pendiente"


def test_expired_email_code_is_rejected(env):
    client, session_local = env
    email = REGISTER_RESTAURANTERO_PAYLOAD["emailContactoLegal"]
    _, code = _register(client)

    db = session_local()
    try:
        usuario = db.query(Usuario).filter(Usuario.email == email).first()
        usuario.verification_expires = utcnow() - timedelta(minutes=1)
        db.commit()
    finally:
        db.close()

    response = client.post("/api/auth/verify-email", json={"email": email, "code": code})

    assert response.status_code == 400
    assert "expirado" in response.json()["detail"]


def test_wrong_email_code_is_rejected(env):
    client, _ = env
    email = REGISTER_RESTAURANTERO_PAYLOAD["emailContactoLegal"]
    _, code = _register(client)
    wrong = "000000" if code != "000000" else "111111"

    response = client.post("/api/auth/verify-email", json={"email": email, "code": wrong})

    assert response.status_code == 400


def test_duplicate_registration_returns_409_and_keeps_one_restaurante(env):
    client, session_local = env

    first, _ = _register(client)
    second, _ = _register(client)

    assert first.status_code == 201
    assert second.status_code == 409
    db = session_local()
    try:
        assert db.query(Restaurante).count() == 1
        assert db.query(Usuario).count() == 1
    finally:
        db.close()


@pytest.mark.parametrize(
    "override",
    [
        {"fechaNacimientoContactoLegal": "2999-01-01"},
        {"password": "abc"},
        {"emailContactoLegal": "no-es-email"},
        {"nombreRestaurante": ""},
    ],
)
def test_invalid_registration_returns_400(env, override):
    client, session_local = env

    response = client.post("/api/register-restaurantero", json={**REGISTER_RESTAURANTERO_PAYLOAD, **override})

    assert response.status_code == 400
    assert response.json()["errors"]
    db = session_local()
    try:
        assert db.query(Restaurante).count() == 0
    finally:
        db.close()


def test_first_login_cannot_use_form_token_endpoint(env):
    client, session_local = env
    _, code = _register(client)
    email = REGISTER_RESTAURANTERO_PAYLOAD["emailContactoLegal"]
    with patch("ceats.routers.auth.send_welcome_email"):
        client.post("/api/auth/verify-email", json={"email": email, "code": code})

    db = session_local()
    try:
        db.query(Usuario).filter(Usuario.email == email).update({"is_first_login": True})
        db.commit()
    finally:
        db.close()

    response = client.post(
        "/api/auth/token",
        data={"username": email, "password": REGISTER_RESTAURANTERO_PAYLOAD["password"]},
    )

    assert response.status_code == 403
