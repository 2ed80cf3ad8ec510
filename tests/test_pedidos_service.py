import json
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError

from ceats.schemas.pedidos import PedidoCreate
from ceats.services.pedidos import apply_estado, create_pedido, normalize_estado, validate_pedido
from tests.fixtures_data import HAPPY_PATH_PEDIDO_PAYLOAD, SUCURSAL_A1


class _FakeDB:
    def __init__(self, fail_with=None):
        self.added = []
        self.commits = 0
        self.rollbacks = 0
        self.fail_with = fail_with

    def add(self, obj):
        self.added.append(obj)

    def commit(self):
        if self.fail_with is not None:
            raise self.fail_with
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def refresh(self, obj):
        return None


def _payload(**overrides) -> PedidoCreate:
    return PedidoCreate(**{**HAPPY_PATH_PEDIDO_PAYLOAD, "sucursal_id": SUCURSAL_A1, **overrides})


def test_pedido_without_estado_defaults_to_pendiente():
    values = validate_pedido(_payload())

    assert values["estado"] == "Pendiente"
    assert values["currency"] == "MXN"
    assert values["total"] == Decimal("105.00")
    assert json.loads(values["pedido"])[0]["name"] == "Taco al pastor"


def test_domicilio_without_address_is_rejected():
    with pytest.raises(HTTPException) as exc:
        validate_pedido(_payload(deliver_or_rest="domicilio", domicilio=None))

    assert exc.value.status_code == 400
    assert "domicilio" in exc.value.detail


def test_recoger_without_entregar_a_is_rejected():
    with pytest.raises(HTTPException) as exc:
        validate_pedido(_payload(deliver_or_rest="recoger", entregar_a="  "))

    assert exc.value.status_code == 400
    assert "entregar_a" in exc.value.detail


def test_domicilio_defaults_entregar_a_to_nombre():
    values = validate_pedido(_payload(deliver_or_rest="domicilio", domicilio="Calle 5 #10", entregar_a=None))

    assert values["entregar_a"] == "Luis Pérez"


def test_missing_fields_are_listed():
    with pytest.raises(HTTPException) as exc:
        validate_pedido(PedidoCreate(codigo="X-1", sucursal_id=SUCURSAL_A1))

    assert exc.value.status_code == 400
    assert exc.value.detail.startswith("Faltan campos requeridos:")
    for field in ("nombre", "celular", "pedido", "total", "currency", "fecha", "hora"):
        assert field in exc.value.detail


def test_pedido_string_must_be_valid_json():
    with pytest.raises(HTTPException) as exc:
        validate_pedido(_payload(pedido="[{no es json"))

    assert exc.value.status_code == 400


def test_invalid_delivery_type_is_rejected():
    with pytest.raises(HTTPException) as exc:
        validate_pedido(_payload(deliver_or_rest="dron"))

    assert exc.value.status_code == 400


def test_create_pedido_uses_path_branch_and_emits_event():
    db = _FakeDB()

    with patch("ceats.services.pedidos.emit_pedido_created") as emit:
        pedido = create_pedido(db, sucursal_id=SUCURSAL_A1, data=_payload(sucursal_id="otra"), origen="manual")

    assert pedido.sucursal_id == SUCURSAL_A1
    assert pedido.estado == "Pendiente"
    assert db.commits == 1
    emit.assert_called_once_with(pedido)


def test_duplicate_codigo_maps_to_409():
    db = _FakeDB(fail_with=IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: pedidos.codigo")))

    with patch("ceats.services.pedidos.emit_pedido_created") as emit:
        with pytest.raises(HTTPException) as exc:
            create_pedido(db, sucursal_id=SUCURSAL_A1, data=_payload())

    assert exc.value.status_code == 409
    assert "PED-0001" in exc.value.detail
    assert db.rollbacks == 1
    emit.assert_not_called()


def test_apply_estado_is_idempotent():
    pedido = SimpleNamespace(estado="Preparando", motivo_cancelacion=None)

    assert apply_estado(pedido, "preparando") is False
    assert apply_estado(pedido, "Listo") is True
    assert apply_estado(pedido, "Listo") is False
    assert pedido.estado == "Listo"


def test_cancel_reason_is_only_kept_for_cancelado():
    pedido = SimpleNamespace(estado="Pendiente", motivo_cancelacion=None)

    apply_estado(pedido, "Preparando", motivo="ignorado")
    assert pedido.motivo_cancelacion is None

    apply_estado(pedido, "cancelado", motivo="  Cliente no contestó ")
    assert pedido.estado == "Cancelado"
    assert pedido.motivo_cancelacion == "Cliente no contestó"


def test_free_text_estado_is_preserved():
    assert normalize_estado("En camino") == "En camino"
    assert normalize_estado("LISTO") == "Listo"
