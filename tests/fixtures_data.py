"""Datos reutilizables para los escenarios de tests del backend."""

RESTAURANTE_A = "11111111-1111-1111-1111-111111111111"
RESTAURANTE_B = "22222222-2222-2222-2222-222222222222"
SUCURSAL_A1 = "aaaaaaaa-0000-0000-0000-000000000001"
SUCURSAL_A2 = "aaaaaaaa-0000-0000-0000-000000000002"
SUCURSAL_B1 = "bbbbbbbb-0000-0000-0000-000000000001"

HAPPY_PATH_ADMIN = {
    "usuario_id": "u-admin-a",
    "restaurante_id": RESTAURANTE_A,
    "sucursal_id": None,
    "email": "admin@restaurante-a.mx",
    "nombre": "Ana",
    "apellidos": "García",
    "role": "admin",
    "is_active": True,
    "is_email_verified": True,
    "is_first_login": False,
}

HAPPY_PATH_EMPLEADO = {
    "usuario_id": "u-empleado-a1",
    "restaurante_id": RESTAURANTE_A,
    "sucursal_id": SUCURSAL_A1,
    "email": "centro@restaurante-a.mx",
    "nombre": "Sucursal Centro",
    "apellidos": "",
    "role": "empleado",
    "is_active": True,
    "is_email_verified": True,
    "is_first_login": False,
}

REGISTER_RESTAURANTERO_PAYLOAD = {
    "nombreRestaurante": "Tacos El Güero",
    "nombreContactoLegal": "Ana",
    "apellidosContactoLegal": "García López",
    "emailContactoLegal": "ana@tacoselguero.mx",
    "password": "secreto123",
    "telefonoContactoLegal": "3312345678",
    "direccionFiscal": "Av. Vallarta 1000, Guadalajara",
    "fechaNacimientoContactoLegal": "1990-05-17",
}

SUCURSAL_PAYLOAD = {
    "nombre_sucursal": "Centro",
    "direccion": "Calle Juárez 12",
    "telefono_contacto": "3398765432",
    "email_contacto_sucursal": "centro@tacoselguero.mx",
    "ciudad": "Guadalajara",
    "estado": "Jalisco",
    "codigo_postal": "44100",
}

HAPPY_PATH_PEDIDO_PAYLOAD = {
    "codigo": "PED-0001",
    "nombre": "Luis Pérez",
    "celular": "3311112222",
    "pedido": [
        {"name": "Taco al pastor", "quantity": 3, "price": 25.0},
        {"name": "Agua de horchata", "quantity": 1, "price": 30.0},
    ],
    "instrucciones": "Sin cebolla",
    "entregar_a": "Luis",
    "deliver_or_rest": "recoger",
    "total": 105.0,
    "currency": "mxn",
    "pago": "efectivo",
    "fecha": "2024-03-01",
    "hora": "13:45:00",
}

WHATSAPP_ORDER_WEBHOOK = {
    "object": "whatsapp_business_account",
    "entry": [
        {
            "id": "WABA-1",
            "changes": [
                {
                    "field": "messages",
                    "value": {
                        "messaging_product": "whatsapp",
                        "metadata": {"display_phone_number": "523300000000", "phone_number_id": "PNID-1"},
                        "contacts": [{"profile": {"name": "Carla"}, "wa_id": "5213312345678"}],
                        "messages": [
                            {
                                "from": "5213312345678",
                                "id": "wamid.ORDER1",
                                "timestamp": "1709300000",
                                "type": "order",
                                "order": {
                                    "catalog_id": "CAT-1",
                                    "order_id": "WA-ORDER-1",
                                    "text": "Con salsa verde",
                                    "product_items": [
                                        {
                                            "product_retailer_id": "taco-pastor",
                                            "quantity": 2,
                                            "item_price": 25000,
                                            "currency": "MXN",
                                        },
                                        {
                                            "product_retailer_id": "horchata",
                                            "quantity": 1,
                                            "item_price": 30000,
                                            "currency": "MXN",
                                        },
                                    ],
                                },
                            }
                        ],
                    },
                }
            ],
        }
    ],
}

TENANT_ACCESS_DENIED = {
    "expected_status_code": 403,
    "tenant_detail": "No tienes permisos para acceder a recursos de otro restaurante",
    "branch_detail": "Solo puedes acceder a recursos de tu sucursal",
}
