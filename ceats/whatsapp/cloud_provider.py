from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

import httpx

from ceats.core.config import (
    FACEBOOK_APP_ACCESS_TOKEN,
    FACEBOOK_APP_ID,
    FACEBOOK_APP_SECRET,
    META_API_VERSION,
    META_GRAPH_URL,
)
from ceats.schemas.pedidos import PedidoCreate
from ceats.whatsapp.base import GraphApiError, WhatsAppSendResult, safe_json, sanitize_payload

logger = logging.getLogger(__name__)

WHATSAPP_OBJECT = "whatsapp_business_account"
# WhatsApp manda los precios de pedidos en milésimas
PRICE_DIVISOR = 1000
DEFAULT_CURRENCY = "MXN"


def parse_cloud_webhook(payload: dict[str, Any]) -> list[dict[str, Any]]:
    """Aplana entry -> changes -> messages en una lista de mensajes entrantes."""
    messages: list[dict[str, Any]] = []
    for entry in payload.get("entry", []) or []:
        for change in entry.get("changes", []) or []:
            value = change.get("value") or {}
            metadata = value.get("metadata") or {}
            phone_number_id = metadata.get("phone_number_id")
            display_phone_number = metadata.get("display_phone_number")

            contacts = value.get("contacts") or []
            contact_name = None
            if contacts:
                contact_name = ((contacts[0].get("profile") or {}).get("name")) or None

            for msg in value.get("messages", []) or []:
                message_id = msg.get("id")
                from_number = msg.get("from")
                if not message_id or not from_number:
                    continue
                msg_type = msg.get("type") or "text"
                text = ""
                if msg_type == "text":
                    text = ((msg.get("text") or {}).get("body")) or ""
                messages.append(
                    {
                        "message_id": message_id,
                        "from_number": str(from_number).replace("@s.whatsapp.net", ""),
                        "to_number": display_phone_number,
                        "message_type": msg_type,
                        "text": text.strip(),
                        "order": msg.get("order") if msg_type == "order" else None,
                        "phone_number_id": phone_number_id,
                        "waba_id": entry.get("id"),
                        "contact_name": contact_name,
                        "raw": msg,
                    }
                )
    return messages


def _thousandths(value: Any) -> float:
    try:
        return round(float(value or 0) / PRICE_DIVISOR, 2)
    except (TypeError, ValueError):
        return 0.0


def map_order_products(order: dict[str, Any]) -> list[dict[str, Any]]:
    products = order.get("products") or order.get("product_items") or []
    items = []
    for product in products:
        raw_price = product.get("price", product.get("item_price"))
        items.append(
            {
                "name": product.get("name") or product.get("product_retailer_id") or "Producto",
                "quantity": product.get("quantity", 1),
                "price": _thousandths(raw_price),
                "currency": product.get("currency"),
                "product_retailer_id": product.get("product_retailer_id"),
            }
        )
    return items


def build_pedido_from_order_message(message: dict[str, Any], *, now: datetime) -> PedidoCreate:
    """Traduce un mensaje type=order al mismo PedidoCreate de la ruta manual."""
    order = message.get("order") or {}
    items = map_order_products(order)
    price = order.get("price") or {}

    if price.get("total") is not None:
        total = _thousandths(price.get("total"))
    else:
        total = round(sum(float(item["quantity"] or 0) * item["price"] for item in items), 2)

    currency = price.get("currency") or next((item["currency"] for item in items if item["currency"]), None)
    sender = message["from_number"]
    nombre = message.get("contact_name") or sender

    return PedidoCreate(
        codigo=str(order.get("order_id") or message["message_id"]),
        estado="Pendiente",
        nombre=nombre,
        celular=sender,
        entregar_a=nombre,
        deliver_or_rest="recoger",
        pedido=items,
        instrucciones=(order.get("text") or None),
        total=total,
        currency=currency or DEFAULT_CURRENCY,
        fecha=now.strftime("%Y-%m-%d"),
        hora=now.strftime("%H:%M:%S"),
    )


class GraphApiClient:
    """Cliente mínimo de la Graph API de Meta (mensajes y alta de WABA)."""

    TIMEOUT_SECONDS = 20.0

    def __init__(self, *, base_url: str = META_GRAPH_URL, api_version: str = META_API_VERSION) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version

    def _url(self, path: str, *, versioned: bool = True) -> str:
        if versioned:
            return f"{self.base_url}/{self.api_version}/{path.lstrip('/')}"
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, url: str, **kwargs) -> dict[str, Any]:
        try:
            with httpx.Client(timeout=self.TIMEOUT_SECONDS) as client:
                response = client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise GraphApiError(f"Error de red con la Graph API: {exc}") from exc

        try:
            data = response.json()
        except json.JSONDecodeError:
            data = {"raw": response.text}

        if not 200 <= response.status_code < 300:
            logger.warning(
                "Graph API %s %s -> %s %s",
                method,
                url.split("?")[0],
                response.status_code,
                safe_json(sanitize_payload(data)),
            )
            message = ((data.get("error") or {}).get("message") if isinstance(data, dict) else None) or response.text
            raise GraphApiError(
                f"Graph API {response.status_code}: {message}",
                status_code=response.status_code,
                payload=data,
            )
        return data if isinstance(data, dict) else {"data": data}

    # -------- mensajes --------
    def _send(self, *, phone_number_id: str, access_token: str, payload: dict[str, Any]) -> WhatsAppSendResult:
        url = self._url(f"{phone_number_id}/messages")
        headers = {"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"}
        try:
            data = self._request("POST", url, headers=headers, json=payload)
        except GraphApiError as exc:
            return WhatsAppSendResult(status="failed", error=str(exc), response_payload=exc.payload)
        provider_id = ((data.get("messages") or [{}])[0]).get("id")
        return WhatsAppSendResult(status="sent", provider_message_id=provider_id, response_payload=data)

    def send_text(self, *, phone_number_id: str, access_token: str, to_phone: str, text: str) -> WhatsAppSendResult:
        payload = {
            "messaging_product": "whatsapp",
            "to": to_phone,
            "type": "text",
            "text": {"preview_url": False, "body": text},
        }
        return self._send(phone_number_id=phone_number_id, access_token=access_token, payload=payload)

    def send_template(
        self,
        *,
        phone_number_id: str,
        access_token: str,
        to_phone: str,
        template_name: str,
        language: str = "es",
        components: list[dict[str, Any]] | None = None,
    ) -> WhatsAppSendResult:
        payload = {
            "messaging_product": "whatsapp",
            "to": to_phone,
            "type": "template",
            "template": {
                "name": template_name,
                "language": {"code": language},
                "components": components or [],
            },
        }
        return self._send(phone_number_id=phone_number_id, access_token=access_token, payload=payload)

    # -------- alta de WABA (Embedded Signup) --------
    def exchange_code_for_token(self, code: str, redirect_uri: str | None = None) -> str:
        params = {"client_id": FACEBOOK_APP_ID, "client_secret": FACEBOOK_APP_SECRET, "code": code}
        if redirect_uri:
            params["redirect_uri"] = redirect_uri
        data = self._request("GET", self._url("oauth/access_token"), params=params)
        token = data.get("access_token")
        if not token:
            raise GraphApiError("La Graph API no devolvió access_token", payload=sanitize_payload(data))
        return token

    def get_shared_waba_id(self, access_token: str) -> str | None:
        """Lee el WABA compartido desde debug_token (granular_scopes)."""
        params = {"input_token": access_token, "access_token": FACEBOOK_APP_ACCESS_TOKEN or access_token}
        data = self._request("GET", self._url("debug_token"), params=params).get("data") or {}
        for scope in data.get("granular_scopes") or []:
            if scope.get("scope") in {"whatsapp_business_management", "whatsapp_business_messaging"}:
                target_ids = scope.get("target_ids") or []
                if target_ids:
                    return str(target_ids[0])
        business_id = data.get("business_id")
        return str(business_id) if business_id else None

    def get_phone_numbers(self, waba_id: str, access_token: str) -> list[dict[str, Any]]:
        data = self._request("GET", self._url(f"{waba_id}/phone_numbers"), params={"access_token": access_token})
        return data.get("data") or []

    def subscribe_app(self, waba_id: str, access_token: str) -> dict[str, Any]:
        return self._request(
            "POST",
            self._url(f"{waba_id}/subscribed_apps"),
            headers={"Authorization": f"Bearer {access_token}"},
        )

    def configure_webhook(self, waba_id: str, *, callback_url: str, verify_token: str, access_token: str) -> dict[str, Any]:
        return self._request(
            "POST",
            self._url(f"{waba_id}/subscribed_apps"),
            headers={"Authorization": f"Bearer {access_token}"},
            json={"override_callback_uri": callback_url, "verify_token": verify_token},
        )
