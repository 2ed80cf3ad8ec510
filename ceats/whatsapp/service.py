from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import BackgroundTasks, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ceats.core.database import SessionLocal
from ceats.models.sucursal import Sucursal
from ceats.models.whatsapp_integration import WhatsAppIntegration
from ceats.models.whatsapp_message import WhatsAppMessage
from ceats.services.crypto import TokenDecryptionError, decrypt_token
from ceats.services.pedidos import create_pedido
from ceats.whatsapp.base import GraphApiError, WhatsAppSendResult, safe_json, sanitize_payload
from ceats.whatsapp.cloud_provider import (
    WHATSAPP_OBJECT,
    GraphApiClient,
    build_pedido_from_order_message,
    parse_cloud_webhook,
)

logger = logging.getLogger(__name__)

PROVIDER_BUSINESS_API = "whatsapp_business_api"
PROVIDER_BAILEYS = "baileys"
PROVIDERS = (PROVIDER_BAILEYS, PROVIDER_BUSINESS_API)

STATUS_CONNECTED = "connected"
STATUS_DISCONNECTED = "disconnected"
STATUS_ERROR = "error"
CONNECTION_STATUSES = (STATUS_DISCONNECTED, STATUS_CONNECTED, STATUS_ERROR)

CONFIRMATION_TEMPLATE = (
    "¡Gracias por tu pedido! 🎉\n\n"
    "Tu pedido #{codigo} ha sido recibido y está siendo procesado.\n\n"
    "Te notificaremos cuando esté listo."
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WhatsAppService:
    def __init__(self, client: GraphApiClient | None = None) -> None:
        self.client = client or GraphApiClient()

    # -------- integraciones --------
    def get_by_phone_number_id(self, db: Session, phone_number_id: str | None) -> WhatsAppIntegration | None:
        if not phone_number_id:
            return None
        return (
            db.query(WhatsAppIntegration)
            .filter(
                WhatsAppIntegration.phone_number_id == str(phone_number_id),
                WhatsAppIntegration.provider == PROVIDER_BUSINESS_API,
                WhatsAppIntegration.is_active.is_(True),
            )
            .first()
        )

    def get_by_verify_token(self, db: Session, verify_token: str | None) -> WhatsAppIntegration | None:
        if not verify_token:
            return None
        return (
            db.query(WhatsAppIntegration)
            .filter(
                WhatsAppIntegration.webhook_verify_token == verify_token,
                WhatsAppIntegration.provider == PROVIDER_BUSINESS_API,
                WhatsAppIntegration.is_active.is_(True),
            )
            .first()
        )

    def get_active_for_restaurante(
        self,
        db: Session,
        *,
        restaurante_id: str,
        sucursal_id: str | None = None,
    ) -> WhatsAppIntegration | None:
        query = db.query(WhatsAppIntegration).filter(
            WhatsAppIntegration.restaurante_id == restaurante_id,
            WhatsAppIntegration.provider == PROVIDER_BUSINESS_API,
            WhatsAppIntegration.is_active.is_(True),
        )
        if sucursal_id:
            branch_match = query.filter(WhatsAppIntegration.sucursal_id == sucursal_id).first()
            if branch_match is not None:
                return branch_match
        return query.first()

    def resolve_sucursal_id(self, db: Session, integration: WhatsAppIntegration) -> str | None:
        if integration.sucursal_id:
            return integration.sucursal_id
        sucursal = (
            db.query(Sucursal)
            .filter(Sucursal.restaurante_id == integration.restaurante_id, Sucursal.is_active.is_(True))
            .order_by(Sucursal.created_at.asc())
            .first()
        )
        return sucursal.sucursal_id if sucursal else None

    # -------- salida --------
    def send_text(self, integration: WhatsAppIntegration, *, to_phone: str, text: str) -> WhatsAppSendResult:
        try:
            access_token = decrypt_token(integration.access_token_encrypted)
        except TokenDecryptionError as exc:
            logger.error("No se pudo descifrar el token de integration_id=%s", integration.integration_id)
            return WhatsAppSendResult(status="failed", error=str(exc))
        if not access_token or not integration.phone_number_id:
            return WhatsAppSendResult(status="failed", error="Integración sin credenciales")
        return self.client.send_text(
            phone_number_id=integration.phone_number_id,
            access_token=access_token,
            to_phone=to_phone,
            text=text,
        )

    def send_order_confirmation(self, integration_id: str, to_phone: str, codigo: str) -> None:
        """Corre como background task: abre su propia sesión y nunca levanta."""
        db = SessionLocal()
        try:
            integration = (
                db.query(WhatsAppIntegration)
                .filter(WhatsAppIntegration.integration_id == integration_id)
                .first()
            )
            if integration is None:
                logger.warning("Confirmación omitida, integración inexistente integration_id=%s", integration_id)
                return
            result = self.send_text(integration, to_phone=to_phone, text=CONFIRMATION_TEMPLATE.format(codigo=codigo))
            if result.ok:
                logger.info("Confirmación enviada codigo=%s message_id=%s", codigo, result.provider_message_id)
            else:
                logger.warning("Confirmación fallida codigo=%s error=%s", codigo, result.error)
        except Exception:
            logger.exception("Error enviando confirmación de pedido codigo=%s", codigo)
        finally:
            db.close()

    # -------- entrada --------
    def record_inbound(
        self,
        db: Session,
        *,
        integration: WhatsAppIntegration,
        message: dict[str, Any],
    ) -> WhatsAppMessage | None:
        """Registra el mensaje; devuelve None si ya fue procesado."""
        existing = (
            db.query(WhatsAppMessage)
            .filter(WhatsAppMessage.whatsapp_message_id == message["message_id"])
            .first()
        )
        if existing is not None:
            return None

        order = message.get("order") or {}
        record = WhatsAppMessage(
            integration_id=integration.integration_id,
            whatsapp_message_id=message["message_id"],
            from_number=message.get("from_number"),
            to_number=message.get("to_number"),
            message_type=message.get("message_type") or "text",
            message_data=safe_json(sanitize_payload(message.get("raw") or {})),
            order_id=order.get("order_id"),
            order_token=order.get("token"),
            processing_status="processing",
        )
        db.add(record)
        try:
            db.commit()
        except IntegrityError:
            # otro worker lo registró primero
            db.rollback()
            return None
        db.refresh(record)
        return record

    def _finish(self, db: Session, record: WhatsAppMessage, *, status: str, error: str | None = None) -> None:
        record.processing_status = status
        record.error = error
        record.processed_at = _now()
        db.commit()

    def _handle_order(
        self,
        db: Session,
        *,
        integration: WhatsAppIntegration,
        message: dict[str, Any],
        record: WhatsAppMessage,
        background_tasks: BackgroundTasks,
    ) -> str:
        sucursal_id = self.resolve_sucursal_id(db, integration)
        if not sucursal_id:
            self._finish(db, record, status="failed", error="El restaurante no tiene sucursales activas")
            return "failed"

        # ningún error del pedido debe fallar la respuesta del webhook
        try:
            data = build_pedido_from_order_message(message, now=datetime.now())
            pedido = create_pedido(db, sucursal_id=sucursal_id, data=data, origen="whatsapp")
        except HTTPException as exc:
            logger.warning(
                "Pedido de WhatsApp rechazado message_id=%s status=%s detail=%s",
                message["message_id"],
                exc.status_code,
                exc.detail,
            )
            self._finish(db, record, status="failed", error=str(exc.detail))
            return "failed"
        except Exception as exc:
            db.rollback()
            logger.exception("Error procesando pedido de WhatsApp message_id=%s", message["message_id"])
            self._finish(db, record, status="failed", error=f"Pedido inválido: {exc}")
            return "failed"

        logger.info(
            "Pedido de WhatsApp creado codigo=%s sucursal_id=%s integration_id=%s",
            pedido.codigo,
            sucursal_id,
            integration.integration_id,
        )
        background_tasks.add_task(
            self.send_order_confirmation,
            integration.integration_id,
            message["from_number"],
            pedido.codigo,
        )
        self._finish(db, record, status="completed")
        return "completed"

    def process_webhook(
        self,
        db: Session,
        payload: dict[str, Any],
        background_tasks: BackgroundTasks,
    ) -> dict[str, int]:
        summary = {"received": 0, "completed": 0, "failed": 0, "duplicate": 0, "ignored": 0}
        if payload.get("object") != WHATSAPP_OBJECT:
            return summary

        for message in parse_cloud_webhook(payload):
            summary["received"] += 1
            integration = self.get_by_phone_number_id(db, message.get("phone_number_id"))
            if integration is None:
                logger.warning(
                    "Webhook sin integración activa phone_number_id=%s",
                    message.get("phone_number_id"),
                )
                summary["ignored"] += 1
                continue

            integration.last_webhook_received = _now()
            db.commit()

            record = self.record_inbound(db, integration=integration, message=message)
            if record is None:
                logger.info("Mensaje duplicado message_id=%s", message["message_id"])
                summary["duplicate"] += 1
                continue

            if message.get("message_type") != "order":
                self._finish(db, record, status="completed")
                summary["ignored"] += 1
                continue

            outcome = self._handle_order(
                db,
                integration=integration,
                message=message,
                record=record,
                background_tasks=background_tasks,
            )
            summary[outcome] += 1
        return summary

    # -------- alta por Embedded Signup --------
    def register_webhook(
        self,
        integration: WhatsAppIntegration,
        *,
        access_token: str,
    ) -> None:
        """Suscribe la app al WABA y configura el callback; deja el estado de conexión."""
        integration.last_connection_attempt = _now()
        try:
            self.client.subscribe_app(integration.waba_id, access_token)
            self.client.configure_webhook(
                integration.waba_id,
                callback_url=integration.webhook_url,
                verify_token=integration.webhook_verify_token,
                access_token=access_token,
            )
        except GraphApiError as exc:
            logger.warning(
                "No se pudo configurar el webhook integration_id=%s error=%s",
                integration.integration_id,
                exc,
            )
            integration.connection_status = STATUS_ERROR
            integration.error_message = str(exc)
            return
        integration.connection_status = STATUS_CONNECTED
        integration.error_message = None
