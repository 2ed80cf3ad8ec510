from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ceats.core.config import BASE_URL, FACEBOOK_APP_ID, FACEBOOK_CONFIG_ID
from ceats.core.database import get_db
from ceats.deps import require_admin, require_admin_or_empleado
from ceats.models.sucursal import Sucursal
from ceats.models.usuario import Usuario
from ceats.models.whatsapp_integration import WhatsAppIntegration
from ceats.services.authorization_service import AuthorizationService
from ceats.services.crypto import encrypt_token
from ceats.services.embedded_signup import consume_state, create_state
from ceats.whatsapp.base import GraphApiError
from ceats.whatsapp.service import (
    CONNECTION_STATUSES,
    PROVIDER_BUSINESS_API,
    PROVIDERS,
    STATUS_CONNECTED,
    WhatsAppService,
)

router = APIRouter(prefix="/api/whatsapp", tags=["whatsapp"])
logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/api/whatsapp/webhook"


class IntegrationCreate(BaseModel):
    provider: str = Field(..., min_length=1)
    sucursal_id: Optional[str] = Field(None, validation_alias=AliasChoices("sucursalId", "sucursal_id"))
    waba_id: Optional[str] = Field(None, validation_alias=AliasChoices("wabaId", "waba_id"))
    phone_number_id: Optional[str] = Field(None, validation_alias=AliasChoices("phoneNumberId", "phone_number_id"))
    business_id: Optional[str] = Field(None, validation_alias=AliasChoices("businessId", "business_id"))
    access_token: Optional[str] = Field(None, validation_alias=AliasChoices("accessToken", "access_token"))
    system_user_token: Optional[str] = Field(
        None, validation_alias=AliasChoices("systemUserToken", "system_user_token")
    )


class IntegrationUpdate(BaseModel):
    is_active: Optional[bool] = None
    connection_status: Optional[str] = None
    error_message: Optional[str] = None


class SendMessagePayload(BaseModel):
    sucursal_id: Optional[str] = Field(None, validation_alias=AliasChoices("sucursalId", "sucursal_id"))
    to_number: str = Field(..., min_length=8, validation_alias=AliasChoices("toNumber", "to_number"))
    message: str = Field(..., min_length=1, max_length=4096)
    message_type: str = Field("text", validation_alias=AliasChoices("messageType", "message_type"))


class SignupInitPayload(BaseModel):
    sucursal_id: Optional[str] = None


class SignupCallbackPayload(BaseModel):
    code: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)


def _integration_to_dict(integration: WhatsAppIntegration, nombre_sucursal: Optional[str] = None) -> Dict[str, Any]:
    # los tokens nunca salen de la API
    return {
        "integration_id": integration.integration_id,
        "restaurante_id": integration.restaurante_id,
        "sucursal_id": integration.sucursal_id,
        "nombre_sucursal": nombre_sucursal,
        "provider": integration.provider,
        "waba_id": integration.waba_id,
        "phone_number_id": integration.phone_number_id,
        "business_id": integration.business_id,
        "webhook_url": integration.webhook_url,
        "connection_status": integration.connection_status,
        "error_message": integration.error_message,
        "is_active": bool(integration.is_active),
        "last_connection_attempt": integration.last_connection_attempt.isoformat()
        if integration.last_connection_attempt
        else None,
        "last_webhook_received": integration.last_webhook_received.isoformat()
        if integration.last_webhook_received
        else None,
        "created_at": integration.created_at.isoformat() if integration.created_at else None,
    }


def _ensure_branch_of_restaurante(db: Session, sucursal_id: Optional[str], restaurante_id: str) -> None:
    if not sucursal_id:
        return
    exists = (
        db.query(Sucursal)
        .filter(Sucursal.sucursal_id == sucursal_id, Sucursal.restaurante_id == restaurante_id)
        .first()
    )
    if not exists:
        raise HTTPException(status_code=400, detail="La sucursal no pertenece a tu restaurante")


def _get_integration(db: Session, integration_id: str, restaurante_id: str) -> WhatsAppIntegration:
    integration = (
        db.query(WhatsAppIntegration)
        .filter(
            WhatsAppIntegration.integration_id == integration_id,
            WhatsAppIntegration.restaurante_id == restaurante_id,
        )
        .first()
    )
    if not integration:
        raise HTTPException(status_code=404, detail="Integración no encontrada")
    return integration


def _upsert_integration(db: Session, *, restaurante_id: str, provider: str) -> WhatsAppIntegration:
    integration = (
        db.query(WhatsAppIntegration)
        .filter(WhatsAppIntegration.restaurante_id == restaurante_id, WhatsAppIntegration.provider == provider)
        .first()
    )
    if integration is None:
        integration = WhatsAppIntegration(restaurante_id=restaurante_id, provider=provider)
        db.add(integration)
    integration.webhook_verify_token = secrets.token_hex(32)
    integration.webhook_secret = secrets.token_hex(32)
    integration.webhook_url = f"{BASE_URL}{WEBHOOK_PATH}"
    integration.is_active = True
    integration.error_message = None
    return integration


@router.get("/integrations")
def list_integrations(
    user: Usuario = Depends(require_admin_or_empleado),
    db: Session = Depends(get_db),
):
    rows = (
        db.query(WhatsAppIntegration, Sucursal.nombre_sucursal)
        .outerjoin(Sucursal, Sucursal.sucursal_id == WhatsAppIntegration.sucursal_id)
        .filter(WhatsAppIntegration.restaurante_id == user.restaurante_id)
        .order_by(WhatsAppIntegration.created_at.desc())
        .all()
    )
    return {
        "success": True,
        "integrations": [_integration_to_dict(integration, nombre) for integration, nombre in rows],
    }


@router.post("/integrations", status_code=201)
def create_integration(
    payload: IntegrationCreate,
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    provider = payload.provider.strip().lower()
    if provider not in PROVIDERS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Provider inválido")
    if provider == PROVIDER_BUSINESS_API and not (payload.waba_id and payload.phone_number_id and payload.access_token):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="wabaId, phoneNumberId y accessToken son requeridos para WhatsApp Business API",
        )
    _ensure_branch_of_restaurante(db, payload.sucursal_id, user.restaurante_id)

    integration = _upsert_integration(db, restaurante_id=user.restaurante_id, provider=provider)
    integration.sucursal_id = payload.sucursal_id
    integration.waba_id = payload.waba_id
    integration.phone_number_id = payload.phone_number_id
    integration.business_id = payload.business_id
    integration.access_token_encrypted = encrypt_token(payload.access_token)
    integration.system_user_token_encrypted = encrypt_token(payload.system_user_token)

    if provider == PROVIDER_BUSINESS_API:
        WhatsAppService().register_webhook(integration, access_token=payload.access_token)

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error guardando integración restaurante_id=%s", user.restaurante_id)
        raise HTTPException(status_code=500, detail="Error al guardar la integración") from exc
    db.refresh(integration)

    logger.info(
        "Integración guardada integration_id=%s provider=%s status=%s",
        integration.integration_id,
        provider,
        integration.connection_status,
    )
    return {
        "success": True,
        "integration": _integration_to_dict(integration),
        "webhookVerifyToken": integration.webhook_verify_token,
    }


@router.put("/integrations/{integration_id}")
def update_integration(
    integration_id: str,
    payload: IntegrationUpdate,
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No hay campos para actualizar")
    if "connection_status" in changes and changes["connection_status"] not in CONNECTION_STATUSES:
        raise HTTPException(status_code=400, detail="connection_status inválido")

    integration = _get_integration(db, integration_id, user.restaurante_id)
    for field, value in changes.items():
        setattr(integration, field, value)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error actualizando integration_id=%s", integration_id)
        raise HTTPException(status_code=500, detail="Error al actualizar la integración") from exc
    db.refresh(integration)
    return {"success": True, "integration": _integration_to_dict(integration)}


@router.delete("/integrations/{integration_id}")
def delete_integration(
    integration_id: str,
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    integration = _get_integration(db, integration_id, user.restaurante_id)
    try:
        db.delete(integration)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error eliminando integration_id=%s", integration_id)
        raise HTTPException(status_code=500, detail="Error al eliminar la integración") from exc
    logger.info("Integración eliminada integration_id=%s por usuario_id=%s", integration_id, user.usuario_id)
    return {"success": True, "message": "Integración eliminada correctamente"}


@router.post("/send-message")
def send_message(
    payload: SendMessagePayload,
    request: Request,
    user: Usuario = Depends(require_admin_or_empleado),
    db: Session = Depends(get_db),
):
    sucursal_id = payload.sucursal_id
    if sucursal_id is None and not AuthorizationService.is_admin(user):
        sucursal_id = user.sucursal_id
    if sucursal_id is not None:
        AuthorizationService.ensure_resource_scope(
            request=request,
            user=user,
            restaurante_id=user.restaurante_id,
            sucursal_id=sucursal_id,
        )

    service = WhatsAppService()
    integration = service.get_active_for_restaurante(db, restaurante_id=user.restaurante_id, sucursal_id=sucursal_id)
    if integration is None:
        raise HTTPException(status_code=404, detail="No hay una integración de WhatsApp Business activa")
    if integration.connection_status != STATUS_CONNECTED:
        raise HTTPException(status_code=400, detail="La integración de WhatsApp no está conectada")
    if payload.message_type != "text":
        raise HTTPException(status_code=400, detail="Solo se admiten mensajes de texto")

    result = service.send_text(integration, to_phone=payload.to_number, text=payload.message)
    if not result.ok:
        logger.warning("Envío de WhatsApp fallido integration_id=%s error=%s", integration.integration_id, result.error)
        raise HTTPException(status_code=502, detail=f"Error enviando mensaje: {result.error}")
    return {"success": True, "messageId": result.provider_message_id}


@router.post("/embedded-signup/init")
def embedded_signup_init(
    payload: SignupInitPayload,
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    _ensure_branch_of_restaurante(db, payload.sucursal_id, user.restaurante_id)
    record = create_state(db, restaurante_id=user.restaurante_id, sucursal_id=payload.sucursal_id)
    return {
        "success": True,
        "state": record.state,
        "app_id": FACEBOOK_APP_ID,
        "config_id": FACEBOOK_CONFIG_ID,
        "redirect_uri": f"{BASE_URL}/api/whatsapp/embedded-signup/callback",
    }


@router.post("/embedded-signup/callback")
def embedded_signup_callback(
    payload: SignupCallbackPayload,
    user: Usuario = Depends(require_admin),
    db: Session = Depends(get_db),
):
    record = consume_state(db, state=payload.state, restaurante_id=user.restaurante_id)
    service = WhatsAppService()

    try:
        access_token = service.client.exchange_code_for_token(payload.code)
        waba_id = service.client.get_shared_waba_id(access_token)
        if not waba_id:
            raise GraphApiError("No se encontró un WABA compartido")
        phones = service.client.get_phone_numbers(waba_id, access_token)
    except GraphApiError as exc:
        logger.warning("Embedded Signup fallido restaurante_id=%s error=%s", user.restaurante_id, exc)
        raise HTTPException(status_code=502, detail=f"Error con la Graph API: {exc}") from exc
    if not phones:
        raise HTTPException(status_code=400, detail="El WABA no tiene números de teléfono")

    integration = _upsert_integration(db, restaurante_id=user.restaurante_id, provider=PROVIDER_BUSINESS_API)
    integration.sucursal_id = record.sucursal_id
    integration.waba_id = waba_id
    integration.phone_number_id = str(phones[0].get("id"))
    integration.access_token_encrypted = encrypt_token(access_token)
    service.register_webhook(integration, access_token=access_token)

    db.delete(record)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error guardando integración de Embedded Signup restaurante_id=%s", user.restaurante_id)
        raise HTTPException(status_code=500, detail="Error al guardar la integración") from exc
    db.refresh(integration)

    return {
        "success": True,
        "integration": _integration_to_dict(integration),
        "display_phone_number": phones[0].get("display_phone_number"),
    }
