import json
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from ceats.core.config import FACEBOOK_APP_SECRET
from ceats.core.database import get_db
from ceats.whatsapp.service import WhatsAppService
from ceats.whatsapp.signature import is_valid_signature

router = APIRouter(tags=["webhook"])
logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"


def verify_subscription(request: Request, db: Session) -> PlainTextResponse:
    qp = request.query_params
    mode = qp.get("hub.mode")
    token = qp.get("hub.verify_token")
    challenge = qp.get("hub.challenge")

    if mode == "subscribe" and WhatsAppService().get_by_verify_token(db, token) is not None:
        logger.info("Webhook verificado")
        return PlainTextResponse(challenge or "")

    logger.warning("Verificación de webhook rechazada mode=%s", mode)
    raise HTTPException(status_code=403, detail="Verify token inválido")


async def receive_webhook(request: Request, background_tasks: BackgroundTasks, db: Session) -> PlainTextResponse:
    raw_body = await request.body()

    if not FACEBOOK_APP_SECRET:
        logger.error("FACEBOOK_APP_SECRET no configurado, webhook rechazado")
        raise HTTPException(status_code=401, detail="Firma no verificable")
    if not is_valid_signature(raw_body, request.headers.get(SIGNATURE_HEADER), FACEBOOK_APP_SECRET):
        logger.warning("Firma de webhook inválida")
        raise HTTPException(status_code=401, detail="Firma inválida")

    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="JSON inválido") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="JSON inválido")

    summary = WhatsAppService().process_webhook(db, payload, background_tasks)
    if summary["received"]:
        logger.info("Webhook procesado %s", summary)
    return PlainTextResponse("OK")


@router.get("/webhook")
def verify_webhook(request: Request, db: Session = Depends(get_db)):
    return verify_subscription(request, db)


@router.get("/api/whatsapp/webhook")
def verify_whatsapp_webhook(request: Request, db: Session = Depends(get_db)):
    return verify_subscription(request, db)


@router.post("/webhook")
async def webhook(request: Request, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    return await receive_webhook(request, background_tasks, db)


@router.post("/api/whatsapp/webhook")
async def whatsapp_webhook(request: Request, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    return await receive_webhook(request, background_tasks, db)
