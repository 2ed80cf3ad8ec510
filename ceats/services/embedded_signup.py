from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from ceats.core.config import EMBEDDED_SIGNUP_TTL_MINUTES
from ceats.models.embedded_signup_state import EmbeddedSignupState
from ceats.services.verification import as_utc, utcnow

logger = logging.getLogger(__name__)


def purge_expired_states(db: Session, now: datetime | None = None) -> int:
    deleted = (
        db.query(EmbeddedSignupState)
        .filter(EmbeddedSignupState.expires_at < (now or utcnow()))
        .delete(synchronize_session=False)
    )
    return deleted or 0


def create_state(
    db: Session,
    *,
    restaurante_id: str,
    sucursal_id: str | None = None,
    now: datetime | None = None,
) -> EmbeddedSignupState:
    now = now or utcnow()
    purged = purge_expired_states(db, now)
    if purged:
        logger.info("Estados de signup expirados eliminados: %s", purged)

    record = EmbeddedSignupState(
        state=secrets.token_hex(32),
        restaurante_id=restaurante_id,
        sucursal_id=sucursal_id,
        expires_at=now + timedelta(minutes=EMBEDDED_SIGNUP_TTL_MINUTES),
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def consume_state(
    db: Session,
    *,
    state: str,
    restaurante_id: str,
    now: datetime | None = None,
) -> EmbeddedSignupState:
    """Valida el state del callback. Un state expirado se borra y se rechaza.

    El borrado del state válido queda a cargo de quien llama, dentro de la
    misma transacción que crea la integración.
    """
    record = db.query(EmbeddedSignupState).filter(EmbeddedSignupState.state == state).first()
    if record is None or str(record.restaurante_id) != str(restaurante_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Estado inválido o expirado")

    if as_utc(record.expires_at) < (now or utcnow()):
        db.delete(record)
        db.commit()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Estado expirado")
    return record
