from __future__ import annotations

import logging

import httpx

from ceats.core.config import LEGACY_SYNC_TIMEOUT_SECONDS, LEGACY_SYNC_URL

logger = logging.getLogger(__name__)

SYNC_OK_MARKER = "ESTADO_ACTUALIZADO"


def sync_estado(codigo: str, estado: str, motivo: str | None = None, *, url: str | None = None) -> bool:
    """Replica el cambio de estado en el sistema legacy. Best-effort: nunca levanta."""
    target = url if url is not None else LEGACY_SYNC_URL
    if not target:
        return False

    data = {"action": "actualizarEstadoPedido", "codigo": codigo, "nuevoEstado": estado}
    if motivo:
        data["motivo"] = motivo

    try:
        with httpx.Client(timeout=LEGACY_SYNC_TIMEOUT_SECONDS, follow_redirects=True) as client:
            response = client.post(target, data=data)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Sync legacy falló codigo=%s estado=%s error=%s", codigo, estado, exc)
        return False

    try:
        body = response.json()
    except ValueError:
        body = {}
    if isinstance(body, dict) and body.get("estado") not in (None, SYNC_OK_MARKER):
        logger.warning("Sync legacy respondió sin confirmar codigo=%s respuesta=%s", codigo, body)
        return False

    logger.info("Sync legacy ok codigo=%s estado=%s", codigo, estado)
    return True
