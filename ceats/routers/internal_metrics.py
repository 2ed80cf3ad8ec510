from __future__ import annotations

from fastapi import APIRouter, Depends

from ceats.core.metrics import request_metrics
from ceats.deps import require_admin
from ceats.models.usuario import Usuario

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("")
def endpoint_metrics(user: Usuario = Depends(require_admin)):
    return {
        "endpoints": request_metrics.snapshot(),
        "restaurante": request_metrics.snapshot_for_restaurante(user.restaurante_id),
    }
