from __future__ import annotations

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def compute_signature(raw_body: bytes, app_secret: str) -> str:
    digest = hmac.new(app_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def is_valid_signature(raw_body: bytes, signature_header: str | None, app_secret: str | None) -> bool:
    """Valida X-Hub-Signature-256 sobre el cuerpo crudo, en tiempo constante."""
    if not app_secret or not signature_header:
        return False
    expected = compute_signature(raw_body, app_secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature_header.strip().encode("utf-8"))
