from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any


@dataclass
class WhatsAppSendResult:
    status: str
    provider_message_id: str | None = None
    error: str | None = None
    response_payload: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.status == "sent"


class GraphApiError(Exception):
    def __init__(self, message: str, status_code: int | None = None, payload: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


SENSITIVE_KEYS = {
    "access_token",
    "accesstoken",
    "system_user_token",
    "systemusertoken",
    "verify_token",
    "webhook_verify_token",
    "webhook_secret",
    "client_secret",
    "authorization",
    "token",
}


def _mask_value(value: Any) -> Any:
    if value is None:
        return None
    text = str(value)
    if len(text) <= 4:
        return "****"
    return f"****{text[-4:]}"


def sanitize_payload(payload: Any) -> Any:
    if isinstance(payload, dict):
        return {
            key: _mask_value(value) if str(key).lower() in SENSITIVE_KEYS else sanitize_payload(value)
            for key, value in payload.items()
        }
    if isinstance(payload, list):
        return [sanitize_payload(item) for item in payload]
    return payload


def safe_json(payload: Any) -> str:
    try:
        return json.dumps(payload, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return "{}"
