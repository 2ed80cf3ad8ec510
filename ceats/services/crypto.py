from __future__ import annotations

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ceats.core.config import IS_PROD, JWT_SECRET_KEY, WHATSAPP_ENCRYPTION_KEY

TOKEN_PREFIX = "v1:"
NONCE_BYTES = 12
# liga el ciphertext a su uso; un token cifrado no sirve para otra cosa
_ASSOCIATED_DATA = b"ceats.whatsapp.token"


class TokenDecryptionError(Exception):
    pass


def derive_key(raw: str) -> bytes:
    """Acepta 32 bytes en hex o base64 urlsafe; cualquier otro valor se trata como passphrase."""
    value = (raw or "").strip()
    if len(value) == 64:
        try:
            return bytes.fromhex(value)
        except ValueError:
            pass
    try:
        decoded = base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
        if len(decoded) == 32:
            return decoded
    except (binascii.Error, ValueError):
        pass
    return hashlib.sha256(value.encode("utf-8")).digest()


def _default_key() -> bytes:
    if WHATSAPP_ENCRYPTION_KEY:
        return derive_key(WHATSAPP_ENCRYPTION_KEY)
    if IS_PROD:
        raise RuntimeError("WHATSAPP_ENCRYPTION_KEY es obligatorio en producción")
    return derive_key(f"dev:{JWT_SECRET_KEY}")


def encrypt_token(plaintext: str | None, key: bytes | None = None) -> str | None:
    if not plaintext:
        return None
    nonce = os.urandom(NONCE_BYTES)
    ciphertext = AESGCM(key or _default_key()).encrypt(nonce, plaintext.encode("utf-8"), _ASSOCIATED_DATA)
    return TOKEN_PREFIX + base64.urlsafe_b64encode(nonce + ciphertext).decode("ascii")


def decrypt_token(token: str | None, key: bytes | None = None) -> str | None:
    if not token:
        return None
    if not token.startswith(TOKEN_PREFIX):
        raise TokenDecryptionError("Formato de token cifrado desconocido")
    try:
        blob = base64.urlsafe_b64decode(token[len(TOKEN_PREFIX):])
    except (binascii.Error, ValueError) as exc:
        raise TokenDecryptionError("Token cifrado corrupto") from exc
    nonce, ciphertext = blob[:NONCE_BYTES], blob[NONCE_BYTES:]
    try:
        plaintext = AESGCM(key or _default_key()).decrypt(nonce, ciphertext, _ASSOCIATED_DATA)
    except InvalidTag as exc:
        raise TokenDecryptionError("No se pudo descifrar el token") from exc
    return plaintext.decode("utf-8")
