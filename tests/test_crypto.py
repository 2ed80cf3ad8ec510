import base64
import os

import pytest

from ceats.services.crypto import TOKEN_PREFIX, TokenDecryptionError, decrypt_token, derive_key, encrypt_token

KEY = derive_key("clave-de-pruebas")


def test_same_plaintext_gets_a_fresh_nonce_each_time():
    first = encrypt_token("EAAG-token", key=KEY)
    second = encrypt_token("EAAG-token", key=KEY)

    assert first.startswith(TOKEN_PREFIX)
    assert first != second
    assert decrypt_token(first, key=KEY) == "EAAG-token"
    assert decrypt_token(second, key=KEY) == "EAAG-token"


def test_tampered_ciphertext_is_detected():
    token = encrypt_token("EAAG-token", key=KEY)
    blob = bytearray(base64.urlsafe_b64decode(token[len(TOKEN_PREFIX):]))
    blob[15] ^= 0x01
    tampered = TOKEN_PREFIX + base64.urlsafe_b64encode(bytes(blob)).decode("ascii")

    with pytest.raises(TokenDecryptionError):
        decrypt_token(tampered, key=KEY)


def test_wrong_key_cannot_decrypt():
    token = encrypt_token("EAAG-token", key=KEY)

    with pytest.raises(TokenDecryptionError):
        decrypt_token(token, key=derive_key("otra-clave"))


def test_empty_values_pass_through():
    assert encrypt_token(None, key=KEY) is None
    assert decrypt_token("", key=KEY) is None


def test_derive_key_accepts_hex_and_passphrase():
    raw = os.urandom(32)

    assert derive_key(raw.hex()) == raw
    assert len(derive_key("cualquier frase")) == 32
