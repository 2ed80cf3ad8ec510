from __future__ import annotations

from contextvars import ContextVar


_REQUEST_ID_CTX: ContextVar[str | None] = ContextVar("request_id", default=None)
_RESTAURANTE_ID_CTX: ContextVar[str | None] = ContextVar("restaurante_id", default=None)
_USUARIO_ID_CTX: ContextVar[str | None] = ContextVar("usuario_id", default=None)


def set_request_context(
    *, request_id: str | None = None, restaurante_id: str | None = None, usuario_id: str | None = None
) -> None:
    if request_id is not None:
        _REQUEST_ID_CTX.set(request_id)
    if restaurante_id is not None:
        _RESTAURANTE_ID_CTX.set(restaurante_id)
    if usuario_id is not None:
        _USUARIO_ID_CTX.set(usuario_id)


def get_request_id() -> str | None:
    return _REQUEST_ID_CTX.get()


def get_restaurante_id() -> str | None:
    return _RESTAURANTE_ID_CTX.get()


def get_usuario_id() -> str | None:
    return _USUARIO_ID_CTX.get()


def clear_request_context() -> None:
    _REQUEST_ID_CTX.set(None)
    _RESTAURANTE_ID_CTX.set(None)
    _USUARIO_ID_CTX.set(None)
