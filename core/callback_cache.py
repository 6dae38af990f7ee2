"""Cache com TTL que liga o token curto do callback ao item de revisão.

O ``callback_data`` do Telegram tem no máximo 64 bytes, então o teclado leva
apenas um token gerado; o par (usuário, palavra) fica no Redis com expiração
explícita.
"""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass
from typing import Optional

from core.config import settings
from core.redis_client import redis_client

TOKEN_BYTES = 6


@dataclass(frozen=True)
class CallbackTarget:
    user_id: str
    word_id: str


def _build_key(token: str) -> str:
    return f"rv:cb:{token}"


def generate_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def store_callback_target(
    user_id: str, word_id: str, *, ttl_seconds: Optional[int] = None
) -> str:
    """Grava o alvo e retorna o token a ser usado no ``callback_data``."""

    token = generate_token()
    payload = json.dumps({"user_id": user_id, "word_id": word_id})
    redis_client.setex(
        _build_key(token), ttl_seconds or settings.CALLBACK_TTL_SECONDS, payload
    )
    return token


def resolve_callback_target(token: str) -> Optional[CallbackTarget]:
    raw = redis_client.get(_build_key(token))
    if not raw:
        return None
    data = json.loads(raw)
    return CallbackTarget(user_id=data["user_id"], word_id=data["word_id"])


def forget_callback_target(token: str) -> None:
    redis_client.delete(_build_key(token))


__all__ = [
    "CallbackTarget",
    "forget_callback_target",
    "generate_token",
    "resolve_callback_target",
    "store_callback_target",
]
