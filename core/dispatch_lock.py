"""Lock efêmero por usuário para o despacho de revisões.

O valor da chave é um token do dono; só quem gravou o token consegue liberar
o lock, mesmo que ele tenha expirado e sido adquirido por outro worker.
"""

from __future__ import annotations

import secrets
from typing import Optional

import redis

from core.config import settings
from core.redis_client import redis_client


def _build_dispatch_lock_key(user_id: str) -> str:
    return f"rv:dispatch:{user_id}"


def acquire_dispatch_lock(user_id: str, *, ttl_seconds: int = 0) -> Optional[str]:
    """Tenta adquirir o lock de despacho do usuário.

    Retorna o token do dono se o lock foi obtido, ou ``None`` se outro worker
    já está despachando para este usuário.
    """

    key = _build_dispatch_lock_key(user_id)
    ttl = ttl_seconds or settings.DISPATCH_LOCK_TTL_SECONDS
    token = secrets.token_hex(16)
    if redis_client.set(key, token, nx=True, ex=ttl):
        return token
    return None


def release_dispatch_lock(user_id: str, token: str) -> bool:
    """Compare-and-delete: remove a chave apenas se ainda guarda ``token``"""

    key = _build_dispatch_lock_key(user_id)
    with redis_client.pipeline() as pipe:
        try:
            pipe.watch(key)
            if pipe.get(key) != token:
                pipe.unwatch()
                return False
            pipe.multi()
            pipe.delete(key)
            pipe.execute()
            return True
        except redis.WatchError:
            # A chave mudou entre o GET e o DEL: já não é nossa
            return False


__all__ = ["acquire_dispatch_lock", "release_dispatch_lock"]
