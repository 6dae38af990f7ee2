"""Executor genérico com backoff exponencial e jitter para chamadas ao canal."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from core.config import settings
from core.errors import ChannelError, ChannelPermanent, ChannelRetryable
from core.metrics import inc_channel_retry
from core.telemetry import logger

T = TypeVar("T")

JITTER_RATIO = 0.1

# Mensagens do Telegram que indicam falha permanente
NON_RETRYABLE_MESSAGES = (
    "Bad Request: message is not modified",
    "Bad Request: query is too old",
    "Bad Request: message to edit not found",
    "Forbidden: bot was blocked by the user",
    "Forbidden: user is deactivated",
    "Forbidden: bot can't send messages to bots",
)


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 3
    base_delay_ms: float = 1000
    max_delay_ms: float = 30000
    backoff_multiplier: float = 2.0

    @classmethod
    def from_settings(cls) -> "RetryConfig":
        return cls(
            max_retries=settings.CHANNEL_MAX_RETRIES,
            base_delay_ms=settings.CHANNEL_BASE_DELAY_MS,
            max_delay_ms=settings.CHANNEL_MAX_DELAY_MS,
            backoff_multiplier=settings.CHANNEL_BACKOFF_MULTIPLIER,
        )

    def merge(self, **overrides) -> "RetryConfig":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def matches_permanent_message(error: BaseException) -> bool:
    text = str(error)
    description = getattr(error, "description", None) or ""
    return any(msg in text or msg in description for msg in NON_RETRYABLE_MESSAGES)


def is_non_retryable(error: BaseException) -> bool:
    """4xx (exceto 429) e mensagens de falha permanente não são repetidos."""

    if isinstance(error, ChannelPermanent):
        return True
    code = getattr(error, "code", None)
    if isinstance(code, int) and 400 <= code < 500 and code != 429:
        return True
    return matches_permanent_message(error)


def normalize_error(error: BaseException) -> ChannelError:
    """Converte qualquer falha da chamada em ``ChannelRetryable``/``ChannelPermanent``."""

    if isinstance(error, ChannelError):
        if is_non_retryable(error) and not isinstance(error, ChannelPermanent):
            normalized = ChannelPermanent(
                str(error),
                code=error.code,
                description=error.description,
                retry_after=error.retry_after,
            )
            normalized.__cause__ = error
            return normalized
        return error

    if isinstance(error, httpx.TimeoutException):
        normalized = ChannelRetryable(f"Channel timeout: {error}")
    elif isinstance(error, httpx.TransportError):
        normalized = ChannelRetryable(f"Channel network error: {error}")
    elif matches_permanent_message(error):
        normalized = ChannelPermanent(str(error))
    else:
        normalized = ChannelRetryable(f"Unknown channel error: {error}")
    normalized.__cause__ = error
    return normalized


class ChannelRetryWrapper:
    """Executa operações assíncronas com retry limitado.

    ``sleep`` e ``rng`` são injetáveis para que os testes possam registrar os
    atrasos sem esperar de fato.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or RetryConfig.from_settings()
        self._sleep = sleep
        self._rng = rng or random.Random()

    def calculate_delay_ms(
        self, attempt: int, config: RetryConfig, error: ChannelError
    ) -> float:
        # retry_after vem do Telegram (segundos) e tem prioridade
        if error.retry_after:
            return min(error.retry_after * 1000, config.max_delay_ms)

        exponential = config.base_delay_ms * (config.backoff_multiplier**attempt)
        jitter = self._rng.random() * JITTER_RATIO * exponential
        return min(exponential + jitter, config.max_delay_ms)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        config: Optional[RetryConfig] = None,
        *,
        operation_name: str = "channel_call",
    ) -> T:
        config = config or self.config
        last_error: Optional[ChannelError] = None

        for attempt in range(config.max_retries + 1):
            try:
                return await operation()
            except Exception as exc:  # noqa: BLE001 - normalizado abaixo
                last_error = normalize_error(exc)

                if isinstance(last_error, ChannelPermanent):
                    logger.warning(
                        "Channel call failed permanently",
                        extra={
                            "operation": operation_name,
                            "code": last_error.code,
                            "error": str(last_error),
                        },
                    )
                    raise last_error

                if attempt == config.max_retries:
                    logger.error(
                        "Channel call failed after retries",
                        extra={
                            "operation": operation_name,
                            "attempts": attempt + 1,
                            "error": str(last_error),
                        },
                    )
                    raise last_error

                delay_ms = self.calculate_delay_ms(attempt, config, last_error)
                inc_channel_retry(operation_name)
                logger.warning(
                    "Channel call failed, retrying",
                    extra={
                        "operation": operation_name,
                        "attempt": attempt + 1,
                        "delay_ms": round(delay_ms, 1),
                        "error": str(last_error),
                    },
                )
                await self._sleep(delay_ms / 1000)

        # Inalcançável: o laço sempre retorna ou levanta
        raise last_error or ChannelRetryable(f"{operation_name} failed")


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    *,
    operation_name: str = "channel_call",
) -> T:
    return await ChannelRetryWrapper(config).execute(
        operation, operation_name=operation_name
    )


__all__ = [
    "ChannelRetryWrapper",
    "NON_RETRYABLE_MESSAGES",
    "RetryConfig",
    "execute_with_retry",
    "is_non_retryable",
    "normalize_error",
]
