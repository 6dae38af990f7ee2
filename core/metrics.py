"""Métricas Prometheus para o fluxo de entrega de revisões."""

from __future__ import annotations

from prometheus_client import Counter

REVIEWS_CLAIMED = Counter(
    "review_claims_total",
    "Tentativas de reivindicar itens de revisão",
    labelnames=("result",),
)

REVIEW_DELIVERIES = Counter(
    "review_deliveries_total",
    "Resultado final das entregas de revisão",
    labelnames=("status",),
)

CHANNEL_RETRIES = Counter(
    "review_channel_retries_total",
    "Retries de chamadas ao canal de mensagens",
    labelnames=("operation",),
)

RATINGS_PROCESSED = Counter(
    "review_ratings_processed_total",
    "Avaliações recebidas, por resultado",
    labelnames=("result",),
)

TIMEOUTS_REAPED = Counter(
    "review_timeouts_reaped_total",
    "Itens sem resposta devolvidos para due",
)

STALE_CLAIMS_RELEASED = Counter(
    "review_stale_claims_released_total",
    "Itens presos em sending devolvidos para due",
)


def inc_claim(result: str) -> None:
    REVIEWS_CLAIMED.labels(result=result).inc()


def inc_delivery(status: str) -> None:
    REVIEW_DELIVERIES.labels(status=status).inc()


def inc_channel_retry(operation: str) -> None:
    CHANNEL_RETRIES.labels(operation=operation).inc()


def inc_rating(result: str) -> None:
    RATINGS_PROCESSED.labels(result=result).inc()


def inc_timeouts(count: int) -> None:
    if count:
        TIMEOUTS_REAPED.inc(count)


def inc_stale_claims(count: int) -> None:
    if count:
        STALE_CLAIMS_RELEASED.inc(count)


__all__ = [
    "inc_channel_retry",
    "inc_claim",
    "inc_delivery",
    "inc_rating",
    "inc_stale_claims",
    "inc_timeouts",
]
