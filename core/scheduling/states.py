"""Máquina de estados de entrega de um item de revisão.

Ciclo: ``due -> sending -> awaiting_response -> scheduled -> due``, com as
arestas de falha ``sending -> due`` (envio falhou) e de timeout
``awaiting_response -> due``. Não há estado terminal.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional

from core.errors import InvalidTransition


class DeliveryState(str, Enum):
    DUE = "due"
    SENDING = "sending"
    AWAITING_RESPONSE = "awaiting_response"
    SCHEDULED = "scheduled"


TRANSITIONS: Dict[DeliveryState, FrozenSet[DeliveryState]] = {
    DeliveryState.DUE: frozenset({DeliveryState.SENDING}),
    DeliveryState.SENDING: frozenset(
        {DeliveryState.AWAITING_RESPONSE, DeliveryState.DUE}
    ),
    DeliveryState.AWAITING_RESPONSE: frozenset(
        {DeliveryState.SCHEDULED, DeliveryState.DUE}
    ),
    DeliveryState.SCHEDULED: frozenset({DeliveryState.DUE}),
}

# Estados em que o item está "em voo" (reivindicado ou aguardando resposta)
IN_FLIGHT_STATES = frozenset({DeliveryState.SENDING, DeliveryState.AWAITING_RESPONSE})


def can_transition(from_state: DeliveryState | str, to_state: DeliveryState | str) -> bool:
    return DeliveryState(to_state) in TRANSITIONS[DeliveryState(from_state)]


def ensure_transition(
    from_state: DeliveryState | str, to_state: DeliveryState | str
) -> None:
    """Levanta ``InvalidTransition`` se a aresta não existir na tabela."""

    if not can_transition(from_state, to_state):
        raise InvalidTransition(DeliveryState(from_state), DeliveryState(to_state))


def effective_state(
    state: DeliveryState | str, next_review_at: Optional[datetime], now: datetime
) -> DeliveryState:
    """Estado observado agora.

    ``scheduled -> due`` é avaliado de forma preguiçosa: um item agendado cujo
    ``next_review_at`` já passou é tratado como ``due`` sem escrita extra.
    """

    state = DeliveryState(state)
    if (
        state is DeliveryState.SCHEDULED
        and next_review_at is not None
        and next_review_at <= now
    ):
        return DeliveryState.DUE
    return state


__all__ = [
    "DeliveryState",
    "IN_FLIGHT_STATES",
    "TRANSITIONS",
    "can_transition",
    "effective_state",
    "ensure_transition",
]
