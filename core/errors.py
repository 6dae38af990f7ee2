"""Taxonomia de erros do motor de entrega e agendamento de revisões."""

from __future__ import annotations

from typing import Optional


class ReviewEngineError(Exception):
    """Erro base do motor de revisões."""


class ItemNotFound(ReviewEngineError):
    """Item de revisão inexistente para o par (usuário, palavra)."""


class InvalidState(ReviewEngineError):
    """Pré-condição de estado falhou (operação duplicada ou obsoleta)."""


class MessageIdMismatch(InvalidState):
    """Callback com message_id diferente do último enviado."""


class InvalidTransition(ReviewEngineError):
    """Transição não prevista na máquina de estados de entrega."""

    def __init__(self, from_state, to_state):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Illegal delivery transition: {from_state} -> {to_state}")


class UpstreamUnavailable(ReviewEngineError):
    """Falha ao consultar perfil, janela ou limite diário."""


class ChannelError(ReviewEngineError):
    """Erro retornado (ou provocado) pelo canal de mensagens.

    Carrega os detalhes que a API do Telegram devolve: ``error_code``,
    ``description`` e ``parameters.retry_after``.
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[int] = None,
        description: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.code = code
        self.description = description
        self.retry_after = retry_after


class ChannelRetryable(ChannelError):
    """Rede, timeout, 5xx ou 429: pode ser repetido."""


class ChannelPermanent(ChannelError):
    """4xx (exceto 429) ou destinatário bloqueado/desativado: não repetir."""

    BLOCKED_MARKERS = (
        "bot was blocked by the user",
        "user is deactivated",
        "chat not found",
    )

    @property
    def recipient_unreachable(self) -> bool:
        text = f"{self} {self.description or ''}"
        return self.code == 403 or any(m in text for m in self.BLOCKED_MARKERS)


__all__ = [
    "ChannelError",
    "ChannelPermanent",
    "ChannelRetryable",
    "InvalidState",
    "InvalidTransition",
    "ItemNotFound",
    "MessageIdMismatch",
    "ReviewEngineError",
    "UpstreamUnavailable",
]
