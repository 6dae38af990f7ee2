"""Cliente assíncrono da API do Telegram usado como canal de revisões."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from core.config import settings
from core.errors import ChannelError, ChannelPermanent, ChannelRetryable
from core.retry import is_non_retryable


def _error_from_response(response: httpx.Response) -> ChannelError:
    """Traduz a resposta de erro do Telegram para a taxonomia do canal."""

    try:
        data = response.json()
    except ValueError:
        data = {}

    code = data.get("error_code") or response.status_code
    description = data.get("description") or response.reason_phrase
    retry_after = (data.get("parameters") or {}).get("retry_after")

    error = ChannelRetryable(
        f"Telegram API error {code}: {description}",
        code=code,
        description=description,
        retry_after=retry_after,
    )
    if is_non_retryable(error):
        return ChannelPermanent(
            str(error), code=code, description=description, retry_after=retry_after
        )
    return error


class TelegramChannelClient:
    """Cliente enxuto do Telegram: envio, edição do teclado e ack de callback.

    Cada método faz uma única tentativa; o retry fica a cargo do
    ``ChannelRetryWrapper``.
    """

    BASE_URL = "https://api.telegram.org/bot"

    def __init__(self, token: Optional[str] = None, *, timeout: Optional[float] = None):
        self.token = token or settings.TELEGRAM_BOT_TOKEN
        self.timeout = timeout or settings.CHANNEL_REQUEST_TIMEOUT

    async def send(
        self,
        recipient: int | str,
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None,
        *,
        parse_mode: Optional[str] = "HTML",
    ) -> str:
        """Envia a mensagem e retorna o ``message_id`` como string"""
        payload: Dict[str, Any] = {"chat_id": recipient, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if reply_markup:
            payload["reply_markup"] = reply_markup

        result = await self._post("sendMessage", payload)
        return str(result["message_id"])

    async def edit_keyboard(
        self,
        recipient: int | str,
        message_id: str,
        reply_markup: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Troca (ou remove, se ``None``) o teclado inline da mensagem"""
        payload: Dict[str, Any] = {
            "chat_id": recipient,
            "message_id": int(message_id),
            "reply_markup": reply_markup or {"inline_keyboard": []},
        }
        await self._post("editMessageReplyMarkup", payload)

    async def acknowledge(self, callback_id: str, text: str = "") -> None:
        """Responde o callback query para parar o indicador de carregamento"""
        payload: Dict[str, Any] = {"callback_query_id": callback_id}
        if text:
            payload["text"] = text
        await self._post("answerCallbackQuery", payload)

    async def _post(self, method: str, payload: Dict[str, Any]) -> Any:
        url = f"{self.BASE_URL}{self.token}/{method}"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(url, json=payload)

        if response.status_code >= 400:
            raise _error_from_response(response)

        data = response.json()
        if not data.get("ok", False):
            raise _error_from_response(response)
        return data.get("result")


__all__ = ["TelegramChannelClient"]
