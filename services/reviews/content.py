"""Provedor somente leitura do conteúdo das palavras."""

from __future__ import annotations

from dataclasses import dataclass, field
from html import escape
from typing import List, Optional

import httpx

from core.config import settings


@dataclass(frozen=True)
class WordContent:
    word_id: str
    text: str
    example: Optional[str] = None
    translation: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    def render(self) -> str:
        """Texto HTML mínimo da pergunta de revisão"""
        lines = [f"<b>{escape(self.text)}</b>"]
        if self.example:
            lines.append(f"<i>{escape(self.example)}</i>")
        lines.append("How well do you remember this word?")
        return "\n\n".join(lines)


class HttpWordContentProvider:
    """Busca o conteúdo no serviço de palavras (``GET /words/{id}``)."""

    def __init__(self, base_url: Optional[str] = None, *, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.CONTENT_SERVICE_URL).rstrip("/")
        self.timeout = timeout or settings.CONTENT_SERVICE_TIMEOUT

    async def get_content(self, word_id: str) -> WordContent:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(f"{self.base_url}/words/{word_id}")
            response.raise_for_status()
            data = response.json()

        data = data.get("data", data)
        return WordContent(
            word_id=str(data.get("id", word_id)),
            text=data["text"],
            example=data.get("exampleEn") or data.get("example"),
            translation=data.get("exampleRu") or data.get("translation"),
            tags=list(data.get("tags") or []),
        )


__all__ = ["HttpWordContentProvider", "WordContent"]
