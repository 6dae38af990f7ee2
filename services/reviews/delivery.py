"""Entrega de revisões: claim atômico, envio com retry e registro do estado."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from core.errors import ChannelError, ChannelPermanent
from core.metrics import inc_claim, inc_delivery
from core.retry import ChannelRetryWrapper, RetryConfig
from core.scheduling import utcnow
from core.telemetry import logger
from database.repos import ReviewItemRepository


@dataclass(frozen=True)
class ReviewContent:
    """Mensagem pronta para envio"""

    recipient: int | str
    text: str
    reply_markup: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    permanent: bool = False
    recipient_unreachable: bool = False


class ReviewDeliveryService:
    """Orquestra claim -> envio -> ``awaiting_response`` (ou rollback para ``due``)."""

    def __init__(
        self,
        channel,
        *,
        items=ReviewItemRepository,
        retry: Optional[ChannelRetryWrapper] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.channel = channel
        self.items = items
        self.retry = retry or ChannelRetryWrapper(retry_config)

    async def deliver_review(
        self, user_id: str, word_id: str, content: ReviewContent
    ) -> DeliveryResult:
        claimed_at = utcnow()
        claimed = await self.items.claim(user_id, word_id, claimed_at)
        if not claimed:
            inc_claim("lost")
            logger.debug(
                "Review not claimed, skipping send",
                extra={"user_id": user_id, "word_id": word_id},
            )
            return DeliveryResult(success=False, error="not_claimed")
        inc_claim("won")

        try:
            message_id = await self.retry.execute(
                lambda: self.channel.send(
                    content.recipient, content.text, content.reply_markup
                ),
                operation_name="sendMessage",
            )
        except ChannelError as exc:
            await self._rollback(user_id, word_id, claimed_at)
            permanent = isinstance(exc, ChannelPermanent)
            inc_delivery("permanent_failure" if permanent else "failed")
            logger.warning(
                "Review send failed, item reset to due",
                extra={
                    "user_id": user_id,
                    "word_id": word_id,
                    "permanent": permanent,
                    "error": str(exc),
                },
            )
            return DeliveryResult(
                success=False,
                error=str(exc),
                permanent=permanent,
                recipient_unreachable=permanent and exc.recipient_unreachable,
            )
        except Exception:
            await self._rollback(user_id, word_id, claimed_at)
            inc_delivery("error")
            raise

        try:
            marked = await self.items.mark_sent(
                user_id, word_id, message_id, claimed_at=claimed_at
            )
        except Exception:
            # Mensagem saiu, mas o estado não foi gravado: volta para due
            await self._rollback(user_id, word_id, claimed_at)
            inc_delivery("error")
            raise

        if not marked:
            logger.warning(
                "Review sent but item no longer in sending",
                extra={"user_id": user_id, "word_id": word_id, "message_id": message_id},
            )
            inc_delivery("orphaned")
            return DeliveryResult(success=False, message_id=message_id, error="not_sending")

        inc_delivery("sent")
        logger.info(
            "Review delivered",
            extra={"user_id": user_id, "word_id": word_id, "message_id": message_id},
        )
        return DeliveryResult(success=True, message_id=message_id)

    async def _rollback(
        self, user_id: str, word_id: str, claimed_at: datetime
    ) -> None:
        try:
            await self.items.reset_to_due(user_id, word_id, claimed_at)
        except Exception as exc:  # noqa: BLE001
            # O reaper de claims parados devolve o item depois
            logger.error(
                "Failed to reset review to due",
                extra={"user_id": user_id, "word_id": word_id, "error": str(exc)},
            )


__all__ = ["DeliveryResult", "ReviewContent", "ReviewDeliveryService"]
