"""Tasks Celery do ciclo de revisões: despacho, timeouts e callbacks."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from core.callback_cache import (
    forget_callback_target,
    resolve_callback_target,
    store_callback_target,
)
from core.dispatch_lock import acquire_dispatch_lock, release_dispatch_lock
from core.errors import ChannelError, UpstreamUnavailable
from core.retry import ChannelRetryWrapper
from core.scheduling import Difficulty
from core.telemetry import logger
from database.models import ReviewItem
from database.repos import DeliveryProfileRepository
from services.reviews import (
    DueReviewSelector,
    HttpWordContentProvider,
    ReviewContent,
    ReviewDeliveryService,
    ReviewProcessor,
    build_rating_keyboard,
    parse_callback_data,
)
from services.telegram import TelegramChannelClient
from workers.celery_app import celery_app

RATING_ACK_TEXT = {
    True: "Saved! See you at the next review.",
    False: "This review was already answered.",
}


@celery_app.task(name="workers.review_tasks.dispatch_due_reviews")
def dispatch_due_reviews() -> int:
    """Enfileira uma entrega por usuário com revisões vencidas"""
    user_ids = DueReviewSelector().get_eligible_users()
    for user_id in user_ids:
        deliver_user_reviews.delay(user_id)

    if user_ids:
        logger.info("Due reviews dispatched", extra={"users": len(user_ids)})
    return len(user_ids)


@celery_app.task(name="workers.review_tasks.deliver_user_reviews")
def deliver_user_reviews(user_id: str) -> int:
    lock_token = acquire_dispatch_lock(user_id)
    if not lock_token:
        logger.debug(
            "Dispatch already running for user", extra={"user_id": user_id}
        )
        return 0

    try:
        selector = DueReviewSelector()
        try:
            delivery_settings = selector.load_settings(user_id)
        except UpstreamUnavailable as exc:
            logger.warning(
                "Delivery skipped: profile unavailable",
                extra={"user_id": user_id, "error": str(exc)},
            )
            return 0

        if not delivery_settings.chat_id:
            logger.info(
                "Delivery skipped: user has no linked chat",
                extra={"user_id": user_id},
            )
            return 0

        items = selector.get_user_due_reviews(user_id, delivery=delivery_settings)
        if not items:
            return 0

        return asyncio.run(
            _deliver_items(user_id, delivery_settings.chat_id, items)
        )
    finally:
        release_dispatch_lock(user_id, lock_token)


async def _deliver_items(user_id: str, chat_id: int, items: List[ReviewItem]) -> int:
    service = ReviewDeliveryService(TelegramChannelClient())
    provider = HttpWordContentProvider()
    sent = 0

    for item in items:
        try:
            word = await provider.get_content(item.word_id)
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.warning(
                "Word content unavailable, skipping review",
                extra={"user_id": user_id, "word_id": item.word_id, "error": str(exc)},
            )
            continue

        token = store_callback_target(user_id, item.word_id)
        content = ReviewContent(
            recipient=chat_id,
            text=word.render(),
            reply_markup=build_rating_keyboard(token),
        )
        result = await service.deliver_review(user_id, item.word_id, content)
        if result.success:
            sent += 1
            continue

        forget_callback_target(token)
        if result.recipient_unreachable:
            DeliveryProfileRepository.set_paused_sync(user_id, True)
            logger.warning(
                "Recipient unreachable, delivery paused for user",
                extra={"user_id": user_id, "error": result.error},
            )
            break

    return sent


@celery_app.task(name="workers.review_tasks.process_review_timeouts")
def process_review_timeouts(timeout_minutes: Optional[int] = None) -> Dict[str, int]:
    processor = ReviewProcessor()
    released = processor.release_stale_claims()
    reaped = processor.process_timeouts(timeout_minutes)
    return {"released": released, "reaped": reaped}


@celery_app.task(name="workers.review_tasks.handle_rating_callback")
def handle_rating_callback(callback_query: Dict[str, Any]) -> bool:
    """Aplica a avaliação vinda do botão inline e responde o callback"""
    callback_id = callback_query.get("id")
    message = callback_query.get("message") or {}
    message_id = message.get("message_id")
    chat_id = (message.get("chat") or {}).get("id")

    parsed = parse_callback_data(callback_query.get("data"))
    if not parsed or message_id is None or chat_id is None:
        logger.debug("Ignoring non-review callback", extra={"callback_id": callback_id})
        return False

    token, difficulty = parsed
    target = resolve_callback_target(token)
    if target is None:
        asyncio.run(_finish_callback(callback_id, "This review has expired."))
        return False

    profile = DeliveryProfileRepository.get_profile_sync(target.user_id)
    if not profile or profile.telegram_chat_id != chat_id:
        logger.warning(
            "Rating callback from unexpected chat",
            extra={"user_id": target.user_id, "chat_id": chat_id},
        )
        asyncio.run(_finish_callback(callback_id, ""))
        return False

    applied = ReviewProcessor().process_rating(
        target.user_id, target.word_id, str(message_id), difficulty
    )
    if applied:
        forget_callback_target(token)

    asyncio.run(
        _finish_callback(
            callback_id,
            RATING_ACK_TEXT[applied],
            chat_id=chat_id,
            message_id=str(message_id) if applied else None,
            difficulty=difficulty,
        )
    )
    return applied


async def _finish_callback(
    callback_id: Optional[str],
    text: str,
    *,
    chat_id: Optional[int] = None,
    message_id: Optional[str] = None,
    difficulty: Optional[Difficulty] = None,
) -> None:
    channel = TelegramChannelClient()
    retry = ChannelRetryWrapper()

    if callback_id:
        try:
            await retry.execute(
                lambda: channel.acknowledge(callback_id, text),
                operation_name="answerCallbackQuery",
            )
        except ChannelError as exc:
            logger.warning(
                "Callback acknowledge failed",
                extra={"callback_id": callback_id, "error": str(exc)},
            )

    if chat_id is None or message_id is None:
        return

    try:
        await retry.execute(
            lambda: channel.edit_keyboard(chat_id, message_id),
            operation_name="editMessageReplyMarkup",
        )
    except ChannelError as exc:
        logger.warning(
            "Keyboard removal failed",
            extra={
                "message_id": message_id,
                "difficulty": difficulty.value if difficulty else None,
                "error": str(exc),
            },
        )


__all__ = [
    "deliver_user_reviews",
    "dispatch_due_reviews",
    "handle_rating_callback",
    "process_review_timeouts",
]
