"""Processamento das avaliações do usuário e dos timeouts de resposta."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Optional

from core.config import settings
from core.errors import InvalidState, ItemNotFound, MessageIdMismatch
from core.metrics import inc_rating, inc_stale_claims, inc_timeouts
from core.scheduling import DeliveryState, Difficulty, local_day_bounds, utcnow
from core.telemetry import logger
from database.repos import ReviewEventRepository, ReviewItemRepository


@dataclass(frozen=True)
class RatingCallback:
    user_id: str
    word_id: str
    message_id: str
    difficulty: Difficulty


@dataclass(frozen=True)
class BatchResult:
    processed: int
    failed: int


@dataclass(frozen=True)
class ProcessingStats:
    awaiting_response: int
    overdue: int
    processed_today: int


class ReviewProcessor:
    """Aplica avaliações exatamente uma vez e devolve revisões abandonadas."""

    def __init__(self, items=ReviewItemRepository, events=ReviewEventRepository):
        self.items = items
        self.events = events

    def process_rating(
        self,
        user_id: str,
        word_id: str,
        message_id: str,
        difficulty: Difficulty | str,
    ) -> bool:
        """Retorna ``True`` apenas para a primeira aplicação válida.

        Item inexistente, estado errado ou message_id diferente são callbacks
        duplicados/obsoletos: retornam ``False`` sem erro.
        """

        try:
            interval = self.items.process_rating_sync(
                user_id, word_id, message_id, Difficulty(difficulty)
            )
        except ItemNotFound:
            inc_rating("not_found")
            logger.debug(
                "Rating ignored: item not found",
                extra={"user_id": user_id, "word_id": word_id},
            )
            return False
        except MessageIdMismatch:
            inc_rating("stale_message")
            logger.info(
                "Rating ignored: message id mismatch",
                extra={"user_id": user_id, "word_id": word_id, "message_id": message_id},
            )
            return False
        except InvalidState:
            inc_rating("duplicate")
            logger.info(
                "Rating ignored: item not awaiting response",
                extra={"user_id": user_id, "word_id": word_id, "message_id": message_id},
            )
            return False

        inc_rating("applied")
        logger.info(
            "Rating applied",
            extra={
                "user_id": user_id,
                "word_id": word_id,
                "difficulty": Difficulty(difficulty).value,
                "interval_minutes": interval,
            },
        )
        return True

    def process_batch(self, callbacks: Iterable[RatingCallback]) -> BatchResult:
        processed = failed = 0
        for callback in callbacks:
            try:
                applied = self.process_rating(
                    callback.user_id,
                    callback.word_id,
                    callback.message_id,
                    callback.difficulty,
                )
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Error processing rating in batch",
                    extra={"user_id": callback.user_id, "error": str(exc)},
                )
                applied = False
            if applied:
                processed += 1
            else:
                failed += 1
        return BatchResult(processed=processed, failed=failed)

    def process_timeouts(self, timeout_minutes: Optional[int] = None) -> int:
        if timeout_minutes is None:
            timeout_minutes = settings.REVIEW_TIMEOUT_MINUTES
        count = self.items.process_timeouts_sync(timeout_minutes)
        inc_timeouts(count)
        if count:
            logger.info(
                "Timed out reviews reset to due",
                extra={"count": count, "timeout_minutes": timeout_minutes},
            )
        return count

    def release_stale_claims(self, stale_minutes: Optional[int] = None) -> int:
        if stale_minutes is None:
            stale_minutes = settings.CLAIM_STALE_MINUTES
        count = self.items.release_stale_claims_sync(stale_minutes)
        inc_stale_claims(count)
        if count:
            logger.warning(
                "Stale review claims released",
                extra={"count": count, "stale_minutes": stale_minutes},
            )
        return count

    def get_processing_stats(self) -> ProcessingStats:
        now = utcnow()
        day_start, _ = local_day_bounds(now, "UTC")
        overdue_threshold = now - timedelta(minutes=settings.REVIEW_TIMEOUT_MINUTES)
        return ProcessingStats(
            awaiting_response=self.items.count_by_state_sync(
                DeliveryState.AWAITING_RESPONSE
            ),
            overdue=self.items.count_by_state_sync(
                DeliveryState.AWAITING_RESPONSE, sent_before=overdue_threshold
            ),
            processed_today=self.events.count_since_sync(None, day_start),
        )


__all__ = ["BatchResult", "ProcessingStats", "RatingCallback", "ReviewProcessor"]
