"""Seleção das revisões que podem ser entregues agora.

Política de disponibilidade: qualquer falha ao consultar perfil, janela ou
limite diário é tratada como "dentro da janela" / "abaixo do limite". Tornar
isso mais restrito exige decisão de produto.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from core.config import settings
from core.errors import UpstreamUnavailable
from core.scheduling import is_within_window, local_day_bounds, utcnow
from core.telemetry import logger
from database.models import ReviewItem
from database.repos import (
    DeliveryProfileRepository,
    ReviewEventRepository,
    ReviewItemRepository,
)


@dataclass(frozen=True)
class DeliverySettings:
    """Visão imutável do perfil com os padrões aplicados"""

    user_id: str
    timezone: str
    window_start: str
    window_end: str
    daily_limit: int
    paused: bool
    chat_id: Optional[int] = None

    @classmethod
    def from_profile(cls, user_id: str, profile) -> "DeliverySettings":
        if profile is None:
            return cls.defaults(user_id)
        return cls(
            user_id=user_id,
            timezone=profile.timezone or settings.DEFAULT_TIMEZONE,
            window_start=profile.preferred_window_start or settings.DEFAULT_WINDOW_START,
            window_end=profile.preferred_window_end or settings.DEFAULT_WINDOW_END,
            daily_limit=(
                profile.daily_limit
                if profile.daily_limit is not None
                else settings.DEFAULT_DAILY_LIMIT
            ),
            paused=bool(profile.paused),
            chat_id=profile.telegram_chat_id,
        )

    @classmethod
    def defaults(cls, user_id: str) -> "DeliverySettings":
        return cls(
            user_id=user_id,
            timezone=settings.DEFAULT_TIMEZONE,
            window_start=settings.DEFAULT_WINDOW_START,
            window_end=settings.DEFAULT_WINDOW_END,
            daily_limit=settings.DEFAULT_DAILY_LIMIT,
            paused=False,
        )


class DueReviewSelector:
    """Filtra os itens due de um usuário por pausa, janela e limite diário."""

    def __init__(
        self,
        items=ReviewItemRepository,
        profiles=DeliveryProfileRepository,
        events=ReviewEventRepository,
    ):
        self.items = items
        self.profiles = profiles
        self.events = events

    def load_settings(self, user_id: str) -> DeliverySettings:
        try:
            profile = self.profiles.get_profile_sync(user_id)
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable(f"profile lookup failed: {exc}") from exc
        return DeliverySettings.from_profile(user_id, profile)

    def is_within_delivery_window(
        self, delivery: DeliverySettings, now: Optional[datetime] = None
    ) -> bool:
        now = now or utcnow()
        try:
            return is_within_window(
                now, delivery.window_start, delivery.window_end, delivery.timezone
            )
        except ValueError as exc:
            logger.warning(
                "Delivery window check failed, assuming within window",
                extra={"user_id": delivery.user_id, "error": str(exc)},
            )
            return True

    def remaining_daily_budget(
        self, delivery: DeliverySettings, now: Optional[datetime] = None
    ) -> Optional[int]:
        """Quantas revisões ainda cabem hoje; ``None`` quando não foi possível contar"""
        now = now or utcnow()
        try:
            day_start, day_end = local_day_bounds(now, delivery.timezone)
            completed = self.events.count_completed_between_sync(
                delivery.user_id, day_start, day_end
            )
            in_flight = self.items.count_in_flight_sync(delivery.user_id)
        except (SQLAlchemyError, ValueError) as exc:
            logger.warning(
                "Daily limit check failed, assuming limit not reached",
                extra={"user_id": delivery.user_id, "error": str(exc)},
            )
            return None
        return max(0, delivery.daily_limit - completed - in_flight)

    def has_reached_daily_limit(
        self, delivery: DeliverySettings, now: Optional[datetime] = None
    ) -> bool:
        remaining = self.remaining_daily_budget(delivery, now)
        return remaining is not None and remaining <= 0

    def get_user_due_reviews(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        *,
        delivery: Optional[DeliverySettings] = None,
    ) -> List[ReviewItem]:
        """Itens que podem ser entregues agora.

        Quem já carregou o perfil passa ``delivery`` para que os filtros usem
        a mesma leitura.
        """
        now = now or utcnow()

        try:
            items = self.items.list_due_for_user_sync(user_id, now)
        except SQLAlchemyError as exc:
            logger.error(
                "Error getting user due reviews",
                extra={"user_id": user_id, "error": str(exc)},
            )
            return []
        if not items:
            return []

        if delivery is None:
            try:
                delivery = self.load_settings(user_id)
            except UpstreamUnavailable as exc:
                logger.warning(
                    "Profile unavailable, delivering with defaults",
                    extra={"user_id": user_id, "error": str(exc)},
                )
                delivery = DeliverySettings.defaults(user_id)

        if delivery.paused:
            logger.debug("User paused, skipping", extra={"user_id": user_id})
            return []

        if not self.is_within_delivery_window(delivery, now):
            logger.debug("Outside delivery window", extra={"user_id": user_id})
            return []

        remaining = self.remaining_daily_budget(delivery, now)
        if remaining is None:
            return items
        if remaining <= 0:
            logger.debug("Daily limit reached", extra={"user_id": user_id})
            return []
        return items[:remaining]

    def get_eligible_users(
        self, now: Optional[datetime] = None, limit: Optional[int] = None
    ) -> List[str]:
        """Usuários com pelo menos um item due (os filtros vêm depois, por usuário)"""
        now = now or utcnow()
        try:
            return self.items.list_users_with_due_sync(
                now, limit or settings.DISPATCH_USER_BATCH
            )
        except SQLAlchemyError as exc:
            logger.error("Error listing users with due reviews", extra={"error": str(exc)})
            return []


__all__ = ["DeliverySettings", "DueReviewSelector"]
