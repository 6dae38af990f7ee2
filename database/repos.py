"""
Repository Pattern para acesso ao banco

Cada operação atômica do motor de revisões é um único método cujo corpo é um
``UPDATE ... WHERE <estado esperado>`` conferido por ``rowcount``; o evento
correspondente é inserido na mesma transação.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import create_engine, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from core.config import settings
from core.errors import InvalidState, ItemNotFound, MessageIdMismatch
from core.scheduling import (
    DEFAULT_INTERVAL_MINUTES,
    IN_FLIGHT_STATES,
    DeliveryState,
    Difficulty,
    apply_timeout_penalty,
    calculate_interval,
    ensure_transition,
    utcnow,
)
from core.telemetry import logger

from .models import ReviewEvent, ReviewItem, UserDeliveryProfile

# Configuração do engine
engine = create_engine(
    settings.DB_URL,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
    pool_recycle=3600,
    echo=False,
)

SessionLocal = sessionmaker(bind=engine)

# Estados em que o item pode ser reivindicado (scheduled vencido conta como due)
CLAIMABLE_STATES = (DeliveryState.DUE.value, DeliveryState.SCHEDULED.value)
COMPLETED_SOURCES = ("channel", "manual")


def _item_key(user_id: str, word_id: str):
    return (ReviewItem.user_id == user_id, ReviewItem.word_id == word_id)


def _due_filter(now: datetime):
    return (
        ReviewItem.is_active.is_(True),
        ReviewItem.delivery_state.in_(CLAIMABLE_STATES),
        ReviewItem.next_review_at <= now,
    )


def _sending_filter(claimed_at: Optional[datetime]):
    conditions = [ReviewItem.delivery_state == DeliveryState.SENDING.value]
    if claimed_at is not None:
        conditions.append(ReviewItem.last_claimed_at == claimed_at)
    return conditions


class ReviewItemRepository:
    """Repository para itens de revisão e suas transições atômicas"""

    @staticmethod
    def create_item_sync(
        user_id: str, word_id: str, now: Optional[datetime] = None
    ) -> ReviewItem:
        """Cria item em ``due`` (intervalo 1440, 0 revisões) ou retorna o existente"""
        now = now or utcnow()
        with SessionLocal() as session:
            existing = session.query(ReviewItem).filter(*_item_key(user_id, word_id)).first()
            if existing:
                return existing

            item = ReviewItem(
                user_id=user_id,
                word_id=word_id,
                delivery_state=DeliveryState.DUE.value,
                next_review_at=now,
                interval_minutes=DEFAULT_INTERVAL_MINUTES,
                review_count=0,
                is_active=True,
            )
            session.add(item)
            try:
                session.commit()
            except IntegrityError:
                # Outro processo criou o mesmo par entre a leitura e o insert
                session.rollback()
                return (
                    session.query(ReviewItem)
                    .filter(*_item_key(user_id, word_id))
                    .first()
                )
            session.refresh(item)
            return item

    @staticmethod
    def get_item_sync(user_id: str, word_id: str) -> Optional[ReviewItem]:
        with SessionLocal() as session:
            return session.query(ReviewItem).filter(*_item_key(user_id, word_id)).first()

    @staticmethod
    def list_due_for_user_sync(
        user_id: str, now: Optional[datetime] = None, limit: Optional[int] = None
    ) -> List[ReviewItem]:
        """Itens efetivamente due do usuário, mais antigos primeiro"""
        now = now or utcnow()
        with SessionLocal() as session:
            query = (
                session.query(ReviewItem)
                .filter(ReviewItem.user_id == user_id, *_due_filter(now))
                .order_by(ReviewItem.next_review_at.asc())
            )
            if limit:
                query = query.limit(limit)
            return query.all()

    @staticmethod
    def list_users_with_due_sync(
        now: Optional[datetime] = None, limit: int = 100
    ) -> List[str]:
        now = now or utcnow()
        with SessionLocal() as session:
            rows = (
                session.query(ReviewItem.user_id)
                .filter(*_due_filter(now))
                .group_by(ReviewItem.user_id)
                .order_by(func.min(ReviewItem.next_review_at).asc())
                .limit(limit)
                .all()
            )
            return [row.user_id for row in rows]

    @staticmethod
    def count_in_flight_sync(user_id: str) -> int:
        with SessionLocal() as session:
            return (
                session.query(func.count())
                .select_from(ReviewItem)
                .filter(
                    ReviewItem.user_id == user_id,
                    ReviewItem.delivery_state.in_([s.value for s in IN_FLIGHT_STATES]),
                )
                .scalar()
            )

    @staticmethod
    def count_by_state_sync(
        state: DeliveryState, sent_before: Optional[datetime] = None
    ) -> int:
        with SessionLocal() as session:
            query = (
                session.query(func.count())
                .select_from(ReviewItem)
                .filter(ReviewItem.delivery_state == DeliveryState(state).value)
            )
            if sent_before is not None:
                query = query.filter(ReviewItem.last_sent_at < sent_before)
            return query.scalar()

    # --- Transições atômicas -------------------------------------------------

    @staticmethod
    def claim_sync(user_id: str, word_id: str, now: Optional[datetime] = None) -> bool:
        """Compare-and-set ``due -> sending``; só um chamador recebe ``True``"""
        ensure_transition(DeliveryState.DUE, DeliveryState.SENDING)
        now = now or utcnow()
        with SessionLocal() as session:
            result = session.execute(
                update(ReviewItem)
                .where(*_item_key(user_id, word_id), *_due_filter(now))
                .values(
                    delivery_state=DeliveryState.SENDING.value,
                    last_claimed_at=now,
                    last_message_id=None,
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount == 1

    @staticmethod
    def mark_sent_sync(
        user_id: str,
        word_id: str,
        message_id: str,
        now: Optional[datetime] = None,
        claimed_at: Optional[datetime] = None,
    ) -> bool:
        """``sending -> awaiting_response`` gravando o handle da mensagem

        Com ``claimed_at`` a escrita só acontece se o claim ainda é o mesmo.
        """
        ensure_transition(DeliveryState.SENDING, DeliveryState.AWAITING_RESPONSE)
        now = now or utcnow()
        with SessionLocal() as session:
            result = session.execute(
                update(ReviewItem)
                .where(
                    *_item_key(user_id, word_id),
                    *_sending_filter(claimed_at),
                )
                .values(
                    delivery_state=DeliveryState.AWAITING_RESPONSE.value,
                    last_message_id=str(message_id),
                    last_sent_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount == 1

    @staticmethod
    def reset_to_due_sync(
        user_id: str, word_id: str, claimed_at: Optional[datetime] = None
    ) -> bool:
        """``sending -> due`` após falha de envio, limpando ``last_claimed_at``"""
        ensure_transition(DeliveryState.SENDING, DeliveryState.DUE)
        with SessionLocal() as session:
            result = session.execute(
                update(ReviewItem)
                .where(
                    *_item_key(user_id, word_id),
                    *_sending_filter(claimed_at),
                )
                .values(
                    delivery_state=DeliveryState.DUE.value,
                    last_claimed_at=None,
                    last_message_id=None,
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount == 1

    @staticmethod
    def process_rating_sync(
        user_id: str,
        word_id: str,
        message_id: str,
        difficulty: Difficulty,
        now: Optional[datetime] = None,
    ) -> int:
        """Aplica a avaliação e grava o evento na mesma transação.

        Retorna o novo intervalo em minutos. Levanta ``ItemNotFound``,
        ``InvalidState`` ou ``MessageIdMismatch`` quando a pré-condição falha
        (inclusive quando outro processo venceu a corrida).
        """
        ensure_transition(DeliveryState.AWAITING_RESPONSE, DeliveryState.SCHEDULED)
        difficulty = Difficulty(difficulty)
        message_id = str(message_id)
        now = now or utcnow()

        with SessionLocal() as session:
            item = (
                session.query(ReviewItem)
                .filter(*_item_key(user_id, word_id), ReviewItem.is_active.is_(True))
                .first()
            )
            if item is None:
                raise ItemNotFound(f"{user_id}/{word_id}")
            if item.delivery_state != DeliveryState.AWAITING_RESPONSE.value:
                raise InvalidState(
                    f"{user_id}/{word_id} is {item.delivery_state}, expected awaiting_response"
                )
            if item.last_message_id != message_id:
                raise MessageIdMismatch(
                    f"{user_id}/{word_id} expects message {item.last_message_id}"
                )

            new_count = item.review_count + 1
            interval = calculate_interval(difficulty, new_count)

            result = session.execute(
                update(ReviewItem)
                .where(
                    *_item_key(user_id, word_id),
                    ReviewItem.delivery_state == DeliveryState.AWAITING_RESPONSE.value,
                    ReviewItem.last_message_id == message_id,
                    ReviewItem.review_count == item.review_count,
                )
                .values(
                    delivery_state=DeliveryState.SCHEDULED.value,
                    next_review_at=now + timedelta(minutes=interval),
                    interval_minutes=interval,
                    review_count=new_count,
                    last_review_at=now,
                    last_message_id=None,
                    last_claimed_at=None,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                session.rollback()
                raise InvalidState(f"{user_id}/{word_id} changed concurrently")

            session.add(
                ReviewEvent(
                    user_id=user_id,
                    word_id=word_id,
                    difficulty=difficulty.value,
                    reviewed_at=now,
                    source="channel",
                    message_id=message_id,
                )
            )
            session.commit()
            return interval

    @staticmethod
    def process_timeouts_sync(
        timeout_minutes: int, now: Optional[datetime] = None
    ) -> int:
        """Devolve para ``due`` itens sem resposta há mais de ``timeout_minutes``"""
        ensure_transition(DeliveryState.AWAITING_RESPONSE, DeliveryState.DUE)
        now = now or utcnow()
        threshold = now - timedelta(minutes=timeout_minutes)

        with SessionLocal() as session:
            candidates = (
                session.query(
                    ReviewItem.user_id,
                    ReviewItem.word_id,
                    ReviewItem.interval_minutes,
                    ReviewItem.last_message_id,
                )
                .filter(
                    ReviewItem.is_active.is_(True),
                    ReviewItem.delivery_state == DeliveryState.AWAITING_RESPONSE.value,
                    ReviewItem.last_sent_at <= threshold,
                )
                .all()
            )

        reaped = 0
        for candidate in candidates:
            if candidate.last_message_id is None:
                message_filter = ReviewItem.last_message_id.is_(None)
            else:
                message_filter = ReviewItem.last_message_id == candidate.last_message_id

            with SessionLocal() as session:
                result = session.execute(
                    update(ReviewItem)
                    .where(
                        *_item_key(candidate.user_id, candidate.word_id),
                        ReviewItem.delivery_state
                        == DeliveryState.AWAITING_RESPONSE.value,
                        ReviewItem.last_sent_at <= threshold,
                        ReviewItem.interval_minutes == candidate.interval_minutes,
                        message_filter,
                    )
                    .values(
                        delivery_state=DeliveryState.DUE.value,
                        interval_minutes=apply_timeout_penalty(
                            candidate.interval_minutes
                        ),
                        next_review_at=now,
                        last_review_at=now,
                        last_message_id=None,
                        last_claimed_at=None,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    # Uma avaliação chegou primeiro
                    session.rollback()
                    continue

                session.add(
                    ReviewEvent(
                        user_id=candidate.user_id,
                        word_id=candidate.word_id,
                        difficulty=Difficulty.HARD.value,
                        reviewed_at=now,
                        source="timeout",
                        message_id=candidate.last_message_id,
                    )
                )
                session.commit()
                reaped += 1

        return reaped

    @staticmethod
    def release_stale_claims_sync(
        stale_minutes: int, now: Optional[datetime] = None
    ) -> int:
        """``sending -> due`` para claims abandonados (worker morreu no meio)"""
        ensure_transition(DeliveryState.SENDING, DeliveryState.DUE)
        now = now or utcnow()
        threshold = now - timedelta(minutes=stale_minutes)
        with SessionLocal() as session:
            result = session.execute(
                update(ReviewItem)
                .where(
                    ReviewItem.delivery_state == DeliveryState.SENDING.value,
                    ReviewItem.last_claimed_at <= threshold,
                )
                .values(
                    delivery_state=DeliveryState.DUE.value,
                    last_claimed_at=None,
                    last_message_id=None,
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount

    # --- Wrappers assíncronos -------------------------------------------------

    @staticmethod
    async def claim(
        user_id: str, word_id: str, now: Optional[datetime] = None
    ) -> bool:
        return ReviewItemRepository.claim_sync(user_id, word_id, now)

    @staticmethod
    async def mark_sent(
        user_id: str,
        word_id: str,
        message_id: str,
        claimed_at: Optional[datetime] = None,
    ) -> bool:
        return ReviewItemRepository.mark_sent_sync(
            user_id, word_id, message_id, claimed_at=claimed_at
        )

    @staticmethod
    async def reset_to_due(
        user_id: str, word_id: str, claimed_at: Optional[datetime] = None
    ) -> bool:
        return ReviewItemRepository.reset_to_due_sync(user_id, word_id, claimed_at)


class DeliveryProfileRepository:
    """Repository para perfis de entrega"""

    @staticmethod
    def get_profile_sync(user_id: str) -> Optional[UserDeliveryProfile]:
        with SessionLocal() as session:
            return (
                session.query(UserDeliveryProfile)
                .filter(UserDeliveryProfile.user_id == user_id)
                .first()
            )

    @staticmethod
    def get_by_chat_id_sync(chat_id: int) -> Optional[UserDeliveryProfile]:
        with SessionLocal() as session:
            return (
                session.query(UserDeliveryProfile)
                .filter(UserDeliveryProfile.telegram_chat_id == chat_id)
                .first()
            )

    @staticmethod
    def set_paused_sync(user_id: str, paused: bool) -> bool:
        with SessionLocal() as session:
            result = session.execute(
                update(UserDeliveryProfile)
                .where(UserDeliveryProfile.user_id == user_id)
                .values(paused=paused, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            session.commit()
            if result.rowcount:
                logger.info(
                    "Delivery profile pause updated",
                    extra={"user_id": user_id, "paused": paused},
                )
            return bool(result.rowcount)


class ReviewEventRepository:
    """Leitura do log de eventos (a escrita acontece nas transições atômicas)"""

    @staticmethod
    def count_since_sync(
        user_id: Optional[str],
        start: datetime,
        end: Optional[datetime] = None,
        sources: Optional[Iterable[str]] = None,
    ) -> int:
        with SessionLocal() as session:
            query = (
                session.query(func.count())
                .select_from(ReviewEvent)
                .filter(ReviewEvent.reviewed_at >= start)
            )
            if user_id is not None:
                query = query.filter(ReviewEvent.user_id == user_id)
            if end is not None:
                query = query.filter(ReviewEvent.reviewed_at < end)
            if sources:
                query = query.filter(ReviewEvent.source.in_(list(sources)))
            return query.scalar()

    @staticmethod
    def count_completed_between_sync(
        user_id: str, start: datetime, end: datetime
    ) -> int:
        """Revisões concluídas (avaliadas) no intervalo; timeouts não contam"""
        return ReviewEventRepository.count_since_sync(
            user_id, start, end, sources=COMPLETED_SOURCES
        )

    @staticmethod
    def list_events_sync(
        user_id: str, since: datetime, until: Optional[datetime] = None
    ) -> List[ReviewEvent]:
        with SessionLocal() as session:
            query = session.query(ReviewEvent).filter(
                ReviewEvent.user_id == user_id, ReviewEvent.reviewed_at >= since
            )
            if until is not None:
                query = query.filter(ReviewEvent.reviewed_at <= until)
            return query.order_by(ReviewEvent.reviewed_at.desc()).all()
