"""
SQLAlchemy Models
"""

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.ext.declarative import declarative_base

from core.scheduling import (
    DEFAULT_INTERVAL_MINUTES,
    DeliveryState,
    effective_state,
)

Base = declarative_base()


class UserDeliveryProfile(Base):
    """Preferências de entrega do usuário (lidas pelo seletor)"""

    __tablename__ = "profiles"

    user_id = Column(String(64), primary_key=True)
    telegram_chat_id = Column(BigInteger, unique=True, nullable=True)
    timezone = Column(String(64), nullable=False, default="UTC")
    preferred_window_start = Column(String(5), nullable=False, default="09:00")
    preferred_window_end = Column(String(5), nullable=False, default="21:00")
    daily_limit = Column(Integer, nullable=False, default=20)
    paused = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())


class ReviewItem(Base):
    """Item de revisão por (usuário, palavra) com estado de entrega"""

    __tablename__ = "srs_items"

    user_id = Column(String(64), primary_key=True)
    word_id = Column(String(64), primary_key=True)
    delivery_state = Column(
        String(32), nullable=False, default=DeliveryState.DUE.value
    )
    next_review_at = Column(DateTime, nullable=False)
    interval_minutes = Column(
        Integer, nullable=False, default=DEFAULT_INTERVAL_MINUTES
    )
    review_count = Column(Integer, nullable=False, default=0)
    last_review_at = Column(DateTime)
    last_message_id = Column(String(64))  # handle opaco do canal
    last_claimed_at = Column(DateTime)
    last_sent_at = Column(DateTime)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_srs_items_state_next", "delivery_state", "next_review_at"),
        Index("idx_srs_items_state_sent", "delivery_state", "last_sent_at"),
        Index("idx_srs_items_user_state", "user_id", "delivery_state"),
    )

    def effective_state(self, now) -> DeliveryState:
        return effective_state(self.delivery_state, self.next_review_at, now)


class ReviewEvent(Base):
    """Log append-only de revisões (avaliações e timeouts)"""

    __tablename__ = "review_events"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    word_id = Column(String(64), nullable=False)
    difficulty = Column(String(16), nullable=False)
    reviewed_at = Column(DateTime, nullable=False, server_default=func.now())
    source = Column(String(16), nullable=False, default="channel")
    message_id = Column(String(64))

    __table_args__ = (
        Index("idx_review_events_user_time", "user_id", "reviewed_at"),
        Index("idx_review_events_user_difficulty", "user_id", "difficulty"),
    )


__all__ = ["Base", "ReviewEvent", "ReviewItem", "UserDeliveryProfile"]
