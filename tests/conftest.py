"""
Configuração global do pytest
"""

import os

# Engine padrão apontando para SQLite (os testes trocam o SessionLocal abaixo)
os.environ.setdefault("DB_URL", "sqlite:///./reviews_test.db")

from datetime import datetime, timedelta  # noqa: E402
from typing import Generator  # noqa: E402
from unittest.mock import AsyncMock, patch  # noqa: E402

import pytest  # noqa: E402
from fakeredis import FakeRedis  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from core.scheduling import DeliveryState, utcnow  # noqa: E402
from database.models import (  # noqa: E402
    Base,
    ReviewEvent,
    ReviewItem,
    UserDeliveryProfile,
)


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """Cria engine de teste (arquivo SQLite para permitir várias conexões)"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'reviews.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Cria sessão de teste e faz os repositórios usarem o mesmo banco"""
    factory = sessionmaker(bind=db_engine)
    session = factory()

    with patch("database.repos.SessionLocal", factory):
        yield session

    session.rollback()
    session.close()


@pytest.fixture(scope="function")
def fake_redis():
    """Cria instância fake do Redis para testes"""
    redis = FakeRedis(decode_responses=True)
    yield redis
    redis.flushall()


@pytest.fixture(scope="function")
def mock_redis_client(fake_redis):
    """Substitui o redis_client dos módulos que guardam estado no Redis"""
    with patch("core.callback_cache.redis_client", fake_redis), patch(
        "core.dispatch_lock.redis_client", fake_redis
    ):
        yield fake_redis


@pytest.fixture
def make_profile(db_session):
    """Factory de perfis de entrega"""

    def _make(user_id: str = "user-1", **overrides) -> UserDeliveryProfile:
        values = {
            "user_id": user_id,
            "telegram_chat_id": 987654321,
            "timezone": "UTC",
            "preferred_window_start": "00:00",
            "preferred_window_end": "23:59",
            "daily_limit": 20,
            "paused": False,
        }
        values.update(overrides)
        profile = UserDeliveryProfile(**values)
        db_session.add(profile)
        db_session.commit()
        db_session.refresh(profile)
        return profile

    return _make


@pytest.fixture
def make_item(db_session):
    """Factory de itens de revisão"""

    def _make(
        user_id: str = "user-1", word_id: str = "word-1", **overrides
    ) -> ReviewItem:
        values = {
            "user_id": user_id,
            "word_id": word_id,
            "delivery_state": DeliveryState.DUE.value,
            "next_review_at": utcnow() - timedelta(minutes=1),
            "interval_minutes": 1440,
            "review_count": 0,
            "is_active": True,
        }
        values.update(overrides)
        item = ReviewItem(**values)
        db_session.add(item)
        db_session.commit()
        db_session.refresh(item)
        return item

    return _make


@pytest.fixture
def make_event(db_session):
    """Factory de eventos de revisão"""

    def _make(user_id: str = "user-1", **overrides) -> ReviewEvent:
        values = {
            "user_id": user_id,
            "word_id": "word-x",
            "difficulty": "good",
            "reviewed_at": utcnow(),
            "source": "channel",
            "message_id": "1",
        }
        values.update(overrides)
        event = ReviewEvent(**values)
        db_session.add(event)
        db_session.commit()
        return event

    return _make


@pytest.fixture
def fetch_item(db_session):
    """Lê o item direto do banco, sem cache de sessão"""

    def _fetch(user_id: str = "user-1", word_id: str = "word-1") -> ReviewItem:
        db_session.expire_all()
        return (
            db_session.query(ReviewItem)
            .filter(ReviewItem.user_id == user_id, ReviewItem.word_id == word_id)
            .one()
        )

    return _fetch


@pytest.fixture
def count_events(db_session):
    def _count(**filters) -> int:
        db_session.expire_all()
        return db_session.query(ReviewEvent).filter_by(**filters).count()

    return _count


@pytest.fixture
def mock_channel():
    """Canal fake: ``send`` devolve sempre o message_id 555"""
    channel = AsyncMock()
    channel.send = AsyncMock(return_value="555")
    channel.edit_keyboard = AsyncMock(return_value=None)
    channel.acknowledge = AsyncMock(return_value=None)
    return channel


@pytest.fixture
def no_sleep():
    """Sleep assíncrono que só registra os atrasos pedidos"""
    delays = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep


@pytest.fixture
def telegram_callback_query():
    """Callback query do Telegram para testes"""
    return {
        "id": "cbq-123",
        "from": {
            "id": 987654321,
            "is_bot": False,
            "first_name": "Test",
            "username": "testuser",
        },
        "message": {
            "message_id": 555,
            "date": int(datetime.utcnow().timestamp()),
            "chat": {"id": 987654321, "type": "private"},
        },
        "data": "rv:tok:g",
    }
