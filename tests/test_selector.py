"""
Testes do seletor de revisões due (pausa, janela e limite diário)
"""

from dataclasses import replace
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from core.errors import UpstreamUnavailable
from core.scheduling import DeliveryState
from services.reviews import DeliverySettings, DueReviewSelector

NOW = datetime(2025, 1, 15, 12, 0)


@pytest.fixture
def due_items(make_item):
    """Três itens vencidos, do mais antigo ao mais recente"""
    for offset, word_id in enumerate(["w1", "w2", "w3"]):
        make_item(word_id=word_id, next_review_at=NOW - timedelta(hours=3 - offset))


class TestGetUserDueReviews:
    def test_returns_due_items_in_order(self, make_profile, due_items):
        make_profile()

        items = DueReviewSelector().get_user_due_reviews("user-1", NOW)

        assert [i.word_id for i in items] == ["w1", "w2", "w3"]

    def test_paused_user_gets_nothing(self, make_profile, due_items):
        make_profile(paused=True)

        assert DueReviewSelector().get_user_due_reviews("user-1", NOW) == []

    def test_outside_window_gets_nothing(self, make_profile, due_items):
        make_profile(preferred_window_start="18:00", preferred_window_end="20:00")

        assert DueReviewSelector().get_user_due_reviews("user-1", NOW) == []

    def test_window_uses_user_timezone(self, make_profile, due_items):
        # 12:00 UTC = 21:00 em Tóquio
        make_profile(
            timezone="Asia/Tokyo",
            preferred_window_start="20:00",
            preferred_window_end="22:00",
        )

        assert len(DueReviewSelector().get_user_due_reviews("user-1", NOW)) == 3

    def test_daily_limit_reached(self, make_profile, make_event, due_items):
        make_profile(daily_limit=2)
        make_event(reviewed_at=NOW - timedelta(hours=1))
        make_event(reviewed_at=NOW - timedelta(hours=2))

        assert DueReviewSelector().get_user_due_reviews("user-1", NOW) == []

    def test_truncated_to_remaining_budget(self, make_profile, make_event, due_items):
        make_profile(daily_limit=3)
        make_event(reviewed_at=NOW - timedelta(hours=1))

        items = DueReviewSelector().get_user_due_reviews("user-1", NOW)

        assert [i.word_id for i in items] == ["w1", "w2"]

    def test_in_flight_items_use_budget(self, make_profile, make_item, due_items):
        make_profile(daily_limit=4)
        make_item(word_id="w9", delivery_state=DeliveryState.AWAITING_RESPONSE.value)
        make_item(word_id="w8", delivery_state=DeliveryState.SENDING.value)

        items = DueReviewSelector().get_user_due_reviews("user-1", NOW)

        assert [i.word_id for i in items] == ["w1", "w2"]

    def test_timeouts_and_yesterday_do_not_count(self, make_profile, make_event, due_items):
        make_profile(daily_limit=1)
        make_event(source="timeout", difficulty="hard", reviewed_at=NOW)
        make_event(reviewed_at=NOW - timedelta(days=1))

        assert len(DueReviewSelector().get_user_due_reviews("user-1", NOW)) == 1

    def test_missing_profile_uses_defaults(self, due_items):
        # Padrão 09:00-21:00 UTC com limite 20
        assert len(DueReviewSelector().get_user_due_reviews("user-1", NOW)) == 3
        late = NOW.replace(hour=22)
        assert DueReviewSelector().get_user_due_reviews("user-1", late) == []

    def test_no_due_items(self, make_profile):
        make_profile()

        assert DueReviewSelector().get_user_due_reviews("user-1", NOW) == []

    def test_preloaded_settings_skip_profile_lookup(self, make_profile, due_items):
        make_profile()
        selector = DueReviewSelector()
        paused = replace(DeliverySettings.defaults("user-1"), paused=True)

        with patch.object(selector, "load_settings") as mock_load:
            items = selector.get_user_due_reviews("user-1", NOW, delivery=paused)

        assert items == []
        mock_load.assert_not_called()


class TestFailOpen:
    def make_selector(self, items=None, profile=None, events=None):
        items_repo = MagicMock()
        items_repo.list_due_for_user_sync.return_value = items or ["a", "b"]
        items_repo.count_in_flight_sync.return_value = 0
        profiles_repo = MagicMock()
        profiles_repo.get_profile_sync.return_value = profile
        events_repo = events or MagicMock()
        events_repo.count_completed_between_sync.return_value = 0
        return DueReviewSelector(items_repo, profiles_repo, events_repo)

    def test_profile_error_falls_back_to_defaults(self):
        selector = self.make_selector()
        selector.profiles.get_profile_sync.side_effect = OperationalError("x", {}, None)

        assert selector.get_user_due_reviews("user-1", NOW) == ["a", "b"]

    def test_load_settings_raises_upstream(self):
        selector = self.make_selector()
        selector.profiles.get_profile_sync.side_effect = OperationalError("x", {}, None)

        with pytest.raises(UpstreamUnavailable):
            selector.load_settings("user-1")

    def test_invalid_timezone_treated_as_within_window(self):
        profile = MagicMock(
            timezone="Nowhere/Invalid",
            preferred_window_start="09:00",
            preferred_window_end="10:00",
            daily_limit=20,
            paused=False,
            telegram_chat_id=1,
        )
        selector = self.make_selector(profile=profile)

        # Janela e limite falham com ValueError; ambos liberam a entrega
        assert selector.get_user_due_reviews("user-1", NOW) == ["a", "b"]

    def test_count_error_treated_as_below_limit(self):
        selector = self.make_selector()
        selector.events.count_completed_between_sync.side_effect = OperationalError(
            "x", {}, None
        )

        assert selector.get_user_due_reviews("user-1", NOW) == ["a", "b"]
        assert selector.has_reached_daily_limit(DeliverySettings.defaults("user-1"), NOW) is False

    def test_items_error_returns_empty(self):
        selector = self.make_selector()
        selector.items.list_due_for_user_sync.side_effect = OperationalError("x", {}, None)

        assert selector.get_user_due_reviews("user-1", NOW) == []


class TestEligibleUsers:
    def test_lists_users_with_due_items(self, make_item):
        make_item(user_id="a", next_review_at=NOW - timedelta(hours=1))
        make_item(user_id="b", next_review_at=NOW + timedelta(hours=1))

        assert DueReviewSelector().get_eligible_users(NOW) == ["a"]


class TestDeliverySettings:
    def test_defaults(self):
        delivery = DeliverySettings.from_profile("user-1", None)

        assert delivery.timezone == "UTC"
        assert delivery.window_start == "09:00"
        assert delivery.window_end == "21:00"
        assert delivery.daily_limit == 20
        assert delivery.paused is False
        assert delivery.chat_id is None

    def test_zero_limit_is_kept(self):
        profile = MagicMock(
            timezone="UTC",
            preferred_window_start="00:00",
            preferred_window_end="23:59",
            daily_limit=0,
            paused=False,
            telegram_chat_id=7,
        )

        assert DeliverySettings.from_profile("user-1", profile).daily_limit == 0
