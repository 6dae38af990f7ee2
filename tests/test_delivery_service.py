"""
Testes do executor de entregas (claim -> envio -> awaiting_response)
"""

import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.errors import ChannelPermanent, ChannelRetryable
from core.retry import ChannelRetryWrapper, RetryConfig
from core.scheduling import DeliveryState
from services.reviews import ReviewContent, ReviewDeliveryService, ReviewProcessor

CONTENT = ReviewContent(recipient=987654321, text="<b>apple</b>", reply_markup=None)


@pytest.fixture
def retry(no_sleep):
    return ChannelRetryWrapper(
        RetryConfig(max_retries=2, base_delay_ms=10, max_delay_ms=100),
        sleep=no_sleep,
        rng=random.Random(0),
    )


class TestDeliverReview:
    @pytest.mark.asyncio
    async def test_successful_delivery(self, make_item, fetch_item, mock_channel, retry):
        make_item()
        service = ReviewDeliveryService(mock_channel, retry=retry)

        result = await service.deliver_review("user-1", "word-1", CONTENT)

        assert result.success is True
        assert result.message_id == "555"
        mock_channel.send.assert_awaited_once_with(987654321, "<b>apple</b>", None)
        item = fetch_item()
        assert item.delivery_state == DeliveryState.AWAITING_RESPONSE.value
        assert item.last_message_id == "555"
        assert item.last_sent_at is not None

    @pytest.mark.asyncio
    async def test_full_review_cycle(
        self, make_item, fetch_item, count_events, mock_channel, retry
    ):
        make_item()
        service = ReviewDeliveryService(mock_channel, retry=retry)

        result = await service.deliver_review("user-1", "word-1", CONTENT)
        applied = ReviewProcessor().process_rating(
            "user-1", "word-1", result.message_id, "good"
        )

        assert applied is True
        item = fetch_item()
        assert item.delivery_state == DeliveryState.SCHEDULED.value
        assert item.review_count == 1
        assert item.interval_minutes == 4320
        assert count_events(user_id="user-1", word_id="word-1") == 1

    @pytest.mark.asyncio
    async def test_item_not_claimable_is_never_sent(
        self, make_item, mock_channel, retry
    ):
        make_item(delivery_state=DeliveryState.AWAITING_RESPONSE.value)
        service = ReviewDeliveryService(mock_channel, retry=retry)

        result = await service.deliver_review("user-1", "word-1", CONTENT)

        assert result.success is False
        assert result.error == "not_claimed"
        mock_channel.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_second_delivery_does_not_resend(
        self, make_item, mock_channel, retry
    ):
        make_item()
        service = ReviewDeliveryService(mock_channel, retry=retry)

        first = await service.deliver_review("user-1", "word-1", CONTENT)
        second = await service.deliver_review("user-1", "word-1", CONTENT)

        assert first.success is True
        assert second.success is False
        assert mock_channel.send.await_count == 1

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(
        self, make_item, fetch_item, mock_channel, retry
    ):
        make_item()
        mock_channel.send.side_effect = [ChannelRetryable("502", code=502), "777"]
        service = ReviewDeliveryService(mock_channel, retry=retry)

        result = await service.deliver_review("user-1", "word-1", CONTENT)

        assert result.success is True
        assert result.message_id == "777"
        assert mock_channel.send.await_count == 2
        assert fetch_item().last_message_id == "777"

    @pytest.mark.asyncio
    async def test_exhausted_retries_roll_back_to_due(
        self, make_item, fetch_item, mock_channel, retry
    ):
        make_item()
        mock_channel.send.side_effect = ChannelRetryable("503", code=503)
        service = ReviewDeliveryService(mock_channel, retry=retry)

        result = await service.deliver_review("user-1", "word-1", CONTENT)

        assert result.success is False
        assert result.permanent is False
        assert mock_channel.send.await_count == 3
        item = fetch_item()
        assert item.delivery_state == DeliveryState.DUE.value
        assert item.last_claimed_at is None
        assert item.last_message_id is None

    @pytest.mark.asyncio
    async def test_blocked_recipient_is_permanent(
        self, make_item, fetch_item, mock_channel, retry
    ):
        make_item()
        mock_channel.send.side_effect = ChannelPermanent(
            "Telegram API error 403: Forbidden: bot was blocked by the user",
            code=403,
            description="Forbidden: bot was blocked by the user",
        )
        service = ReviewDeliveryService(mock_channel, retry=retry)

        result = await service.deliver_review("user-1", "word-1", CONTENT)

        assert result.success is False
        assert result.permanent is True
        assert result.recipient_unreachable is True
        assert mock_channel.send.await_count == 1
        assert fetch_item().delivery_state == DeliveryState.DUE.value

    @pytest.mark.asyncio
    async def test_unexpected_error_rolls_back_and_propagates(self, no_sleep):
        items = MagicMock()
        items.claim = AsyncMock(return_value=True)
        items.reset_to_due = AsyncMock(return_value=True)
        items.mark_sent = AsyncMock(side_effect=RuntimeError("db gone"))
        channel = MagicMock()
        channel.send = AsyncMock(return_value="1")
        service = ReviewDeliveryService(
            channel, items=items, retry=ChannelRetryWrapper(sleep=no_sleep)
        )

        with pytest.raises(RuntimeError):
            await service.deliver_review("user-1", "word-1", CONTENT)

        items.reset_to_due.assert_awaited_once()
        user_id, word_id, claimed_at = items.reset_to_due.await_args.args
        assert (user_id, word_id) == ("user-1", "word-1")
        # Rollback usa o mesmo instante gravado no claim
        assert items.claim.await_args.args[2] == claimed_at

    @pytest.mark.asyncio
    async def test_mark_sent_lost_race(self, no_sleep):
        items = MagicMock()
        items.claim = AsyncMock(return_value=True)
        items.mark_sent = AsyncMock(return_value=False)
        items.reset_to_due = AsyncMock()
        channel = MagicMock()
        channel.send = AsyncMock(return_value="9")
        service = ReviewDeliveryService(
            channel, items=items, retry=ChannelRetryWrapper(sleep=no_sleep)
        )

        result = await service.deliver_review("user-1", "word-1", CONTENT)

        assert result.success is False
        assert result.error == "not_sending"
        items.reset_to_due.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rollback_failure_is_logged_not_raised(self, no_sleep):
        items = MagicMock()
        items.claim = AsyncMock(return_value=True)
        items.reset_to_due = AsyncMock(side_effect=RuntimeError("db gone"))
        channel = MagicMock()
        channel.send = AsyncMock(side_effect=ChannelPermanent("bad", code=400))
        service = ReviewDeliveryService(
            channel, items=items, retry=ChannelRetryWrapper(sleep=no_sleep)
        )

        result = await service.deliver_review("user-1", "word-1", CONTENT)

        assert result.success is False
        assert result.recipient_unreachable is False
