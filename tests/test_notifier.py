"""
Tests for the event notifiers.
"""

import asyncio
import threading
from unittest.mock import AsyncMock, MagicMock

import pytest

from services.notifier import EVENT_EXECUTED, EVENT_FAILED, TelegramNotifier

PAYLOAD = {
    "type": EVENT_EXECUTED,
    "recurringPaymentId": 3,
    "contactId": 1,
    "contactName": "Alice",
    "amountSat": 1000,
    "timestamp": 1704103200000,
    "paymentId": "pay-1",
    "paymentHash": "hash-1",
}


@pytest.fixture
def running_loop():
    """An event loop running in a background thread, like the bot's."""
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()
    yield loop
    loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=5)
    loop.close()


class TestFormatEvent:

    def test_executed(self):
        text = TelegramNotifier.format_event(EVENT_EXECUTED, PAYLOAD)
        assert "#3 sent" in text
        assert "Alice" in text
        assert "1000 sats" in text
        assert "pay-1" in text

    def test_failed(self):
        text = TelegramNotifier.format_event(EVENT_FAILED, {**PAYLOAD, "error": "no route"})
        assert "failed" in text
        assert "no route" in text


class TestPublish:

    def test_sends_to_every_operator(self, running_loop):
        bot = MagicMock()
        bot.send_message = AsyncMock()
        notifier = TelegramNotifier(bot, [1, 2], loop=running_loop)

        notifier.publish(EVENT_EXECUTED, PAYLOAD)
        asyncio.run_coroutine_threadsafe(asyncio.sleep(0.05), running_loop).result(timeout=5)

        chat_ids = sorted(call.kwargs["chat_id"] for call in bot.send_message.call_args_list)
        assert chat_ids == [1, 2]

    def test_drops_without_loop(self):
        bot = MagicMock()
        notifier = TelegramNotifier(bot, [1])

        notifier.publish(EVENT_EXECUTED, PAYLOAD)

        bot.send_message.assert_not_called()

    def test_no_operators(self, running_loop):
        bot = MagicMock()
        bot.send_message = AsyncMock()
        notifier = TelegramNotifier(bot, [], loop=running_loop)

        notifier.publish(EVENT_EXECUTED, PAYLOAD)

        bot.send_message.assert_not_called()

    def test_delivery_failure_is_not_raised(self, running_loop):
        bot = MagicMock()
        bot.send_message = AsyncMock(side_effect=RuntimeError("blocked by user"))
        notifier = TelegramNotifier(bot, [1], loop=running_loop)

        notifier.publish(EVENT_EXECUTED, PAYLOAD)
        asyncio.run_coroutine_threadsafe(asyncio.sleep(0.05), running_loop).result(timeout=5)

        bot.send_message.assert_awaited_once()
