"""
services/notifier.py
--------------------
Event notifier: broadcasts execution outcomes to the operator.

Publishing is fire-and-forget. Executions run in a worker thread, so the
Telegram notifier hands the send coroutine to the bot's event loop and
never waits for delivery.
"""

import asyncio
from concurrent.futures import Future
from typing import Optional

from utils.logger import get_logger

logger = get_logger(__name__)

EVENT_EXECUTED = "recurring_payment_executed"
EVENT_FAILED = "recurring_payment_failed"


class EventNotifier:
    """Base notifier; only logs the event."""

    def publish(self, event_name: str, payload: dict) -> None:
        logger.info(f"Event {event_name}: {payload}")


class TelegramNotifier(EventNotifier):
    """
    Sends each event as a Telegram message to every whitelisted operator.

    Args:
        bot: A telegram.Bot.
        chat_ids: Operator chat IDs (ALLOWED_USER_IDS).
        loop: The event loop the bot runs on; can be bound later with bind_loop().
    """

    def __init__(self, bot, chat_ids: list[int], loop: Optional[asyncio.AbstractEventLoop] = None):
        self._bot = bot
        self._chat_ids = list(chat_ids)
        self._loop = loop

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def publish(self, event_name: str, payload: dict) -> None:
        super().publish(event_name, payload)
        if not self._chat_ids:
            return
        if self._loop is None or self._loop.is_closed():
            logger.warning(f"Dropping {event_name} notification: bot event loop not available")
            return

        text = self.format_event(event_name, payload)
        for chat_id in self._chat_ids:
            future = asyncio.run_coroutine_threadsafe(
                self._bot.send_message(chat_id=chat_id, text=text), self._loop
            )
            future.add_done_callback(lambda f, cid=chat_id: self._log_delivery(f, cid))

    @staticmethod
    def format_event(event_name: str, payload: dict) -> str:
        """Render an event as a short operator message."""
        name = payload.get("contactName", f"contact #{payload.get('contactId')}")
        amount = payload.get("amountSat")
        schedule = payload.get("recurringPaymentId")
        if event_name == EVENT_EXECUTED:
            return (
                f"⚡ Recurring payment #{schedule} sent\n"
                f"  👤 {name}\n"
                f"  💰 {amount} sats\n"
                f"  🔖 {payload.get('paymentId')}"
            )
        if event_name == EVENT_FAILED:
            return (
                f"⚠️ Recurring payment #{schedule} failed\n"
                f"  👤 {name}\n"
                f"  💰 {amount} sats\n"
                f"  ❌ {payload.get('error')}"
            )
        return f"{event_name}: {payload}"

    @staticmethod
    def _log_delivery(future: Future, chat_id: int) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Failed to notify {chat_id}: {error}")
