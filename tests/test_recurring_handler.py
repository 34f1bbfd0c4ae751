"""
Tests for the operator command layer.

Tests:
- /add_recurring argument parsing
- /execute outcomes
- Whitelist and rate limiting decorators
"""

import asyncio
from collections import defaultdict
from unittest.mock import AsyncMock, MagicMock

import pytest

import security.auth as auth
import security.rate_limiter as rate_limiter
from exceptions import ScheduleBusyError
from handlers.recurring_handler import _parse_add, execute_command
from models.execution import ExecutionResult

OPERATOR_ID = 1001


@pytest.fixture(autouse=True)
def operator(monkeypatch):
    monkeypatch.setattr(auth, "ALLOWED_USER_IDS", [OPERATOR_ID])
    monkeypatch.setattr(rate_limiter, "_user_timestamps", defaultdict(list))


def make_update(user_id=OPERATOR_ID):
    update = MagicMock()
    update.effective_user.id = user_id
    update.message.reply_text = AsyncMock()
    return update


def make_context(args, scheduler=None):
    context = MagicMock()
    context.args = args
    context.bot_data = {"scheduler": scheduler or MagicMock()}
    return context


def replies(update) -> list[str]:
    return [call.args[0] for call in update.message.reply_text.call_args_list]


class TestParseAdd:

    def test_minimal(self):
        assert _parse_add("3 | 7 | 1000 | daily") == {
            "contact_id": 3, "address_id": 7, "amount_sat": 1000,
            "frequency": "daily", "time_of_day": None,
        }

    def test_weekly_with_weekday_name(self):
        parsed = _parse_add("#3 | #7 | 5,000 | week | 18:30 | fri")
        assert parsed["frequency"] == "weekly"
        assert parsed["amount_sat"] == 5000
        assert parsed["time_of_day"] == "18:30"
        assert parsed["day_of_week"] == 5

    def test_weekly_sunday_is_zero(self):
        assert _parse_add("3 | 7 | 100 | weekly | 09:00 | sunday")["day_of_week"] == 0

    def test_monthly_day(self):
        parsed = _parse_add("4 | 9 | 21000 | monthly | 08:00 | 30")
        assert parsed["day_of_month"] == 30
        assert "day_of_week" not in parsed

    def test_short_frequency_aliases(self):
        assert _parse_add("1 | 2 | 10 | 5m")["frequency"] == "every_5_minutes"
        assert _parse_add("1 | 2 | 10 | hour")["frequency"] == "hourly"

    @pytest.mark.parametrize("text", [
        "3 | 7 | 1000",
        "x | 7 | 1000 | daily",
        "3 | 7 | lots | daily",
        "3 | 7 | 1000 | yearly",
        "3 | 7 | 1000 | weekly | 09:00 | someday",
        "3 | 7 | 1000 | monthly | 09:00 | last",
    ])
    def test_invalid(self, text):
        assert _parse_add(text) is None


class TestExecuteCommand:

    def test_success(self):
        scheduler = MagicMock()
        scheduler.execute_now.return_value = ExecutionResult(success=True, payment_id="pay-1", amount_sat=1000)
        update = make_update()

        asyncio.run(execute_command(update, make_context(["#3"], scheduler)))

        scheduler.execute_now.assert_called_once_with(3)
        assert "Paid 1000 sats" in replies(update)[-1]

    def test_failure(self):
        scheduler = MagicMock()
        scheduler.execute_now.return_value = ExecutionResult(success=False, amount_sat=1000, error="no route")
        update = make_update()

        asyncio.run(execute_command(update, make_context(["3"], scheduler)))

        assert replies(update)[-1] == "❌ Payment failed: no route"

    def test_busy(self):
        scheduler = MagicMock()
        scheduler.execute_now.side_effect = ScheduleBusyError(3)
        update = make_update()

        asyncio.run(execute_command(update, make_context(["3"], scheduler)))

        assert "already being executed" in replies(update)[-1]

    def test_missing_id(self):
        scheduler = MagicMock()
        update = make_update()

        asyncio.run(execute_command(update, make_context([], scheduler)))

        scheduler.execute_now.assert_not_called()
        assert replies(update) == ["⚠️ Usage: /execute <id>"]


class TestGuards:

    def test_unknown_user_is_refused(self):
        scheduler = MagicMock()
        update = make_update(user_id=999)

        asyncio.run(execute_command(update, make_context(["3"], scheduler)))

        scheduler.execute_now.assert_not_called()
        assert replies(update) == ["⛔ This bot is private."]

    def test_empty_whitelist_refuses_everyone(self, monkeypatch):
        monkeypatch.setattr(auth, "ALLOWED_USER_IDS", [])
        scheduler = MagicMock()
        update = make_update()

        asyncio.run(execute_command(update, make_context(["3"], scheduler)))

        scheduler.execute_now.assert_not_called()

    def test_rate_limit(self, monkeypatch):
        monkeypatch.setattr(rate_limiter, "RATE_LIMIT_MESSAGES", 2)

        assert not rate_limiter.is_rate_limited(OPERATOR_ID, now=100.0)
        assert not rate_limiter.is_rate_limited(OPERATOR_ID, now=101.0)
        assert rate_limiter.is_rate_limited(OPERATOR_ID, now=102.0)
        assert not rate_limiter.is_rate_limited(OPERATOR_ID, now=100.0 + rate_limiter.RATE_LIMIT_WINDOW_SECONDS + 1)
