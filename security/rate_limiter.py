"""
security/rate_limiter.py
-------------------------
Rate limiting middleware for operator commands.
Limits the number of commands a user can send within a time window.
"""

import time
from collections import defaultdict
from functools import wraps
from typing import Callable

from telegram import Update
from telegram.ext import ContextTypes

from config import RATE_LIMIT_MESSAGES, RATE_LIMIT_WINDOW_SECONDS
from utils.logger import get_logger

logger = get_logger(__name__)

# {user_id: [timestamp1, timestamp2, ...]}
_user_timestamps: dict[int, list[float]] = defaultdict(list)


def _cleanup(user_id: int, now: float) -> None:
    """Remove expired timestamps for a user."""
    cutoff = now - RATE_LIMIT_WINDOW_SECONDS
    _user_timestamps[user_id] = [t for t in _user_timestamps[user_id] if t > cutoff]


def is_rate_limited(user_id: int, now: float | None = None) -> bool:
    """
    Record one command for `user_id` and tell whether it exceeds the limit.
    Refused commands are not recorded.
    """
    now = time.time() if now is None else now
    _cleanup(user_id, now)
    if len(_user_timestamps[user_id]) >= RATE_LIMIT_MESSAGES:
        return True
    _user_timestamps[user_id].append(now)
    return False


def rate_limited(func: Callable):
    """
    Decorator that enforces rate limiting per user.

    Configuration (via .env):
        RATE_LIMIT_MESSAGES: Max commands per window (default: 30).
        RATE_LIMIT_WINDOW_SECONDS: Window duration in seconds (default: 60).
    """
    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        user = update.effective_user
        if not user:
            return

        if is_rate_limited(user.id):
            logger.warning(f"⚠️ Rate limit hit for user {user.id}")
            await update.message.reply_text("⚠️ Too many commands. Please wait a moment and try again.")
            return

        return await func(update, context, *args, **kwargs)

    return wrapper
