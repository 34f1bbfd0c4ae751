"""
security/auth.py
-----------------
Authentication middleware for the operator bot.
Only whitelisted Telegram accounts may manage or trigger payments.
"""

from functools import wraps
from typing import Callable

from telegram import Update
from telegram.ext import ContextTypes

from config import ALLOWED_USER_IDS
from utils.logger import get_logger

logger = get_logger(__name__)


def authorized_only(func: Callable):
    """
    Decorator that restricts a handler to whitelisted operators only.

    Usage:
        @authorized_only
        async def my_handler(update, context):
            ...

    Behavior:
        - If ALLOWED_USER_IDS is empty, every guarded command is refused.
          /myid stays unguarded so an operator can look up their ID.
        - Unauthorized attempts are logged.
    """
    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        user = update.effective_user
        if not user:
            return

        if user.id not in ALLOWED_USER_IDS:
            logger.warning(
                f"🚫 Unauthorized access attempt: user_id={user.id}, "
                f"username={user.username}, name={user.first_name}"
            )
            await update.message.reply_text("⛔ This bot is private.")
            return

        return await func(update, context, *args, **kwargs)

    return wrapper
