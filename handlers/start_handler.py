"""
handlers/start_handler.py
--------------------------
Handles /start, /help and /myid commands.
"""

from telegram import Update
from telegram.ext import ContextTypes

from security.auth import authorized_only
from security.rate_limiter import rate_limited
from utils.logger import get_logger

logger = get_logger(__name__)

HELP_TEXT = """
⚡ *Lightning Autopay*
Recurring payments from your phoenixd node.

*🔧 Commands:*
/recurring - recurring payments of the active node (`all` for every node)
/contacts - addresses usable for recurring payments
/add\\_contact - add a contact
/add\\_address - add an address to a contact
/categories - list payment categories
/add\\_category - add a payment category
/connections - node connections (active one marked)
/add\\_connection - add a node connection
/use\\_connection - switch the active node
/delete\\_connection - delete an inactive node connection
/add\\_recurring - add a recurring payment
/pause - pause a recurring payment
/resume - resume a recurring payment
/cancel\\_recurring - cancel a recurring payment
/delete\\_recurring - delete a recurring payment and its history
/execute - pay a recurring payment now
/history - latest executions of a recurring payment
/myid - show your Telegram ID
"""


@authorized_only
@rate_limited
async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start command - show welcome message."""
    user = update.effective_user
    logger.info(f"Operator {user.id} ({user.first_name}) started the bot.")
    scheduler = context.bot_data.get("scheduler")
    state = "running ✅" if scheduler and scheduler.running else "stopped ⏹️"
    await update.message.reply_text(
        f"Hello {user.first_name}! 👋\n"
        f"Recurring payment scheduler: {state}\n\n"
        f"Type /help to see all commands."
    )


@authorized_only
@rate_limited
async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help command - show all available commands."""
    await update.message.reply_text(HELP_TEXT, parse_mode="Markdown")


async def myid_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /myid command - show the user's Telegram ID for whitelisting."""
    user = update.effective_user
    if not user:
        return
    await update.message.reply_text(
        f"🆔 Your Telegram ID: `{user.id}`\n"
        f"Add it to `ALLOWED_USER_IDS` in `.env` to operate this bot.",
        parse_mode="Markdown",
    )
