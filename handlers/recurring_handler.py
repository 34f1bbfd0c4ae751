"""
handlers/recurring_handler.py
------------------------------
Operator commands for recurring payments.
Delegates to RecurringService for management and to the
RecurringScheduler (stored in bot_data) for manual executions.
"""

import asyncio
import re
from typing import Optional

from telegram import Update
from telegram.ext import ContextTypes

from exceptions import PersistenceError, ScheduleBusyError
from models.recurring import STATUS_ACTIVE, STATUS_CANCELLED, STATUS_PAUSED
from services.recurring_service import FREQUENCY_LABELS, RecurringService
from security.auth import authorized_only
from security.rate_limiter import rate_limited
from utils.logger import get_logger

logger = get_logger(__name__)
recurring_service = RecurringService()

# Accepted spellings, mapped to the stored frequency
_FREQ_MAP = {
    "minute": "every_minute", "1m": "every_minute",
    "5m": "every_5_minutes", "15m": "every_15_minutes", "30m": "every_30_minutes",
    "hour": "hourly", "day": "daily", "week": "weekly", "month": "monthly",
    **{freq: freq for freq in FREQUENCY_LABELS},
}

# 0 = Sunday, as stored
_WEEKDAYS = {
    "sun": 0, "sunday": 0, "mon": 1, "monday": 1, "tue": 2, "tuesday": 2,
    "wed": 3, "wednesday": 3, "thu": 4, "thursday": 4, "fri": 5, "friday": 5,
    "sat": 6, "saturday": 6,
}

ADD_USAGE = (
    "📝 *Add a recurring payment*\n\n"
    "*Format:*\n"
    "`/add_recurring contact | address | sats | frequency [| HH:MM] [| day]`\n\n"
    "*Examples:*\n"
    "• `/add_recurring 3 | 7 | 1000 | daily | 09:00`\n"
    "• `/add_recurring 3 | 7 | 5000 | weekly | 18:30 | fri`\n"
    "• `/add_recurring 4 | 9 | 21000 | monthly | 08:00 | 30`\n\n"
    "*Frequencies:* every\\_minute, every\\_5\\_minutes, every\\_15\\_minutes, "
    "every\\_30\\_minutes, hourly, daily, weekly, monthly\n"
    "Times are UTC. Use /contacts to find contact and address numbers."
)


def _parse_add(text: str) -> Optional[dict]:
    """
    Parse the structured /add_recurring format:
      contact | address | sats | frequency [| HH:MM] [| day]

    `day` is a weekday (name or 0-6, Sunday = 0) for weekly payments and a
    day of month (1-31) for monthly ones.
    """
    parts = [p.strip() for p in text.split("|")]
    if len(parts) < 4:
        return None

    try:
        contact_id = int(parts[0].lstrip("#"))
        address_id = int(parts[1].lstrip("#"))
        amount_sat = int(re.sub(r"[\s_,]", "", parts[2]))
    except ValueError:
        return None

    frequency = _FREQ_MAP.get(parts[3].lower())
    if not frequency:
        return None

    parsed = {
        "contact_id": contact_id,
        "address_id": address_id,
        "amount_sat": amount_sat,
        "frequency": frequency,
        "time_of_day": parts[4] if len(parts) >= 5 and parts[4] else None,
    }

    day = parts[5].lower() if len(parts) >= 6 and parts[5] else None
    if day is not None:
        if frequency == "weekly":
            if day in _WEEKDAYS:
                parsed["day_of_week"] = _WEEKDAYS[day]
            elif day.isdigit():
                parsed["day_of_week"] = int(day)
            else:
                return None
        elif frequency == "monthly":
            if not day.isdigit():
                return None
            parsed["day_of_month"] = int(day)
    return parsed


def _parse_id(context: ContextTypes.DEFAULT_TYPE) -> Optional[int]:
    if not context.args:
        return None
    try:
        return int(context.args[0].lstrip("#"))
    except ValueError:
        return None


@authorized_only
@rate_limited
async def recurring_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /recurring [all] - list recurring payments of the active node (or all)."""
    show_all = bool(context.args) and context.args[0].lower() == "all"
    await update.message.reply_text(recurring_service.list_payments(show_all=show_all))


@authorized_only
@rate_limited
async def contacts_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /contacts - list addresses usable for recurring payments."""
    await update.message.reply_text(recurring_service.list_contacts())


@authorized_only
@rate_limited
async def add_recurring_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /add_recurring - create a recurring payment."""
    if not context.args:
        await update.message.reply_text(ADD_USAGE, parse_mode="Markdown")
        return

    parsed = _parse_add(" ".join(context.args))
    if parsed is None:
        await update.message.reply_text(ADD_USAGE, parse_mode="Markdown")
        return

    try:
        saved = recurring_service.create(**parsed)
    except (ValueError, LookupError) as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    address = saved.target_address()
    await update.message.reply_text(
        f"🔁 Recurring payment added:\n"
        f"  👤 {saved.contact.name} ({address.address if address else '?'})\n"
        f"  💰 {saved.amount_sat} sats\n"
        f"  🔄 {FREQUENCY_LABELS[saved.frequency]}\n"
        f"  📅 first run: {saved.next_run_at:%Y-%m-%d %H:%M} UTC\n"
        f"  🔖 #{saved.id}"
    )


async def _change_status(update: Update, context: ContextTypes.DEFAULT_TYPE, status: str, usage: str) -> None:
    payment_id = _parse_id(context)
    if payment_id is None:
        await update.message.reply_text(f"⚠️ Usage: {usage} <id>")
        return
    try:
        msg = recurring_service.set_status(payment_id, status)
    except (ValueError, LookupError) as e:
        msg = f"⚠️ {e}"
    await update.message.reply_text(msg)


@authorized_only
@rate_limited
async def pause_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /pause <id>."""
    await _change_status(update, context, STATUS_PAUSED, "/pause")


@authorized_only
@rate_limited
async def resume_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /resume <id>."""
    await _change_status(update, context, STATUS_ACTIVE, "/resume")


@authorized_only
@rate_limited
async def cancel_recurring_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /cancel_recurring <id>."""
    await _change_status(update, context, STATUS_CANCELLED, "/cancel_recurring")


@authorized_only
@rate_limited
async def delete_recurring_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /delete_recurring <id> - delete a recurring payment and its history."""
    payment_id = _parse_id(context)
    if payment_id is None:
        await update.message.reply_text("⚠️ Usage: /delete_recurring <id>\nExample: /delete_recurring 3")
        return
    await update.message.reply_text(recurring_service.delete_payment(payment_id))


@authorized_only
@rate_limited
async def history_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /history <id> - show the latest executions."""
    payment_id = _parse_id(context)
    if payment_id is None:
        await update.message.reply_text("⚠️ Usage: /history <id>")
        return
    try:
        msg = recurring_service.history(payment_id)
    except LookupError as e:
        msg = f"⚠️ {e}"
    await update.message.reply_text(msg)


@authorized_only
@rate_limited
async def execute_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /execute <id> - pay a recurring payment right now."""
    payment_id = _parse_id(context)
    if payment_id is None:
        await update.message.reply_text("⚠️ Usage: /execute <id>")
        return

    scheduler = context.bot_data["scheduler"]
    await update.message.reply_text(f"⏳ Executing recurring payment #{payment_id}...")
    try:
        result = await asyncio.to_thread(scheduler.execute_now, payment_id)
    except (LookupError, ValueError, ScheduleBusyError) as e:
        await update.message.reply_text(f"⚠️ {e}")
        return
    except PersistenceError as e:
        logger.error(f"Manual execution of #{payment_id} could not be recorded: {e}")
        await update.message.reply_text("❌ The execution could not be recorded. Check the logs.")
        return

    if result.success:
        await update.message.reply_text(
            f"✅ Paid {result.amount_sat} sats\n🔖 {result.payment_id}"
        )
    else:
        await update.message.reply_text(f"❌ Payment failed: {result.error}")
