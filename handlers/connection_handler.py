"""
handlers/connection_handler.py
-------------------------------
Operator commands for the phoenixd node connections.
"""

from typing import Optional

from telegram import Update
from telegram.ext import ContextTypes

from services.connection_service import ConnectionService
from security.auth import authorized_only
from security.rate_limiter import rate_limited

connection_service = ConnectionService()

ADD_USAGE = (
    "📝 *Add a node connection*\n\n"
    "*Format:*\n"
    "`/add_connection name | url [| password]`\n\n"
    "*Example:*\n"
    "• `/add_connection Home | http://192.168.1.20:9740 | secret`\n\n"
    "Switch to it with /use\\_connection <id>."
)


def _parse_connection(text: str) -> Optional[tuple[str, str, str]]:
    """Parse `name | url [| password]`."""
    parts = [p.strip() for p in text.split("|")]
    if len(parts) not in (2, 3):
        return None
    password = parts[2] if len(parts) == 3 else ""
    return parts[0], parts[1], password


def _parse_id(context: ContextTypes.DEFAULT_TYPE) -> Optional[int]:
    if not context.args:
        return None
    try:
        return int(context.args[0].lstrip("#"))
    except ValueError:
        return None


@authorized_only
@rate_limited
async def connections_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /connections - list node connections, marking the active one."""
    await update.message.reply_text(connection_service.list_connections())


@authorized_only
@rate_limited
async def add_connection_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /add_connection name | url [| password]."""
    parsed = _parse_connection(" ".join(context.args or []))
    if parsed is None:
        await update.message.reply_text(ADD_USAGE, parse_mode="Markdown")
        return
    try:
        connection = connection_service.add_connection(*parsed)
    except ValueError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return
    await update.message.reply_text(
        f"🔌 Connection #{connection.id} {connection.name} added ({connection.url}).\n"
        f"Activate it with /use_connection {connection.id}"
    )


@authorized_only
@rate_limited
async def use_connection_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /use_connection <id> - switch the active node."""
    connection_id = _parse_id(context)
    if connection_id is None:
        await update.message.reply_text("⚠️ Usage: /use_connection <id>")
        return
    try:
        connection = connection_service.use_connection(connection_id)
    except LookupError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return
    await update.message.reply_text(f"✅ Now paying through #{connection.id} {connection.name} ({connection.url}).")


@authorized_only
@rate_limited
async def delete_connection_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /delete_connection <id>."""
    connection_id = _parse_id(context)
    if connection_id is None:
        await update.message.reply_text("⚠️ Usage: /delete_connection <id>")
        return
    try:
        msg = connection_service.delete_connection(connection_id)
    except (ValueError, LookupError) as e:
        msg = f"⚠️ {e}"
    await update.message.reply_text(msg)
