"""
main.py
-------
Entry point for Lightning Autopay.

Responsibilities:
    - Initialize the database connection pool and schema.
    - Store the configured phoenixd node as the active connection on first run.
    - Configure and start the operator bot with all handlers.
    - Start the recurring payment scheduler on the bot's job queue.
"""

import asyncio

from telegram import BotCommand
from telegram.ext import Application, CommandHandler

from config import ALLOWED_USER_IDS, SCHEDULER_INTERVAL_SECONDS, TELEGRAM_BOT_TOKEN
from db.connection import close_pool, init_pool
from db.init_db import create_tables
from handlers.connection_handler import (
    add_connection_command,
    connections_command,
    delete_connection_command,
    use_connection_command,
)
from handlers.contact_handler import (
    add_address_command,
    add_category_command,
    add_contact_command,
    categories_command,
)
from handlers.recurring_handler import (
    add_recurring_command,
    cancel_recurring_command,
    contacts_command,
    delete_recurring_command,
    execute_command,
    history_command,
    pause_command,
    recurring_command,
    resume_command,
)
from handlers.start_handler import help_command, myid_command, start_command
from services.connection_service import ConnectionService
from services.notifier import TelegramNotifier
from services.payment_executor import PaymentExecutor
from services.recurring_scheduler import RecurringScheduler
from utils.logger import get_logger

logger = get_logger(__name__)


async def post_init(application: Application) -> None:
    """Register the command menu, bind notifications and start the scheduler."""
    commands = [
        BotCommand("start", "Scheduler status"),
        BotCommand("help", "Show help"),
        BotCommand("recurring", "List recurring payments"),
        BotCommand("contacts", "Payable contacts"),
        BotCommand("add_contact", "Add a contact"),
        BotCommand("add_address", "Add an address to a contact"),
        BotCommand("categories", "List payment categories"),
        BotCommand("add_category", "Add a payment category"),
        BotCommand("connections", "List node connections"),
        BotCommand("add_connection", "Add a node connection"),
        BotCommand("use_connection", "Switch the active node"),
        BotCommand("delete_connection", "Delete a node connection"),
        BotCommand("add_recurring", "Add a recurring payment"),
        BotCommand("pause", "Pause a recurring payment"),
        BotCommand("resume", "Resume a recurring payment"),
        BotCommand("cancel_recurring", "Cancel a recurring payment"),
        BotCommand("delete_recurring", "Delete a recurring payment"),
        BotCommand("execute", "Pay a recurring payment now"),
        BotCommand("history", "Execution history"),
        BotCommand("myid", "Your Telegram ID"),
    ]
    await application.bot.set_my_commands(commands)

    application.bot_data["notifier"].bind_loop(asyncio.get_running_loop())
    application.bot_data["scheduler"].start_scheduler(application.job_queue, SCHEDULER_INTERVAL_SECONDS)
    logger.info("Bot commands registered, scheduler started.")


async def post_shutdown(application: Application) -> None:
    application.bot_data["scheduler"].stop_scheduler()


def main() -> None:
    """Initialize and run the bot."""

    # ── 1. Database setup ─────────────────────────────────
    logger.info("Initializing database...")
    init_pool()
    create_tables()
    ConnectionService().seed_default()

    # ── 2. Build the Telegram application ─────────────────
    logger.info("Starting operator bot...")
    app = (
        Application.builder()
        .token(TELEGRAM_BOT_TOKEN)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )
    if app.job_queue is None:
        raise RuntimeError('JobQueue unavailable: install "python-telegram-bot[job-queue]"')
    if not ALLOWED_USER_IDS:
        logger.warning("ALLOWED_USER_IDS is empty: every command will be refused.")

    # ── 3. Wire the payment engine ────────────────────────
    notifier = TelegramNotifier(app.bot, ALLOWED_USER_IDS)
    scheduler = RecurringScheduler(executor=PaymentExecutor(notifier=notifier))
    app.bot_data["notifier"] = notifier
    app.bot_data["scheduler"] = scheduler

    # ── 4. Register command handlers ──────────────────────
    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("myid", myid_command))
    app.add_handler(CommandHandler("recurring", recurring_command))
    app.add_handler(CommandHandler("contacts", contacts_command))
    app.add_handler(CommandHandler("add_contact", add_contact_command))
    app.add_handler(CommandHandler("add_address", add_address_command))
    app.add_handler(CommandHandler("categories", categories_command))
    app.add_handler(CommandHandler("add_category", add_category_command))
    app.add_handler(CommandHandler("connections", connections_command))
    app.add_handler(CommandHandler("add_connection", add_connection_command))
    app.add_handler(CommandHandler("use_connection", use_connection_command))
    app.add_handler(CommandHandler("delete_connection", delete_connection_command))
    app.add_handler(CommandHandler("add_recurring", add_recurring_command))
    app.add_handler(CommandHandler("pause", pause_command))
    app.add_handler(CommandHandler("resume", resume_command))
    app.add_handler(CommandHandler("cancel_recurring", cancel_recurring_command))
    app.add_handler(CommandHandler("delete_recurring", delete_recurring_command))
    app.add_handler(CommandHandler("execute", execute_command))
    app.add_handler(CommandHandler("history", history_command))

    # ── 5. Start polling ──────────────────────────────────
    logger.info("⚡ Lightning Autopay is running! Press Ctrl+C to stop.")
    app.run_polling(drop_pending_updates=True, allowed_updates=["message"])

    # ── 6. Cleanup on shutdown ────────────────────────────
    close_pool()
    logger.info("Lightning Autopay stopped.")


if __name__ == "__main__":
    main()
