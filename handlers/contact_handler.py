"""
handlers/contact_handler.py
----------------------------
Operator commands for contacts, addresses and payment categories.
Delegates all logic to ContactService.
"""

from typing import Optional

from telegram import Update
from telegram.ext import ContextTypes

from models.contact import BOLT12_OFFER, LIGHTNING_ADDRESS
from services.contact_service import ContactService
from security.auth import authorized_only
from security.rate_limiter import rate_limited

contact_service = ContactService()

# Short spellings accepted for the address type
_TYPE_ALIASES = {
    "ln": LIGHTNING_ADDRESS, "lnaddress": LIGHTNING_ADDRESS, "address": LIGHTNING_ADDRESS,
    "offer": BOLT12_OFFER, "bolt12": BOLT12_OFFER,
    "node": "node_id", "btc": "bitcoin_address", "onchain": "bitcoin_address",
}

ADDRESS_USAGE = (
    "📝 *Add an address to a contact*\n\n"
    "*Format:*\n"
    "`/add_address contact | type | address`\n\n"
    "*Examples:*\n"
    "• `/add_address 3 | ln | bob@example.com`\n"
    "• `/add_address 3 | offer | lno1qcp4...`\n\n"
    "*Types:* lightning\\_address (ln), bolt12\\_offer (offer), lnurl, node\\_id, bitcoin\\_address\n"
    "Only Lightning Addresses and BOLT12 offers can be paid automatically."
)


def _parse_address(text: str) -> Optional[tuple[int, str, str]]:
    """Parse `contact | type | address` into (contact_id, type, address)."""
    parts = [p.strip() for p in text.split("|")]
    if len(parts) != 3 or not all(parts):
        return None
    try:
        contact_id = int(parts[0].lstrip("#"))
    except ValueError:
        return None
    address_type = parts[1].lower()
    return contact_id, _TYPE_ALIASES.get(address_type, address_type), parts[2]


@authorized_only
@rate_limited
async def add_contact_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /add_contact <name>."""
    try:
        contact = contact_service.add_contact(" ".join(context.args or []))
    except ValueError as e:
        await update.message.reply_text(f"⚠️ {e}\nUsage: /add_contact <name>")
        return
    await update.message.reply_text(
        f"👤 Contact #{contact.id} {contact.name} added.\n"
        f"Give it an address with /add_address {contact.id} | ln | user@domain.com"
    )


@authorized_only
@rate_limited
async def add_address_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /add_address contact | type | address."""
    parsed = _parse_address(" ".join(context.args or []))
    if parsed is None:
        await update.message.reply_text(ADDRESS_USAGE, parse_mode="Markdown")
        return

    contact_id, address_type, address = parsed
    try:
        saved = contact_service.add_address(contact_id, address_type, address)
    except (ValueError, LookupError) as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    msg = f"📮 Address #{saved.id} [{saved.type}] added to contact #{contact_id}."
    if not saved.supports_autopay():
        msg += "\nℹ️ This address type cannot be used for recurring payments."
    await update.message.reply_text(msg)


@authorized_only
@rate_limited
async def add_category_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /add_category <name>."""
    name = " ".join(context.args or [])
    try:
        category_id = contact_service.add_category(name)
    except ValueError as e:
        await update.message.reply_text(f"⚠️ {e}\nUsage: /add_category <name>")
        return
    await update.message.reply_text(f"🏷️ Category #{category_id} {name.strip()} added.")


@authorized_only
@rate_limited
async def categories_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /categories - list payment categories."""
    await update.message.reply_text(contact_service.list_categories())
