"""
services/contact_service.py
----------------------------
Business logic for contacts, their addresses and payment categories.
Validates operator input before it reaches the repository.
"""

from typing import Optional

from models.contact import ADDRESS_TYPES, BOLT12_OFFER, LIGHTNING_ADDRESS, Contact, ContactAddress
from repositories.contact_repo import ContactRepository
from utils.logger import get_logger

logger = get_logger(__name__)

MAX_NAME_LENGTH = 100
MAX_CATEGORY_LENGTH = 50


def _clean_name(name: Optional[str], limit: int) -> str:
    name = (name or "").strip()
    if not name:
        raise ValueError("Name is required")
    if len(name) > limit:
        raise ValueError(f"Name must be at most {limit} characters")
    return name


class ContactService:
    """
    Service layer for contacts and categories.

    Args:
        repo: ContactRepository (injectable for tests).
    """

    def __init__(self, repo: Optional[ContactRepository] = None):
        self.repo = repo or ContactRepository()

    def add_contact(self, name: str) -> Contact:
        """
        Create a contact.

        Raises:
            ValueError: If the name is empty or too long.
        """
        return self.repo.add_contact(_clean_name(name, MAX_NAME_LENGTH))

    def add_address(self, contact_id: int, address_type: str, address: str) -> ContactAddress:
        """
        Attach a payment address to a contact.

        Raises:
            LookupError: If the contact does not exist.
            ValueError: If the type is unknown or the address is malformed.
        """
        address = (address or "").strip()
        address_type = (address_type or "").strip().lower()
        if not address or not address_type:
            raise ValueError("Address and type are required")
        if address_type not in ADDRESS_TYPES:
            raise ValueError(f"Invalid address type: {address_type}")

        if address_type == LIGHTNING_ADDRESS:
            user, sep, domain = address.partition("@")
            if not sep or not user or "." not in domain or "@" in domain:
                raise ValueError("Invalid Lightning Address format")
            address = address.lower()
        elif address_type == BOLT12_OFFER and not address.lower().startswith("lno1"):
            raise ValueError("A BOLT12 offer starts with lno1")

        if self.repo.get_by_id(contact_id) is None:
            raise LookupError("Contact not found")
        return self.repo.add_address(contact_id, address, address_type)

    def add_category(self, name: str) -> int:
        """
        Create a payment category and return its id.

        Raises:
            ValueError: If the name is empty, too long or already used.
        """
        name = _clean_name(name, MAX_CATEGORY_LENGTH)
        category_id = self.repo.add_category(name)
        if category_id is None:
            raise ValueError("Category with this name already exists")
        logger.info(f"Category #{category_id} added: {name}")
        return category_id

    def list_categories(self) -> str:
        categories = self.repo.get_categories()
        if not categories:
            return "📭 No categories yet. Add one with /add_category <name>."
        lines = ["🏷️ Categories:\n"]
        lines.extend(f"#{category_id} {name}" for category_id, name in categories)
        return "\n".join(lines)
