"""
repositories/contact_repo.py
-----------------------------
Contacts, their addresses and payment categories.
"""

from typing import Optional

from db.connection import get_connection, release_connection, transaction
from models.contact import AUTOPAY_ADDRESS_TYPES, Contact, ContactAddress
from utils.logger import get_logger

logger = get_logger(__name__)


class ContactRepository:
    """Repository for the contacts, contact_addresses and payment_categories tables."""

    def get_by_id(self, contact_id: int) -> Optional[Contact]:
        """
        Fetch a contact with all of its addresses.

        Returns:
            Contact or None if it does not exist.
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT id, name FROM contacts WHERE id = %s;", (contact_id,))
                row = cur.fetchone()
                if not row:
                    return None
                contact = Contact(id=row[0], name=row[1])
                cur.execute(
                    "SELECT id, contact_id, address, type FROM contact_addresses "
                    "WHERE contact_id = %s ORDER BY id;",
                    (contact_id,),
                )
                contact.addresses = [
                    ContactAddress(id=r[0], contact_id=r[1], address=r[2], type=r[3])
                    for r in cur.fetchall()
                ]
                return contact
        finally:
            release_connection(conn)

    def get_payable(self) -> list[Contact]:
        """Contacts that have at least one address usable for recurring payments."""
        sql = """
            SELECT c.id, c.name, a.id, a.address, a.type
            FROM contacts c
            JOIN contact_addresses a ON a.contact_id = c.id
            WHERE a.type = ANY(%s)
            ORDER BY c.name, a.id;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (list(AUTOPAY_ADDRESS_TYPES),))
                contacts: dict[int, Contact] = {}
                for row in cur.fetchall():
                    contact = contacts.setdefault(row[0], Contact(id=row[0], name=row[1]))
                    contact.addresses.append(
                        ContactAddress(id=row[2], contact_id=row[0], address=row[3], type=row[4])
                    )
                return list(contacts.values())
        finally:
            release_connection(conn)

    def category_exists(self, category_id: int) -> bool:
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 FROM payment_categories WHERE id = %s;", (category_id,))
                return cur.fetchone() is not None
        finally:
            release_connection(conn)

    def get_categories(self) -> list[tuple[int, str]]:
        """All payment categories as (id, name), alphabetically."""
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT id, name FROM payment_categories ORDER BY name;")
                return [(row[0], row[1]) for row in cur.fetchall()]
        finally:
            release_connection(conn)

    # ── CREATE ────────────────────────────────────────────

    def add_contact(self, name: str) -> Contact:
        """Insert a contact without addresses."""
        with transaction() as cur:
            cur.execute("INSERT INTO contacts (name) VALUES (%s) RETURNING id;", (name,))
            contact_id = cur.fetchone()[0]
        logger.info(f"Contact #{contact_id} added: {name}")
        return Contact(id=contact_id, name=name)

    def add_address(self, contact_id: int, address: str, address_type: str) -> ContactAddress:
        """Attach an address to an existing contact."""
        with transaction() as cur:
            cur.execute(
                "INSERT INTO contact_addresses (contact_id, address, type) "
                "VALUES (%s, %s, %s) RETURNING id;",
                (contact_id, address, address_type),
            )
            address_id = cur.fetchone()[0]
        logger.info(f"Address #{address_id} [{address_type}] added to contact #{contact_id}")
        return ContactAddress(id=address_id, contact_id=contact_id, address=address, type=address_type)

    def add_category(self, name: str) -> Optional[int]:
        """
        Insert a payment category.

        Returns:
            The new category id, or None if the name is already taken.
        """
        with transaction() as cur:
            cur.execute(
                "INSERT INTO payment_categories (name) VALUES (%s) "
                "ON CONFLICT (name) DO NOTHING RETURNING id;",
                (name,),
            )
            row = cur.fetchone()
        return row[0] if row else None
