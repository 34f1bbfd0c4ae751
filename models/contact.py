"""
models/contact.py
-----------------
Contacts and their saved payment addresses.
"""

from dataclasses import dataclass, field
from typing import Optional

LIGHTNING_ADDRESS = "lightning_address"
BOLT12_OFFER = "bolt12_offer"

# Every kind a contact address may be stored as.
ADDRESS_TYPES: tuple[str, ...] = (LIGHTNING_ADDRESS, BOLT12_OFFER, "lnurl", "node_id", "bitcoin_address")

# Address kinds that can be paid without the recipient being online to issue an invoice.
AUTOPAY_ADDRESS_TYPES: tuple[str, ...] = (LIGHTNING_ADDRESS, BOLT12_OFFER)


@dataclass
class ContactAddress:
    """A single payment address (lightning address, offer, ...) of a contact."""
    id: int
    contact_id: int
    address: str
    type: str

    def supports_autopay(self) -> bool:
        return self.type in AUTOPAY_ADDRESS_TYPES


@dataclass
class Contact:
    id: int
    name: str
    addresses: list[ContactAddress] = field(default_factory=list)

    def find_address(self, address_id: int) -> Optional[ContactAddress]:
        for address in self.addresses:
            if address.id == address_id:
                return address
        return None
