"""
models/recurring.py
-------------------
Domain model for recurring (scheduled) Lightning payments.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from models.contact import Contact, ContactAddress

FREQUENCIES: tuple[str, ...] = (
    "every_minute",
    "every_5_minutes",
    "every_15_minutes",
    "every_30_minutes",
    "hourly",
    "daily",
    "weekly",
    "monthly",
)

STATUS_ACTIVE = "active"
STATUS_PAUSED = "paused"
STATUS_CANCELLED = "cancelled"
STATUSES: tuple[str, ...] = (STATUS_ACTIVE, STATUS_PAUSED, STATUS_CANCELLED)


@dataclass
class RecurringPayment:
    """
    Represents a standing payment order to one of a contact's addresses.

    Attributes:
        id: Database primary key (None for new records).
        contact_id: Contact receiving the payments.
        address_id: Which of the contact's addresses to pay.
        amount_sat: Fixed amount per execution, in satoshis.
        frequency: One of FREQUENCIES.
        next_run_at: When the schedule is next due (UTC).
        time_of_day: "HH:MM" in UTC, used by daily/weekly/monthly.
        day_of_week: 0 (Sunday) .. 6 (Saturday), weekly only.
        day_of_month: 1 .. 31, monthly only.
        connection_id: Node connection the schedule is bound to; None runs on any.
        note: Message attached to the payment.
        category_id: Category linked to every resulting payment.
        status: 'active' | 'paused' | 'cancelled'.
        last_run_at: Last successful execution.
        last_error: Error of the last failed execution, cleared on success.
        total_paid: Cumulative satoshis paid.
        payment_count: Cumulative successful executions.
        contact: The contact with its addresses, when loaded.
    """
    contact_id: int
    address_id: int
    amount_sat: int
    frequency: str
    next_run_at: datetime
    time_of_day: str = "09:00"
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    connection_id: Optional[int] = None
    note: Optional[str] = None
    category_id: Optional[int] = None
    status: str = STATUS_ACTIVE
    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None
    total_paid: int = 0
    payment_count: int = 0
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    contact: Optional[Contact] = field(default=None, repr=False)

    def target_address(self) -> Optional[ContactAddress]:
        """Return the configured address if it still exists on the contact."""
        if self.contact is None:
            return None
        return self.contact.find_address(self.address_id)

    def payment_message(self) -> str:
        """Message sent along with each payment."""
        if self.note:
            return self.note
        name = self.contact.name if self.contact else f"contact #{self.contact_id}"
        return f"Recurring payment to {name}"

    def __str__(self) -> str:
        icon = {"active": "▶️", "paused": "⏸️", "cancelled": "⏹️"}.get(self.status, "")
        name = self.contact.name if self.contact else f"contact #{self.contact_id}"
        return (
            f"{icon} #{self.id} {name}: {self.amount_sat} sats ({self.frequency}) "
            f"- next: {self.next_run_at:%Y-%m-%d %H:%M} UTC"
        )
