"""
services/recurring_service.py
------------------------------
Business logic for managing recurring payments from the operator surface.

Responsibilities:
    - Validate and create new schedules, bound to the active node connection.
    - Edit amount, address, cadence, note, category and status.
    - Format schedules, payable contacts and execution history as text.
"""

from typing import Optional

from config import DEFAULT_TIME_OF_DAY
from models.recurring import FREQUENCIES, STATUSES, RecurringPayment
from repositories.connection_repo import ConnectionRepository
from repositories.contact_repo import ContactRepository
from repositories.recurring_repo import RecurringRepository
from services.schedule_calculator import (
    DEFAULT_DAY_OF_MONTH,
    DEFAULT_DAY_OF_WEEK,
    calculate_next_run_at,
    parse_time_of_day,
)
from utils.logger import get_logger

logger = get_logger(__name__)

FREQUENCY_LABELS = {
    "every_minute": "every minute",
    "every_5_minutes": "every 5 minutes",
    "every_15_minutes": "every 15 minutes",
    "every_30_minutes": "every 30 minutes",
    "hourly": "hourly",
    "daily": "daily",
    "weekly": "weekly",
    "monthly": "monthly",
}

_CADENCE_FIELDS = ("frequency", "time_of_day", "day_of_week", "day_of_month")


class RecurringService:
    """
    Handles all operator-facing logic for recurring payments.

    Validation errors raise ValueError; unknown schedules, contacts or
    categories raise LookupError.
    """

    def __init__(
        self,
        repo: Optional[RecurringRepository] = None,
        contact_repo: Optional[ContactRepository] = None,
        connection_repo: Optional[ConnectionRepository] = None,
    ):
        self.repo = repo or RecurringRepository()
        self.contact_repo = contact_repo or ContactRepository()
        self.connection_repo = connection_repo or ConnectionRepository()

    # ── CREATE ────────────────────────────────────────────

    def create(
        self,
        contact_id: int,
        address_id: int,
        amount_sat: int,
        frequency: str,
        time_of_day: Optional[str] = None,
        day_of_week: Optional[int] = None,
        day_of_month: Optional[int] = None,
        note: Optional[str] = None,
        category_id: Optional[int] = None,
    ) -> RecurringPayment:
        """
        Validate and save a new recurring payment.

        The schedule is tied to the currently active node connection (if
        any) and its first run is computed from now.
        """
        self._check_amount(amount_sat)
        self._check_frequency(frequency)

        contact = self.contact_repo.get_by_id(contact_id)
        if contact is None:
            raise LookupError(f"Contact #{contact_id} not found")
        self._check_address(contact, address_id)
        if category_id:
            self._check_category(category_id)

        time_of_day = time_of_day or DEFAULT_TIME_OF_DAY
        parse_time_of_day(time_of_day)
        day_of_week = (DEFAULT_DAY_OF_WEEK if day_of_week is None else day_of_week) if frequency == "weekly" else None
        day_of_month = (DEFAULT_DAY_OF_MONTH if day_of_month is None else day_of_month) if frequency == "monthly" else None

        active = self.connection_repo.get_active()
        payment = RecurringPayment(
            contact_id=contact_id,
            address_id=address_id,
            connection_id=active.id if active else None,
            amount_sat=amount_sat,
            frequency=frequency,
            day_of_week=day_of_week,
            day_of_month=day_of_month,
            time_of_day=time_of_day,
            note=note or None,
            category_id=category_id or None,
            next_run_at=calculate_next_run_at(frequency, time_of_day, day_of_week, day_of_month),
        )
        saved = self.repo.add(payment)
        saved.contact = contact
        return saved

    # ── UPDATE ────────────────────────────────────────────

    def update(self, payment_id: int, **changes) -> RecurringPayment:
        """
        Apply operator edits. Any cadence change recomputes next_run_at from now.

        Accepted keys: address_id, amount_sat, frequency, time_of_day,
        day_of_week, day_of_month, note, category_id, status.
        """
        unknown = set(changes) - {"address_id", "amount_sat", "note", "category_id", "status", *_CADENCE_FIELDS}
        if unknown:
            raise ValueError(f"Cannot update: {', '.join(sorted(unknown))}")
        existing = self._get(payment_id)
        fields: dict = {}

        if "address_id" in changes and changes["address_id"] != existing.address_id:
            self._check_address(existing.contact, changes["address_id"])
            fields["address_id"] = changes["address_id"]

        if "amount_sat" in changes:
            self._check_amount(changes["amount_sat"])
            fields["amount_sat"] = changes["amount_sat"]

        if "frequency" in changes:
            self._check_frequency(changes["frequency"])
            fields["frequency"] = changes["frequency"]

        if "time_of_day" in changes:
            parse_time_of_day(changes["time_of_day"])
            fields["time_of_day"] = changes["time_of_day"]

        for key in ("day_of_week", "day_of_month"):
            if key in changes:
                fields[key] = changes[key]

        if "note" in changes:
            fields["note"] = changes["note"] or None

        if "category_id" in changes:
            if changes["category_id"]:
                self._check_category(changes["category_id"])
            fields["category_id"] = changes["category_id"] or None

        if "status" in changes:
            if changes["status"] not in STATUSES:
                raise ValueError("Status must be active, paused, or cancelled")
            fields["status"] = changes["status"]

        if any(key in changes for key in _CADENCE_FIELDS):
            fields["next_run_at"] = calculate_next_run_at(
                fields.get("frequency", existing.frequency),
                fields.get("time_of_day", existing.time_of_day),
                fields.get("day_of_week", existing.day_of_week),
                fields.get("day_of_month", existing.day_of_month),
            )

        self.repo.update(payment_id, **fields)
        return self._get(payment_id)

    def set_status(self, payment_id: int, status: str) -> str:
        """Pause, resume or cancel a recurring payment."""
        payment = self.update(payment_id, status=status)
        labels = {"active": "resumed ▶️", "paused": "paused ⏸️", "cancelled": "cancelled ⏹️"}
        msg = f"Recurring payment #{payment_id} {labels[status]}"
        if status == "active":
            msg += f"\nNext run: {payment.next_run_at:%Y-%m-%d %H:%M} UTC"
        return msg

    # ── DELETE ────────────────────────────────────────────

    def delete_payment(self, payment_id: int) -> str:
        """Delete a recurring payment by ID."""
        deleted = self.repo.delete(payment_id)
        if deleted:
            return f"🗑️ Recurring payment #{payment_id} deleted."
        return f"⚠️ Recurring payment #{payment_id} not found."

    # ── READ ──────────────────────────────────────────────

    def list_payments(self, show_all: bool = False) -> str:
        """
        Formatted list of recurring payments for the active connection
        (plus unbound legacy ones), or of every payment with `show_all`.
        """
        active = self.connection_repo.get_active()
        payments = self.repo.get_all(connection_id=active.id if active else None, show_all=show_all)
        if not payments:
            return "📭 No recurring payments configured."

        lines = ["🔁 Recurring payments:\n"]
        for p in payments:
            lines.append(str(p))
            lines.append(
                f"    {FREQUENCY_LABELS.get(p.frequency, p.frequency)} · "
                f"paid {p.payment_count}x, {p.total_paid} sats total"
            )
            if p.last_error:
                lines.append(f"    ⚠️ last error: {p.last_error}")
        return "\n".join(lines)

    def list_contacts(self) -> str:
        """Formatted list of contact addresses usable for recurring payments."""
        contacts = self.contact_repo.get_payable()
        if not contacts:
            return "📭 No contact has a Lightning Address or BOLT12 offer."
        lines = ["👥 Payable contacts (contact | address):\n"]
        for contact in contacts:
            lines.append(f"#{contact.id} {contact.name}")
            for address in contact.addresses:
                lines.append(f"    address #{address.id} [{address.type}] {address.address}")
        return "\n".join(lines)

    def history(self, payment_id: int, limit: int = 10, offset: int = 0) -> str:
        """Formatted execution history of a payment, newest first."""
        self._get(payment_id)
        executions = self.repo.get_executions(payment_id, limit=limit, offset=offset)
        if not executions:
            return f"📭 Recurring payment #{payment_id} has not run yet."
        lines = [f"📜 Last executions of #{payment_id}:\n"]
        lines.extend(str(e) for e in executions)
        return "\n".join(lines)

    # ── VALIDATION ────────────────────────────────────────

    def _get(self, payment_id: int) -> RecurringPayment:
        payment = self.repo.get_by_id(payment_id)
        if payment is None:
            raise LookupError(f"Recurring payment #{payment_id} not found")
        return payment

    def _check_category(self, category_id: int) -> None:
        if not self.contact_repo.category_exists(category_id):
            raise LookupError(f"Category #{category_id} not found")

    @staticmethod
    def _check_amount(amount_sat) -> None:
        if not isinstance(amount_sat, int) or isinstance(amount_sat, bool) or amount_sat <= 0:
            raise ValueError("Amount must be greater than 0")

    @staticmethod
    def _check_frequency(frequency: str) -> None:
        if frequency not in FREQUENCIES:
            raise ValueError(f"Invalid frequency '{frequency}'")

    @staticmethod
    def _check_address(contact, address_id: int) -> None:
        address = contact.find_address(address_id) if contact else None
        if address is None:
            raise ValueError("Address does not belong to contact")
        if not address.supports_autopay():
            raise ValueError("Only Lightning Address or BOLT12 Offer can be used for recurring payments")
