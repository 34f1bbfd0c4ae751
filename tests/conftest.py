"""
Pytest fixtures for ln-autopay tests.

Provides an in-memory execution ledger, a scripted payment gateway,
a controllable clock and sample contacts/schedules.
"""

import copy
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from models.connection import NodeConnection
from models.contact import BOLT12_OFFER, LIGHTNING_ADDRESS, Contact, ContactAddress
from models.execution import (
    EXECUTION_FAILED,
    EXECUTION_SUCCESS,
    PaymentResult,
    RecurringPaymentExecution,
)
from models.recurring import STATUS_ACTIVE, RecurringPayment


class FakeLedger:
    """In-memory stand-in for RecurringRepository."""

    def __init__(self):
        self.payments: dict[int, RecurringPayment] = {}
        self.executions: list[RecurringPaymentExecution] = []
        self.metadata: dict[str, dict] = {}
        self._next_id = 1

    def add(self, payment: RecurringPayment) -> RecurringPayment:
        payment.id = self._next_id
        self._next_id += 1
        self.payments[payment.id] = copy.deepcopy(payment)
        return payment

    def get_by_id(self, payment_id):
        payment = self.payments.get(payment_id)
        return copy.deepcopy(payment) if payment else None

    def get_all(self, status=None, connection_id=None, show_all=False):
        return [
            copy.deepcopy(p) for p in self.payments.values()
            if (status is None or p.status == status)
            and (show_all or p.connection_id in (connection_id, None))
        ]

    def get_due(self, now, connection_id):
        due = [
            p for p in self.payments.values()
            if p.status == STATUS_ACTIVE
            and p.next_run_at <= now
            and p.connection_id in (connection_id, None)
        ]
        return [copy.deepcopy(p) for p in sorted(due, key=lambda p: p.next_run_at)]

    def get_executions(self, payment_id, limit=50, offset=0):
        rows = [e for e in reversed(self.executions) if e.recurring_payment_id == payment_id]
        return rows[offset:offset + limit]

    def update(self, payment_id, **fields):
        payment = self.payments.get(payment_id)
        if payment is None:
            return False
        for key, value in fields.items():
            setattr(payment, key, value)
        return True

    def delete(self, payment_id):
        return self.payments.pop(payment_id, None) is not None

    def record_success(self, payment, result, executed_at, next_run_at):
        execution = self._append(payment, EXECUTION_SUCCESS, executed_at,
                                 payment_id=result.payment_id, payment_hash=result.payment_hash)
        stored = self.payments[payment.id]
        stored.last_run_at = executed_at
        stored.last_error = None
        stored.total_paid += payment.amount_sat
        stored.payment_count += 1
        stored.next_run_at = next_run_at
        link = self.metadata.setdefault(result.payment_id, {"categories": set()})
        link["contact_id"] = payment.contact_id
        link["note"] = payment.payment_message()
        if payment.category_id:
            link["categories"].add(payment.category_id)
        return execution

    def record_failure(self, payment, error_message, executed_at, next_run_at):
        execution = self._append(payment, EXECUTION_FAILED, executed_at, error_message=error_message)
        stored = self.payments[payment.id]
        stored.last_error = error_message
        if next_run_at is not None:
            stored.next_run_at = next_run_at
        return execution

    def _append(self, payment, status, executed_at, **fields):
        execution = RecurringPaymentExecution(
            recurring_payment_id=payment.id,
            status=status,
            amount_sat=payment.amount_sat,
            executed_at=executed_at,
            id=len(self.executions) + 1,
            **fields,
        )
        self.executions.append(execution)
        return execution


class FakeGateway:
    """Scripted phoenixd client. Set `*_error` to make a call raise."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.ln_address_error: Exception | None = None
        self.offer_error: Exception | None = None
        self.invoice_error: Exception | None = None
        self._counter = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return None

    def pay_ln_address(self, address, amount_sat, message=None):
        self.calls.append(("pay_ln_address", address, amount_sat, message))
        if self.ln_address_error is not None:
            raise self.ln_address_error
        return self._result(amount_sat)

    def pay_offer(self, offer, amount_sat, message=None):
        self.calls.append(("pay_offer", offer, amount_sat, message))
        if self.offer_error is not None:
            raise self.offer_error
        return self._result(amount_sat)

    def pay_invoice(self, invoice, amount_sat=None):
        self.calls.append(("pay_invoice", invoice, amount_sat))
        if self.invoice_error is not None:
            raise self.invoice_error
        return self._result(amount_sat or 0)

    def _result(self, amount_sat):
        self._counter += 1
        return PaymentResult(
            payment_id=f"pay-{self._counter}",
            payment_hash=f"hash-{self._counter}",
            recipient_amount_sat=amount_sat,
        )


class Clock:
    """Controllable UTC clock."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def clock():
    return Clock(datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def contact():
    return Contact(
        id=1,
        name="Alice",
        addresses=[
            ContactAddress(id=10, contact_id=1, address="alice@example.com", type=LIGHTNING_ADDRESS),
            ContactAddress(id=11, contact_id=1, address="lno1qcp4256ypq", type=BOLT12_OFFER),
            ContactAddress(id=12, contact_id=1, address="bc1qalice", type="bitcoin_address"),
        ],
    )


@pytest.fixture
def connection_a():
    return NodeConnection(id=1, name="home-node", url="http://phoenixd:9740", password="pw", is_active=True)


@pytest.fixture
def connection_b():
    return NodeConnection(id=2, name="backup-node", url="http://backup:9740", password="pw2", is_active=True)


@pytest.fixture
def make_payment(ledger, contact, clock):
    """Factory that stores a schedule in the ledger and returns its id."""
    def _make(**overrides) -> int:
        fields = dict(
            contact_id=contact.id,
            address_id=10,
            amount_sat=1000,
            frequency="daily",
            time_of_day="09:00",
            next_run_at=clock() - timedelta(minutes=1),
            contact=copy.deepcopy(contact),
        )
        fields.update(overrides)
        return ledger.add(RecurringPayment(**fields)).id
    return _make
