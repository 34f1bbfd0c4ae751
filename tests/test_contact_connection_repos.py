"""
Tests for the ContactRepository and ConnectionRepository writes.

The database is replaced by MagicMock cursors, as in test_recurring_repo.
"""

from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest

import repositories.connection_repo as connection_repo
import repositories.contact_repo as contact_repo
from repositories.connection_repo import ConnectionRepository
from repositories.contact_repo import ContactRepository

CONNECTION_ROW = (5, "Home", "http://home:9740", "pw", False, None)


def statements(cur) -> list[str]:
    return [" ".join(call.args[0].split()) for call in cur.execute.call_args_list]


def fake_transactions(monkeypatch, module, fetchone=(42,), rowcount=1):
    cursors = []

    @contextmanager
    def fake_transaction():
        cur = MagicMock()
        cur.fetchone.return_value = fetchone
        cur.rowcount = rowcount
        cursors.append(cur)
        yield cur

    monkeypatch.setattr(module, "transaction", fake_transaction)
    return cursors


class TestContactWrites:

    def test_add_contact(self, monkeypatch):
        cursors = fake_transactions(monkeypatch, contact_repo)

        contact = ContactRepository().add_contact("Bob")

        assert statements(cursors[0]) == ["INSERT INTO contacts (name) VALUES (%s) RETURNING id;"]
        assert contact.id == 42 and contact.name == "Bob" and contact.addresses == []

    def test_add_address(self, monkeypatch):
        cursors = fake_transactions(monkeypatch, contact_repo)

        address = ContactRepository().add_address(3, "bob@example.com", "lightning_address")

        assert cursors[0].execute.call_args.args[1] == (3, "bob@example.com", "lightning_address")
        assert address.id == 42
        assert address.supports_autopay()

    def test_add_category(self, monkeypatch):
        cursors = fake_transactions(monkeypatch, contact_repo)

        assert ContactRepository().add_category("Rent") == 42
        assert "ON CONFLICT (name) DO NOTHING" in statements(cursors[0])[0]

    def test_add_category_duplicate(self, monkeypatch):
        fake_transactions(monkeypatch, contact_repo, fetchone=None)

        assert ContactRepository().add_category("Rent") is None


class TestConnectionWrites:

    def test_add_is_inactive(self, monkeypatch):
        cursors = fake_transactions(monkeypatch, connection_repo, fetchone=CONNECTION_ROW)

        connection = ConnectionRepository().add("Home", "http://home:9740", "pw")

        assert "VALUES (%s, %s, %s, FALSE)" in statements(cursors[0])[0]
        assert connection.id == 5
        assert connection.is_active is False

    def test_default_only_into_empty_table(self, monkeypatch):
        row = (1, "Default node", "http://phoenixd:9740", "", True, None)
        cursors = fake_transactions(monkeypatch, connection_repo, fetchone=row)

        seeded = ConnectionRepository().add_default_if_empty("Default node", "http://phoenixd:9740")

        assert "WHERE NOT EXISTS (SELECT 1 FROM node_connections)" in statements(cursors[0])[0]
        assert seeded.is_active

    def test_default_skipped_when_rows_exist(self, monkeypatch):
        fake_transactions(monkeypatch, connection_repo, fetchone=None)

        assert ConnectionRepository().add_default_if_empty("Default node", "http://phoenixd:9740") is None

    def test_set_active_deactivates_others_first(self, monkeypatch):
        cursors = fake_transactions(monkeypatch, connection_repo)

        ConnectionRepository().set_active(5)

        assert len(cursors) == 1
        sql = statements(cursors[0])
        assert sql[0].startswith("UPDATE node_connections SET is_active = FALSE")
        assert sql[1] == "UPDATE node_connections SET is_active = TRUE WHERE id = %s;"

    def test_set_active_unknown_raises_inside_transaction(self, monkeypatch):
        fake_transactions(monkeypatch, connection_repo, rowcount=0)

        with pytest.raises(LookupError, match="Connection #9 not found"):
            ConnectionRepository().set_active(9)

    def test_delete_never_removes_active(self, monkeypatch):
        cursors = fake_transactions(monkeypatch, connection_repo, rowcount=0)

        assert ConnectionRepository().delete(1) is False
        assert "AND NOT is_active" in statements(cursors[0])[0]
