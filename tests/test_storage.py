"""Tests for the JSON file storage backend."""

import asyncio
import json
from datetime import timedelta

import pytest
from decimal import Decimal
from uuid import uuid4

from smart_split.models.audit import AuditEventBuilder
from smart_split.models.ledger import (
    BankTransaction,
    Group,
    GroupMember,
    Participant,
    Settlement,
    Transaction,
    User,
)
from smart_split.services.storage import (
    JsonAuditStorage,
    JsonFileClient,
    JsonLedgerStorage,
    StorageError,
)
from smart_split.services.storage.json_file import COLLECTIONS


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "db.json"


@pytest.fixture
def client(db_path):
    return JsonFileClient(db_path)


@pytest.fixture
def storage(client):
    return JsonLedgerStorage(client)


def run(coro):
    return asyncio.run(coro)


class TestJsonFileClient:
    """Tests for the low-level document wrapper."""

    def test_creates_file_with_every_collection(self, client, db_path):
        """Test that the first read creates an empty document."""
        data = client.read()

        assert db_path.exists()
        assert set(COLLECTIONS) <= set(data)
        assert all(data[name] == [] for name in COLLECTIONS)

    def test_fills_in_missing_collections(self, client, db_path):
        """Test that an older document gains the newer collections."""
        db_path.parent.mkdir(parents=True)
        db_path.write_text(json.dumps({"users": [{"id": "u1"}], "groups": "oops"}))

        data = client.read()

        assert data["users"] == [{"id": "u1"}]
        assert data["groups"] == []
        assert data["bankTransactions"] == []

    def test_invalid_json_raises_storage_error(self, client, db_path):
        """Test that a corrupt file is reported instead of wiped."""
        db_path.parent.mkdir(parents=True)
        db_path.write_text("{not json")

        with pytest.raises(StorageError):
            client.read()
        assert db_path.read_text() == "{not json"

    def test_non_object_document_raises_storage_error(self, client, db_path):
        """Test that a top-level list is rejected."""
        db_path.parent.mkdir(parents=True)
        db_path.write_text("[]")

        with pytest.raises(StorageError):
            client.read()

    def test_write_leaves_no_temporary_file(self, client, db_path):
        """Test the atomic replace."""
        client.write({name: [] for name in COLLECTIONS})
        assert db_path.exists()
        assert not db_path.with_name(db_path.name + ".tmp").exists()


class TestJsonLedgerStorage:
    """Tests for the ledger collections."""

    def test_user_round_trip(self, storage):
        """Test saving and loading a user."""
        user = User(name="Asha", email="asha@example.com")
        run(storage.save_user(user))

        loaded = run(storage.get_user(user.id))
        assert loaded.name == "Asha"
        assert loaded.email == "asha@example.com"
        assert loaded.created_at == user.created_at
        assert run(storage.get_user("missing")) is None

    def test_records_are_stored_camel_case(self, storage, db_path):
        """Test the on-disk layout."""
        transaction = Transaction(
            description="Dinner",
            amount=Decimal("100"),
            paid_by="a",
            participants=[Participant(user_id="b", share=Decimal("100"))],
            group_id="g1",
        )
        run(storage.save_transaction(transaction))

        row = json.loads(db_path.read_text())["transactions"][0]
        assert row["paidBy"] == "a"
        assert row["groupId"] == "g1"
        assert row["participants"][0]["userId"] == "b"

    def test_save_replaces_by_id_and_keeps_unknown_keys(self, storage, db_path):
        """Test upsert semantics with fields owned by another layer."""
        user = User(name="Asha", email="asha@example.com")
        run(storage.save_user(user))

        data = json.loads(db_path.read_text())
        data["users"][0]["password"] = "hashed"
        db_path.write_text(json.dumps(data))

        run(storage.save_user(user.model_copy(update={"name": "Asha K"})))

        rows = json.loads(db_path.read_text())["users"]
        assert len(rows) == 1
        assert rows[0]["name"] == "Asha K"
        assert rows[0]["password"] == "hashed"

    def test_list_transactions_filters(self, storage):
        """Test the user and group filters."""
        grouped = Transaction(
            amount=Decimal("10"), paid_by="a",
            participants=[Participant(user_id="b", share=Decimal("10"))],
            group_id="g1",
        )
        loose = Transaction(
            amount=Decimal("10"), paid_by="c",
            participants=[Participant(user_id="c", share=Decimal("10"))],
        )
        run(storage.save_transaction(grouped))
        run(storage.save_transaction(loose))

        assert [t.id for t in run(storage.list_transactions(user_id="b"))] == [grouped.id]
        assert [t.id for t in run(storage.list_transactions(group_id="g1"))] == [grouped.id]
        assert len(run(storage.list_transactions())) == 2

    def test_delete_transaction(self, storage):
        """Test removal by id."""
        transaction = Transaction(amount=Decimal("5"), paid_by="a")
        run(storage.save_transaction(transaction))

        assert run(storage.delete_transaction(transaction.id)) is True
        assert run(storage.delete_transaction(transaction.id)) is False
        assert run(storage.get_transaction(transaction.id)) is None

    def test_malformed_rows_are_skipped(self, storage, client):
        """Test that one bad record does not break a list."""
        run(storage.save_group(Group(name="Flat", members=[GroupMember(user_id="a")])))
        data = client.read()
        data["groups"].append({"id": "broken", "members": "not-a-list"})
        client.write(data)

        groups = run(storage.list_groups())
        assert [g.name for g in groups] == ["Flat"]
        assert run(storage.get_group("broken")) is None

    def test_list_groups_by_member(self, storage):
        """Test the member filter."""
        run(storage.save_group(Group(name="Flat", members=[GroupMember(user_id="a")])))
        run(storage.save_group(Group(name="Trip", members=[GroupMember(user_id="b")])))

        assert [g.name for g in run(storage.list_groups(member_id="b"))] == ["Trip"]

    def test_load_snapshot(self, storage):
        """Test that one read returns every balance input."""
        run(storage.save_user(User(name="Asha", email="asha@example.com")))
        run(storage.save_settlement(Settlement(paid_by="a", paid_to="b", amount=Decimal("5"))))

        snapshot = run(storage.load_snapshot())
        assert len(snapshot.users) == 1
        assert len(snapshot.settlements) == 1
        assert snapshot.transactions == []

    def test_bank_transactions_newest_first(self, storage):
        """Test bulk save and ordering."""
        rows = [
            BankTransaction.model_validate({
                "accountId": "acc", "userId": "a", "amount": 10,
                "description": "old", "date": "2024-01-01T09:00:00",
            }),
            BankTransaction.model_validate({
                "accountId": "acc", "userId": "a", "amount": 20,
                "description": "new", "date": "2024-02-01T09:00:00",
            }),
        ]
        assert run(storage.save_bank_transactions(rows)) == 2
        assert run(storage.save_bank_transactions([])) == 0

        listed = run(storage.list_bank_transactions("acc"))
        assert [r.description for r in listed] == ["new", "old"]

    def test_bank_import_saves_expense_and_row_together(self, storage, monkeypatch):
        """Test that one write carries both the expense and the import mark."""
        row = BankTransaction.model_validate({
            "accountId": "acc", "userId": "a", "amount": 40, "description": "Fuel",
        })
        run(storage.save_bank_transactions([row]))
        expense = Transaction(
            amount=Decimal("40"), paid_by="a",
            participants=[Participant(user_id="a", share=Decimal("40"))],
            bank_transaction_id=row.id,
        )
        imported = row.model_copy(update={"is_imported": True, "expense_id": expense.id})

        writes = []
        original_write = JsonFileClient.write

        def counting_write(self, data):
            writes.append(data)
            return original_write(self, data)

        monkeypatch.setattr(JsonFileClient, "write", counting_write)
        assert run(storage.save_bank_import(expense, imported)) is True

        assert len(writes) == 1
        assert run(storage.get_transaction(expense.id)).bank_transaction_id == row.id
        assert run(storage.get_bank_transaction(row.id)).expense_id == expense.id



class TestJsonAuditStorage:
    """Tests for the append-only audit log."""

    def test_append_and_query(self, client):
        """Test the correlation and entity lookups."""
        audit = JsonAuditStorage(client)
        correlation_id = uuid4()

        first = AuditEventBuilder.transaction_deleted("t1", "a", correlation_id)
        second = AuditEventBuilder.settlement_recorded("s1", "a", "b", "5", correlation_id)
        second = second.model_copy(update={"timestamp": first.timestamp + timedelta(seconds=1)})
        assert run(audit.append_event(first)) is True
        assert run(audit.append_event(second)) is True

        related = run(audit.get_events_by_correlation_id(correlation_id))
        assert [e.event_id for e in related] == [first.event_id, second.event_id]

        by_entity = run(audit.get_events_by_entity("transaction", "t1"))
        assert [e.event_id for e in by_entity] == [first.event_id]

        recent = run(audit.get_recent_events(limit=1))
        assert [e.event_id for e in recent] == [second.event_id]

    def test_append_failure_returns_false(self, client, db_path):
        """Test that an unreadable log never raises into the caller."""
        db_path.parent.mkdir(parents=True)
        db_path.write_text("{not json")

        audit = JsonAuditStorage(client)
        event = AuditEventBuilder.transaction_deleted("t1", "a")
        assert run(audit.append_event(event)) is False
