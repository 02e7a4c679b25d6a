"""
Flat JSON File Storage Implementation

DESIGN DECISION: A single JSON document is used as the storage backend because:
1. No database setup required
2. The file can be inspected and edited by hand
3. It is the same layout the web client already reads (camelCase keys)

TRADEOFFS:
- The whole document is read and written on every call
- No locking: two concurrent writers race and the last write wins
- Limited query capabilities (we filter in Python)

Writes go to a temporary file that is then renamed over the original,
so a crash mid-write never leaves half a document behind.

The implementation follows the abstract interface, so we can swap
to PostgreSQL/SQLite later without changing business logic.
"""

import json
import os
from pathlib import Path
from typing import Optional, Type, TypeVar, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from smart_split.config import get_settings
from smart_split.models.audit import AuditEvent
from smart_split.models.ledger import (
    BankAccount,
    BankTransaction,
    CamelModel,
    Group,
    Invitation,
    LedgerSnapshot,
    Settlement,
    Transaction,
    User,
)
from smart_split.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    StorageError,
)


# Top-level keys of the JSON document
USERS = "users"
TRANSACTIONS = "transactions"
GROUPS = "groups"
SETTLEMENTS = "settlements"
INVITATIONS = "invitations"
BANK_ACCOUNTS = "bankAccounts"
BANK_TRANSACTIONS = "bankTransactions"
AUDIT_LOG = "auditLog"

COLLECTIONS = (
    USERS,
    TRANSACTIONS,
    GROUPS,
    SETTLEMENTS,
    INVITATIONS,
    BANK_ACCOUNTS,
    BANK_TRANSACTIONS,
    AUDIT_LOG,
)

ModelT = TypeVar("ModelT", bound=BaseModel)

logger = structlog.get_logger(__name__)


class JsonFileClient:
    """
    Low-level JSON document wrapper.

    Creates the file on first use and provides retry logic for disk I/O.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        if path is None:
            path = get_settings().storage.data_path
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _ensure_file(self) -> None:
        """Create the data directory and an empty document if missing."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        if not self._path.exists():
            self._write_document({name: [] for name in COLLECTIONS})

    def _write_document(self, data: dict) -> None:
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self._path)

    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def read(self) -> dict:
        """
        Read the whole document.

        Missing collections are filled in as empty lists.

        Raises:
            StorageError: If the file is not a JSON object
        """
        self._ensure_file()
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except json.JSONDecodeError as e:
            raise StorageError(f"Ledger file is not valid JSON ({self._path}): {e}")

        if not isinstance(data, dict):
            raise StorageError(f"Ledger file must hold a JSON object: {self._path}")

        for name in COLLECTIONS:
            if not isinstance(data.get(name), list):
                if name in data:
                    logger.warning("collection_reset", collection=name, path=str(self._path))
                data[name] = []

        return data

    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def write(self, data: dict) -> None:
        """Replace the whole document."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._write_document(data)


class _JsonStorageBase:
    """Shared read/parse/write helpers for the JSON-backed stores."""

    def __init__(self, client: Optional[JsonFileClient] = None):
        self._client = client or JsonFileClient()

    def _load(self) -> dict:
        try:
            return self._client.read()
        except OSError as e:
            raise ConnectionError(f"Could not read ledger file: {e}")

    def _store(self, data: dict) -> None:
        try:
            self._client.write(data)
        except OSError as e:
            raise ConnectionError(f"Could not write ledger file: {e}")

    @staticmethod
    def _parse(
        model_cls: Type[ModelT],
        rows: list,
        collection: str,
    ) -> list[ModelT]:
        """Parse rows, skipping the ones that no longer fit the model."""
        items = []
        for row in rows:
            try:
                items.append(model_cls.model_validate(row))
            except ValidationError as e:
                logger.warning(
                    "skipping_malformed_record",
                    collection=collection,
                    record_id=row.get("id") if isinstance(row, dict) else None,
                    error_count=e.error_count(),
                )
        return items


class JsonLedgerStorage(_JsonStorageBase, LedgerStorageInterface):
    """
    JSON file implementation of ledger storage.

    Each collection is a list of camelCase records, one per entity.
    """

    def _all(self, collection: str, model_cls: Type[ModelT]) -> list[ModelT]:
        return self._parse(model_cls, self._load()[collection], collection)

    def _find(
        self,
        collection: str,
        model_cls: Type[ModelT],
        record_id: str,
    ) -> Optional[ModelT]:
        for row in self._load()[collection]:
            if isinstance(row, dict) and row.get("id") == record_id:
                parsed = self._parse(model_cls, [row], collection)
                return parsed[0] if parsed else None
        return None

    @staticmethod
    def _merge(data: dict, collection: str, records: list[CamelModel]) -> None:
        """
        Insert or replace records by id in the loaded document.

        Keys we don't model (e.g. a password hash owned by the auth layer)
        are kept on replace.
        """
        rows = data[collection]
        index = {
            row.get("id"): i for i, row in enumerate(rows) if isinstance(row, dict)
        }
        for record in records:
            payload = record.to_record()
            position = index.get(payload["id"])
            if position is None:
                index[payload["id"]] = len(rows)
                rows.append(payload)
            else:
                rows[position] = {**rows[position], **payload}

    def _upsert(self, collection: str, records: list[CamelModel]) -> int:
        """Insert or replace records by id in a single write."""
        try:
            data = self._load()
            self._merge(data, collection, records)
            self._store(data)
            return len(records)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save to {collection}: {e}")

    def _remove(self, collection: str, record_id: str) -> bool:
        data = self._load()
        rows = data[collection]
        for idx, row in enumerate(rows):
            if isinstance(row, dict) and row.get("id") == record_id:
                del rows[idx]
                self._store(data)
                return True
        return False

    async def load_snapshot(self) -> LedgerSnapshot:
        """One read of everything the balance engine needs."""
        data = self._load()
        return LedgerSnapshot(
            users=self._parse(User, data[USERS], USERS),
            transactions=self._parse(Transaction, data[TRANSACTIONS], TRANSACTIONS),
            settlements=self._parse(Settlement, data[SETTLEMENTS], SETTLEMENTS),
            groups=self._parse(Group, data[GROUPS], GROUPS),
        )

    async def save_user(self, user: User) -> bool:
        return self._upsert(USERS, [user]) == 1

    async def get_user(self, user_id: str) -> Optional[User]:
        return self._find(USERS, User, user_id)

    async def list_users(self) -> list[User]:
        return self._all(USERS, User)

    async def save_transaction(self, transaction: Transaction) -> bool:
        return self._upsert(TRANSACTIONS, [transaction]) == 1

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self._find(TRANSACTIONS, Transaction, transaction_id)

    async def delete_transaction(self, transaction_id: str) -> bool:
        return self._remove(TRANSACTIONS, transaction_id)

    async def list_transactions(
        self,
        user_id: Optional[str] = None,
        group_id: Optional[str] = None,
    ) -> list[Transaction]:
        transactions = self._all(TRANSACTIONS, Transaction)
        if user_id:
            transactions = [t for t in transactions if t.involves(user_id)]
        if group_id:
            transactions = [t for t in transactions if t.group_id == group_id]
        return transactions

    async def save_settlement(self, settlement: Settlement) -> bool:
        return self._upsert(SETTLEMENTS, [settlement]) == 1

    async def list_settlements(self, user_id: Optional[str] = None) -> list[Settlement]:
        settlements = self._all(SETTLEMENTS, Settlement)
        if user_id:
            settlements = [s for s in settlements if s.involves(user_id)]
        return settlements

    async def save_group(self, group: Group) -> bool:
        return self._upsert(GROUPS, [group]) == 1

    async def get_group(self, group_id: str) -> Optional[Group]:
        return self._find(GROUPS, Group, group_id)

    async def list_groups(self, member_id: Optional[str] = None) -> list[Group]:
        groups = self._all(GROUPS, Group)
        if member_id:
            groups = [g for g in groups if g.is_member(member_id)]
        return groups

    async def save_invitation(self, invitation: Invitation) -> bool:
        return self._upsert(INVITATIONS, [invitation]) == 1

    async def get_invitation(self, invitation_id: str) -> Optional[Invitation]:
        return self._find(INVITATIONS, Invitation, invitation_id)

    async def list_invitations(self) -> list[Invitation]:
        return self._all(INVITATIONS, Invitation)

    async def save_bank_account(self, account: BankAccount) -> bool:
        return self._upsert(BANK_ACCOUNTS, [account]) == 1

    async def get_bank_account(self, account_id: str) -> Optional[BankAccount]:
        return self._find(BANK_ACCOUNTS, BankAccount, account_id)

    async def delete_bank_account(self, account_id: str) -> bool:
        return self._remove(BANK_ACCOUNTS, account_id)

    async def list_bank_accounts(self, user_id: str) -> list[BankAccount]:
        return [a for a in self._all(BANK_ACCOUNTS, BankAccount) if a.user_id == user_id]

    async def save_bank_transactions(self, rows: list[BankTransaction]) -> int:
        if not rows:
            return 0
        return self._upsert(BANK_TRANSACTIONS, rows)

    async def save_bank_import(
        self,
        transaction: Transaction,
        row: BankTransaction,
    ) -> bool:
        try:
            data = self._load()
            self._merge(data, TRANSACTIONS, [transaction])
            self._merge(data, BANK_TRANSACTIONS, [row])
            self._store(data)
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save bank import {row.id}: {e}")

    async def get_bank_transaction(self, row_id: str) -> Optional[BankTransaction]:
        return self._find(BANK_TRANSACTIONS, BankTransaction, row_id)

    async def list_bank_transactions(self, account_id: str) -> list[BankTransaction]:
        rows = [
            r for r in self._all(BANK_TRANSACTIONS, BankTransaction)
            if r.account_id == account_id
        ]
        # Newest first
        rows.sort(key=lambda r: r.date, reverse=True)
        return rows


class JsonAuditStorage(_JsonStorageBase, AuditStorageInterface):
    """
    JSON file implementation of audit log storage.

    Audit events are append-only and live in the auditLog collection.
    """

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            data = self._load()
            data[AUDIT_LOG].append(event.model_dump(mode="json"))
            self._store(data)
            return True
        except Exception as e:
            # Don't raise - audit logging should not break the main flow
            logger.error(
                "audit_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    def _events(self) -> list[AuditEvent]:
        return self._parse(AuditEvent, self._load()[AUDIT_LOG], AUDIT_LOG)

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
