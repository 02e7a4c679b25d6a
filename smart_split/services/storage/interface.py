"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the flat JSON file for a real database later
2. Keep business logic decoupled from storage implementation
3. Add caching layers transparently

The interface is intentionally simple - we're not building a full ORM.
save_* methods are upserts keyed by record id.

NOTE: No implementation is required to coordinate concurrent writers.
Callers read a full snapshot, compute, and write back.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from smart_split.models.audit import AuditEvent
from smart_split.models.ledger import (
    BankAccount,
    BankTransaction,
    Group,
    Invitation,
    LedgerSnapshot,
    Settlement,
    Transaction,
    User,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (JSON file, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def load_snapshot(self) -> LedgerSnapshot:
        """
        Read users, transactions, settlements and groups in one go.

        Balance computations consume this; they never read piecemeal.
        """
        pass

    # -- Users ---------------------------------------------------------------

    @abstractmethod
    async def save_user(self, user: User) -> bool:
        """
        Insert or replace a user.

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def list_users(self) -> list[User]:
        pass

    # -- Transactions --------------------------------------------------------

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> bool:
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: str) -> bool:
        """
        Delete a transaction by ID.

        Returns:
            True if a record was removed
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: Optional[str] = None,
        group_id: Optional[str] = None,
    ) -> list[Transaction]:
        """
        List transactions, optionally narrowed down.

        Args:
            user_id: Only transactions the user paid for or takes part in
            group_id: Only transactions tagged with this group
        """
        pass

    # -- Settlements ---------------------------------------------------------

    @abstractmethod
    async def save_settlement(self, settlement: Settlement) -> bool:
        pass

    @abstractmethod
    async def list_settlements(self, user_id: Optional[str] = None) -> list[Settlement]:
        """List settlements, optionally only those paid by or to a user."""
        pass

    # -- Groups --------------------------------------------------------------

    @abstractmethod
    async def save_group(self, group: Group) -> bool:
        pass

    @abstractmethod
    async def get_group(self, group_id: str) -> Optional[Group]:
        pass

    @abstractmethod
    async def list_groups(self, member_id: Optional[str] = None) -> list[Group]:
        pass

    # -- Invitations ---------------------------------------------------------

    @abstractmethod
    async def save_invitation(self, invitation: Invitation) -> bool:
        pass

    @abstractmethod
    async def get_invitation(self, invitation_id: str) -> Optional[Invitation]:
        pass

    @abstractmethod
    async def list_invitations(self) -> list[Invitation]:
        pass

    # -- Bank data -----------------------------------------------------------

    @abstractmethod
    async def save_bank_account(self, account: BankAccount) -> bool:
        pass

    @abstractmethod
    async def get_bank_account(self, account_id: str) -> Optional[BankAccount]:
        pass

    @abstractmethod
    async def delete_bank_account(self, account_id: str) -> bool:
        pass

    @abstractmethod
    async def list_bank_accounts(self, user_id: str) -> list[BankAccount]:
        pass

    @abstractmethod
    async def save_bank_transactions(self, rows: list[BankTransaction]) -> int:
        """
        Insert or replace several bank rows in one write.

        Returns:
            Number of rows written
        """
        pass

    @abstractmethod
    async def save_bank_import(
        self,
        transaction: Transaction,
        row: BankTransaction,
    ) -> bool:
        """
        Save an imported expense and its marked bank row in one write.

        Either both records land or neither does.
        """
        pass

    @abstractmethod
    async def get_bank_transaction(self, row_id: str) -> Optional[BankTransaction]:
        pass

    @abstractmethod
    async def list_bank_transactions(self, account_id: str) -> list[BankTransaction]:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one request).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not reach the storage backend."""
    pass
