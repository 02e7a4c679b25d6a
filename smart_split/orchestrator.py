"""
Main Orchestrator for Smart Split

This module ties together storage, validation, the balance engine and
the audit trail, and defines the end-to-end flows for:
1. Users (register, search, profile)
2. Transactions (validate → save, delete by creator)
3. Settlements and balances (record payment, compute who owes whom)
4. Groups (create, membership, group balances)
5. Invitations and contacts
6. Bank import (connected accounts → expenses)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No transaction is saved unless its shares add up to its amount
- Only a transaction's creator may delete it
- Only group admins may change a group
- Every write is audited

Authentication lives outside this package. Every flow takes the id of
the already-authenticated user as `actor_id`.
"""

from typing import Iterable, NamedTuple, Optional, Union
from uuid import UUID

from smart_split.audit import AuditLogger, configure_logging, create_correlation_id
from smart_split.balances import calculate_group_balances, compute_balances
from smart_split.config import get_settings
from smart_split.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from smart_split.models.balance import BalanceReport, GroupDetail
from smart_split.models.ledger import (
    BankAccount,
    BankTransaction,
    Group,
    GroupMember,
    GroupRole,
    Invitation,
    InvitationStatus,
    NewGroup,
    NewSettlement,
    NewTransaction,
    Participant,
    Settlement,
    Transaction,
    User,
    utcnow,
)
from smart_split.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    JsonAuditStorage,
    JsonFileClient,
    JsonLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from smart_split.validation import (
    LedgerValidationError,
    TransactionValidationError,
    TransactionValidator,
    participant_issues,
    validate_split,
)


class AccessDeniedError(Exception):
    """The actor is not allowed to perform this action."""
    pass


class _Flow:
    """Shared plumbing: storage, audit logger, permission failures."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    async def _audit(self, event: AuditEvent) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    async def _deny(
        self,
        actor_id: str,
        entity_type: str,
        entity_id: str,
        action: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Audit the refusal, then raise AccessDeniedError."""
        if self._audit_logger:
            await self._audit_logger.log_access_denied(
                actor_id=actor_id,
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                correlation_id=correlation_id,
            )
        raise AccessDeniedError(action)


class UserFlow(_Flow):
    """User directory: registration, lookup, search and profile edits."""

    async def register_user(
        self,
        name: str,
        email: str,
        phone: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> User:
        """
        Register a new user.

        Raises:
            DuplicateError: If the email is already registered
        """
        email = email.strip().lower()
        for existing in await self._storage.list_users():
            if existing.email.lower() == email:
                raise DuplicateError(f"A user with email {email} already exists")

        user = User(name=name, email=email, phone=phone or None)
        await self._storage.save_user(user)
        await self._audit(AuditEventBuilder.user_registered(
            user_id=user.id,
            email=user.email,
            correlation_id=correlation_id,
        ))
        return user

    async def get_user(self, user_id: str) -> User:
        user = await self._storage.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        return user

    async def list_users(self) -> list[User]:
        return await self._storage.list_users()

    async def directory(self) -> dict[str, str]:
        """Map of user id to display name."""
        return {user.id: user.name for user in await self._storage.list_users()}

    async def search_users(
        self,
        query: str,
        limit: Optional[int] = None,
    ) -> list[User]:
        """Case-insensitive match on name or email, substring match on phone."""
        query = (query or "").strip()
        if not query:
            raise LedgerValidationError("Please provide a search query")

        limit = limit or get_settings().app.user_search_limit
        needle = query.lower()
        matches = [
            user for user in await self._storage.list_users()
            if needle in user.name.lower()
            or needle in user.email.lower()
            or (user.phone and query in user.phone)
        ]
        return matches[:limit]

    async def update_profile(
        self,
        actor_id: str,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> User:
        """
        Update the actor's own name and/or phone.

        An empty name keeps the current one; phone=None keeps the current
        phone, while an empty string clears it.
        """
        user = await self.get_user(actor_id)

        changed = []
        updates = {"updated_at": utcnow()}
        if name and name.strip() and name.strip() != user.name:
            updates["name"] = name.strip()
            changed.append("name")
        if phone is not None and (phone or None) != user.phone:
            updates["phone"] = phone or None
            changed.append("phone")

        updated = user.model_copy(update=updates)
        await self._storage.save_user(updated)
        await self._audit(AuditEventBuilder.profile_updated(
            user_id=actor_id,
            changed=changed,
            correlation_id=correlation_id,
        ))
        return updated


class TransactionFlow(_Flow):
    """
    Orchestrates recording shared expenses.

    Flow:
    1. Resolve payer (defaults to the actor)
    2. Check group membership if the expense is tagged with a group
    3. Validate → reject with every issue if invalid
    4. Save → audit

    Transactions are immutable once saved. The only change allowed
    afterwards is deletion by the creator.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(storage, audit_logger)
        self._validator = validator or TransactionValidator()

    async def create_transaction(
        self,
        actor_id: str,
        new_transaction: NewTransaction,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Validate and save a new transaction.

        Raises:
            TransactionValidationError: If validation finds errors
            NotFoundError: If the group does not exist
            AccessDeniedError: If the actor is not in the group
        """
        correlation_id = correlation_id or create_correlation_id()

        submitted = new_transaction.model_copy(
            update={"paid_by": new_transaction.paid_by or actor_id}
        )

        if submitted.group_id:
            group = await self._storage.get_group(submitted.group_id)
            if group is None:
                raise NotFoundError(f"Group not found: {submitted.group_id}")
            if not group.is_member(actor_id):
                await self._deny(
                    actor_id, "group", group.id,
                    "Only group members can add group expenses",
                    correlation_id,
                )

        known_user_ids = {user.id for user in await self._storage.list_users()}
        result = self._validator.validate(submitted, known_user_ids=known_user_ids)

        if not result.is_valid:
            if self._audit_logger:
                await self._audit_logger.log_transaction_rejected(
                    actor_id=actor_id,
                    issues=[
                        {"field": i.field, "type": i.issue_type, "message": i.message}
                        for i in result.issues
                    ],
                    correlation_id=correlation_id,
                )
            raise TransactionValidationError(result)

        transaction = Transaction(
            description=submitted.description,
            amount=submitted.amount,
            category=submitted.category or get_settings().app.default_category,
            paid_by=submitted.paid_by,
            participants=[p.model_copy() for p in submitted.participants],
            group_id=submitted.group_id,
            date=submitted.date or utcnow(),
            created_by=actor_id,
        )

        try:
            await self._storage.save_transaction(transaction)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="storage",
                    error_message=str(e),
                    details={"transaction_id": transaction.id},
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_transaction_created(
                transaction_id=transaction.id,
                actor_id=actor_id,
                amount=str(transaction.amount),
                participant_count=len(transaction.participants),
                group_id=transaction.group_id,
                correlation_id=correlation_id,
            )

        return transaction

    async def list_for_user(self, actor_id: str) -> list[Transaction]:
        """Transactions the actor paid for or takes part in, newest first."""
        transactions = await self._storage.list_transactions(user_id=actor_id)
        transactions.sort(key=lambda t: t.date, reverse=True)
        return transactions

    async def get_transaction(
        self,
        actor_id: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        transaction = await self._storage.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        if not transaction.involves(actor_id):
            await self._deny(
                actor_id, "transaction", transaction_id,
                "Only the payer or a participant can view this transaction",
                correlation_id,
            )
        return transaction

    async def delete_transaction(
        self,
        actor_id: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete a transaction. Only its creator may do this.

        Raises:
            NotFoundError: If the transaction does not exist
            AccessDeniedError: If the actor did not create it
        """
        transaction = await self._storage.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        if transaction.created_by != actor_id:
            await self._deny(
                actor_id, "transaction", transaction_id,
                "Only the creator can delete a transaction",
                correlation_id,
            )

        await self._storage.delete_transaction(transaction_id)
        await self._audit(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))


class SettlementFlow(_Flow):
    """Recording direct payments and computing balances."""

    async def record_settlement(
        self,
        actor_id: str,
        new_settlement: NewSettlement,
        correlation_id: Optional[UUID] = None,
    ) -> Settlement:
        """
        Record that the actor paid someone directly.

        Raises:
            LedgerValidationError: If the actor tries to pay themselves
        """
        correlation_id = correlation_id or create_correlation_id()

        if new_settlement.paid_to == actor_id:
            raise LedgerValidationError("You cannot settle up with yourself")

        settlement = Settlement(
            paid_by=actor_id,
            paid_to=new_settlement.paid_to,
            amount=new_settlement.amount,
            note=new_settlement.note,
            group_id=new_settlement.group_id,
        )

        try:
            await self._storage.save_settlement(settlement)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="storage",
                    error_message=str(e),
                    details={"settlement_id": settlement.id},
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_settlement_recorded(
                settlement_id=settlement.id,
                paid_by=actor_id,
                paid_to=settlement.paid_to,
                amount=str(settlement.amount),
                correlation_id=correlation_id,
            )

        return settlement

    async def list_for_user(self, actor_id: str) -> list[Settlement]:
        settlements = await self._storage.list_settlements(user_id=actor_id)
        settlements.sort(key=lambda s: s.date, reverse=True)
        return settlements

    async def get_balances(
        self,
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> BalanceReport:
        """
        Compute who owes the actor and whom the actor owes.

        Reads a full snapshot of the ledger; nothing is cached between calls.
        """
        snapshot = await self._storage.load_snapshot()
        report = compute_balances(actor_id, snapshot.transactions, snapshot.settlements)

        await self._audit(AuditEventBuilder.balances_computed(
            subject_id=actor_id,
            counterparty_count=len(report.balances),
            net_balance=str(report.summary.net_balance),
            correlation_id=correlation_id,
        ))
        return report


class GroupFlow(_Flow):
    """Groups scope a subset of transactions into a shared-balance view."""

    async def _get_group(self, group_id: str) -> Group:
        group = await self._storage.get_group(group_id)
        if group is None:
            raise NotFoundError(f"Group not found: {group_id}")
        return group

    async def create_group(
        self,
        actor_id: str,
        new_group: NewGroup,
        correlation_id: Optional[UUID] = None,
    ) -> Group:
        """Create a group. The creator is always an admin of it."""
        members: list[GroupMember] = []
        seen = set()
        for member in new_group.members:
            if member.user_id in seen:
                continue
            seen.add(member.user_id)
            if member.user_id == actor_id:
                member = member.model_copy(update={"role": GroupRole.ADMIN})
            members.append(member)
        if actor_id not in seen:
            members.append(GroupMember(user_id=actor_id, role=GroupRole.ADMIN))

        group = Group(
            name=new_group.name,
            description=new_group.description,
            members=members,
            created_by=actor_id,
        )
        await self._storage.save_group(group)
        await self._audit(AuditEventBuilder.group_changed(
            event_type=AuditEventType.GROUP_CREATED,
            group_id=group.id,
            actor_id=actor_id,
            description=f"Group created: {group.name}",
            details={"member_count": len(group.members)},
            correlation_id=correlation_id,
        ))
        return group

    async def list_for_user(self, actor_id: str) -> list[Group]:
        return await self._storage.list_groups(member_id=actor_id)

    async def get_group_detail(
        self,
        actor_id: str,
        group_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> GroupDetail:
        """
        The group with its transactions and per-member balances.

        Raises:
            NotFoundError: If the group does not exist
            AccessDeniedError: If the actor is not a member
        """
        group = await self._get_group(group_id)
        if not group.is_member(actor_id):
            await self._deny(
                actor_id, "group", group_id,
                "Only members can view a group",
                correlation_id,
            )

        transactions = await self._storage.list_transactions(group_id=group.id)
        balances = calculate_group_balances(group.members, transactions)

        return GroupDetail(
            **group.model_dump(),
            transactions=transactions,
            balances=balances,
        )

    async def update_group(
        self,
        actor_id: str,
        group_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Group:
        """Rename or re-describe a group. Admins only."""
        group = await self._get_group(group_id)
        if not group.is_admin(actor_id):
            await self._deny(
                actor_id, "group", group_id,
                "Only admins can update group",
                correlation_id,
            )

        updates = {"updated_at": utcnow()}
        if name is not None:
            if not name.strip():
                raise LedgerValidationError("Group name cannot be empty")
            updates["name"] = name.strip()
        if description is not None:
            updates["description"] = description.strip()

        updated = group.model_copy(update=updates)
        await self._storage.save_group(updated)
        await self._audit(AuditEventBuilder.group_changed(
            event_type=AuditEventType.GROUP_UPDATED,
            group_id=group_id,
            actor_id=actor_id,
            description=f"Group updated: {updated.name}",
            details={"fields": sorted(k for k in updates if k != "updated_at")},
            correlation_id=correlation_id,
        ))
        return updated

    async def add_member(
        self,
        actor_id: str,
        group_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Group:
        """
        Add a user to a group as a regular member. Admins only.

        Raises:
            NotFoundError: If the group or user does not exist
            AccessDeniedError: If the actor is not an admin
            DuplicateError: If the user is already a member
        """
        group = await self._get_group(group_id)
        if not group.is_admin(actor_id):
            await self._deny(
                actor_id, "group", group_id,
                "Only admins can add members",
                correlation_id,
            )
        if group.is_member(user_id):
            raise DuplicateError("Member already in group")
        if await self._storage.get_user(user_id) is None:
            raise NotFoundError(f"User not found: {user_id}")

        updated = group.model_copy(update={
            "members": [*group.members, GroupMember(user_id=user_id)],
        })
        await self._storage.save_group(updated)
        await self._audit(AuditEventBuilder.group_changed(
            event_type=AuditEventType.GROUP_MEMBER_ADDED,
            group_id=group_id,
            actor_id=actor_id,
            description="Member added to group",
            details={"user_id": user_id},
            correlation_id=correlation_id,
        ))
        return updated


class InvitationFlow(_Flow):
    """Inviting people by email/phone and tracking who is connected."""

    @staticmethod
    def _addressed_to(invitation: Invitation, user: User) -> bool:
        return (
            (invitation.email is not None and invitation.email.lower() == user.email.lower())
            or (invitation.phone is not None and invitation.phone == user.phone)
            or invitation.user_id == user.id
        )

    async def _get_user(self, user_id: str) -> User:
        user = await self._storage.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        return user

    async def invite(
        self,
        actor_id: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        name: Optional[str] = None,
        message: str = "",
        correlation_id: Optional[UUID] = None,
    ) -> Invitation:
        """
        Invite someone. If the email already belongs to a user, the two
        are connected straight away.
        """
        email = email.strip().lower() if email and email.strip() else None
        phone = phone.strip() if phone and phone.strip() else None
        name = name.strip() if name and name.strip() else None
        if not (email or phone or name):
            raise LedgerValidationError("Please provide at least email, phone, or name")

        invited_user = None
        if email:
            for user in await self._storage.list_users():
                if user.email.lower() == email:
                    invited_user = user
                    break

        invitation = Invitation(
            invited_by=actor_id,
            email=email,
            phone=phone,
            name=name,
            user_id=invited_user.id if invited_user else None,
            message=message or "",
            status=InvitationStatus.CONNECTED if invited_user else InvitationStatus.PENDING,
        )
        await self._storage.save_invitation(invitation)
        await self._audit(AuditEventBuilder.invitation_event(
            event_type=AuditEventType.INVITATION_SENT,
            invitation_id=invitation.id,
            actor_id=actor_id,
            status=invitation.status.value,
            correlation_id=correlation_id,
        ))
        return invitation

    async def list_sent(self, actor_id: str) -> list[Invitation]:
        return [i for i in await self._storage.list_invitations() if i.invited_by == actor_id]

    async def list_received(self, actor_id: str) -> list[Invitation]:
        user = await self._get_user(actor_id)
        return [
            i for i in await self._storage.list_invitations()
            if self._addressed_to(i, user)
        ]

    async def accept(
        self,
        actor_id: str,
        invitation_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Invitation:
        invitation = await self._storage.get_invitation(invitation_id)
        if invitation is None:
            raise NotFoundError(f"Invitation not found: {invitation_id}")

        user = await self._get_user(actor_id)
        if not self._addressed_to(invitation, user):
            await self._deny(
                actor_id, "invitation", invitation_id,
                "This invitation was sent to someone else",
                correlation_id,
            )

        accepted = invitation.model_copy(update={
            "user_id": actor_id,
            "status": InvitationStatus.ACCEPTED,
            "accepted_at": utcnow(),
        })
        await self._storage.save_invitation(accepted)
        await self._audit(AuditEventBuilder.invitation_event(
            event_type=AuditEventType.INVITATION_ACCEPTED,
            invitation_id=invitation_id,
            actor_id=actor_id,
            status=accepted.status.value,
            correlation_id=correlation_id,
        ))
        return accepted

    async def list_contacts(self, actor_id: str) -> list[User]:
        """Users connected to the actor through an accepted or matched invitation."""
        contact_ids: list[str] = []
        for invitation in await self._storage.list_invitations():
            if invitation.status == InvitationStatus.PENDING:
                continue
            if invitation.invited_by == actor_id and invitation.user_id:
                contact_id = invitation.user_id
            elif invitation.user_id == actor_id:
                contact_id = invitation.invited_by
            else:
                continue
            if contact_id != actor_id and contact_id not in contact_ids:
                contact_ids.append(contact_id)

        users = {user.id: user for user in await self._storage.list_users()}
        return [users[cid] for cid in contact_ids if cid in users]


class BankImportFlow(_Flow):
    """
    Connected bank accounts and importing bank rows as expenses.

    Bank rows come from an external feed; this flow never invents them.
    """

    async def _get_account(self, actor_id: str, account_id: str) -> BankAccount:
        account = await self._storage.get_bank_account(account_id)
        # Someone else's account is reported as missing, not forbidden
        if account is None or account.user_id != actor_id:
            raise NotFoundError(f"Bank account not found: {account_id}")
        return account

    async def connect_account(
        self,
        actor_id: str,
        bank_name: str,
        account_number: str,
        account_type: str = "savings",
        ifsc: str = "",
        balance: Union[int, float, str, None] = None,
        correlation_id: Optional[UUID] = None,
    ) -> BankAccount:
        """Connect an account. Only the last four digits are kept."""
        account_number = (account_number or "").strip()
        if not bank_name or not account_number:
            raise LedgerValidationError("Please provide bank name and account number")

        account = BankAccount(
            user_id=actor_id,
            bank_name=bank_name,
            account_number=account_number[-4:],
            account_type=account_type or "savings",
            ifsc=ifsc or "",
            balance=balance,
            last_synced_at=utcnow(),
        )
        await self._storage.save_bank_account(account)
        await self._audit(AuditEventBuilder.bank_event(
            event_type=AuditEventType.BANK_ACCOUNT_CONNECTED,
            entity_id=account.id,
            actor_id=actor_id,
            description=f"Bank account connected: {bank_name} ••{account.account_number}",
            correlation_id=correlation_id,
        ))
        return account

    async def list_accounts(self, actor_id: str) -> list[BankAccount]:
        return await self._storage.list_bank_accounts(actor_id)

    async def disconnect_account(
        self,
        actor_id: str,
        account_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self._get_account(actor_id, account_id)
        await self._storage.delete_bank_account(account_id)
        await self._audit(AuditEventBuilder.bank_event(
            event_type=AuditEventType.BANK_ACCOUNT_DISCONNECTED,
            entity_id=account_id,
            actor_id=actor_id,
            description="Bank account disconnected",
            correlation_id=correlation_id,
        ))

    async def record_bank_transactions(
        self,
        actor_id: str,
        account_id: str,
        rows: Iterable[dict],
        correlation_id: Optional[UUID] = None,
    ) -> list[BankTransaction]:
        """
        Store rows delivered by a bank feed for one of the actor's accounts.

        Ownership fields in the rows are ignored; rows always belong to
        the account and the actor. Import state always starts fresh.
        """
        account = await self._get_account(actor_id, account_id)

        owned_keys = {"account_id", "accountId", "user_id", "userId",
                      "is_imported", "isImported", "expense_id", "expenseId"}
        bank_rows = []
        for row in rows:
            payload = {k: v for k, v in row.items() if k not in owned_keys}
            payload.update(account_id=account.id, user_id=actor_id)
            bank_rows.append(BankTransaction.model_validate(payload))

        await self._storage.save_bank_transactions(bank_rows)
        await self._storage.save_bank_account(
            account.model_copy(update={"last_synced_at": utcnow()})
        )
        await self._audit(AuditEventBuilder.bank_event(
            event_type=AuditEventType.BANK_TRANSACTIONS_RECORDED,
            entity_id=account.id,
            actor_id=actor_id,
            description=f"{len(bank_rows)} bank transactions recorded",
            details={"count": len(bank_rows)},
            correlation_id=correlation_id,
        ))
        return bank_rows

    async def list_bank_transactions(
        self,
        actor_id: str,
        account_id: str,
    ) -> list[BankTransaction]:
        """Rows for one of the actor's accounts, newest first."""
        await self._get_account(actor_id, account_id)
        return await self._storage.list_bank_transactions(account_id)

    async def import_bank_transaction(
        self,
        actor_id: str,
        bank_transaction_id: str,
        participants: Optional[Iterable[Union[Participant, dict]]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Transaction, BankTransaction]:
        """
        Turn a bank row into an expense paid by the actor.

        Without participants the actor carries the whole amount. A custom
        split needs a user on every row, no negative shares, and shares
        that add up to the bank amount. It is checked before anything is
        written, and the expense and the marked row are saved together.

        Raises:
            NotFoundError: If the row does not exist or is not the actor's
            DuplicateError: If the row was already imported
            LedgerValidationError: If a split row has no user or a negative share
            SplitMismatchError: If the custom split does not add up
        """
        correlation_id = correlation_id or create_correlation_id()

        row = await self._storage.get_bank_transaction(bank_transaction_id)
        if row is None or row.user_id != actor_id:
            raise NotFoundError(f"Bank transaction not found: {bank_transaction_id}")
        if row.is_imported:
            raise DuplicateError("Transaction already imported")

        split = [
            p if isinstance(p, Participant) else Participant.model_validate(p)
            for p in (participants or [])
        ]

        if split:
            issues = participant_issues(split)
            if issues:
                raise LedgerValidationError("; ".join(i.message for i in issues))
            validate_split(row.amount, split)
            expense_participants = [
                Participant(
                    user_id=p.user_id,
                    share=p.share,
                    # The payer's own share is settled by definition
                    settled=p.user_id == actor_id,
                )
                for p in split
            ]
        else:
            expense_participants = [
                Participant(user_id=actor_id, share=row.amount, settled=True)
            ]

        expense = Transaction(
            description=row.description,
            amount=row.amount,
            category=row.category,
            paid_by=actor_id,
            participants=expense_participants,
            date=row.date,
            created_by=actor_id,
            bank_transaction_id=row.id,
        )
        imported = row.model_copy(update={"is_imported": True, "expense_id": expense.id})
        await self._storage.save_bank_import(expense, imported)

        await self._audit(AuditEventBuilder.bank_event(
            event_type=AuditEventType.BANK_TRANSACTION_IMPORTED,
            entity_id=row.id,
            actor_id=actor_id,
            description=f"Bank transaction imported as expense {expense.id}",
            details={"expense_id": expense.id, "participant_count": len(expense_participants)},
            correlation_id=correlation_id,
        ))
        return expense, imported


class AppComponents(NamedTuple):
    users: UserFlow
    transactions: TransactionFlow
    settlements: SettlementFlow
    groups: GroupFlow
    invitations: InvitationFlow
    bank: BankImportFlow
    storage: LedgerStorageInterface
    audit_storage: AuditStorageInterface
    audit_logger: AuditLogger


def create_app_components(
    data_path: Optional[str] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        data_path: Path to the JSON ledger file. Defaults to the
                   configured storage path.

    Returns:
        AppComponents with every flow wired to the same storage
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    client = JsonFileClient(data_path)
    storage = JsonLedgerStorage(client)
    audit_storage = JsonAuditStorage(client)
    audit_logger = AuditLogger(audit_storage)

    return AppComponents(
        users=UserFlow(storage, audit_logger),
        transactions=TransactionFlow(storage, audit_logger=audit_logger),
        settlements=SettlementFlow(storage, audit_logger),
        groups=GroupFlow(storage, audit_logger),
        invitations=InvitationFlow(storage, audit_logger),
        bank=BankImportFlow(storage, audit_logger),
        storage=storage,
        audit_storage=audit_storage,
        audit_logger=audit_logger,
    )
