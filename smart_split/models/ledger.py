"""
Core Data Models for Smart Split

These models define the schemas for everything that lives in the ledger:
users, transactions, settlements, groups, invitations and bank data.

DESIGN DECISION: Persisted records are LENIENT, request models are STRICT.
A historical record with a missing share or amount must never poison a
balance read, so stored shapes default missing money fields to zero.
New writes go through the request models and the validator instead,
which reject bad data before anything is saved.

Records serialize with camelCase aliases (paidBy, userId, groupId, ...)
so the JSON file keeps the same layout the web client expects.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import uuid4

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
)
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Generate a record id."""
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _zero_if_missing(value: Any) -> Any:
    if value is None or value == "":
        return Decimal("0")
    return value


# Naive timestamps (e.g. bank dates like "2024-03-01") are read as UTC
UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]

# Money field that reads a missing value as zero
Amount = Annotated[Decimal, BeforeValidator(_zero_if_missing)]


class CamelModel(BaseModel):
    """Base for every model that crosses the storage or UI boundary."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_record(self) -> dict:
        """Serialize to the JSON shape used on disk and in responses."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class GroupRole(str, Enum):
    """Role of a member inside a group. Only admins can change the group."""
    ADMIN = "admin"
    MEMBER = "member"


class InvitationStatus(str, Enum):
    PENDING = "pending"       # Invitee has no account yet
    CONNECTED = "connected"   # Invitee's email matched an existing user
    ACCEPTED = "accepted"     # Invitee accepted explicitly


class BankTransactionType(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class User(CamelModel):
    """
    A person who can pay for, or take part in, a transaction.

    Identity is immutable; everything else references users by id.
    """

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=30)
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: Optional[UtcDatetime] = None


class Participant(CamelModel):
    """One user's share of a transaction."""

    user_id: Optional[str] = None
    share: Amount = Decimal("0")
    settled: bool = False


class Transaction(CamelModel):
    """
    A shared expense.

    paid_by fronted `amount`; every participant owes their `share` of it.
    When the payer is also a participant, their own share cancels out.
    """

    id: str = Field(default_factory=new_id)
    description: str = ""
    amount: Amount = Decimal("0")
    category: str = "general"
    type: str = "expense"
    paid_by: Optional[str] = None
    participants: list[Participant] = Field(default_factory=list)
    group_id: Optional[str] = None
    date: UtcDatetime = Field(default_factory=utcnow)
    created_at: UtcDatetime = Field(default_factory=utcnow)
    created_by: Optional[str] = None

    # Set when the expense was imported from a bank feed
    bank_transaction_id: Optional[str] = None

    def involves(self, user_id: str) -> bool:
        """True if the user paid for or takes part in this transaction."""
        return self.paid_by == user_id or any(
            p.user_id == user_id for p in self.participants
        )

    def share_of(self, user_id: str) -> Optional[Decimal]:
        """
        The user's total share, or None if they are not a participant.

        A user listed more than once owes the sum of their entries.
        """
        shares = [p.share for p in self.participants if p.user_id == user_id]
        if not shares:
            return None
        return sum(shares, Decimal("0"))


class Settlement(CamelModel):
    """A direct payment from paid_by to paid_to."""

    id: str = Field(default_factory=new_id)
    paid_by: Optional[str] = None
    paid_to: Optional[str] = None
    amount: Amount = Decimal("0")
    note: str = ""
    group_id: Optional[str] = None
    date: UtcDatetime = Field(default_factory=utcnow)
    created_at: UtcDatetime = Field(default_factory=utcnow)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.paid_by, self.paid_to)


class GroupMember(CamelModel):
    user_id: str = Field(..., min_length=1)
    role: GroupRole = GroupRole.MEMBER
    joined_at: UtcDatetime = Field(default_factory=utcnow)


class Group(CamelModel):
    """
    A set of users sharing expenses.

    A group owns no money. It only scopes which transactions make up
    the shared-balance view. Groups are never deleted.
    """

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    members: list[GroupMember] = Field(default_factory=list)
    created_by: Optional[str] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: Optional[UtcDatetime] = None

    def member(self, user_id: str) -> Optional[GroupMember]:
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def is_member(self, user_id: str) -> bool:
        return self.member(user_id) is not None

    def is_admin(self, user_id: str) -> bool:
        member = self.member(user_id)
        return member is not None and member.role == GroupRole.ADMIN


class Invitation(CamelModel):
    """An invitation from one user to a contact who may not have an account."""

    id: str = Field(default_factory=new_id)
    invited_by: str
    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None
    user_id: Optional[str] = None
    message: str = ""
    status: InvitationStatus = InvitationStatus.PENDING
    created_at: UtcDatetime = Field(default_factory=utcnow)
    accepted_at: Optional[UtcDatetime] = None


class BankAccount(CamelModel):
    """
    A connected bank account.

    CRITICAL: only the last four digits of the account number are kept.
    """

    id: str = Field(default_factory=new_id)
    user_id: str
    bank_name: str = Field(..., min_length=1, max_length=100)
    account_number: str = Field(..., max_length=4)
    account_type: str = "savings"
    ifsc: str = ""
    balance: Amount = Decimal("0")
    is_active: bool = True
    connected_at: UtcDatetime = Field(default_factory=utcnow)
    last_synced_at: Optional[UtcDatetime] = None


class BankTransaction(CamelModel):
    """A row from a bank feed, waiting to be imported as an expense."""

    id: str = Field(default_factory=new_id)
    account_id: str
    user_id: str
    type: BankTransactionType = BankTransactionType.DEBIT
    amount: Amount = Decimal("0")
    description: str = ""
    category: str = "other"
    date: UtcDatetime = Field(default_factory=utcnow)
    reference: str = ""
    status: str = "completed"
    is_imported: bool = False
    expense_id: Optional[str] = None


class LedgerSnapshot(BaseModel):
    """
    A point-in-time, full read of the ledger.

    Balance computations only ever consume one of these.
    """

    users: list[User] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    settlements: list[Settlement] = Field(default_factory=list)
    groups: list[Group] = Field(default_factory=list)

    def user_names(self) -> dict[str, str]:
        return {user.id: user.name for user in self.users}


# =============================================================================
# REQUEST MODELS - what callers submit before validation
# =============================================================================

class NewTransaction(BaseModel):
    """
    A transaction as submitted by a user.

    Shape only. Content rules (positive amount, shares summing to the
    amount) are enforced by the TransactionValidator so the caller gets
    every problem at once instead of the first one.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = ""
    amount: Decimal
    category: Optional[str] = None
    paid_by: Optional[str] = None
    participants: list[Participant] = Field(default_factory=list)
    group_id: Optional[str] = None
    date: Optional[UtcDatetime] = None


class NewSettlement(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    paid_to: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    note: str = Field(default="", max_length=500)
    group_id: Optional[str] = None


class NewGroup(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    members: list[GroupMember] = Field(..., min_length=1)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'split_mismatch', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (required fields, signs)
    Stage 2: Semantic validation (split sums, sanity checks)
    """

    validated_at: datetime = Field(default_factory=utcnow)

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)

    # Warnings don't block but should be shown
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def error_messages(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "error"]
