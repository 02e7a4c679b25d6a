"""
Data Models Package

This package contains all Pydantic models used in Smart Split.
All data flowing through the system must conform to these schemas.
"""

from smart_split.models.ledger import (
    BankAccount,
    BankTransaction,
    BankTransactionType,
    Group,
    GroupMember,
    GroupRole,
    Invitation,
    InvitationStatus,
    LedgerSnapshot,
    NewGroup,
    NewSettlement,
    NewTransaction,
    Participant,
    Settlement,
    Transaction,
    User,
    ValidationIssue,
    ValidationResult,
)
from smart_split.models.balance import (
    BalanceReport,
    BalanceSummary,
    GroupDetail,
    PairwiseBalance,
)
from smart_split.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "BankAccount",
    "BankTransaction",
    "BankTransactionType",
    "Group",
    "GroupMember",
    "GroupRole",
    "Invitation",
    "InvitationStatus",
    "LedgerSnapshot",
    "NewGroup",
    "NewSettlement",
    "NewTransaction",
    "Participant",
    "Settlement",
    "Transaction",
    "User",
    "ValidationIssue",
    "ValidationResult",
    # Balance models
    "BalanceReport",
    "BalanceSummary",
    "GroupDetail",
    "PairwiseBalance",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
