"""
Audit Models for Smart Split

Every write to the ledger is logged for audit purposes.
This provides:
1. Traceability of who recorded which expense or payment
2. Debugging information when a balance looks wrong
3. Ability to reconstruct history after a deletion

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from smart_split.models.ledger import utcnow


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every write path in the orchestrator has its own event type.
    """
    # Users
    USER_REGISTERED = "user_registered"
    PROFILE_UPDATED = "profile_updated"

    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSACTION_REJECTED = "transaction_rejected"

    # Settlements and balances
    SETTLEMENT_RECORDED = "settlement_recorded"
    BALANCES_COMPUTED = "balances_computed"

    # Groups
    GROUP_CREATED = "group_created"
    GROUP_UPDATED = "group_updated"
    GROUP_MEMBER_ADDED = "group_member_added"

    # Invitations
    INVITATION_SENT = "invitation_sent"
    INVITATION_ACCEPTED = "invitation_accepted"

    # Bank import
    BANK_ACCOUNT_CONNECTED = "bank_account_connected"
    BANK_ACCOUNT_DISCONNECTED = "bank_account_disconnected"
    BANK_TRANSACTIONS_RECORDED = "bank_transactions_recorded"
    BANK_TRANSACTION_IMPORTED = "bank_transaction_imported"

    # Permission and system events
    ACCESS_DENIED = "access_denied"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'group', 'settlement')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Who did it
    actor_id: Optional[str] = Field(
        default=None,
        description="User who triggered the event"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., everything in one request)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(transaction, correlation_id)
        event = AuditEventBuilder.access_denied(actor_id, "group", group_id, ...)
    """

    @staticmethod
    def user_registered(
        user_id: str,
        email: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_REGISTERED,
            entity_type="user",
            entity_id=user_id,
            actor_id=user_id,
            correlation_id=correlation_id,
            description=f"User registered: {email}",
            details={"email": email},
        )

    @staticmethod
    def profile_updated(
        user_id: str,
        changed: list[str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_UPDATED,
            entity_type="user",
            entity_id=user_id,
            actor_id=user_id,
            correlation_id=correlation_id,
            description="Profile updated",
            details={"changed": changed},
        )

    @staticmethod
    def transaction_created(
        transaction_id: str,
        actor_id: str,
        amount: str,
        participant_count: int,
        group_id: Optional[str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=transaction_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Transaction recorded: {amount} split {participant_count} ways",
            details={
                "amount": amount,
                "participant_count": participant_count,
                "group_id": group_id,
            },
        )

    @staticmethod
    def transaction_rejected(
        actor_id: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Transaction rejected with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description="Transaction deleted by its creator",
        )

    @staticmethod
    def settlement_recorded(
        settlement_id: str,
        paid_by: str,
        paid_to: str,
        amount: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_RECORDED,
            entity_type="settlement",
            entity_id=settlement_id,
            actor_id=paid_by,
            correlation_id=correlation_id,
            description=f"Settlement recorded: {amount} to {paid_to}",
            details={"paid_to": paid_to, "amount": amount},
        )

    @staticmethod
    def balances_computed(
        subject_id: str,
        counterparty_count: int,
        net_balance: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCES_COMPUTED,
            severity=AuditSeverity.DEBUG,
            entity_type="user",
            entity_id=subject_id,
            actor_id=subject_id,
            correlation_id=correlation_id,
            description=f"Balances computed against {counterparty_count} users",
            details={
                "counterparty_count": counterparty_count,
                "net_balance": net_balance,
            },
        )

    @staticmethod
    def group_changed(
        event_type: AuditEventType,
        group_id: str,
        actor_id: str,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type="group",
            entity_id=group_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def invitation_event(
        event_type: AuditEventType,
        invitation_id: str,
        actor_id: str,
        status: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type="invitation",
            entity_id=invitation_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Invitation {status}",
            details={"status": status},
        )

    @staticmethod
    def bank_event(
        event_type: AuditEventType,
        entity_id: str,
        actor_id: str,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type="bank",
            entity_id=entity_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def access_denied(
        actor_id: str,
        entity_type: str,
        entity_id: str,
        action: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCESS_DENIED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Access denied: {action}",
            details={"action": action},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
