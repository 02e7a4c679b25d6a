"""
Two-Stage Transaction Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (description, participants)
- Sign checks (positive amount, non-negative shares)
- This catches malformed submissions

STAGE 2 - SEMANTIC VALIDATION:
- Shares must sum to the amount (to the paisa)
- Duplicate participants
- Unknown users
- Absurd amounts and far-future dates
- This catches splits that are well-formed but wrong

IMPORTANT: Validation NEVER silently fixes a split.
A mismatched split is rejected with both totals so the user can fix it.
"""

from collections import Counter
from collections.abc import Mapping
from datetime import timedelta
from decimal import Decimal
from typing import Any, Iterable, Optional

from smart_split.balances.engine import BALANCE_EPSILON, ZERO, to_money
from smart_split.config import get_settings
from smart_split.models.ledger import (
    NewTransaction,
    Participant,
    ValidationIssue,
    ValidationResult,
    utcnow,
)


class LedgerValidationError(Exception):
    """A write was rejected before anything was persisted."""
    pass


class SplitMismatchError(LedgerValidationError):
    """Participant shares do not add up to the transaction amount."""

    def __init__(self, total: Decimal, expected: Decimal):
        self.total = total
        self.expected = expected
        super().__init__(
            f"Total shares ({total}) must equal transaction amount ({expected})"
        )


class TransactionValidationError(LedgerValidationError):
    """A transaction failed validation. Carries every issue found."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = result.error_messages or ["Transaction is invalid"]
        super().__init__("; ".join(messages))


def _share(entry: Any) -> Decimal:
    if isinstance(entry, Mapping):
        return to_money(entry.get("share"))
    if hasattr(entry, "share"):
        return to_money(entry.share)
    return to_money(entry)


def validate_split(amount: Any, participants: Iterable[Any]) -> Decimal:
    """
    Check that participant shares sum to the amount.

    Participants may be Participant models, mappings with a "share" key,
    or bare numbers. Returns the computed total.

    Raises:
        SplitMismatchError: if |sum(shares) - amount| >= 0.01
    """
    expected = to_money(amount)
    total = sum((_share(p) for p in participants), ZERO)

    if abs(total - expected) >= BALANCE_EPSILON:
        raise SplitMismatchError(total=total, expected=expected)

    return total


def participant_issues(participants: Iterable[Participant]) -> list[ValidationIssue]:
    """
    Per-row checks every split must pass: a user on each row and no
    negative shares.
    """
    issues = []
    for index, participant in enumerate(participants):
        if not participant.user_id:
            issues.append(ValidationIssue(
                field=f"participants[{index}].user_id",
                issue_type="missing",
                message=f"Participant #{index + 1} has no user",
                severity="error",
            ))
        if participant.share < 0:
            issues.append(ValidationIssue(
                field=f"participants[{index}].share",
                issue_type="invalid_value",
                message=f"Share for participant #{index + 1} cannot be negative",
                severity="error",
            ))
    return issues


class TransactionValidator:
    """
    Validates a submitted transaction through a two-stage pipeline.

    Stage 2 only runs if stage 1 passes; there is no point checking
    whether shares sum up when some of them are negative.
    """

    def __init__(self):
        self._settings = get_settings().app

    def _validate_schema(
        self,
        transaction: NewTransaction,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if not transaction.description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
                severity="error",
                suggested_fix="Say what the money was spent on",
            ))

        if transaction.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
            ))

        if not transaction.participants:
            issues.append(ValidationIssue(
                field="participants",
                issue_type="missing",
                message="At least one participant is required",
                severity="error",
                suggested_fix="Add the people who share this expense",
            ))

        issues.extend(participant_issues(transaction.participants))

        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def _validate_semantic(
        self,
        transaction: NewTransaction,
        known_user_ids: Optional[set[str]] = None,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        try:
            validate_split(transaction.amount, transaction.participants)
        except SplitMismatchError as e:
            issues.append(ValidationIssue(
                field="participants",
                issue_type="split_mismatch",
                message=str(e),
                severity="error",
                suggested_fix=f"Adjust the shares by {e.expected - e.total}",
            ))

        counts = Counter(p.user_id for p in transaction.participants)
        for user_id, count in counts.items():
            if count > 1:
                issues.append(ValidationIssue(
                    field="participants",
                    issue_type="duplicate",
                    message=f"User {user_id} appears {count} times in the split",
                    severity="warning",
                    suggested_fix="Merge their shares into one entry",
                ))

        if known_user_ids is not None:
            people = set(counts)
            if transaction.paid_by:
                people.add(transaction.paid_by)
            for user_id in sorted(people - known_user_ids):
                issues.append(ValidationIssue(
                    field="participants",
                    issue_type="unknown_user",
                    message=f"User {user_id} is not registered",
                    severity="warning",
                ))

        # Paying for others without a share of your own is legal
        if transaction.paid_by and transaction.paid_by not in counts:
            issues.append(ValidationIssue(
                field="paid_by",
                issue_type="payer_not_participant",
                message="The payer is not part of the split",
                severity="info",
            ))

        max_amount = self._settings.max_transaction_amount
        if transaction.amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({transaction.amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        if transaction.date:
            tolerance = timedelta(days=self._settings.future_date_tolerance_days)
            if transaction.date > utcnow() + tolerance:
                issues.append(ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message=f"Date ({transaction.date.date()}) is in the future",
                    severity="warning",
                    suggested_fix="Please verify the date is correct",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def validate(
        self,
        transaction: NewTransaction,
        known_user_ids: Optional[set[str]] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            transaction: The submitted transaction (payer already resolved)
            known_user_ids: Registered user ids. If None, unknown users
                            are not reported.

        Returns:
            ValidationResult with all issues found
        """
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(transaction)
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(
                transaction, known_user_ids
            )
            all_issues.extend(semantic_issues)

        warnings = [i.message for i in all_issues if i.severity == "warning"]

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """Generate a user-friendly summary of validation results."""
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append("❌ This expense can't be saved yet:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines).strip()
