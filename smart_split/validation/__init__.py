"""Validation package."""

from smart_split.validation.validator import (
    LedgerValidationError,
    SplitMismatchError,
    TransactionValidationError,
    TransactionValidator,
    participant_issues,
    validate_split,
)

__all__ = [
    "LedgerValidationError",
    "SplitMismatchError",
    "TransactionValidationError",
    "TransactionValidator",
    "participant_issues",
    "validate_split",
]
