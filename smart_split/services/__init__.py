"""Services package."""

from smart_split.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    JsonAuditStorage,
    JsonFileClient,
    JsonLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "JsonAuditStorage",
    "JsonFileClient",
    "JsonLedgerStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "StorageError",
]
