"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Currently implements a flat JSON file as the backend, but designed to be swappable.
"""

from smart_split.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from smart_split.services.storage.json_file import (
    JsonAuditStorage,
    JsonFileClient,
    JsonLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # JSON file implementation
    "JsonAuditStorage",
    "JsonFileClient",
    "JsonLedgerStorage",
]
