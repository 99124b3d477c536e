"""
Storage Services Package

Provides the abstract repository contract the engines consume and an
in-memory implementation for tests and dry runs. The product database
adapter lives outside this package and implements the same interfaces.
"""

from recurring_engine.services.storage.interface import (
    AuditStorageInterface,
    BillingRepository,
    ConflictError,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RuleRecord,
    RuleRepository,
    StorageError,
)
from recurring_engine.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRepository,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BillingRepository",
    "RuleRecord",
    "RuleRepository",
    # Exceptions
    "ConflictError",
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRepository",
]
