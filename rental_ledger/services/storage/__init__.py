"""
Storage Services Package

Provides the path resolver, abstract interfaces and concrete storage
implementations. The ledger runs on Firestore (or in memory for tests);
audit events can additionally be kept in Google Sheets.
"""

from rental_ledger.services.storage.paths import (
    EntityKind,
    Location,
    MissingAddressParameter,
    PathResolutionError,
    UnsupportedKind,
    resolve,
)
from rental_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DocumentStoreInterface,
    DuplicateError,
    NotFoundError,
    StorageError,
)
from rental_ledger.services.storage.memory import InMemoryDocumentStore
from rental_ledger.services.storage.firestore import (
    FirestoreClient,
    FirestoreDocumentStore,
)
from rental_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
)

__all__ = [
    # Addressing
    "EntityKind",
    "Location",
    "MissingAddressParameter",
    "PathResolutionError",
    "UnsupportedKind",
    "resolve",
    # Interfaces
    "AuditStorageInterface",
    "DocumentStoreInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryDocumentStore",
    "FirestoreClient",
    "FirestoreDocumentStore",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
]
