"""Services package."""

from rental_ledger.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DocumentStoreInterface,
    DuplicateError,
    FirestoreClient,
    FirestoreDocumentStore,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    InMemoryDocumentStore,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DocumentStoreInterface",
    "DuplicateError",
    "FirestoreClient",
    "FirestoreDocumentStore",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "InMemoryDocumentStore",
    "NotFoundError",
    "StorageError",
]
