"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run against Firestore in production
2. Use in-memory storage for testing and local dry runs
3. Keep the generation engine decoupled from the store SDK

The interface is intentionally small - we're not building a full ORM.
Just the four things the ledger needs from a hierarchical document
store: list children, read collections, create documents, update fields.
No transactions, no multi-document atomic writes.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from rental_ledger.models.audit import AuditEvent
from rental_ledger.services.storage.paths import Location


class DocumentStoreInterface(ABC):
    """
    Abstract interface for hierarchical document store operations.

    Any storage implementation (Firestore, in-memory, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list_document_ids(self, collection: Location) -> list[str]:
        """
        List the ids of child documents under a collection.

        Includes documents that exist only as parents of
        sub-collections (period containers usually look like this).

        Args:
            collection: Collection location

        Returns:
            Document ids, in no particular order

        Raises:
            StorageError: If listing fails
        """
        pass

    @abstractmethod
    async def has_documents(self, collection: Location) -> bool:
        """
        Check whether a collection holds at least one document.

        Args:
            collection: Collection location

        Returns:
            True if one or more documents exist
        """
        pass

    @abstractmethod
    async def get_documents(self, collection: Location) -> list[dict[str, Any]]:
        """
        Read every document in a collection.

        Args:
            collection: Collection location

        Returns:
            Document data dicts, each with its id under "id".
            No ordering is guaranteed.

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def get_document(self, document: Location) -> Optional[dict[str, Any]]:
        """
        Read a single document.

        Args:
            document: Document location

        Returns:
            The document data with "id", or None if it doesn't exist
        """
        pass

    @abstractmethod
    async def create_document(
        self,
        collection: Location,
        data: dict[str, Any],
        document_id: Optional[str] = None,
    ) -> str:
        """
        Create a new document in a collection.

        Args:
            collection: Collection location
            data: Field values for the new document
            document_id: Caller-chosen id; generated if None

        Returns:
            The new document's id

        Raises:
            DuplicateError: If document_id is given and already exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_document(
        self,
        collection: Location,
        document_id: str,
        fields: dict[str, Any],
    ) -> None:
        """
        Update named fields on an existing document.

        Args:
            collection: Collection holding the document
            document_id: The document's id
            fields: Fields to set

        Raises:
            NotFoundError: If the document doesn't exist
            StorageError: If the write fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one generation run).

        Args:
            correlation_id: The correlation identifier

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'expense', 'property')
            entity_id: The entity's id

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Args:
            limit: Maximum number of events to return

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
