"""
In-Memory Document Store

A dictionary-backed implementation of DocumentStoreInterface with the
same hierarchical semantics as Firestore:
- documents are addressed by alternating collection/document segments
- a document that only has sub-collections still shows up when its
  parent collection is listed

Used by the test suite and for local dry runs without credentials.
Failures can be injected per operation and path to exercise the
partial-failure handling of the engine.
"""

import copy
from typing import Any, Optional
from uuid import uuid4

from rental_ledger.services.storage.interface import (
    DocumentStoreInterface,
    DuplicateError,
    NotFoundError,
    StorageError,
)
from rental_ledger.services.storage.paths import Location


class InMemoryDocumentStore(DocumentStoreInterface):
    """Document store kept entirely in process memory."""

    def __init__(self):
        self._documents: dict[tuple[str, ...], dict[str, Any]] = {}
        self._failures: dict[tuple[str, str], Exception] = {}

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def seed(self, collection: Location, document_id: str, data: dict[str, Any]) -> None:
        """Put a document in place synchronously (overwrites)."""
        self._require_collection(collection)
        self._documents[collection.segments + (document_id,)] = copy.deepcopy(data)

    def fail(self, operation: str, location: Location, error: Optional[Exception] = None) -> None:
        """Make `operation` on `location` raise until cleared."""
        self._failures[(operation, location.path)] = error or StorageError(
            f"Injected {operation} failure at {location.path}"
        )

    def clear_failures(self) -> None:
        self._failures.clear()

    def snapshot(self, collection: Location) -> list[dict[str, Any]]:
        """Synchronous read of a collection, sorted by id."""
        docs = [
            {**copy.deepcopy(data), "id": path[-1]}
            for path, data in self._documents.items()
            if path[:-1] == collection.segments
        ]
        return sorted(docs, key=lambda d: d["id"])

    # -------------------------------------------------------------------------
    # DocumentStoreInterface
    # -------------------------------------------------------------------------

    def _check_failure(self, operation: str, location: Location) -> None:
        error = self._failures.get((operation, location.path))
        if error is not None:
            raise error

    @staticmethod
    def _require_collection(location: Location) -> None:
        if not location.is_collection:
            raise StorageError(f"Not a collection: {location.path}")

    async def list_document_ids(self, collection: Location) -> list[str]:
        self._check_failure("list_document_ids", collection)
        self._require_collection(collection)

        depth = len(collection.segments)
        ids = {
            path[depth]
            for path in self._documents
            if len(path) > depth and path[:depth] == collection.segments
        }
        return list(ids)

    async def has_documents(self, collection: Location) -> bool:
        self._check_failure("has_documents", collection)
        self._require_collection(collection)
        return any(path[:-1] == collection.segments for path in self._documents)

    async def get_documents(self, collection: Location) -> list[dict[str, Any]]:
        self._check_failure("get_documents", collection)
        self._require_collection(collection)
        return [
            {**copy.deepcopy(data), "id": path[-1]}
            for path, data in self._documents.items()
            if path[:-1] == collection.segments
        ]

    async def get_document(self, document: Location) -> Optional[dict[str, Any]]:
        self._check_failure("get_document", document)
        if not document.is_document:
            raise StorageError(f"Not a document: {document.path}")

        data = self._documents.get(document.segments)
        if data is None:
            return None
        return {**copy.deepcopy(data), "id": document.name}

    async def create_document(
        self,
        collection: Location,
        data: dict[str, Any],
        document_id: Optional[str] = None,
    ) -> str:
        self._check_failure("create_document", collection)
        self._require_collection(collection)

        document_id = document_id or uuid4().hex
        path = collection.segments + (document_id,)
        if path in self._documents:
            raise DuplicateError(f"Document already exists: {'/'.join(path)}")

        self._documents[path] = copy.deepcopy(data)
        return document_id

    async def update_document(
        self,
        collection: Location,
        document_id: str,
        fields: dict[str, Any],
    ) -> None:
        self._check_failure("update_document", collection)
        self._require_collection(collection)

        path = collection.segments + (document_id,)
        if path not in self._documents:
            raise NotFoundError(f"Document not found: {'/'.join(path)}")
        self._documents[path].update(copy.deepcopy(fields))
