"""
Firestore Storage Implementation

DESIGN DECISION: Firestore is the production store because the ledger
data is naturally hierarchical (property -> expenses -> month -> items)
and Firestore addresses it the same way the path resolver does.

TRADEOFFS:
- No transactions are used (the engine relies on read-compare-write)
- Listing a collection also returns "missing" parent documents that
  only exist because they hold sub-collections. The period enumerator
  relies on this to discover months.

All Firestore exceptions are wrapped in our StorageError hierarchy so
the rest of the system never imports the SDK.
"""

from typing import Any, Optional

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from rental_ledger.config import get_settings
from rental_ledger.services.storage.interface import (
    ConnectionError,
    DocumentStoreInterface,
    DuplicateError,
    NotFoundError,
    StorageError,
)
from rental_ledger.services.storage.paths import Location


FIRESTORE_SCOPES = [
    "https://www.googleapis.com/auth/datastore",
]

# Duplicate/not-found are answers, not transient failures
_store_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type((DuplicateError, NotFoundError)),
    reraise=True,
)


class FirestoreClient:
    """
    Low-level Firestore client wrapper.

    Handles authentication and maps Locations to SDK references.
    """

    def __init__(self):
        self._client: Optional[firestore.AsyncClient] = None
        self._settings = get_settings().firestore

    def connect(self) -> firestore.AsyncClient:
        """
        Create the async Firestore client.

        Uses service account credentials when a path is configured,
        Application Default Credentials otherwise.
        """
        if self._client is None:
            try:
                credentials = None
                if self._settings.credentials_path:
                    credentials = Credentials.from_service_account_file(
                        self._settings.credentials_path,
                        scopes=FIRESTORE_SCOPES,
                    )
                self._client = firestore.AsyncClient(
                    project=self._settings.project_id,
                    credentials=credentials,
                    database=self._settings.database,
                )
            except FileNotFoundError:
                raise ConnectionError(
                    f"Firestore credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Firestore: {e}")

        return self._client

    def collection(self, location: Location):
        """SDK reference for a collection location."""
        if not location.is_collection:
            raise StorageError(f"Not a collection: {location.path}")
        return self.connect().collection(*location.segments)

    def document(self, location: Location):
        """SDK reference for a document location."""
        if not location.is_document:
            raise StorageError(f"Not a document: {location.path}")
        return self.connect().document(*location.segments)


class FirestoreDocumentStore(DocumentStoreInterface):
    """
    Firestore implementation of the document store.

    Each ledger document maps 1:1 to a Firestore document; ids are
    returned under "id" alongside the document fields.
    """

    def __init__(self, client: Optional[FirestoreClient] = None):
        self._client = client or FirestoreClient()

    @_store_retry
    async def list_document_ids(self, collection: Location) -> list[str]:
        try:
            ref = self._client.collection(collection)
            return [doc.id async for doc in ref.list_documents()]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list {collection.path}: {e}")

    @_store_retry
    async def has_documents(self, collection: Location) -> bool:
        try:
            ref = self._client.collection(collection)
            async for _ in ref.limit(1).stream():
                return True
            return False
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to check {collection.path}: {e}")

    @_store_retry
    async def get_documents(self, collection: Location) -> list[dict[str, Any]]:
        try:
            ref = self._client.collection(collection)
            documents = []
            async for snapshot in ref.stream():
                documents.append({**(snapshot.to_dict() or {}), "id": snapshot.id})
            return documents
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {collection.path}: {e}")

    @_store_retry
    async def get_document(self, document: Location) -> Optional[dict[str, Any]]:
        try:
            snapshot = await self._client.document(document).get()
            if not snapshot.exists:
                return None
            return {**(snapshot.to_dict() or {}), "id": snapshot.id}
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {document.path}: {e}")

    @_store_retry
    async def create_document(
        self,
        collection: Location,
        data: dict[str, Any],
        document_id: Optional[str] = None,
    ) -> str:
        try:
            ref = self._client.collection(collection)
            if document_id:
                await ref.document(document_id).create(data)
                return document_id
            _, doc_ref = await ref.add(data)
            return doc_ref.id
        except gcp_exceptions.Conflict:
            raise DuplicateError(f"Document already exists: {collection.path}/{document_id}")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to create document in {collection.path}: {e}")

    @_store_retry
    async def update_document(
        self,
        collection: Location,
        document_id: str,
        fields: dict[str, Any],
    ) -> None:
        try:
            await self._client.collection(collection).document(document_id).update(fields)
        except gcp_exceptions.NotFound:
            raise NotFoundError(f"Document not found: {collection.path}/{document_id}")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {collection.path}/{document_id}: {e}")
