"""Embedded in-process document store."""

import asyncio
import copy
from dataclasses import dataclass
from typing import Any, Optional
from uuid import uuid4

from fieldbook.logging import get_logger
from fieldbook.storage.document_store import (
    ChangeEvent,
    ChangeKind,
    Document,
    DocumentNotFound,
    DocumentStore,
    DuplicateKey,
    VersionConflict,
    matches_filters,
)

logger = get_logger(__name__)


@dataclass
class _Record:
    data: dict[str, Any]
    version: int
    unique_key: Optional[str] = None


class InMemoryDocumentStore(DocumentStore):
    """Document store kept in process memory.

    Writes are serialised by a single lock, so check-and-write operations
    (unique keys, expected versions, delete-if-exists) are atomic.
    """

    def __init__(self) -> None:
        super().__init__()
        self._collections: dict[str, dict[str, _Record]] = {}
        self._lock = asyncio.Lock()

    async def list(
        self, collection: str, filters: Optional[dict[str, Any]] = None
    ) -> list[Document]:
        """List documents matching ``filters`` in insertion order."""
        records = self._collections.get(collection, {})
        return [
            self._to_document(doc_id, record)
            for doc_id, record in records.items()
            if matches_filters(record.data, filters)
        ]

    async def get(self, collection: str, id: str) -> Optional[Document]:
        """Retrieve a document by id."""
        record = self._collections.get(collection, {}).get(id)
        if record is None:
            return None
        return self._to_document(id, record)

    async def add(
        self,
        collection: str,
        data: dict[str, Any],
        unique_key: Optional[str] = None,
    ) -> Document:
        """Insert a document with a generated id."""
        async with self._lock:
            records = self._collections.setdefault(collection, {})
            if unique_key is not None and any(
                r.unique_key == unique_key for r in records.values()
            ):
                raise DuplicateKey(f"{collection}: unique key already held: {unique_key}")

            doc_id = uuid4().hex
            record = _Record(data=copy.deepcopy(data), version=1, unique_key=unique_key)
            records[doc_id] = record
            document = self._to_document(doc_id, record)

        logger.debug("document_added", collection=collection, document_id=doc_id)
        self.notifier.publish(
            ChangeEvent(collection, ChangeKind.ADDED, doc_id, document)
        )
        return document

    async def update(
        self,
        collection: str,
        id: str,
        patch: dict[str, Any],
        expected_version: Optional[int] = None,
        release_unique_key: bool = False,
    ) -> Document:
        """Merge ``patch`` into an existing document."""
        async with self._lock:
            record = self._collections.get(collection, {}).get(id)
            if record is None:
                raise DocumentNotFound(f"{collection}/{id}")
            if expected_version is not None and record.version != expected_version:
                raise VersionConflict(
                    f"{collection}/{id}: expected version {expected_version}, "
                    f"found {record.version}"
                )

            record.data = {**record.data, **copy.deepcopy(patch)}
            record.version += 1
            if release_unique_key:
                record.unique_key = None
            document = self._to_document(id, record)

        logger.debug("document_updated", collection=collection, document_id=id)
        self.notifier.publish(
            ChangeEvent(collection, ChangeKind.MODIFIED, id, document)
        )
        return document

    async def delete(
        self, collection: str, id: str, expected_version: Optional[int] = None
    ) -> bool:
        """Delete a document if present."""
        async with self._lock:
            records = self._collections.get(collection, {})
            record = records.get(id)
            if record is None:
                return False
            if expected_version is not None and record.version != expected_version:
                raise VersionConflict(
                    f"{collection}/{id}: expected version {expected_version}, "
                    f"found {record.version}"
                )
            del records[id]

        logger.debug("document_deleted", collection=collection, document_id=id)
        self.notifier.publish(ChangeEvent(collection, ChangeKind.REMOVED, id))
        return True

    def _to_document(self, doc_id: str, record: _Record) -> Document:
        return Document(id=doc_id, data=copy.deepcopy(record.data), version=record.version)
