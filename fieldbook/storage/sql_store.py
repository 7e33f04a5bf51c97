"""Document store backed by a SQL database through SQLAlchemy."""

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from fieldbook.logging import get_logger
from fieldbook.storage.database import Database
from fieldbook.storage.db_models import DocumentTable
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


class SqlDocumentStore(DocumentStore):
    """Document store using the ``documents`` table.

    Conditional writes rely on the database: unique keys on the
    ``(collection, unique_key)`` constraint, versions on a guarded UPDATE and
    delete-if-exists on the DELETE row count.
    """

    def __init__(self, database: Database):
        """Initialize store with a connected database."""
        super().__init__()
        self.database = database

    async def list(
        self, collection: str, filters: Optional[dict[str, Any]] = None
    ) -> list[Document]:
        """List documents of a collection, oldest first."""
        stmt = (
            select(DocumentTable)
            .where(DocumentTable.collection == collection)
            .order_by(DocumentTable.created_at.asc(), DocumentTable.id.asc())
        )
        async with self.database.session() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()

        # JSON field filtering is applied in Python to stay dialect-neutral
        return [
            self._to_document(row) for row in rows if matches_filters(row.data, filters)
        ]

    async def get(self, collection: str, id: str) -> Optional[Document]:
        """Retrieve a document by id."""
        async with self.database.session() as session:
            row = await self._fetch(session, collection, id)
            if row is None:
                return None
            return self._to_document(row)

    async def add(
        self,
        collection: str,
        data: dict[str, Any],
        unique_key: Optional[str] = None,
    ) -> Document:
        """Insert a document with a generated id."""
        row = DocumentTable(
            collection=collection,
            id=uuid4().hex,
            data=dict(data),
            version=1,
            unique_key=unique_key,
        )
        async with self.database.session() as session:
            session.add(row)
            try:
                await session.flush()
            except IntegrityError as e:
                raise DuplicateKey(
                    f"{collection}: unique key already held: {unique_key}"
                ) from e
            document = self._to_document(row)

        logger.debug("document_added", collection=collection, document_id=document.id)
        self.notifier.publish(
            ChangeEvent(collection, ChangeKind.ADDED, document.id, document)
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
        """Merge ``patch`` into a document with a version-guarded UPDATE."""
        async with self.database.session() as session:
            row = await self._fetch(session, collection, id)
            if row is None:
                raise DocumentNotFound(f"{collection}/{id}")

            read_version = row.version
            if expected_version is not None and read_version != expected_version:
                raise VersionConflict(
                    f"{collection}/{id}: expected version {expected_version}, "
                    f"found {read_version}"
                )

            values: dict[str, Any] = {
                "data": {**row.data, **patch},
                "version": read_version + 1,
                "updated_at": datetime.utcnow(),
            }
            if release_unique_key:
                values["unique_key"] = None

            stmt = (
                update(DocumentTable)
                .where(DocumentTable.collection == collection)
                .where(DocumentTable.id == id)
                .where(DocumentTable.version == read_version)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            if result.rowcount != 1:
                raise VersionConflict(f"{collection}/{id}: concurrent update")

            document = Document(id=id, data=values["data"], version=values["version"])

        logger.debug("document_updated", collection=collection, document_id=id)
        self.notifier.publish(
            ChangeEvent(collection, ChangeKind.MODIFIED, id, document)
        )
        return document

    async def delete(
        self, collection: str, id: str, expected_version: Optional[int] = None
    ) -> bool:
        """Delete a document if present."""
        stmt = (
            delete(DocumentTable)
            .where(DocumentTable.collection == collection)
            .where(DocumentTable.id == id)
            .execution_options(synchronize_session=False)
        )
        if expected_version is not None:
            stmt = stmt.where(DocumentTable.version == expected_version)

        async with self.database.session() as session:
            result = await session.execute(stmt)
            removed = result.rowcount == 1
            if not removed and expected_version is not None:
                if await self._fetch(session, collection, id) is not None:
                    raise VersionConflict(f"{collection}/{id}: concurrent update")

        if removed:
            logger.debug("document_deleted", collection=collection, document_id=id)
            self.notifier.publish(ChangeEvent(collection, ChangeKind.REMOVED, id))
        return removed

    async def close(self) -> None:
        """Dispose of the database engine."""
        await self.database.disconnect()

    async def _fetch(self, session, collection: str, id: str) -> Optional[DocumentTable]:
        stmt = (
            select(DocumentTable)
            .where(DocumentTable.collection == collection)
            .where(DocumentTable.id == id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    def _to_document(self, row: DocumentTable) -> Document:
        """Convert database row to a document."""
        return Document(id=row.id, data=dict(row.data or {}), version=row.version)
