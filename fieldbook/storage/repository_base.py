"""Repository base interface."""

from abc import ABC, abstractmethod
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

from fieldbook.storage.document_store import ChangeCallback, DocumentStore, Unsubscribe

T = TypeVar("T")


class RepositoryBase(ABC, Generic[T]):
    """Base repository interface for CRUD operations over one collection."""

    collection: str
    model: type[BaseModel]

    def __init__(self, store: DocumentStore):
        """Initialize repository with a document store."""
        self.store = store

    @abstractmethod
    async def get_by_id(self, id: str) -> Optional[T]:
        """Retrieve entity by ID."""
        pass

    @abstractmethod
    async def create(self, entity: Any) -> T:
        """Create new entity."""
        pass

    @abstractmethod
    async def update(self, id: str, patch: dict[str, Any]) -> T:
        """Apply a partial update to an entity."""
        pass

    @abstractmethod
    async def delete(self, id: str) -> bool:
        """Delete entity by ID."""
        pass

    def subscribe(self, callback: ChangeCallback) -> Unsubscribe:
        """Subscribe to committed changes of this collection."""
        return self.store.subscribe(self.collection, callback)

    def document_filters(self, filters: Optional[dict[str, Any]]) -> dict[str, Any]:
        """Translate model field names to stored document field names."""
        if not filters:
            return {}
        translated = {}
        for name, value in filters.items():
            field = self.model.model_fields.get(name)
            key = field.alias if field is not None and field.alias else name
            translated[key] = value.value if hasattr(value, "value") else value
        return translated
