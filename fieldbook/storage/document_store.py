"""Generic document store interface.

The scheduling core persists through a collection/id document API (list, get,
add, update, delete) plus per-collection change notifications. Every document
carries a ``version`` that increases on each write and can be passed back as
``expected_version`` for optimistic concurrency. A collection may also hold an
optional ``unique_key`` per document; adding a second live document with the
same key fails with ``DuplicateKey``, which is how conditional inserts are
expressed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from fieldbook.logging import get_logger

logger = get_logger(__name__)


class StoreError(Exception):
    """Base class for document store failures."""


class DocumentNotFound(StoreError):
    """The addressed document does not exist."""


class VersionConflict(StoreError):
    """The document changed since it was read."""


class DuplicateKey(StoreError):
    """Another document in the collection already holds the unique key."""


@dataclass
class Document:
    """A stored document with its concurrency token."""

    id: str
    data: dict[str, Any] = field(default_factory=dict)
    version: int = 1


class ChangeKind(str, Enum):
    """Kinds of committed writes."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass
class ChangeEvent:
    """Notification sent to collection subscribers after a write commits."""

    collection: str
    kind: ChangeKind
    document_id: str
    document: Optional[Document] = None


ChangeCallback = Callable[[ChangeEvent], None]
Unsubscribe = Callable[[], None]


class ChangeNotifier:
    """Fan-out of change events to per-collection subscribers."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[ChangeCallback]] = {}

    def subscribe(self, collection: str, callback: ChangeCallback) -> Unsubscribe:
        """Register ``callback`` and return a function that removes it."""
        callbacks = self._subscribers.setdefault(collection, [])
        callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def publish(self, event: ChangeEvent) -> None:
        """Deliver ``event``; a failing subscriber never undoes the write."""
        for callback in list(self._subscribers.get(event.collection, [])):
            try:
                callback(event)
            except Exception as e:
                logger.error(
                    "change_subscriber_failed",
                    collection=event.collection,
                    document_id=event.document_id,
                    error=str(e),
                    exc_info=True,
                )

    def subscriber_count(self, collection: str) -> int:
        """Number of active subscribers for a collection."""
        return len(self._subscribers.get(collection, []))


def matches_filters(data: dict[str, Any], filters: Optional[dict[str, Any]]) -> bool:
    """Equality match of document fields against ``filters``."""
    if not filters:
        return True
    return all(data.get(key) == value for key, value in filters.items())


class DocumentStore(ABC):
    """Async document store addressed by collection and opaque id."""

    def __init__(self) -> None:
        self.notifier = ChangeNotifier()

    @abstractmethod
    async def list(
        self, collection: str, filters: Optional[dict[str, Any]] = None
    ) -> list[Document]:
        """List documents whose fields equal every value in ``filters``."""
        pass

    @abstractmethod
    async def get(self, collection: str, id: str) -> Optional[Document]:
        """Retrieve a document by id."""
        pass

    @abstractmethod
    async def add(
        self,
        collection: str,
        data: dict[str, Any],
        unique_key: Optional[str] = None,
    ) -> Document:
        """Insert a document; raises DuplicateKey if ``unique_key`` is taken."""
        pass

    @abstractmethod
    async def update(
        self,
        collection: str,
        id: str,
        patch: dict[str, Any],
        expected_version: Optional[int] = None,
        release_unique_key: bool = False,
    ) -> Document:
        """Merge ``patch`` into a document.

        Raises DocumentNotFound if absent and VersionConflict if
        ``expected_version`` no longer matches.
        """
        pass

    @abstractmethod
    async def delete(
        self, collection: str, id: str, expected_version: Optional[int] = None
    ) -> bool:
        """Delete a document if it exists; returns whether it was removed."""
        pass

    def subscribe(self, collection: str, callback: ChangeCallback) -> Unsubscribe:
        """Subscribe to committed writes on ``collection``."""
        return self.notifier.subscribe(collection, callback)

    async def close(self) -> None:
        """Release store resources."""
        return None
