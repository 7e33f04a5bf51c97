"""Storage package - document stores and repositories."""

from .document_store import (
    ChangeEvent,
    ChangeKind,
    Document,
    DocumentNotFound,
    DocumentStore,
    DuplicateKey,
    StoreError,
    VersionConflict,
)
from .memory_store import InMemoryDocumentStore
from .reservation_repo import ReservationRepository
from .slot_definition_repo import SlotDefinitionRepository

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "Document",
    "DocumentNotFound",
    "DocumentStore",
    "DuplicateKey",
    "InMemoryDocumentStore",
    "ReservationRepository",
    "SlotDefinitionRepository",
    "StoreError",
    "VersionConflict",
]
