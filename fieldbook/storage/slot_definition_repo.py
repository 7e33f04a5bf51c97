"""Repository for SlotDefinition entities (``timeSlots`` collection)."""

from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from fieldbook.logging import get_logger
from fieldbook.logging.audit import AuditLogger
from fieldbook.models.slot_definition import SlotDefinition, SlotDefinitionInput
from fieldbook.storage.document_store import Document, DocumentStore
from fieldbook.storage.repository_base import RepositoryBase

logger = get_logger(__name__)


class SlotDefinitionRepository(RepositoryBase[SlotDefinition]):
    """Slot definition CRUD; scheduling rules live in the services."""

    collection = "timeSlots"
    model = SlotDefinition

    def __init__(self, store: DocumentStore):
        """Initialize repository with a document store."""
        super().__init__(store)

    async def get_by_id(self, id: str) -> Optional[SlotDefinition]:
        """Retrieve slot definition by ID."""
        document = await self.store.get(self.collection, id)
        if document is None:
            return None
        return self._to_domain_model(document)

    async def create(self, entity: SlotDefinitionInput) -> SlotDefinition:
        """Create new slot definition."""
        data = entity.model_dump(mode="json", by_alias=True)
        data["date"] = entity.date or ""
        data["createdAt"] = datetime.utcnow().isoformat()

        document = await self.store.add(self.collection, data)
        slot = self._to_domain_model(document)

        logger.info(
            "slot_definition_created",
            slot_id=slot.id,
            facility_id=slot.facility_id,
            window=slot.window,
            applicability=slot.applicability.value,
        )
        return slot

    async def update(
        self,
        id: str,
        patch: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> SlotDefinition:
        """Apply a partial update, re-validating the resulting record shape."""
        current = await self.get_by_id(id)
        if current is None:
            raise ValueError(f"Slot definition not found: {id}")

        merged = SlotDefinition.model_validate(
            {**current.model_dump(), **patch, "version": current.version}
        )
        document = await self.store.update(
            self.collection,
            id,
            merged.to_document(),
            expected_version=expected_version if expected_version is not None else current.version,
        )

        logger.info("slot_definition_updated", slot_id=id, fields=sorted(patch))
        return self._to_domain_model(document)

    async def delete(self, id: str, expected_version: Optional[int] = None) -> bool:
        """Delete slot definition if it exists."""
        removed = await self.store.delete(self.collection, id, expected_version=expected_version)
        if removed:
            logger.info("slot_definition_deleted", slot_id=id)
        return removed

    async def find(self, filters: Optional[dict[str, Any]] = None) -> list[SlotDefinition]:
        """List slot definitions matching field-equality filters."""
        documents = await self.store.list(self.collection, self.document_filters(filters))
        slots = [self.parse_document(doc) for doc in documents]
        return self._sorted([slot for slot in slots if slot is not None])

    async def list_for_facility(
        self, facility_id: str, active_only: bool = False
    ) -> list[SlotDefinition]:
        """Get slot definitions of a facility."""
        filters: dict[str, Any] = {"facility_id": facility_id}
        if active_only:
            filters["is_active"] = True
        return await self.find(filters)

    def _sorted(self, slots: list[SlotDefinition]) -> list[SlotDefinition]:
        return sorted(slots, key=lambda s: (s.start_time, s.end_time, s.id))

    def parse_document(self, document: Document) -> Optional[SlotDefinition]:
        """
        Convert a stored document, skipping one that fails validation.

        Older clients could save a slot with neither ``allDays`` nor a date.
        Such a slot never applies to any date, so it is left out of listings
        and flagged for review instead of failing the whole facility.
        """
        try:
            return self._to_domain_model(document)
        except ValidationError as e:
            facility_id = str(document.data.get("fieldId", ""))
            logger.warning(
                "slot_definition_invalid",
                slot_id=document.id,
                facility_id=facility_id,
                errors=e.error_count(),
            )
            AuditLogger.log_invalid_slot_definition(document.id, facility_id, str(e))
            return None

    def _to_domain_model(self, document: Document) -> SlotDefinition:
        """Convert stored document to domain model."""
        return SlotDefinition.from_document(document.id, document.data, document.version)
