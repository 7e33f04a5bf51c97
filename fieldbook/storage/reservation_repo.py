"""Repository for Reservation entities (``reservations`` collection)."""

from typing import Any, Optional

from fieldbook.logging import get_logger
from fieldbook.models.reservation import Reservation, ReservationStatus
from fieldbook.storage.document_store import Document, DocumentStore
from fieldbook.storage.repository_base import RepositoryBase

logger = get_logger(__name__)


class ReservationRepository(RepositoryBase[Reservation]):
    """Reservation CRUD with an optional exclusive-window insert."""

    collection = "reservations"
    model = Reservation

    def __init__(self, store: DocumentStore):
        """Initialize repository with a document store."""
        super().__init__(store)

    async def get_by_id(self, id: str) -> Optional[Reservation]:
        """Retrieve reservation by ID."""
        document = await self.store.get(self.collection, id)
        if document is None:
            return None
        return self._to_domain_model(document)

    async def create(self, entity: Reservation, exclusive: bool = False) -> Reservation:
        """
        Persist a constructed reservation.

        Args:
            entity: Reservation built by the booking validator
            exclusive: Hold the facility/date/window key so that a second
                live reservation for the same window fails with DuplicateKey

        Returns:
            The stored reservation with its assigned id
        """
        document = await self.store.add(
            self.collection,
            entity.to_document(),
            unique_key=entity.window_key if exclusive else None,
        )
        reservation = self._to_domain_model(document)

        logger.info(
            "reservation_created",
            reservation_id=reservation.id,
            requester_id=reservation.requester_id,
            facility_id=reservation.facility_id,
            date=reservation.date,
            window=reservation.window,
            exclusive=exclusive,
        )
        return reservation

    async def update(
        self,
        id: str,
        patch: dict[str, Any],
        expected_version: Optional[int] = None,
        release_window: bool = False,
    ) -> Reservation:
        """Apply a partial update to a reservation."""
        current = await self.get_by_id(id)
        if current is None:
            raise ValueError(f"Reservation not found: {id}")

        merged = Reservation.model_validate(
            {**current.model_dump(), **patch, "version": current.version}
        )
        document = await self.store.update(
            self.collection,
            id,
            merged.to_document(),
            expected_version=expected_version if expected_version is not None else current.version,
            release_unique_key=release_window,
        )

        logger.info("reservation_updated", reservation_id=id, fields=sorted(patch))
        return self._to_domain_model(document)

    async def delete(self, id: str) -> bool:
        """Delete reservation by ID."""
        removed = await self.store.delete(self.collection, id)
        if removed:
            logger.info("reservation_deleted", reservation_id=id)
        return removed

    async def find(self, filters: Optional[dict[str, Any]] = None) -> list[Reservation]:
        """List reservations matching field-equality filters, newest first."""
        documents = await self.store.list(self.collection, self.document_filters(filters))
        reservations = [self._to_domain_model(doc) for doc in documents]
        return sorted(reservations, key=lambda r: (r.created_at, r.id or ""), reverse=True)

    async def list_by_requester(self, requester_id: str, limit: int = 50) -> list[Reservation]:
        """Get reservations for a requester, newest first."""
        reservations = await self.find({"requester_id": requester_id})
        return reservations[:limit]

    async def list_for_facility_date(
        self,
        facility_id: str,
        date: str,
        status: Optional[ReservationStatus] = None,
    ) -> list[Reservation]:
        """Get reservations for a facility on a date."""
        filters: dict[str, Any] = {"facility_id": facility_id, "date": date}
        if status is not None:
            filters["status"] = status
        return await self.find(filters)

    async def list_confirmed(self, facility_id: str, date: str) -> list[Reservation]:
        """Get confirmed reservations for a facility on a date."""
        return await self.list_for_facility_date(
            facility_id, date, status=ReservationStatus.CONFIRMED
        )

    def _to_domain_model(self, document: Document) -> Reservation:
        """Convert stored document to domain model."""
        return Reservation.from_document(document.id, document.data, document.version)
