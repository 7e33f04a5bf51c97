"""Read-through mirror of the schedule collections.

Keeps slot definitions and reservations in memory, updated from store change
notifications, so booking screens can recompute availability without a
round-trip per render. Writes and booking validation never read from the
mirror; they go to the live repositories.
"""

from typing import Callable, Optional, TypeVar, Union

from fieldbook.logging import get_logger
from fieldbook.models.reservation import Reservation
from fieldbook.models.slot_definition import SlotDefinition
from fieldbook.storage.document_store import ChangeEvent, ChangeKind, Document, Unsubscribe
from fieldbook.storage.reservation_repo import ReservationRepository
from fieldbook.storage.slot_definition_repo import SlotDefinitionRepository

logger = get_logger(__name__)

Record = TypeVar("Record", bound=Union[SlotDefinition, Reservation])


class ScheduleMirror:
    """In-memory copy of ``timeSlots`` and ``reservations`` kept in sync by subscription."""

    def __init__(
        self,
        slot_repo: SlotDefinitionRepository,
        reservation_repo: ReservationRepository,
        on_change: Optional[Callable[[ChangeEvent], None]] = None,
    ):
        """
        Initialize mirror.

        Args:
            slot_repo: Slot definition repository to load and subscribe to
            reservation_repo: Reservation repository to load and subscribe to
            on_change: Called after each applied event so derived views can recompute
        """
        self.slot_repo = slot_repo
        self.reservation_repo = reservation_repo
        self.on_change = on_change
        self._slots: dict[str, SlotDefinition] = {}
        self._reservations: dict[str, Reservation] = {}
        # Ids removed while start() is loading; empty otherwise
        self._removed: set[tuple[str, str]] = set()
        self._loading = False
        self._unsubscribers: list[Unsubscribe] = []

    @property
    def is_running(self) -> bool:
        """Whether the mirror is subscribed to the stores."""
        return bool(self._unsubscribers)

    async def start(self) -> None:
        """Subscribe, then load both collections."""
        if self.is_running:
            return

        # Subscribe first so writes racing the initial load are not lost
        self._unsubscribers = [
            self.slot_repo.subscribe(self._handle_event),
            self.reservation_repo.subscribe(self._handle_event),
        ]

        self._loading = True
        try:
            for slot in await self.slot_repo.find():
                self._merge(self._slots, slot, self.slot_repo.collection)
            for reservation in await self.reservation_repo.find():
                self._merge(self._reservations, reservation, self.reservation_repo.collection)
        finally:
            self._loading = False
            self._removed.clear()

        logger.info(
            "schedule_mirror_started",
            slots=len(self._slots),
            reservations=len(self._reservations),
        )

    def close(self) -> None:
        """Stop receiving change notifications."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        logger.info("schedule_mirror_closed")

    async def slots_for_facility(self, facility_id: str) -> list[SlotDefinition]:
        """Mirrored slot definitions of a facility."""
        return [s for s in self._slots.values() if s.facility_id == facility_id]

    async def reservations_for(self, facility_id: str, date: str) -> list[Reservation]:
        """Mirrored reservations of a facility on a date."""
        return [
            r
            for r in self._reservations.values()
            if r.facility_id == facility_id and r.date == date
        ]

    @property
    def slots(self) -> list[SlotDefinition]:
        """Snapshot of every mirrored slot definition."""
        return list(self._slots.values())

    @property
    def reservations(self) -> list[Reservation]:
        """Snapshot of every mirrored reservation."""
        return list(self._reservations.values())

    def _handle_event(self, event: ChangeEvent) -> None:
        if event.collection == self.slot_repo.collection:
            self._apply(self._slots, event, self.slot_repo.parse_document)
        elif event.collection == self.reservation_repo.collection:
            self._apply(self._reservations, event, _parse_reservation)
        else:
            return

        if self.on_change is not None:
            self.on_change(event)

    def _apply(
        self,
        records: dict,
        event: ChangeEvent,
        parse: Callable[[Document], Optional[Record]],
    ) -> None:
        if event.kind == ChangeKind.REMOVED:
            records.pop(event.document_id, None)
            if self._loading:
                self._removed.add((event.collection, event.document_id))
            return

        document = event.document
        if document is None:
            return
        record = parse(document)
        if record is None:
            # Invalid write: stop serving the stale copy
            records.pop(document.id, None)
            return
        self._merge(records, record, event.collection)

    def _merge(self, records: dict[str, Record], record: Record, collection: str) -> None:
        """Keep the newest version; never resurrect a removed record."""
        if (collection, record.id) in self._removed:
            return
        existing = records.get(record.id)
        if existing is None or record.version >= existing.version:
            records[record.id] = record


def _parse_reservation(document: Document) -> Reservation:
    return Reservation.from_document(document.id, document.data, document.version)
