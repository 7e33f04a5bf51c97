"""Availability resolution.

Computes, for a facility and a date, which slot definitions can be booked:
every active slot offered on that date is returned, flagged unavailable when
its window overlaps a confirmed reservation. Pending and cancelled
reservations never block. Windows are half-open, so a reservation ending at
15:00 does not block a slot starting at 15:00.
"""

from enum import Enum
from typing import Protocol

from pydantic import BaseModel, Field

from fieldbook.logging import get_logger
from fieldbook.models.reservation import Reservation
from fieldbook.models.slot_definition import SlotDefinition
from fieldbook.services.errors import MissingData
from fieldbook.storage.reservation_repo import ReservationRepository
from fieldbook.storage.slot_definition_repo import SlotDefinitionRepository

logger = get_logger(__name__)


def windows_overlap(a_start: str, a_end: str, b_start: str, b_end: str) -> bool:
    """Half-open interval intersection of two HH:MM windows."""
    return a_start < b_end and a_end > b_start


class ScheduleSource(Protocol):
    """Read access to the two schedule collections."""

    async def slots_for_facility(self, facility_id: str) -> list[SlotDefinition]:
        ...

    async def reservations_for(self, facility_id: str, date: str) -> list[Reservation]:
        ...


class RepositoryScheduleSource:
    """Live reads straight from the repositories."""

    def __init__(
        self,
        slot_repo: SlotDefinitionRepository,
        reservation_repo: ReservationRepository,
    ):
        self.slot_repo = slot_repo
        self.reservation_repo = reservation_repo

    async def slots_for_facility(self, facility_id: str) -> list[SlotDefinition]:
        return await self.slot_repo.list_for_facility(facility_id)

    async def reservations_for(self, facility_id: str, date: str) -> list[Reservation]:
        return await self.reservation_repo.list_for_facility_date(facility_id, date)


class SlotAvailability(BaseModel):
    """A candidate slot annotated with its availability."""

    slot: SlotDefinition
    is_available: bool
    blocked_by: list[str] = Field(default_factory=list, description="Confirmed reservation IDs")


class AvailabilityState(str, Enum):
    """Why a facility/date has or lacks bookable windows."""

    NO_SLOTS_CONFIGURED = "no_slots_configured"
    FULLY_BOOKED = "fully_booked"
    AVAILABLE = "available"


class AvailabilityReport(BaseModel):
    """Admin diagnostics for a facility/date."""

    facility_id: str
    date: str
    state: AvailabilityState
    total_slots: int = 0
    available_slots: int = 0
    blocked_slots: int = 0


def compute_availability(
    slots: list[SlotDefinition],
    reservations: list[Reservation],
    facility_id: str,
    date: str,
) -> list[SlotAvailability]:
    """Pure availability computation over already-loaded records."""
    candidates = [
        slot
        for slot in slots
        if slot.facility_id == facility_id and slot.is_active and slot.applies_to(date)
    ]
    confirmed = [
        reservation
        for reservation in reservations
        if reservation.facility_id == facility_id
        and reservation.date == date
        and reservation.blocks_availability
    ]

    results = []
    for slot in sorted(candidates, key=lambda s: (s.start_time, s.end_time, s.id)):
        blocked_by = [
            reservation.id or ""
            for reservation in confirmed
            if windows_overlap(
                slot.start_time, slot.end_time, reservation.start_time, reservation.end_time
            )
        ]
        results.append(
            SlotAvailability(slot=slot, is_available=not blocked_by, blocked_by=blocked_by)
        )
    return results


class AvailabilityResolver:
    """Resolves slot availability from an injected schedule source."""

    def __init__(self, source: ScheduleSource):
        """
        Initialize resolver.

        Args:
            source: Live repositories or a read-through ScheduleMirror
        """
        self.source = source

    async def resolve(self, facility_id: str, date: str) -> list[SlotAvailability]:
        """
        List the slots offered at a facility on a date with availability flags.

        Unavailable slots are included so callers can render them as reserved.
        An empty list means no slot is configured for that facility/date.
        """
        if not facility_id or not date:
            raise MissingData("facility_id and date are required", facility_id=facility_id, date=date)

        slots = await self.source.slots_for_facility(facility_id)
        reservations = await self.source.reservations_for(facility_id, date)
        results = compute_availability(slots, reservations, facility_id, date)

        logger.debug(
            "availability_resolved",
            facility_id=facility_id,
            date=date,
            candidates=len(results),
            available=sum(1 for r in results if r.is_available),
        )
        return results

    async def diagnose(self, facility_id: str, date: str) -> AvailabilityReport:
        """Distinguish 'no slots configured' from 'all slots taken'."""
        results = await self.resolve(facility_id, date)
        available = sum(1 for r in results if r.is_available)

        if not results:
            state = AvailabilityState.NO_SLOTS_CONFIGURED
        elif available == 0:
            state = AvailabilityState.FULLY_BOOKED
        else:
            state = AvailabilityState.AVAILABLE

        return AvailabilityReport(
            facility_id=facility_id,
            date=date,
            state=state,
            total_slots=len(results),
            available_slots=available,
            blocked_slots=len(results) - available,
        )
