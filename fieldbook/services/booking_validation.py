"""Booking validation service.

Pre-commit checks for a reservation request, in order:
- Required fields present
- Target slot still offered and available (live re-resolution)
- Start hour within business hours

Validation never writes. An approved decision carries the constructed
pending reservation and an approval token binding it to the slot version
that was checked, so the caller can detect a slot edited before commit.
"""

import hashlib
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ValidationError

from fieldbook.logging import get_logger
from fieldbook.models.reservation import Reservation, ReservationInput, ReservationStatus
from fieldbook.models.slot_definition import Applicability, SlotDefinition
from fieldbook.services.availability import (
    AvailabilityResolver,
    RepositoryScheduleSource,
    SlotAvailability,
)
from fieldbook.services.errors import SchedulingError, rejection_error
from fieldbook.storage.reservation_repo import ReservationRepository
from fieldbook.storage.slot_definition_repo import SlotDefinitionRepository

logger = get_logger(__name__)

# Business rules
BUSINESS_HOURS_OPEN = 8
BUSINESS_HOURS_CLOSE = 22


class RejectionReason(str, Enum):
    """Why a booking request was refused."""

    MISSING_DATA = "MissingData"
    SLOT_UNAVAILABLE = "SlotUnavailable"
    OUTSIDE_BUSINESS_HOURS = "OutsideBusinessHours"


class BookingDecision(BaseModel):
    """Result of booking validation."""

    approved: bool
    reason: Optional[RejectionReason] = None
    message: Optional[str] = None
    reservation: Optional[Reservation] = None
    slot: Optional[SlotDefinition] = None
    approval_token: Optional[str] = None

    @classmethod
    def ok(cls, reservation: Reservation, slot: SlotDefinition) -> "BookingDecision":
        return cls(
            approved=True,
            reservation=reservation,
            slot=slot,
            approval_token=approval_token(reservation, slot),
        )

    @classmethod
    def rejected(cls, reason: RejectionReason, message: str) -> "BookingDecision":
        return cls(approved=False, reason=reason, message=message)

    def raise_for_rejection(self) -> None:
        """Raise the error kind matching a rejected decision."""
        if self.approved:
            return
        raise rejection_error(self.reason.value, self.message or self.reason.value)


def approval_token(reservation: Reservation, slot: SlotDefinition) -> str:
    """Digest of the booked window and the slot version it was checked against."""
    material = "|".join(
        [
            reservation.requester_id,
            reservation.facility_id,
            reservation.date,
            reservation.start_time,
            reservation.end_time,
            str(reservation.total_price),
            slot.id,
            str(slot.version),
        ]
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def start_hour(start_time: str) -> int:
    """Hour component of an HH:MM time."""
    return int(start_time.split(":")[0])


class BookingValidator:
    """Validates booking requests against the live schedule."""

    def __init__(
        self,
        slot_repo: SlotDefinitionRepository,
        reservation_repo: ReservationRepository,
        business_hours_open: int = BUSINESS_HOURS_OPEN,
        business_hours_close: int = BUSINESS_HOURS_CLOSE,
    ):
        """
        Initialize booking validator.

        Args:
            slot_repo: Live slot definition repository
            reservation_repo: Live reservation repository
            business_hours_open: First bookable start hour
            business_hours_close: Last bookable start hour
        """
        # Always resolve against the repositories, never a cached mirror
        self.resolver = AvailabilityResolver(
            RepositoryScheduleSource(slot_repo, reservation_repo)
        )
        self.business_hours_open = business_hours_open
        self.business_hours_close = business_hours_close

    async def validate(self, request: ReservationInput) -> BookingDecision:
        """
        Validate a booking request.

        Args:
            request: Requester, facility, date and slot id or explicit window

        Returns:
            BookingDecision, approved with a pending reservation or rejected
            with the first failing reason
        """
        missing = self._missing_fields(request)
        if missing:
            return self._reject(
                request,
                RejectionReason.MISSING_DATA,
                f"Missing booking data: {', '.join(missing)}",
            )

        try:
            entries = await self.resolver.resolve(request.facility_id, request.date)
        except SchedulingError as e:
            return self._reject(request, RejectionReason.MISSING_DATA, e.message)

        target = self._find_target(request, entries)
        if target is None:
            return self._reject(
                request,
                RejectionReason.SLOT_UNAVAILABLE,
                "This time slot is not offered on the selected date",
            )
        if not target.is_available:
            return self._reject(
                request,
                RejectionReason.SLOT_UNAVAILABLE,
                "This time slot is no longer available",
            )

        slot = target.slot
        hour = start_hour(slot.start_time)
        if hour < self.business_hours_open or hour > self.business_hours_close:
            return self._reject(
                request,
                RejectionReason.OUTSIDE_BUSINESS_HOURS,
                f"Bookings are only available between {self.business_hours_open}:00 "
                f"and {self.business_hours_close}:00",
            )

        try:
            reservation = Reservation(
                requester_id=request.requester_id,
                facility_id=request.facility_id,
                date=request.date,
                start_time=slot.start_time,
                end_time=slot.end_time,
                total_price=slot.price,
                status=ReservationStatus.PENDING,
                slot_definition_id=slot.id,
                payment_method_id=request.payment_method_id,
            )
        except ValidationError as e:
            return self._reject(request, RejectionReason.MISSING_DATA, f"Invalid booking data: {e}")

        logger.info(
            "booking_validated",
            requester_id=request.requester_id,
            facility_id=request.facility_id,
            date=request.date,
            slot_id=slot.id,
            window=slot.window,
        )
        return BookingDecision.ok(reservation, slot)

    def _missing_fields(self, request: ReservationInput) -> list[str]:
        missing = []
        if not request.requester_id:
            missing.append("requester")
        if not request.facility_id:
            missing.append("facility")
        if not request.date:
            missing.append("date")
        has_window = bool(request.start_time and request.end_time)
        if not request.slot_definition_id and not has_window:
            missing.append("time window")
        return missing

    def _find_target(
        self, request: ReservationInput, entries: list[SlotAvailability]
    ) -> Optional[SlotAvailability]:
        """Pick the slot a request refers to, by id or by exact window."""
        if request.slot_definition_id:
            return next(
                (e for e in entries if e.slot.id == request.slot_definition_id),
                None,
            )

        matches = [
            e
            for e in entries
            if e.slot.start_time == request.start_time and e.slot.end_time == request.end_time
        ]
        if not matches:
            return None
        # Prefer a free slot, then one pinned to this exact date
        matches.sort(
            key=lambda e: (
                not e.is_available,
                e.slot.applicability != Applicability.EXACT_DATE,
            )
        )
        return matches[0]

    def _reject(
        self, request: ReservationInput, reason: RejectionReason, message: str
    ) -> BookingDecision:
        logger.info(
            "booking_rejected",
            reason=reason.value,
            requester_id=request.requester_id,
            facility_id=request.facility_id,
            date=request.date,
        )
        return BookingDecision.rejected(reason, message)
