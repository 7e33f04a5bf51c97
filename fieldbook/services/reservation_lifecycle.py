"""Reservation lifecycle service.

Owns the reservation status state machine:

    pending ──confirm──> confirmed ──cancel──> cancelled
       └───────────────cancel──────────────────┘

Confirming consumes the originating slot definition (it is deleted, for
every date when the slot was recurring). Cancelling never touches slot
definitions; a cancelled reservation simply stops blocking availability.
"""

from datetime import datetime
from typing import Optional

from fieldbook.logging import get_logger
from fieldbook.logging.audit import AuditLogger
from fieldbook.models.reservation import Reservation, ReservationStatus
from fieldbook.models.slot_definition import SlotDefinition
from fieldbook.models.user import User
from fieldbook.security.permissions import Permission, PermissionChecker
from fieldbook.services.availability import windows_overlap
from fieldbook.services.errors import (
    InvalidTransition,
    ReservationNotFound,
    SchedulingError,
    SlotDefinitionNotFoundOnConfirm,
    SlotUnavailable,
)
from fieldbook.storage.document_store import DocumentNotFound, VersionConflict
from fieldbook.storage.reservation_repo import ReservationRepository
from fieldbook.storage.slot_definition_repo import SlotDefinitionRepository

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset(
        {ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED}
    ),
    ReservationStatus.CONFIRMED: frozenset({ReservationStatus.CANCELLED}),
    ReservationStatus.CANCELLED: frozenset(),
}


def check_transition(current: ReservationStatus, new: ReservationStatus) -> None:
    """Raise InvalidTransition unless ``current -> new`` is allowed."""
    if new not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Cannot change reservation from {current.value} to {new.value}",
            current_status=current.value,
            requested_status=new.value,
        )


class ReservationLifecycleManager:
    """Applies reservation status transitions and their side effects."""

    def __init__(
        self,
        slot_repo: SlotDefinitionRepository,
        reservation_repo: ReservationRepository,
        permissions: PermissionChecker,
    ):
        """
        Initialize lifecycle manager.

        Args:
            slot_repo: Slot definitions consumed on confirmation
            reservation_repo: Reservations being transitioned
            permissions: Role checks for approve/reject/cancel
        """
        self.slot_repo = slot_repo
        self.reservation_repo = reservation_repo
        self.permissions = permissions

    async def transition(
        self,
        reservation_id: str,
        new_status: ReservationStatus,
        actor: User,
        reason: Optional[str] = None,
    ) -> Reservation:
        """
        Move a reservation to ``new_status``.

        Args:
            reservation_id: Reservation to update
            new_status: CONFIRMED or CANCELLED
            actor: User performing the change
            reason: Optional cancellation reason

        Returns:
            The updated reservation

        Raises:
            ReservationNotFound, PermissionDenied, InvalidTransition,
            SlotDefinitionNotFoundOnConfirm, SlotUnavailable
        """
        reservation = await self.reservation_repo.get_by_id(reservation_id)
        if reservation is None:
            raise ReservationNotFound(
                f"Reservation not found: {reservation_id}", reservation_id=reservation_id
            )

        try:
            self._authorize(reservation, new_status, actor)
            check_transition(reservation.status, new_status)

            if new_status == ReservationStatus.CONFIRMED:
                updated = await self._confirm(reservation, actor)
            else:
                updated = await self._cancel(reservation, reason)
        except SchedulingError as e:
            AuditLogger.log_transition_rejected(
                actor_id=actor.id,
                reservation_id=reservation_id,
                requested_status=new_status.value,
                error_code=e.code,
            )
            raise

        AuditLogger.log_status_change(
            actor_id=actor.id,
            reservation_id=reservation_id,
            previous_status=reservation.status.value,
            new_status=updated.status.value,
            reason=reason,
        )
        return updated

    async def confirm(self, reservation_id: str, actor: User) -> Reservation:
        """Approve a pending reservation."""
        return await self.transition(reservation_id, ReservationStatus.CONFIRMED, actor)

    async def cancel(
        self, reservation_id: str, actor: User, reason: Optional[str] = None
    ) -> Reservation:
        """Reject or self-cancel a reservation."""
        return await self.transition(
            reservation_id, ReservationStatus.CANCELLED, actor, reason=reason
        )

    def _authorize(
        self, reservation: Reservation, new_status: ReservationStatus, actor: User
    ) -> None:
        if new_status == ReservationStatus.CONFIRMED:
            self.permissions.require(
                self.permissions.can_confirm(actor),
                actor,
                Permission.CONFIRM_RESERVATION,
                "reservation",
                reservation.id or "",
            )
        else:
            self.permissions.require(
                self.permissions.can_cancel(actor, reservation),
                actor,
                Permission.CANCEL_RESERVATION,
                "reservation",
                reservation.id or "",
            )

    async def _confirm(self, reservation: Reservation, actor: User) -> Reservation:
        if reservation.slot_definition_id:
            consumed = await self._consume_linked_slot(reservation)
        else:
            consumed = await self._consume_matching_slots(reservation)

        try:
            updated = await self.reservation_repo.update(
                reservation.id,
                {
                    "status": ReservationStatus.CONFIRMED,
                    "confirmed_at": datetime.utcnow(),
                },
                expected_version=reservation.version,
            )
        except (VersionConflict, DocumentNotFound, ValueError) as e:
            # Slot already consumed; leave a trail for admin review
            AuditLogger.log_inconsistency(
                reservation_id=reservation.id,
                facility_id=reservation.facility_id,
                date=reservation.date,
                window=reservation.window,
                matched_slot_ids=[s.id for s in consumed],
            )
            raise InvalidTransition(
                "Reservation changed while it was being confirmed",
                reservation_id=reservation.id,
            ) from e

        for slot in consumed:
            AuditLogger.log_slot_definition_consumed(
                actor_id=actor.id,
                slot_id=slot.id,
                reservation_id=reservation.id,
                all_days=slot.all_days,
            )
        logger.info(
            "reservation_confirmed",
            reservation_id=reservation.id,
            facility_id=reservation.facility_id,
            date=reservation.date,
            window=reservation.window,
            consumed_slot_ids=[s.id for s in consumed],
        )
        return updated

    async def _cancel(self, reservation: Reservation, reason: Optional[str]) -> Reservation:
        try:
            updated = await self.reservation_repo.update(
                reservation.id,
                {
                    "status": ReservationStatus.CANCELLED,
                    "cancelled_at": datetime.utcnow(),
                    "cancellation_reason": reason,
                },
                expected_version=reservation.version,
                release_window=True,
            )
        except (VersionConflict, DocumentNotFound, ValueError) as e:
            raise InvalidTransition(
                "Reservation changed while it was being cancelled",
                reservation_id=reservation.id,
            ) from e

        logger.info(
            "reservation_cancelled",
            reservation_id=reservation.id,
            previous_status=reservation.status.value,
            reason=reason,
        )
        return updated

    async def _consume_linked_slot(self, reservation: Reservation) -> list[SlotDefinition]:
        """Delete the exact slot a reservation was booked from."""
        slot_id = reservation.slot_definition_id
        slot = await self.slot_repo.get_by_id(slot_id)
        if slot is None:
            raise SlotDefinitionNotFoundOnConfirm(
                "This time slot was already consumed by another confirmed reservation",
                reservation_id=reservation.id,
                slot_id=slot_id,
            )

        await self._ensure_no_confirmed_overlap(reservation)

        # Delete-if-exists is the exclusivity gate between racing approvers
        if not await self.slot_repo.delete(slot_id):
            raise SlotDefinitionNotFoundOnConfirm(
                "This time slot was already consumed by another confirmed reservation",
                reservation_id=reservation.id,
                slot_id=slot_id,
            )

        return [slot]

    async def _consume_matching_slots(self, reservation: Reservation) -> list[SlotDefinition]:
        """Delete slots matching an unlinked reservation's facility, window and date."""
        slots = await self.slot_repo.list_for_facility(reservation.facility_id)
        matches = [
            s
            for s in slots
            if s.start_time == reservation.start_time
            and s.end_time == reservation.end_time
            and s.applies_to(reservation.date)
        ]

        if not matches:
            overlapping = await self._confirmed_overlaps(reservation)
            if overlapping:
                raise SlotDefinitionNotFoundOnConfirm(
                    "This time slot was already consumed by another confirmed reservation",
                    reservation_id=reservation.id,
                    conflicting_reservation_ids=overlapping,
                )
            logger.warning(
                "confirm_slot_not_found",
                reservation_id=reservation.id,
                facility_id=reservation.facility_id,
                date=reservation.date,
                window=reservation.window,
            )
            AuditLogger.log_inconsistency(
                reservation_id=reservation.id,
                facility_id=reservation.facility_id,
                date=reservation.date,
                window=reservation.window,
                matched_slot_ids=[],
            )
            return []

        await self._ensure_no_confirmed_overlap(reservation)

        if len(matches) > 1:
            logger.warning(
                "confirm_multiple_slots_matched",
                reservation_id=reservation.id,
                slot_ids=[s.id for s in matches],
            )
            AuditLogger.log_inconsistency(
                reservation_id=reservation.id,
                facility_id=reservation.facility_id,
                date=reservation.date,
                window=reservation.window,
                matched_slot_ids=[s.id for s in matches],
            )

        consumed = [s for s in matches if await self.slot_repo.delete(s.id)]
        if not consumed:
            raise SlotDefinitionNotFoundOnConfirm(
                "This time slot was already consumed by another confirmed reservation",
                reservation_id=reservation.id,
            )

        return consumed

    async def _confirmed_overlaps(self, reservation: Reservation) -> list[str]:
        confirmed = await self.reservation_repo.list_confirmed(
            reservation.facility_id, reservation.date
        )
        return [
            other.id
            for other in confirmed
            if other.id != reservation.id
            and windows_overlap(
                reservation.start_time, reservation.end_time, other.start_time, other.end_time
            )
        ]

    async def _ensure_no_confirmed_overlap(self, reservation: Reservation) -> None:
        """Confirmed windows of a facility/date must never overlap."""
        overlapping = await self._confirmed_overlaps(reservation)
        if overlapping:
            raise SlotUnavailable(
                "This time window overlaps a confirmed reservation",
                reservation_id=reservation.id,
                conflicting_reservation_ids=overlapping,
            )
