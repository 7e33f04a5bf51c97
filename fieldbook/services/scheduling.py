"""Scheduling service: the inbound interface used by the booking screens.

Composes validation, the reservation lifecycle and slot administration over
the repositories, optionally serializing bookings of one window through a
Redis lock.
"""

from contextlib import contextmanager
from typing import Iterator, Optional, Union

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from fieldbook.config.settings import Settings
from fieldbook.logging import get_logger
from fieldbook.logging.audit import AuditEventType, AuditLogger
from fieldbook.models.reservation import Reservation, ReservationInput, ReservationStatus
from fieldbook.models.slot_definition import SlotDefinition, SlotDefinitionInput
from fieldbook.models.user import User
from fieldbook.security.permissions import Permission, PermissionChecker
from fieldbook.services.availability import (
    AvailabilityReport,
    AvailabilityResolver,
    RepositoryScheduleSource,
    ScheduleSource,
    SlotAvailability,
)
from fieldbook.services.booking_validation import (
    BookingDecision,
    BookingValidator,
    approval_token,
)
from fieldbook.services.errors import (
    InvalidTransition,
    ReservationNotFound,
    SlotUnavailable,
    StaleApproval,
    StoreUnavailable,
    WindowBusy,
)
from fieldbook.services.reservation_lifecycle import ReservationLifecycleManager
from fieldbook.services.slot_admin import SlotAdminService
from fieldbook.storage.document_store import DuplicateKey, StoreError
from fieldbook.storage.redis_locks import RedisLockHelper
from fieldbook.storage.reservation_repo import ReservationRepository
from fieldbook.storage.slot_definition_repo import SlotDefinitionRepository

logger = get_logger(__name__)


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Surface driver and network failures as StoreUnavailable."""
    try:
        yield
    except (SQLAlchemyError, RedisError, OSError, StoreError) as e:
        logger.error("store_unavailable", operation=operation, error=str(e))
        raise StoreUnavailable(
            "The booking store is unavailable. Please try again.", operation=operation
        ) from e


class SchedulingService:
    """Facade over booking validation, reservation lifecycle and slot administration."""

    def __init__(
        self,
        slot_repo: SlotDefinitionRepository,
        reservation_repo: ReservationRepository,
        permissions: PermissionChecker,
        settings: Optional[Settings] = None,
        redis_locks: Optional[RedisLockHelper] = None,
        availability_source: Optional[ScheduleSource] = None,
    ):
        """
        Initialize scheduling service.

        Args:
            slot_repo: Slot definition repository
            reservation_repo: Reservation repository
            permissions: Role checks
            settings: Booking rules; defaults when omitted
            redis_locks: Connected lock helper, or None to book without locks
            availability_source: Source for list_availability, e.g. a
                ScheduleMirror; the live repositories when omitted
        """
        settings = settings or Settings()
        self.slot_repo = slot_repo
        self.reservation_repo = reservation_repo
        self.permissions = permissions
        self.redis_locks = redis_locks
        self.exclusive_pending_bookings = settings.exclusive_pending_bookings

        self.validator = BookingValidator(
            slot_repo,
            reservation_repo,
            business_hours_open=settings.business_hours_open,
            business_hours_close=settings.business_hours_close,
        )
        self.lifecycle = ReservationLifecycleManager(slot_repo, reservation_repo, permissions)
        self.slot_admin = SlotAdminService(slot_repo, permissions)
        self.resolver = AvailabilityResolver(
            availability_source or RepositoryScheduleSource(slot_repo, reservation_repo)
        )

    # Reservations

    async def create_reservation(self, request: ReservationInput, actor: User) -> Reservation:
        """
        Validate and persist a pending reservation.

        Raises:
            PermissionDenied, MissingData, SlotUnavailable, OutsideBusinessHours,
            WindowBusy, StaleApproval, StoreUnavailable
        """
        if request.requester_id:
            self.permissions.require(
                self.permissions.can_make_reservation(actor, request.requester_id),
                actor,
                Permission.MAKE_RESERVATION,
                "facility",
                request.facility_id or "",
            )

        with store_errors("create_reservation"):
            decision = await self.validator.validate(request)
            decision.raise_for_rejection()

            if self.redis_locks is None:
                reservation = await self._commit(decision)
            else:
                pending = decision.reservation
                async with self.redis_locks.acquire_window_lock(
                    pending.facility_id, pending.date, pending.start_time, pending.end_time
                ) as acquired:
                    if not acquired:
                        logger.warning(
                            "window_lock_acquisition_failed",
                            facility_id=pending.facility_id,
                            date=pending.date,
                            window=pending.window,
                        )
                        raise WindowBusy(
                            "This time slot is being booked right now. Please try again.",
                            facility_id=pending.facility_id,
                        )
                    reservation = await self._commit(decision)

        AuditLogger.log_reservation_created(
            actor_id=actor.id,
            reservation_id=reservation.id,
            facility_id=reservation.facility_id,
            date=reservation.date,
            window=reservation.window,
            total_price=float(reservation.total_price),
        )
        return reservation

    async def _commit(self, decision: BookingDecision) -> Reservation:
        """Write a validated reservation if its slot is unchanged since validation."""
        pending = decision.reservation
        slot = await self.slot_repo.get_by_id(decision.slot.id)
        if slot is None:
            raise SlotUnavailable(
                "This time slot is no longer available", slot_id=decision.slot.id
            )
        if approval_token(pending, slot) != decision.approval_token:
            raise StaleApproval(
                "This time slot changed while you were booking. Please review it again.",
                slot_id=slot.id,
            )

        try:
            return await self.reservation_repo.create(
                pending, exclusive=self.exclusive_pending_bookings
            )
        except DuplicateKey as e:
            raise SlotUnavailable(
                "This time slot already has a booking request",
                facility_id=pending.facility_id,
                date=pending.date,
                window=pending.window,
            ) from e

    async def update_reservation_status(
        self,
        reservation_id: str,
        new_status: Union[ReservationStatus, str],
        actor: User,
        reason: Optional[str] = None,
    ) -> Reservation:
        """Confirm or cancel a reservation."""
        try:
            status = ReservationStatus(new_status)
        except ValueError as e:
            raise InvalidTransition(
                f"Unknown reservation status: {new_status}", reservation_id=reservation_id
            ) from e

        with store_errors("update_reservation_status"):
            return await self.lifecycle.transition(reservation_id, status, actor, reason=reason)

    async def delete_reservation(self, reservation_id: str, actor: User) -> None:
        """Remove a reservation record. Consumed slot definitions are not restored."""
        self.permissions.require(
            self.permissions.can_delete_reservation(actor),
            actor,
            Permission.DELETE_RESERVATION,
            "reservation",
            reservation_id,
        )

        with store_errors("delete_reservation"):
            if not await self.reservation_repo.delete(reservation_id):
                raise ReservationNotFound(
                    f"Reservation not found: {reservation_id}", reservation_id=reservation_id
                )

        AuditLogger.log_event(
            event_type=AuditEventType.RESERVATION_DELETED,
            actor_id=actor.id,
            resource_type="reservation",
            resource_id=reservation_id,
            action="Deleted reservation",
        )

    async def list_user_reservations(
        self, requester_id: str, actor: User, limit: int = 50
    ) -> list[Reservation]:
        """Reservations made by a user, newest first."""
        self.permissions.require(
            self.permissions.can_view_reservations(actor, requester_id),
            actor,
            Permission.VIEW_RESERVATIONS,
            "user",
            requester_id,
        )
        with store_errors("list_user_reservations"):
            return await self.reservation_repo.list_by_requester(requester_id, limit=limit)

    async def list_facility_reservations(
        self,
        facility_id: str,
        date: str,
        actor: User,
        status: Optional[ReservationStatus] = None,
    ) -> list[Reservation]:
        """Every reservation of a facility on a date, for staff review."""
        self.permissions.require(
            self.permissions.is_staff(actor),
            actor,
            Permission.VIEW_RESERVATIONS,
            "facility",
            facility_id,
        )
        with store_errors("list_facility_reservations"):
            return await self.reservation_repo.list_for_facility_date(
                facility_id, date, status=status
            )

    # Availability

    async def list_availability(self, facility_id: str, date: str) -> list[SlotAvailability]:
        """Slots offered at a facility on a date, flagged available or reserved."""
        with store_errors("list_availability"):
            return await self.resolver.resolve(facility_id, date)

    async def diagnose(self, facility_id: str, date: str, actor: User) -> AvailabilityReport:
        """Explain an empty booking screen: nothing configured or fully booked."""
        self.permissions.require(
            self.permissions.is_staff(actor),
            actor,
            Permission.VIEW_RESERVATIONS,
            "facility",
            facility_id,
        )
        with store_errors("diagnose"):
            return await self.validator.resolver.diagnose(facility_id, date)

    # Slot definitions

    async def create_slot_definition(
        self, data: Union[dict, SlotDefinitionInput], actor: User
    ) -> SlotDefinition:
        with store_errors("create_slot_definition"):
            return await self.slot_admin.create_slot_definition(data, actor)

    async def update_slot_definition(self, slot_id: str, patch: dict, actor: User) -> SlotDefinition:
        with store_errors("update_slot_definition"):
            return await self.slot_admin.update_slot_definition(slot_id, patch, actor)

    async def delete_slot_definition(self, slot_id: str, actor: User) -> None:
        with store_errors("delete_slot_definition"):
            await self.slot_admin.delete_slot_definition(slot_id, actor)

    async def list_facility_slots(
        self, facility_id: str, include_inactive: bool = True
    ) -> list[SlotDefinition]:
        with store_errors("list_facility_slots"):
            return await self.slot_admin.list_facility_slots(
                facility_id, include_inactive=include_inactive
            )
