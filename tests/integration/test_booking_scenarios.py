"""Integration tests for booking flows through the scheduling service.

Exercises validation, the conditional reservation write and the confirm and
cancel side effects together against the embedded store.
"""

import asyncio

import pytest

from fieldbook.models.reservation import ReservationInput, ReservationStatus
from fieldbook.services.errors import (
    OutsideBusinessHours,
    SlotDefinitionNotFoundOnConfirm,
    SlotUnavailable,
)
from fieldbook.services.scheduling import SchedulingService


def _booking(requester_id="client-1", date="2025-03-10", **overrides):
    fields = {
        "requester_id": requester_id,
        "facility_id": "F1",
        "date": date,
        "start_time": "10:00",
        "end_time": "11:00",
    }
    fields.update(overrides)
    return ReservationInput(**fields)


@pytest.fixture
def permissive_service(slot_repo, reservation_repo, permissions, settings):
    """Service that allows several pending requests for one window."""
    settings.exclusive_pending_bookings = False
    return SchedulingService(slot_repo, reservation_repo, permissions, settings=settings)


@pytest.mark.asyncio
async def test_recurring_slot_consumed_for_every_date(service, admin, employee, client):
    """A confirmed booking of a recurring slot removes it from all dates."""
    await service.create_slot_definition(
        {"facility_id": "F1", "start_time": "10:00", "end_time": "11:00", "price": 50, "all_days": True},
        admin,
    )

    reservation = await service.create_reservation(_booking(), client)
    assert reservation.status == ReservationStatus.PENDING
    assert float(reservation.total_price) == 50.0

    await service.update_reservation_status(reservation.id, "confirmed", employee)

    assert await service.list_availability("F1", "2025-03-10") == []
    assert await service.list_availability("F1", "2025-03-11") == []


@pytest.mark.asyncio
async def test_second_approval_of_same_window_rejected(
    permissive_service, admin, employee, client, other_client, reservation_repo
):
    """Two pending requests for one slot: only the first approval succeeds."""
    service = permissive_service
    await service.create_slot_definition(
        {"facility_id": "F1", "start_time": "10:00", "end_time": "11:00", "price": 50, "all_days": True},
        admin,
    )

    first = await service.create_reservation(_booking("client-1"), client)
    second = await service.create_reservation(_booking("client-2"), other_client)

    availability = await service.list_availability("F1", "2025-03-10")
    assert len(availability) == 1
    assert availability[0].is_available is True

    await service.update_reservation_status(first.id, ReservationStatus.CONFIRMED, employee)
    assert await service.list_availability("F1", "2025-03-10") == []

    with pytest.raises(SlotDefinitionNotFoundOnConfirm):
        await service.update_reservation_status(second.id, ReservationStatus.CONFIRMED, employee)

    assert (await reservation_repo.get_by_id(second.id)).status == ReservationStatus.PENDING


@pytest.mark.asyncio
async def test_exclusive_pending_window_rejects_second_request(
    service, admin, client, other_client
):
    await service.create_slot_definition(
        {"facility_id": "F1", "start_time": "10:00", "end_time": "11:00", "price": 50, "all_days": True},
        admin,
    )
    await service.create_reservation(_booking("client-1"), client)

    with pytest.raises(SlotUnavailable):
        await service.create_reservation(_booking("client-2"), other_client)


@pytest.mark.asyncio
async def test_concurrent_requests_for_one_window(service, admin, client, other_client):
    """Racing requests for the same window produce a single pending reservation."""
    await service.create_slot_definition(
        {"facility_id": "F1", "start_time": "10:00", "end_time": "11:00", "price": 50, "all_days": True},
        admin,
    )

    results = await asyncio.gather(
        service.create_reservation(_booking("client-1"), client),
        service.create_reservation(_booking("client-2"), other_client),
        return_exceptions=True,
    )

    created = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, SlotUnavailable)]
    assert len(created) == 1
    assert len(rejected) == 1


@pytest.mark.asyncio
async def test_cancelling_pending_restores_original_availability(
    service, admin, client
):
    await service.create_slot_definition(
        {"facility_id": "F1", "start_time": "10:00", "end_time": "11:00", "price": 50, "all_days": True},
        admin,
    )
    before = await service.list_availability("F1", "2025-03-10")

    reservation = await service.create_reservation(_booking(), client)
    await service.update_reservation_status(reservation.id, "cancelled", client, reason="Plans changed")

    assert await service.list_availability("F1", "2025-03-10") == before
    # The window can be requested again once the pending request is gone
    again = await service.create_reservation(_booking(), client)
    assert again.status == ReservationStatus.PENDING


@pytest.mark.asyncio
async def test_confirming_leaves_unrelated_slots(service, admin, employee, client):
    for start, end in [("09:00", "10:00"), ("10:00", "11:00"), ("11:00", "12:00")]:
        await service.create_slot_definition(
            {"facility_id": "F1", "start_time": start, "end_time": end, "price": 40, "date": "2025-03-10"},
            admin,
        )
    await service.create_slot_definition(
        {"facility_id": "F2", "start_time": "10:00", "end_time": "11:00", "price": 40, "date": "2025-03-10"},
        admin,
    )

    reservation = await service.create_reservation(_booking(), client)
    await service.update_reservation_status(reservation.id, "confirmed", employee)

    remaining = await service.list_availability("F1", "2025-03-10")
    assert [(a.slot.start_time, a.is_available) for a in remaining] == [
        ("09:00", True),
        ("11:00", True),
    ]
    assert len(await service.list_availability("F2", "2025-03-10")) == 1


@pytest.mark.asyncio
async def test_booking_outside_business_hours_rejected(service, admin, client):
    await service.create_slot_definition(
        {"facility_id": "F1", "start_time": "23:00", "end_time": "23:59", "price": 50, "all_days": True},
        admin,
    )

    with pytest.raises(OutsideBusinessHours):
        await service.create_reservation(_booking(start_time="23:00", end_time="23:59"), client)
