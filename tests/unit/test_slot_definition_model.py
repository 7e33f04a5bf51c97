"""Unit tests for slot definition and reservation models."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from fieldbook.models.reservation import Reservation, ReservationStatus
from fieldbook.models.slot_definition import (
    Applicability,
    SlotDefinition,
    SlotDefinitionInput,
)


def test_recurring_slot_applies_to_every_date():
    slot = SlotDefinitionInput(facility_id="F1", start_time="10:00", end_time="11:00", all_days=True)

    assert slot.applicability == Applicability.ALL_DAYS
    assert slot.applies_to("2025-03-10")
    assert slot.applies_to("2030-01-01")


def test_dated_slot_applies_to_its_date_only():
    slot = SlotDefinitionInput(
        facility_id="F1", start_time="10:00", end_time="11:00", date="2025-03-10"
    )

    assert slot.applicability == Applicability.EXACT_DATE
    assert slot.applies_to("2025-03-10")
    assert not slot.applies_to("2025-03-11")


def test_window_must_be_increasing():
    with pytest.raises(ValidationError):
        SlotDefinitionInput(facility_id="F1", start_time="11:00", end_time="11:00", all_days=True)
    with pytest.raises(ValidationError):
        SlotDefinitionInput(facility_id="F1", start_time="12:00", end_time="11:00", all_days=True)


def test_exactly_one_applicability_mode():
    with pytest.raises(ValidationError):
        SlotDefinitionInput(facility_id="F1", start_time="10:00", end_time="11:00")
    with pytest.raises(ValidationError):
        SlotDefinitionInput(
            facility_id="F1",
            start_time="10:00",
            end_time="11:00",
            all_days=True,
            date="2025-03-10",
        )


@pytest.mark.parametrize("value", ["9:00", "24:00", "10:60", "1000", ""])
def test_times_must_be_zero_padded_clock_times(value):
    with pytest.raises(ValidationError):
        SlotDefinitionInput(facility_id="F1", start_time=value, end_time="23:00", all_days=True)


def test_invalid_calendar_date_rejected():
    with pytest.raises(ValidationError):
        SlotDefinitionInput(facility_id="F1", start_time="10:00", end_time="11:00", date="2025-02-30")


def test_negative_price_rejected():
    with pytest.raises(ValidationError):
        SlotDefinitionInput(
            facility_id="F1", start_time="10:00", end_time="11:00", all_days=True, price=-1
        )


def test_document_round_trip_uses_store_field_names():
    data = {
        "fieldId": "F1",
        "startTime": "10:00",
        "endTime": "11:00",
        "price": 50,
        "dayOfWeek": "",
        "allDays": True,
        "date": "",
        "isActive": True,
        "createdAt": "2025-03-01T09:00:00",
    }

    slot = SlotDefinition.from_document("s1", data, version=3)
    document = slot.to_document()

    assert slot.id == "s1"
    assert slot.version == 3
    assert slot.date is None
    assert slot.price == Decimal("50")
    assert document["fieldId"] == "F1"
    assert document["allDays"] is True
    assert document["date"] == ""
    assert document["price"] == 50.0
    assert "id" not in document
    assert "version" not in document


def test_same_applicability():
    recurring = SlotDefinitionInput(facility_id="F1", start_time="10:00", end_time="11:00", all_days=True)
    day_one = SlotDefinitionInput(facility_id="F1", start_time="10:00", end_time="11:00", date="2025-03-10")
    day_two = SlotDefinitionInput(facility_id="F1", start_time="10:00", end_time="11:00", date="2025-03-11")

    assert recurring.same_applicability(recurring)
    assert day_one.same_applicability(day_one)
    assert not day_one.same_applicability(day_two)
    assert not recurring.same_applicability(day_one)


class TestReservationModel:
    def _reservation(self, **overrides):
        fields = {
            "requester_id": "client-1",
            "facility_id": "F1",
            "date": "2025-03-10",
            "start_time": "10:00",
            "end_time": "11:00",
        }
        fields.update(overrides)
        return Reservation(**fields)

    def test_defaults_to_pending(self):
        reservation = self._reservation()

        assert reservation.status == ReservationStatus.PENDING
        assert reservation.blocks_availability is False
        assert reservation.is_cancellable is True

    def test_only_confirmed_blocks(self):
        assert self._reservation(status=ReservationStatus.CONFIRMED).blocks_availability
        assert not self._reservation(status=ReservationStatus.CANCELLED).blocks_availability

    def test_window_key_identifies_facility_date_and_window(self):
        assert self._reservation().window_key == "F1|2025-03-10|10:00|11:00"

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            self._reservation(start_time="11:00", end_time="10:00")

    def test_document_fields(self):
        document = self._reservation(total_price=Decimal("42.50"), slot_definition_id="s1").to_document()

        assert document["userId"] == "client-1"
        assert document["fieldId"] == "F1"
        assert document["totalPrice"] == 42.5
        assert document["status"] == "pending"
        assert document["slotId"] == "s1"
