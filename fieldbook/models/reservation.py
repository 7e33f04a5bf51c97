"""Reservation domain model."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from fieldbook.models.slot_definition import validate_calendar_date, validate_clock_time


class ReservationStatus(str, Enum):
    """Reservation status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class ReservationInput(BaseModel):
    """Input model for reservation creation."""

    model_config = ConfigDict(populate_by_name=True)

    requester_id: Optional[str] = Field(default=None, alias="userId")
    facility_id: Optional[str] = Field(default=None, alias="fieldId")
    date: Optional[str] = None
    slot_definition_id: Optional[str] = Field(default=None, alias="slotId")
    start_time: Optional[str] = Field(default=None, alias="startTime")
    end_time: Optional[str] = Field(default=None, alias="endTime")
    payment_method_id: str = Field(default="default", alias="paymentMethodId")


class Reservation(BaseModel):
    """A user's booking of a date/time window at a facility."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    requester_id: str = Field(alias="userId", min_length=1)
    facility_id: str = Field(alias="fieldId", min_length=1)
    date: str
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    total_price: Decimal = Field(default=Decimal("0"), ge=0, alias="totalPrice")
    status: ReservationStatus = Field(default=ReservationStatus.PENDING)
    slot_definition_id: Optional[str] = Field(default=None, alias="slotId")
    payment_method_id: str = Field(default="default", alias="paymentMethodId")
    cancellation_reason: Optional[str] = Field(default=None, alias="cancellationReason")
    cancelled_at: Optional[datetime] = Field(default=None, alias="cancelledAt")
    confirmed_at: Optional[datetime] = Field(default=None, alias="confirmedAt")
    created_at: datetime = Field(default_factory=datetime.utcnow, alias="createdAt")
    version: int = Field(default=0, exclude=True, description="Store concurrency token")

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v: str) -> str:
        """Ensure times are HH:MM."""
        return validate_clock_time(v)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        """Ensure the date is YYYY-MM-DD."""
        return validate_calendar_date(v)

    @model_validator(mode="after")
    def validate_window(self) -> "Reservation":
        """Ensure start_time < end_time."""
        if self.start_time >= self.end_time:
            raise ValueError("end_time must be after start_time")
        return self

    @field_serializer("total_price", when_used="json")
    def serialize_total_price(self, v: Decimal) -> float:
        """Documents store prices as plain numbers."""
        return float(v)

    @property
    def window(self) -> str:
        """Human-readable time window."""
        return f"{self.start_time}-{self.end_time}"

    @property
    def window_key(self) -> str:
        """Identity of the booked window, used for exclusive writes."""
        return f"{self.facility_id}|{self.date}|{self.start_time}|{self.end_time}"

    @property
    def blocks_availability(self) -> bool:
        """Only confirmed reservations make a window unavailable."""
        return self.status == ReservationStatus.CONFIRMED

    @property
    def is_cancellable(self) -> bool:
        """Check if reservation can still be cancelled."""
        return self.status in (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)

    @classmethod
    def from_document(cls, doc_id: str, data: dict, version: int = 0) -> "Reservation":
        """Build a reservation from a ``reservations`` document."""
        return cls.model_validate({**data, "id": doc_id, "version": version})

    def to_document(self) -> dict:
        """Serialize to ``reservations`` document fields."""
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})
