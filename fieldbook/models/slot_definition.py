"""Slot definition domain models."""

import re
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

# Zero-padded 24h clock, so string comparison orders times correctly
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def validate_clock_time(value: str) -> str:
    """Ensure a time is an ``HH:MM`` string."""
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise ValueError(f"time must be zero-padded HH:MM, got {value!r}")
    return value


def validate_calendar_date(value: str) -> str:
    """Ensure a date is a real ``YYYY-MM-DD`` calendar date."""
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise ValueError(f"date must be YYYY-MM-DD, got {value!r}")
    datetime.strptime(value, "%Y-%m-%d")
    return value


class Applicability(str, Enum):
    """Which dates a slot definition can be booked on."""

    ALL_DAYS = "all_days"
    EXACT_DATE = "exact_date"


class SlotDefinitionInput(BaseModel):
    """Input model for slot definition creation."""

    model_config = ConfigDict(populate_by_name=True)

    facility_id: str = Field(alias="fieldId", min_length=1)
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    price: Decimal = Field(default=Decimal("0"), ge=0)
    is_active: bool = Field(default=True, alias="isActive")
    all_days: bool = Field(default=False, alias="allDays")
    date: Optional[str] = None
    day_of_week: str = Field(default="", alias="dayOfWeek")

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v: str) -> str:
        """Ensure times are HH:MM."""
        return validate_clock_time(v)

    @field_validator("date", mode="before")
    @classmethod
    def validate_date(cls, v: Any) -> Optional[str]:
        """Blank dates are stored by recurring slots; treat them as absent."""
        if v is None or v == "":
            return None
        return validate_calendar_date(v)

    @model_validator(mode="after")
    def validate_window_and_applicability(self) -> "SlotDefinitionInput":
        """Ensure start < end and exactly one applicability mode."""
        if self.start_time >= self.end_time:
            raise ValueError("end_time must be after start_time")
        if self.all_days and self.date is not None:
            raise ValueError("a slot is either recurring (all_days) or pinned to a date, not both")
        if not self.all_days and self.date is None:
            raise ValueError("a slot needs all_days or an exact date")
        return self

    @field_serializer("price", when_used="json")
    def serialize_price(self, v: Decimal) -> float:
        """Documents store prices as plain numbers."""
        return float(v)

    @property
    def applicability(self) -> Applicability:
        """Applicability mode of this slot."""
        return Applicability.ALL_DAYS if self.all_days else Applicability.EXACT_DATE

    @property
    def window(self) -> str:
        """Human-readable time window."""
        return f"{self.start_time}-{self.end_time}"

    def applies_to(self, date: str) -> bool:
        """Check whether this slot can be booked on ``date``."""
        return self.all_days or self.date == date

    def same_applicability(self, other: "SlotDefinitionInput") -> bool:
        """Check whether two slots are offered on the same dates."""
        if self.all_days or other.all_days:
            return self.all_days == other.all_days
        return self.date == other.date


class SlotDefinition(SlotDefinitionInput):
    """Administrator-configured bookable window for a facility."""

    id: str
    created_at: datetime = Field(default_factory=datetime.utcnow, alias="createdAt")
    version: int = Field(default=0, exclude=True, description="Store concurrency token")

    @classmethod
    def from_document(cls, doc_id: str, data: dict, version: int = 0) -> "SlotDefinition":
        """Build a slot definition from a ``timeSlots`` document."""
        return cls.model_validate({**data, "id": doc_id, "version": version})

    def to_document(self) -> dict:
        """Serialize to ``timeSlots`` document fields."""
        data = self.model_dump(mode="json", by_alias=True, exclude={"id"})
        data["date"] = self.date or ""
        return data
