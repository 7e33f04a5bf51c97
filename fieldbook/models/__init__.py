"""Models package - Pydantic domain models."""

from .reservation import Reservation, ReservationInput, ReservationStatus
from .slot_definition import Applicability, SlotDefinition, SlotDefinitionInput
from .user import User, UserRole

__all__ = [
    "Applicability",
    "Reservation",
    "ReservationInput",
    "ReservationStatus",
    "SlotDefinition",
    "SlotDefinitionInput",
    "User",
    "UserRole",
]
