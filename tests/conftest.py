"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from fieldbook.config.settings import Settings
from fieldbook.models.reservation import Reservation, ReservationStatus
from fieldbook.models.slot_definition import SlotDefinitionInput
from fieldbook.models.user import User, UserRole
from fieldbook.security.permissions import PermissionChecker
from fieldbook.services.scheduling import SchedulingService
from fieldbook.storage.memory_store import InMemoryDocumentStore
from fieldbook.storage.reservation_repo import ReservationRepository
from fieldbook.storage.slot_definition_repo import SlotDefinitionRepository


@pytest.fixture
def store():
    """Fresh embedded document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def slot_repo(store):
    """Slot definition repository over the embedded store."""
    return SlotDefinitionRepository(store)


@pytest.fixture
def reservation_repo(store):
    """Reservation repository over the embedded store."""
    return ReservationRepository(store)


@pytest.fixture
def admin():
    return User(id="admin-1", role=UserRole.ADMIN)


@pytest.fixture
def employee():
    return User(id="employee-1", role=UserRole.EMPLOYEE)


@pytest.fixture
def client():
    return User(id="client-1", role=UserRole.CLIENT)


@pytest.fixture
def other_client():
    return User(id="client-2", role=UserRole.CLIENT)


@pytest.fixture
def permissions():
    """Permission checker with no ID-configured staff."""
    return PermissionChecker()


@pytest.fixture
def settings():
    """Settings for tests, independent of the developer's environment."""
    return Settings(
        _env_file=None,
        storage_backend="memory",
        window_locks_enabled=False,
        exclusive_pending_bookings=True,
        business_hours_open=8,
        business_hours_close=22,
    )


@pytest.fixture
def service(slot_repo, reservation_repo, permissions, settings):
    """Scheduling service over the embedded store."""
    return SchedulingService(slot_repo, reservation_repo, permissions, settings=settings)


@pytest.fixture
def make_slot(slot_repo):
    """Factory storing a slot definition with sensible defaults."""

    async def _make_slot(**overrides):
        fields = {
            "facility_id": "F1",
            "start_time": "10:00",
            "end_time": "11:00",
            "price": 50,
            "all_days": True,
        }
        fields.update(overrides)
        if fields.get("date"):
            fields["all_days"] = False
        return await slot_repo.create(SlotDefinitionInput(**fields))

    return _make_slot


@pytest.fixture
def make_reservation(reservation_repo):
    """Factory storing a reservation directly, bypassing validation."""

    async def _make_reservation(**overrides):
        fields = {
            "requester_id": "client-1",
            "facility_id": "F1",
            "date": "2025-03-10",
            "start_time": "10:00",
            "end_time": "11:00",
            "total_price": 50,
            "status": ReservationStatus.PENDING,
        }
        fields.update(overrides)
        return await reservation_repo.create(Reservation(**fields))

    return _make_reservation
