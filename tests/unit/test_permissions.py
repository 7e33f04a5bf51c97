"""Unit tests for role-based permission checks."""

from unittest.mock import patch

import pytest

from fieldbook.models.reservation import Reservation
from fieldbook.models.user import User, UserRole
from fieldbook.security.permissions import Permission, PermissionChecker
from fieldbook.services.errors import PermissionDenied


@pytest.fixture
def checker():
    return PermissionChecker(admin_user_ids=["owner"], staff_user_ids=["desk"])


@pytest.fixture
def reservation():
    return Reservation(
        id="r1",
        requester_id="client-1",
        facility_id="F1",
        date="2025-03-10",
        start_time="10:00",
        end_time="11:00",
    )


def test_roles_from_configured_ids(checker):
    assert checker.role_for("owner") == UserRole.ADMIN
    assert checker.role_for("desk") == UserRole.EMPLOYEE
    assert checker.role_for("anyone") == UserRole.CLIENT
    assert checker.user_for("desk").is_staff


def test_slot_management_is_admin_only(checker, admin, employee, client):
    assert checker.can_manage_slots(admin)
    assert checker.can_manage_slots(User(id="owner"))
    assert not checker.can_manage_slots(employee)
    assert not checker.can_manage_slots(client)


def test_confirm_requires_staff(checker, admin, employee, client):
    assert checker.can_confirm(admin)
    assert checker.can_confirm(employee)
    assert checker.can_confirm(User(id="desk"))
    assert not checker.can_confirm(client)


def test_cancel_by_staff_or_requester(checker, reservation, employee, client, other_client):
    assert checker.can_cancel(employee, reservation)
    assert checker.can_cancel(client, reservation)
    assert not checker.can_cancel(other_client, reservation)


def test_booking_on_behalf(checker, employee, client):
    assert checker.can_make_reservation(client, "client-1")
    assert not checker.can_make_reservation(client, "client-2")
    assert checker.can_make_reservation(employee, "client-2")


def test_require_raises_and_audits(checker, client):
    with patch("fieldbook.security.permissions.AuditLogger") as audit:
        with pytest.raises(PermissionDenied) as exc_info:
            checker.require(False, client, Permission.CONFIRM_RESERVATION, "reservation", "r1")

    assert exc_info.value.code == "PermissionDenied"
    assert exc_info.value.context["permission"] == "confirm_reservation"
    audit.log_permission_denied.assert_called_once_with(
        actor_id="client-1",
        resource_type="reservation",
        resource_id="r1",
        attempted_action="confirm_reservation",
    )


def test_require_allows(checker, admin):
    checker.require(True, admin, Permission.MANAGE_SLOTS, "slot_definition", "s1")
