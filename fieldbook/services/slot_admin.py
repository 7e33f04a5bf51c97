"""Slot definition administration.

Administrators publish the bookable windows of a facility: recurring
(``all_days``) or pinned to one date. Two active slots of the same facility
may not offer the same window on the same dates.
"""

from typing import Any, Optional

from pydantic import ValidationError

from fieldbook.logging import get_logger
from fieldbook.logging.audit import AuditEventType, AuditLogger
from fieldbook.models.slot_definition import SlotDefinition, SlotDefinitionInput
from fieldbook.models.user import User
from fieldbook.security.permissions import Permission, PermissionChecker
from fieldbook.services.errors import (
    DuplicateSlotDefinition,
    InvalidSlotDefinition,
    SlotDefinitionNotFound,
)
from fieldbook.storage.document_store import DocumentNotFound, VersionConflict
from fieldbook.storage.slot_definition_repo import SlotDefinitionRepository

logger = get_logger(__name__)

# Fields an administrator may change on an existing slot
EDITABLE_FIELDS = frozenset(
    {"start_time", "end_time", "price", "is_active", "all_days", "date", "day_of_week"}
)


def normalize_patch(patch: dict[str, Any]) -> dict[str, Any]:
    """Switching applicability mode clears the other mode's field."""
    normalized = dict(patch)
    if normalized.get("all_days") is True:
        normalized["date"] = None
    elif normalized.get("date"):
        normalized["all_days"] = False
    return normalized


class SlotAdminService:
    """Create, edit and remove slot definitions."""

    def __init__(self, slot_repo: SlotDefinitionRepository, permissions: PermissionChecker):
        self.slot_repo = slot_repo
        self.permissions = permissions

    async def create_slot_definition(
        self, data: dict[str, Any] | SlotDefinitionInput, actor: User
    ) -> SlotDefinition:
        """
        Publish a new slot definition.

        Args:
            data: Slot fields, by name or document alias
            actor: Administrator creating the slot

        Returns:
            The stored slot definition

        Raises:
            PermissionDenied, InvalidSlotDefinition, DuplicateSlotDefinition
        """
        self._require_admin(actor, "new")

        try:
            slot_input = (
                data
                if isinstance(data, SlotDefinitionInput)
                else SlotDefinitionInput.model_validate(data)
            )
        except ValidationError as e:
            raise InvalidSlotDefinition(f"Invalid slot definition: {e}") from e

        await self._ensure_unique(slot_input)

        slot = await self.slot_repo.create(slot_input)
        AuditLogger.log_slot_definition_changed(
            event_type=AuditEventType.SLOT_DEFINITION_CREATED,
            actor_id=actor.id,
            slot_id=slot.id,
            facility_id=slot.facility_id,
            window=slot.window,
        )
        return slot

    async def update_slot_definition(
        self, slot_id: str, patch: dict[str, Any], actor: User
    ) -> SlotDefinition:
        """
        Edit a slot definition.

        Reservations already made from the slot keep their own copy of the
        window and price.
        """
        self._require_admin(actor, slot_id)

        unknown = set(patch) - EDITABLE_FIELDS
        if unknown:
            raise InvalidSlotDefinition(
                f"Fields cannot be edited: {', '.join(sorted(unknown))}", slot_id=slot_id
            )

        current = await self.slot_repo.get_by_id(slot_id)
        if current is None:
            raise SlotDefinitionNotFound(f"Slot definition not found: {slot_id}", slot_id=slot_id)

        patch = normalize_patch(patch)
        try:
            candidate = SlotDefinition.model_validate({**current.model_dump(), **patch})
        except ValidationError as e:
            raise InvalidSlotDefinition(f"Invalid slot definition: {e}", slot_id=slot_id) from e

        await self._ensure_unique(candidate, exclude_id=slot_id)

        try:
            slot = await self.slot_repo.update(slot_id, patch, expected_version=current.version)
        except (DocumentNotFound, ValueError) as e:
            raise SlotDefinitionNotFound(
                f"Slot definition not found: {slot_id}", slot_id=slot_id
            ) from e
        except VersionConflict as e:
            raise InvalidSlotDefinition(
                "Slot definition changed concurrently; reload and retry", slot_id=slot_id
            ) from e

        AuditLogger.log_slot_definition_changed(
            event_type=AuditEventType.SLOT_DEFINITION_UPDATED,
            actor_id=actor.id,
            slot_id=slot.id,
            facility_id=slot.facility_id,
            window=slot.window,
            changes={k: str(v) if v is not None else None for k, v in patch.items()},
        )
        return slot

    async def delete_slot_definition(self, slot_id: str, actor: User) -> None:
        """Remove a slot definition; existing reservations are unaffected."""
        self._require_admin(actor, slot_id)

        slot = await self.slot_repo.get_by_id(slot_id)
        if slot is None or not await self.slot_repo.delete(slot_id):
            raise SlotDefinitionNotFound(f"Slot definition not found: {slot_id}", slot_id=slot_id)

        AuditLogger.log_slot_definition_changed(
            event_type=AuditEventType.SLOT_DEFINITION_DELETED,
            actor_id=actor.id,
            slot_id=slot_id,
            facility_id=slot.facility_id,
            window=slot.window,
        )

    async def list_facility_slots(
        self, facility_id: str, include_inactive: bool = True
    ) -> list[SlotDefinition]:
        """Slot definitions of a facility for the admin screen."""
        return await self.slot_repo.list_for_facility(
            facility_id, active_only=not include_inactive
        )

    def _require_admin(self, actor: User, slot_id: str) -> None:
        self.permissions.require(
            self.permissions.can_manage_slots(actor),
            actor,
            Permission.MANAGE_SLOTS,
            "slot_definition",
            slot_id,
        )

    async def _ensure_unique(
        self, candidate: SlotDefinitionInput, exclude_id: Optional[str] = None
    ) -> None:
        """Reject a second active slot with the same window on the same dates."""
        if not candidate.is_active:
            return

        existing = await self.slot_repo.list_for_facility(candidate.facility_id, active_only=True)
        for slot in existing:
            if slot.id == exclude_id:
                continue
            if (
                slot.start_time == candidate.start_time
                and slot.end_time == candidate.end_time
                and slot.same_applicability(candidate)
            ):
                logger.info(
                    "duplicate_slot_definition_rejected",
                    facility_id=candidate.facility_id,
                    window=candidate.window,
                    existing_slot_id=slot.id,
                )
                raise DuplicateSlotDefinition(
                    f"An active slot already offers {candidate.window} on these dates",
                    existing_slot_id=slot.id,
                )
