"""Structured audit logging for scheduling actions.

Provides the audit trail staff use to review bookings, slot changes and
inconsistencies flagged during confirmation.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from fieldbook.logging import get_logger

logger = get_logger(__name__)


class AuditEventType(str, Enum):
    """Types of auditable events."""

    # Slot definitions
    SLOT_DEFINITION_CREATED = "slot_definition_created"
    SLOT_DEFINITION_UPDATED = "slot_definition_updated"
    SLOT_DEFINITION_DELETED = "slot_definition_deleted"
    SLOT_DEFINITION_CONSUMED = "slot_definition_consumed"

    # Reservation lifecycle
    RESERVATION_CREATED = "reservation_created"
    RESERVATION_CONFIRMED = "reservation_confirmed"
    RESERVATION_CANCELLED = "reservation_cancelled"
    RESERVATION_DELETED = "reservation_deleted"
    RESERVATION_REJECTED = "reservation_rejected"

    # Review queue
    SCHEDULE_INCONSISTENCY = "schedule_inconsistency"

    # Security
    PERMISSION_DENIED = "permission_denied"


class AuditLogger:
    """Centralized audit logging service."""

    @staticmethod
    def log_event(
        event_type: AuditEventType,
        actor_id: str,
        resource_type: str,
        resource_id: str,
        action: str,
        success: bool = True,
        metadata: Optional[dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        """
        Log an auditable event with structured context.

        Args:
            event_type: Type of audit event
            actor_id: User performing the action ("system" for side effects)
            resource_type: Type of resource (slot_definition, reservation)
            resource_id: ID of the affected resource
            action: Human-readable action description
            success: Whether the action succeeded
            metadata: Additional context (windows, prices, statuses)
            error: Error code if action failed
        """
        audit_entry = {
            "event_type": event_type.value,
            "actor_id": actor_id,
            "resource_type": resource_type,
            "resource_id": str(resource_id),
            "action": action,
            "success": success,
            "timestamp": datetime.utcnow().isoformat(),
            "metadata": metadata or {},
        }

        if error:
            audit_entry["error"] = error

        logger.info(
            "audit_event",
            **audit_entry,
        )

    @staticmethod
    def log_slot_definition_changed(
        event_type: AuditEventType,
        actor_id: str,
        slot_id: str,
        facility_id: str,
        window: str,
        changes: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log an administrator change to a slot definition."""
        verb = {
            AuditEventType.SLOT_DEFINITION_CREATED: "Created",
            AuditEventType.SLOT_DEFINITION_UPDATED: "Updated",
            AuditEventType.SLOT_DEFINITION_DELETED: "Deleted",
        }.get(event_type, "Changed")

        AuditLogger.log_event(
            event_type=event_type,
            actor_id=actor_id,
            resource_type="slot_definition",
            resource_id=slot_id,
            action=f"{verb} slot {window} for facility {facility_id}",
            metadata={
                "facility_id": facility_id,
                "window": window,
                "changes": changes or {},
            },
        )

    @staticmethod
    def log_slot_definition_consumed(
        actor_id: str,
        slot_id: str,
        reservation_id: str,
        all_days: bool,
    ) -> None:
        """Log a slot definition removed by a confirmed reservation."""
        AuditLogger.log_event(
            event_type=AuditEventType.SLOT_DEFINITION_CONSUMED,
            actor_id=actor_id,
            resource_type="slot_definition",
            resource_id=slot_id,
            action="Slot consumed by confirmed reservation",
            metadata={"reservation_id": reservation_id, "all_days": all_days},
        )

    @staticmethod
    def log_reservation_created(
        actor_id: str,
        reservation_id: str,
        facility_id: str,
        date: str,
        window: str,
        total_price: float,
    ) -> None:
        """Log a new pending reservation."""
        AuditLogger.log_event(
            event_type=AuditEventType.RESERVATION_CREATED,
            actor_id=actor_id,
            resource_type="reservation",
            resource_id=reservation_id,
            action=f"Requested {window} on {date}",
            metadata={
                "facility_id": facility_id,
                "date": date,
                "window": window,
                "total_price": total_price,
            },
        )

    @staticmethod
    def log_status_change(
        actor_id: str,
        reservation_id: str,
        previous_status: str,
        new_status: str,
        reason: Optional[str] = None,
    ) -> None:
        """Log a reservation status transition."""
        event_type = (
            AuditEventType.RESERVATION_CONFIRMED
            if new_status == "confirmed"
            else AuditEventType.RESERVATION_CANCELLED
        )
        AuditLogger.log_event(
            event_type=event_type,
            actor_id=actor_id,
            resource_type="reservation",
            resource_id=reservation_id,
            action=f"Reservation {previous_status} -> {new_status}",
            metadata={
                "previous_status": previous_status,
                "new_status": new_status,
                "reason": reason,
            },
        )

    @staticmethod
    def log_transition_rejected(
        actor_id: str,
        reservation_id: str,
        requested_status: str,
        error_code: str,
    ) -> None:
        """Log a status change that was refused."""
        AuditLogger.log_event(
            event_type=AuditEventType.RESERVATION_REJECTED,
            actor_id=actor_id,
            resource_type="reservation",
            resource_id=reservation_id,
            action=f"Refused transition to {requested_status}",
            success=False,
            metadata={"requested_status": requested_status},
            error=error_code,
        )

    @staticmethod
    def log_inconsistency(
        reservation_id: str,
        facility_id: str,
        date: str,
        window: str,
        matched_slot_ids: list[str],
    ) -> None:
        """Flag a confirmation whose slot match was not exactly one definition."""
        AuditLogger.log_event(
            event_type=AuditEventType.SCHEDULE_INCONSISTENCY,
            actor_id="system",
            resource_type="reservation",
            resource_id=reservation_id,
            action=f"Confirmation matched {len(matched_slot_ids)} slot definitions",
            success=False,
            metadata={
                "facility_id": facility_id,
                "date": date,
                "window": window,
                "matched_slot_ids": matched_slot_ids,
                "needs_review": True,
            },
            error="SlotDefinitionNotFoundOnConfirm" if not matched_slot_ids else None,
        )

    @staticmethod
    def log_permission_denied(
        actor_id: str,
        resource_type: str,
        resource_id: str,
        attempted_action: str,
    ) -> None:
        """Log unauthorized access attempts."""
        AuditLogger.log_event(
            event_type=AuditEventType.PERMISSION_DENIED,
            actor_id=actor_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=f"Permission denied: {attempted_action}",
            success=False,
            metadata={"attempted_action": attempted_action},
        )

    @staticmethod
    def log_invalid_slot_definition(slot_id: str, facility_id: str, error: str) -> None:
        """Flag a stored slot definition that no longer validates; it is skipped until fixed."""
        AuditLogger.log_event(
            event_type=AuditEventType.SCHEDULE_INCONSISTENCY,
            actor_id="system",
            resource_type="slot_definition",
            resource_id=slot_id,
            action="Stored slot definition failed validation",
            success=False,
            metadata={"facility_id": facility_id, "needs_review": True},
            error=error,
        )
