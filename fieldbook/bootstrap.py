"""Application wiring: build the scheduling service from settings."""

from dataclasses import dataclass
from typing import Optional

from fieldbook.config import Settings, load_settings
from fieldbook.logging import get_logger, setup_logging
from fieldbook.security.permissions import PermissionChecker
from fieldbook.services.schedule_mirror import ScheduleMirror
from fieldbook.services.scheduling import SchedulingService
from fieldbook.storage.database import Database
from fieldbook.storage.document_store import DocumentStore
from fieldbook.storage.memory_store import InMemoryDocumentStore
from fieldbook.storage.redis_locks import RedisLockHelper
from fieldbook.storage.reservation_repo import ReservationRepository
from fieldbook.storage.slot_definition_repo import SlotDefinitionRepository
from fieldbook.storage.sql_store import SqlDocumentStore


@dataclass
class SchedulingRuntime:
    """Everything a host application holds on to between requests."""

    settings: Settings
    store: DocumentStore
    service: SchedulingService
    redis_locks: Optional[RedisLockHelper] = None
    mirror: Optional[ScheduleMirror] = None

    async def close(self) -> None:
        """Release subscriptions, the lock connection and the store."""
        if self.mirror is not None:
            self.mirror.close()
        if self.redis_locks is not None:
            await self.redis_locks.disconnect()
        await self.store.close()
        get_logger(__name__).info("scheduling_runtime_closed")


async def create_store(settings: Settings) -> DocumentStore:
    """Open the configured document store."""
    if settings.storage_backend == "sql":
        db = Database(settings)
        await db.connect()
        await db.create_tables()
        return SqlDocumentStore(db)
    return InMemoryDocumentStore()


async def create_scheduling_service(
    settings: Optional[Settings] = None,
    use_mirror: bool = False,
) -> SchedulingRuntime:
    """
    Wire store, repositories, permissions and locks into a SchedulingService.

    Args:
        settings: Application settings; loaded from the environment when omitted
        use_mirror: Serve availability reads from a change-fed ScheduleMirror

    Returns:
        SchedulingRuntime; call ``close()`` on shutdown
    """
    settings = settings or load_settings()
    setup_logging(settings.log_level)
    logger = get_logger(__name__)

    logger.info(
        "starting_scheduling_service",
        app_name=settings.app_name,
        environment=settings.environment,
        storage_backend=settings.storage_backend,
    )

    store = await create_store(settings)
    slot_repo = SlotDefinitionRepository(store)
    reservation_repo = ReservationRepository(store)

    permissions = PermissionChecker(
        admin_user_ids=settings.admin_user_ids,
        staff_user_ids=settings.staff_user_ids,
    )

    redis_locks = None
    if settings.window_locks_enabled:
        redis_locks = RedisLockHelper(
            settings.redis_url,
            ttl_seconds=settings.redis_lock_ttl_seconds,
            key_prefix=settings.app_name,
        )
        await redis_locks.connect()

    mirror = None
    if use_mirror:
        mirror = ScheduleMirror(slot_repo, reservation_repo)
        await mirror.start()

    service = SchedulingService(
        slot_repo,
        reservation_repo,
        permissions,
        settings=settings,
        redis_locks=redis_locks,
        availability_source=mirror,
    )

    logger.info(
        "scheduling_service_ready",
        window_locks=redis_locks is not None,
        mirror=mirror is not None,
        exclusive_pending_bookings=settings.exclusive_pending_bookings,
    )
    return SchedulingRuntime(
        settings=settings,
        store=store,
        service=service,
        redis_locks=redis_locks,
        mirror=mirror,
    )
