"""
Service Container - Dependency Injection Container

Holds the Record Store and lazily builds the GamificationService on top of
it. The embedding application initializes one container at startup.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from prayer_engine.store.base import RecordStore
from prayer_engine.utils.datetime_helpers import DayBoundary

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Simple dependency injection container for services.

    Services are lazy-loaded on first access via properties.
    """

    store: RecordStore
    boundary: Optional[DayBoundary] = None
    database: Optional[object] = None  # Database pool owner, when backed by PostgreSQL

    _gamification_service: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def gamification_service(self):
        """Get GamificationService instance (lazy-loaded)"""
        if self._gamification_service is None:
            from prayer_engine.services.gamification_service import GamificationService
            self._gamification_service = GamificationService(self.store, boundary=self.boundary)
            logger.debug("GamificationService instantiated")
        return self._gamification_service

    async def close(self) -> None:
        """Release the database pool, if any"""
        if self.database is not None:
            await self.database.close_pool()


# Global container instance
_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """
    Get the global service container.

    Raises:
        RuntimeError: If container not initialized (call init_container first)
    """
    if _container is None:
        raise RuntimeError(
            "Service container not initialized. "
            "Call init_container() at startup before using services."
        )
    return _container


def init_container(
    store: RecordStore,
    boundary: Optional[DayBoundary] = None,
    database: Optional[object] = None
) -> ServiceContainer:
    """
    Initialize the global service container.

    Args:
        store: Record Store every service reads and writes through
        boundary: Default day boundary
        database: Pool owner closed by ServiceContainer.close()
    """
    global _container

    _container = ServiceContainer(store=store, boundary=boundary, database=database)
    logger.info("Service container initialized")
    return _container


async def init_postgres_container(
    connection_string: Optional[str] = None,
    boundary: Optional[DayBoundary] = None,
    create_schema: bool = True
) -> ServiceContainer:
    """
    Open a pool from configuration and initialize a PostgreSQL-backed container

    Args:
        connection_string: Overrides DATABASE_URL
        boundary: Default day boundary
        create_schema: Run CREATE TABLE IF NOT EXISTS for the engine's tables
    """
    from prayer_engine.config import validate_config
    from prayer_engine.store.connection import Database
    from prayer_engine.store.postgres import PostgresRecordStore

    validate_config()
    database = Database(connection_string) if connection_string else Database()
    await database.init_pool()

    store = PostgresRecordStore(database)
    if create_schema:
        await store.init_schema()

    return init_container(store, boundary=boundary, database=database)
