"""SQLAlchemy adapter package for the catalog store."""

from __future__ import annotations

from .mappings import create_all_tables, mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyCanonicalEntityRepository,
    SqlAlchemyNotificationLogRepository,
    SqlAlchemyProcessedEventRepository,
    SqlAlchemyRelationRepository,
    SqlAlchemySyncAttemptRepository,
    SqlAlchemyTombstoneRepository,
)
from .unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyCanonicalEntityRepository",
    "SqlAlchemyNotificationLogRepository",
    "SqlAlchemyProcessedEventRepository",
    "SqlAlchemyRelationRepository",
    "SqlAlchemySyncAttemptRepository",
    "SqlAlchemyTombstoneRepository",
    "SqlAlchemyUnitOfWork",
    "StartupError",
    "configured_engine",
    "create_all_tables",
    "is_started",
    "mapper_registry",
    "shutdown",
    "start_mappers",
    "startup",
]
