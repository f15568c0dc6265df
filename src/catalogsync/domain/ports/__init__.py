"""Ports (interfaces) the domain depends on."""

from __future__ import annotations

from .notifications import NotificationSender
from .persistence import (
    CanonicalEntityRepository,
    NotificationLogRepository,
    ProcessedEventRepository,
    RelationRepository,
    Repository,
    SyncAttemptRepository,
    TombstoneRepository,
)
from .platform import (
    PlatformApiError,
    PlatformError,
    PlatformGateway,
    PlatformPayloadError,
    PlatformUnavailableError,
)
from .unit_of_work import CatalogRepositories, CatalogUnitOfWork

__all__ = [
    "CanonicalEntityRepository",
    "CatalogRepositories",
    "CatalogUnitOfWork",
    "NotificationLogRepository",
    "NotificationSender",
    "PlatformApiError",
    "PlatformError",
    "PlatformGateway",
    "PlatformPayloadError",
    "PlatformUnavailableError",
    "ProcessedEventRepository",
    "RelationRepository",
    "Repository",
    "SyncAttemptRepository",
    "TombstoneRepository",
]
