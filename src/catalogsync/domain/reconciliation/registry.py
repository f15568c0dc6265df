"""External-identifier registry backed by ``CanonicalEntity.external_ids``."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from catalogsync.domain.model import CanonicalEntity, ExternalId

log = getLogger(__name__)


class ExternalIdRegistry:
    """Reads and writes the per-platform identifiers stored on the entity row itself.

    Writes replace the mapping instead of mutating it so the change is picked up
    by the same store write as any other field of the entity. Callers only pass
    identifiers returned by a platform create or found by a platform search.
    """

    def get(self, entity: CanonicalEntity, platform: str) -> ExternalId | None:
        return entity.external_ids.get(platform)

    def set(self, entity: CanonicalEntity, platform: str, external_id: ExternalId) -> None:
        if isinstance(external_id, str) and not external_id.strip():
            raise ValueError("external id must not be blank")
        if isinstance(external_id, bool):
            raise TypeError("external id must be a string or an integer")
        previous = entity.external_ids.get(platform)
        if previous == external_id:
            return
        if previous is not None:
            log.warning(
                "Replacing %s id %s with %s for %r", platform, previous, external_id, entity
            )
        entity.external_ids = {**entity.external_ids, platform: external_id}
        entity.touch()

    def clear(self, entity: CanonicalEntity, platform: str) -> ExternalId | None:
        if platform not in entity.external_ids:
            return None
        remaining = dict(entity.external_ids)
        removed = remaining.pop(platform)
        entity.external_ids = remaining
        entity.touch()
        return removed

    def platforms(self, entity: CanonicalEntity) -> frozenset[str]:
        return frozenset(entity.external_ids)
