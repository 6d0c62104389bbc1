"""Process-local caches for the listing engine.

- RelationCache: memoized relation resolutions, keyed
  ``relation:{entity}:{identity}:{instance}`` with targeted invalidation
- CountCache: optional short-TTL cache of unfiltered total counts

Both are cachetools TTLCaches guarded by a lock; nothing is persisted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from threading import Lock
from typing import TYPE_CHECKING, Any

from cachetools import TTLCache

if TYPE_CHECKING:
    from platformcore.access.types import Relation

logger = logging.getLogger(__name__)

# Instance segment used for listing-scope relations.
LISTING_SCOPE = "*"


def relation_key(entity: str, identity_id: str, instance_id: str | None) -> str:
    instance = LISTING_SCOPE if instance_id is None else str(instance_id)
    return f"relation:{entity}:{identity_id}:{instance}"


class RelationCache:
    """Concurrency-safe memo of resolved relations.

    Entries expire after ``ttl`` seconds so a revoked relation can never
    outlive the process or a bounded window. Write paths call
    ``invalidate`` for immediate effect.
    """

    def __init__(self, ttl: float = 300.0, maxsize: int = 10_000):
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._lock = Lock()

    def get(self, entity: str, identity_id: str, instance_id: str | None) -> Relation | None:
        key = relation_key(entity, identity_id, instance_id)
        with self._lock:
            relation = self._cache.get(key)
        logger.debug("Relation cache %s for %s", "hit" if relation else "miss", key)
        return relation

    def set(self, relation: Relation) -> None:
        key = relation_key(relation.entity, relation.identity_id, relation.instance_id)
        with self._lock:
            self._cache[key] = relation

    def invalidate(self, entity: str, instance_id: str | None) -> int:
        """Drop cached relations to one entity instance, for every identity.

        Listing-scope entries of the entity are dropped too, since a change
        to one instance can change whether an identity relates to any.

        Returns:
            Number of entries removed
        """
        prefix = f"relation:{entity}:"
        suffixes = {f":{LISTING_SCOPE}"}
        if instance_id is not None:
            suffixes.add(f":{instance_id}")
        with self._lock:
            doomed = [
                key for key in list(self._cache.keys())
                if key.startswith(prefix) and any(key.endswith(s) for s in suffixes)
            ]
            for key in doomed:
                self._cache.pop(key, None)
        logger.debug("Invalidated %d relation(s) for %s:%s", len(doomed), entity, instance_id)
        return len(doomed)

    def invalidate_identity(self, identity_id: str) -> int:
        """Drop every cached relation of one identity (e.g. on role change)."""
        with self._lock:
            doomed = [
                key for key in list(self._cache.keys())
                if key.split(":", 3)[2] == str(identity_id)
            ]
            for key in doomed:
                self._cache.pop(key, None)
        return len(doomed)

    def reset(self) -> None:
        """Administrative flush of every entry."""
        with self._lock:
            self._cache.clear()
        logger.info("Relation cache reset")

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)


class CountCache:
    """Short-TTL cache of total counts. A ttl of 0 disables caching."""

    def __init__(self, ttl: float = 0.0, maxsize: int = 1_000):
        self._enabled = ttl > 0
        self._cache: TTLCache | None = TTLCache(maxsize=maxsize, ttl=ttl) if self._enabled else None
        self._lock = Lock()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @staticmethod
    def key(entity: str, sql: str, params: Mapping[str, Any]) -> tuple:
        return (entity, sql, tuple(sorted((k, repr(v)) for k, v in params.items())))

    def get_or_compute(self, key: tuple, compute: Callable[[], int]) -> int:
        if self._cache is None:
            return compute()
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached
        value = compute()
        with self._lock:
            self._cache[key] = value
        return value

    def invalidate(self, entity: str) -> None:
        if self._cache is None:
            return
        with self._lock:
            for key in [k for k in list(self._cache.keys()) if k[0] == entity]:
                self._cache.pop(key, None)

    def reset(self) -> None:
        if self._cache is not None:
            with self._lock:
                self._cache.clear()
