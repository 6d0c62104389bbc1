"""Entity descriptor registry.

Process-wide, registered once at module load / application startup.
Follows the same pattern as the extension registry.
"""

import logging
import threading

from platformcore.entities.types import EntityDescriptor
from platformcore.errors import DuplicateEntityError, UnknownEntityError

logger = logging.getLogger(__name__)


class EntityRegistry:
    """Registry of entity descriptors keyed by entity name.

    Re-registering an identical descriptor is a no-op, so modules can
    register their entities without caring about load order. A second
    registration with different configuration is rejected.

    Example:
        EntityRegistry.register(EntityDescriptor(name="customer", ...))
        descriptor = EntityRegistry.require("customer")
    """

    _entities: dict[str, EntityDescriptor] = {}
    _lock = threading.Lock()

    @classmethod
    def register(cls, descriptor: EntityDescriptor) -> None:
        """Register an entity descriptor.

        Raises:
            DuplicateEntityError: If the name is taken by a different descriptor
        """
        with cls._lock:
            existing = cls._entities.get(descriptor.name)
            if existing is not None:
                if existing == descriptor:
                    return
                raise DuplicateEntityError(
                    f"Entity '{descriptor.name}' is already registered "
                    f"(table '{existing.table}' as '{existing.alias}')"
                )
            cls._entities[descriptor.name] = descriptor
        logger.debug("Registered entity '%s' (table %s)", descriptor.name, descriptor.table)

    @classmethod
    def get(cls, name: str) -> EntityDescriptor | None:
        return cls._entities.get(name)

    @classmethod
    def require(cls, name: str) -> EntityDescriptor:
        """Get a registered descriptor by name.

        Raises:
            UnknownEntityError: If no entity with that name is registered
        """
        descriptor = cls._entities.get(name)
        if descriptor is None:
            raise UnknownEntityError(f"Entity '{name}' is not registered")
        return descriptor

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._entities

    @classmethod
    def list_registered(cls) -> list[str]:
        return sorted(cls._entities.keys())

    @classmethod
    def clear(cls) -> None:
        """Clear all registrations. Primarily for testing."""
        with cls._lock:
            cls._entities.clear()
