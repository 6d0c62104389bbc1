"""Capability policy evaluated against resolved relations.

A single parameterized AccessPolicy answers can_list/can_view/can_update/
can_delete for every entity from the entity's CapabilityMap. Entities that
need different rules register a subclass with PolicyRegistry instead of
re-deriving relations.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING

from platformcore.access.types import AccessType, Identity, Relation

if TYPE_CHECKING:
    from platformcore.entities.types import EntityDescriptor

logger = logging.getLogger(__name__)

# Action aliases accepted by ``can``.
ACTION_ALIASES = {"view": "view", "read": "view", "update": "update", "edit": "update", "delete": "delete"}


class AccessPolicy:
    """Pure capability checks for one entity."""

    def __init__(self, descriptor: EntityDescriptor):
        self.descriptor = descriptor
        self.capabilities = descriptor.capabilities

    def can_list(self, identity: Identity) -> bool:
        """Coarse listing gate, independent of row scoping."""
        return identity.can(self.capabilities.listing) or identity.can(
            self.descriptor.access.admin_capability
        )

    def can_create(self, identity: Identity) -> bool:
        return identity.can(self.capabilities.create) or identity.can(
            self.descriptor.access.admin_capability
        )

    def can_view(self, relation: Relation, capabilities: Iterable[str]) -> bool:
        return self._allowed(self.capabilities.view, relation, capabilities)

    def can_update(self, relation: Relation, capabilities: Iterable[str]) -> bool:
        return self._allowed(self.capabilities.update, relation, capabilities)

    def can_delete(self, relation: Relation, capabilities: Iterable[str]) -> bool:
        return self._allowed(self.capabilities.delete, relation, capabilities)

    def can(self, action: str, relation: Relation, capabilities: Iterable[str]) -> bool:
        """Dispatch to can_view/can_update/can_delete by action name."""
        normalized = ACTION_ALIASES.get(action)
        if normalized is None:
            raise ValueError(f"Unknown action '{action}'")
        return getattr(self, f"can_{normalized}")(relation, capabilities)

    @staticmethod
    def _allowed(
        required_by_type: Mapping[AccessType, str | None],
        relation: Relation,
        capabilities: Iterable[str],
    ) -> bool:
        if not relation.has_access or relation.access_type not in required_by_type:
            return False
        required = required_by_type[relation.access_type]
        return required is None or required in set(capabilities)


class PolicyRegistry:
    """Per-entity AccessPolicy overrides.

    Example:
        @policy("invoice")
        class InvoicePolicy(AccessPolicy):
            def can_delete(self, relation, capabilities):
                return relation.is_administrator
    """

    _policies: dict[str, type[AccessPolicy]] = {}
    _lock = threading.Lock()

    @classmethod
    def register(cls, entity: str, policy_cls: type[AccessPolicy]) -> None:
        with cls._lock:
            cls._policies[entity] = policy_cls
        logger.debug("Registered policy %s for '%s'", policy_cls.__name__, entity)

    @classmethod
    def get(cls, entity: str) -> type[AccessPolicy]:
        return cls._policies.get(entity, AccessPolicy)

    @classmethod
    def for_entity(cls, descriptor: EntityDescriptor) -> AccessPolicy:
        return cls.get(descriptor.name)(descriptor)

    @classmethod
    def clear(cls) -> None:
        """Clear all overrides. Primarily for testing."""
        with cls._lock:
            cls._policies.clear()


def policy(entity: str) -> Callable[[type[AccessPolicy]], type[AccessPolicy]]:
    """Class decorator registering an AccessPolicy subclass for an entity."""

    def decorator(policy_cls: type[AccessPolicy]) -> type[AccessPolicy]:
        PolicyRegistry.register(entity, policy_cls)
        return policy_cls

    return decorator
