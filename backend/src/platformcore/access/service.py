"""Access validation helpers for write and detail paths.

Combines relation resolution and the entity policy into the error-map
style checks used by CRUD controllers outside the listing engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from platformcore.access.policy import ACTION_ALIASES, PolicyRegistry
from platformcore.access.resolver import AccessRelationResolver
from platformcore.access.types import AccessType, Identity

if TYPE_CHECKING:
    from platformcore.entities.types import EntityDescriptor


class AccessService:
    """Validates an identity's permission for an action on an entity."""

    def __init__(self, resolver: AccessRelationResolver):
        self.resolver = resolver

    def validate_permission(
        self,
        identity: Identity,
        descriptor: EntityDescriptor,
        action: str,
        instance_id: str | int | None = None,
    ) -> dict[str, str]:
        """Check whether ``identity`` may perform ``action``.

        With an instance id the relation-based policy decides (view,
        update/edit, delete). Without one only the basic capability for the
        action is checked (create, list, or any capability granting the
        action on some relation).

        Returns:
            Error map; empty when allowed

        Raises:
            ValueError: If the action is unknown
        """
        if instance_id is None:
            return self._validate_basic(identity, descriptor, action)

        normalized = ACTION_ALIASES.get(action)
        if normalized is None:
            raise ValueError(f"Invalid action specified: {action}")

        policy = PolicyRegistry.for_entity(descriptor)
        relation = self.resolver.resolve(identity, descriptor, instance_id)
        if policy.can(normalized, relation, identity.capabilities):
            return {}
        verb = "edit" if normalized == "update" else normalized
        return {
            "permission": f"You do not have permission to {verb} this "
            f"{descriptor.display_name.lower()}."
        }

    def validate_access(
        self,
        identity: Identity,
        descriptor: EntityDescriptor,
        instance_id: str | int,
    ) -> dict[str, Any]:
        """Summarize the identity's access to one instance."""
        policy = PolicyRegistry.for_entity(descriptor)
        relation = self.resolver.resolve(identity, descriptor, instance_id)
        return {
            "has_access": policy.can_view(relation, identity.capabilities),
            "access_type": relation.access_type.value,
            "relation": relation.to_dict(),
            "entity_id": instance_id,
        }

    def _validate_basic(
        self, identity: Identity, descriptor: EntityDescriptor, action: str
    ) -> dict[str, str]:
        policy = PolicyRegistry.for_entity(descriptor)
        if action == "create":
            allowed = policy.can_create(identity)
        elif action == "list":
            allowed = policy.can_list(identity)
        elif action in ACTION_ALIASES:
            required_by_type = getattr(descriptor.capabilities, ACTION_ALIASES[action])
            if identity.can(descriptor.access.admin_capability) and AccessType.ADMIN in required_by_type:
                allowed = True
            else:
                allowed = any(
                    cap is not None and identity.can(cap) for cap in required_by_type.values()
                )
        else:
            raise ValueError(f"Invalid action specified: {action}")

        if allowed:
            return {}
        return {
            "permission": "You do not have permission for this operation on "
            f"{descriptor.display_name.lower()}."
        }
