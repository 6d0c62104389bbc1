"""Type definitions for access relations.

- Identity: the requesting caller (id, capabilities, roles)
- AccessType / ResolutionState: the relation kinds and resolver states
- Relation: the computed relationship between an identity and an entity
  instance (or the entity's listing scope)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class AccessType(str, Enum):
    """Kind of relation an identity holds to an entity."""

    ADMIN = "admin"
    MEMBER = "member"
    DELEGATE = "delegate"
    OWNER = "owner"
    PLATFORM = "platform"
    NONE = "none"


class ResolutionState(str, Enum):
    """Resolver state machine. Everything after RESOLVING is terminal."""

    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    ADMINISTRATOR_RESOLVED = "administrator_resolved"
    MEMBER_RESOLVED = "member_resolved"
    DELEGATE_RESOLVED = "delegate_resolved"
    OWNER_RESOLVED = "owner_resolved"
    PLATFORM_RESOLVED = "platform_resolved"
    NONE_RESOLVED = "none_resolved"

    @property
    def is_terminal(self) -> bool:
        return self not in (ResolutionState.UNRESOLVED, ResolutionState.RESOLVING)


TERMINAL_STATES = {
    AccessType.ADMIN: ResolutionState.ADMINISTRATOR_RESOLVED,
    AccessType.MEMBER: ResolutionState.MEMBER_RESOLVED,
    AccessType.DELEGATE: ResolutionState.DELEGATE_RESOLVED,
    AccessType.OWNER: ResolutionState.OWNER_RESOLVED,
    AccessType.PLATFORM: ResolutionState.PLATFORM_RESOLVED,
    AccessType.NONE: ResolutionState.NONE_RESOLVED,
}


@dataclass(frozen=True)
class Identity:
    """The caller of a request.

    Attributes:
        user_id: Stable identity id (matched against owner/link columns)
        capabilities: Capability strings the identity holds
        roles: Role slugs the identity holds
    """

    user_id: str
    capabilities: frozenset[str] = field(default_factory=frozenset)
    roles: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "user_id", str(self.user_id))
        object.__setattr__(self, "capabilities", frozenset(self.capabilities))
        object.__setattr__(self, "roles", tuple(self.roles))

    def can(self, capability: str) -> bool:
        return capability in self.capabilities


@dataclass(frozen=True)
class Relation:
    """Access relationship between an identity and an entity instance.

    ``instance_id`` is None for the listing scope, where each flag means
    "holds this relation to at least one instance".
    """

    entity: str
    identity_id: str
    instance_id: str | None
    access_type: AccessType
    state: ResolutionState
    is_administrator: bool = False
    is_member: bool = False
    is_delegate: bool = False
    is_owner: bool = False
    platform_role: str | None = None

    @property
    def has_access(self) -> bool:
        return self.access_type is not AccessType.NONE

    @classmethod
    def resolved(
        cls,
        entity: str,
        identity_id: str,
        instance_id: str | None,
        access_type: AccessType,
        platform_role: str | None = None,
    ) -> Relation:
        """Build a terminal relation for ``access_type``."""
        return cls(
            entity=entity,
            identity_id=identity_id,
            instance_id=instance_id,
            access_type=access_type,
            state=TERMINAL_STATES[access_type],
            is_administrator=access_type is AccessType.ADMIN,
            is_member=access_type is AccessType.MEMBER,
            is_delegate=access_type is AccessType.DELEGATE,
            is_owner=access_type is AccessType.OWNER,
            platform_role=platform_role,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity,
            "identityId": self.identity_id,
            "instanceId": self.instance_id,
            "isAdministrator": self.is_administrator,
            "isMember": self.is_member,
            "isDelegate": self.is_delegate,
            "isOwner": self.is_owner,
            "platformRole": self.platform_role,
            "hasAccess": self.has_access,
            "accessType": self.access_type.value,
        }
