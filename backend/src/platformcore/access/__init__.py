"""Access relations - resolution, capability policy and validation helpers.

Usage:
    from platformcore.access import AccessRelationResolver, Identity, SqlRelationProvider

    resolver = AccessRelationResolver(SqlRelationProvider(db))
    relation = resolver.resolve(Identity("7", {"view_own_customer"}), descriptor, 42)
"""

from platformcore.access.types import (
    TERMINAL_STATES,
    AccessType,
    Identity,
    Relation,
    ResolutionState,
)
from platformcore.access.policy import AccessPolicy, PolicyRegistry, policy
from platformcore.access.resolver import (
    PLATFORM_ROLES,
    AccessRelationResolver,
    RelationProvider,
    SqlRelationProvider,
    is_platform_role,
)
from platformcore.access.service import AccessService

__all__ = [
    "PLATFORM_ROLES",
    "TERMINAL_STATES",
    "AccessPolicy",
    "AccessRelationResolver",
    "AccessService",
    "AccessType",
    "Identity",
    "PolicyRegistry",
    "Relation",
    "RelationProvider",
    "ResolutionState",
    "SqlRelationProvider",
    "is_platform_role",
    "policy",
]
