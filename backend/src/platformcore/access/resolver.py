"""Access relation resolution.

Computes the relation an identity holds to an entity instance, or to the
entity's listing scope, and turns a listing-scope relation into a row
scoping predicate.

Resolution order is most-common-case first after the administrator
short-circuit: administrator, member, delegate, owner, platform role,
none. "No access" is a valid terminal state and never raises.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

from platformcore.access.types import AccessType, Identity, Relation, ResolutionState
from platformcore.cache import RelationCache
from platformcore.query.types import DENY_ALL, MAX_BIND_INT, WhereClause

if TYPE_CHECKING:
    from platformcore.entities.types import EntityDescriptor, LinkSpec
    from platformcore.persistence.database import Database

logger = logging.getLogger(__name__)

# Roles granting cross-module access without an explicit relation row.
PLATFORM_ROLES = frozenset({
    "platform_super_admin",
    "platform_admin",
    "platform_manager",
    "platform_support",
    "platform_finance",
    "platform_analyst",
    "platform_viewer",
})

SCOPE_BIND = "scope_identity"


def is_platform_role(role: str) -> bool:
    """Default platform role check."""
    return role in PLATFORM_ROLES


class RelationProvider(Protocol):
    """Answers relation questions for one entity.

    ``instance_id=None`` asks whether the identity holds the relation to
    any instance of the entity.
    """

    def is_member(self, descriptor: EntityDescriptor, identity_id: str, instance_id: str | None) -> bool:
        ...

    def is_delegate(self, descriptor: EntityDescriptor, identity_id: str, instance_id: str | None) -> bool:
        ...

    def is_owner(self, descriptor: EntityDescriptor, identity_id: str, instance_id: str | None) -> bool:
        ...

    def scope_clause(self, descriptor: EntityDescriptor, identity_id: str) -> WhereClause | None:
        ...


def _identity_value(identity_id: str) -> Any:
    """Bind numeric ids as integers so integer key columns compare natively.

    Ids too large for a 64-bit integer stay strings.
    """
    if identity_id.isascii() and identity_id.isdigit() and int(identity_id) <= MAX_BIND_INT:
        return int(identity_id)
    return identity_id


def _link_filter(link: LinkSpec, bind: str) -> str:
    sql = f"{link.identity_column} = :{bind}"
    if link.where:
        sql += f" AND ({link.where})"
    return sql


class SqlRelationProvider:
    """RelationProvider deriving its lookups from the descriptor's AccessConfig.

    - member: a membership link row ties the identity to the instance
    - delegate: a delegation link row ties the identity to the instance's parent
    - owner: the instance's owner column holds the identity id
    """

    def __init__(self, db: Database):
        self.db = db

    def is_member(self, descriptor: EntityDescriptor, identity_id: str, instance_id: str | None) -> bool:
        link = descriptor.access.membership
        if link is None:
            return False
        sql = f"SELECT 1 FROM {link.table} WHERE {_link_filter(link, 'identity_id')}"
        params: dict[str, Any] = {"identity_id": _identity_value(identity_id)}
        if instance_id is not None:
            sql += f" AND {link.target_column} = :instance_id"
            params["instance_id"] = _identity_value(str(instance_id))
        return self.db.exists(sql, params)

    def is_delegate(self, descriptor: EntityDescriptor, identity_id: str, instance_id: str | None) -> bool:
        link = descriptor.access.delegation
        if link is None:
            return False
        parents = f"SELECT {link.target_column} FROM {link.table} WHERE {_link_filter(link, 'identity_id')}"
        params: dict[str, Any] = {"identity_id": _identity_value(identity_id)}
        if instance_id is None:
            return self.db.exists(parents, params)
        sql = (
            f"SELECT 1 FROM {descriptor.table} "
            f"WHERE {descriptor.index_column} = :instance_id "
            f"AND {descriptor.access.parent_column} IN ({parents})"
        )
        params["instance_id"] = _identity_value(str(instance_id))
        return self.db.exists(sql, params)

    def is_owner(self, descriptor: EntityDescriptor, identity_id: str, instance_id: str | None) -> bool:
        column = descriptor.access.owner_column
        if column is None:
            return False
        sql = f"SELECT 1 FROM {descriptor.table} WHERE {column} = :identity_id"
        params: dict[str, Any] = {"identity_id": _identity_value(identity_id)}
        if instance_id is not None:
            sql += f" AND {descriptor.index_column} = :instance_id"
            params["instance_id"] = _identity_value(str(instance_id))
        return self.db.exists(sql, params)

    def scope_clause(self, descriptor: EntityDescriptor, identity_id: str) -> WhereClause | None:
        """OR of every configured relation predicate, bound to the identity."""
        access = descriptor.access
        predicates = []
        if access.membership is not None:
            link = access.membership
            predicates.append(
                f"{descriptor.qualified_index} IN "
                f"(SELECT {link.target_column} FROM {link.table} WHERE {_link_filter(link, SCOPE_BIND)})"
            )
        if access.delegation is not None:
            link = access.delegation
            predicates.append(
                f"{descriptor.qualify(access.parent_column)} IN "
                f"(SELECT {link.target_column} FROM {link.table} WHERE {_link_filter(link, SCOPE_BIND)})"
            )
        if access.owner_column is not None:
            predicates.append(f"{descriptor.qualify(access.owner_column)} = :{SCOPE_BIND}")
        if not predicates:
            return None
        return WhereClause(" OR ".join(predicates), {SCOPE_BIND: _identity_value(identity_id)})


class AccessRelationResolver:
    """Resolves and memoizes relations between identities and entities.

    Usage:
        resolver = AccessRelationResolver(SqlRelationProvider(db), RelationCache())
        relation = resolver.resolve(identity, descriptor, instance_id="42")
        if relation.has_access:
            ...
    """

    def __init__(
        self,
        provider: RelationProvider,
        cache: RelationCache | None = None,
        platform_role_check: Callable[[str], bool] = is_platform_role,
    ):
        self.provider = provider
        self.cache = cache if cache is not None else RelationCache()
        self.platform_role_check = platform_role_check

    def resolve(
        self,
        identity: Identity,
        descriptor: EntityDescriptor,
        instance_id: str | int | None = None,
    ) -> Relation:
        """Resolve the relation of ``identity`` to an instance (or listing scope).

        Args:
            identity: The caller
            descriptor: Entity being accessed
            instance_id: Entity instance id, or None for the listing scope

        Returns:
            A terminal Relation (possibly NONE)
        """
        instance = None if instance_id is None else str(instance_id)
        cached = self.cache.get(descriptor.name, identity.user_id, instance)
        if cached is not None:
            return cached

        relation = self._resolve(identity, descriptor, instance)
        self.cache.set(relation)
        return relation

    def _resolve(
        self, identity: Identity, descriptor: EntityDescriptor, instance_id: str | None
    ) -> Relation:
        state = ResolutionState.UNRESOLVED
        logger.debug(
            "Resolving %s relation for identity %s (%s -> %s)",
            descriptor.name, identity.user_id, state.value, ResolutionState.RESOLVING.value,
        )
        access = descriptor.access
        platform_role = None

        if identity.can(access.admin_capability):
            access_type = AccessType.ADMIN
        elif self.provider.is_member(descriptor, identity.user_id, instance_id):
            access_type = AccessType.MEMBER
        elif self.provider.is_delegate(descriptor, identity.user_id, instance_id):
            access_type = AccessType.DELEGATE
        elif self.provider.is_owner(descriptor, identity.user_id, instance_id):
            access_type = AccessType.OWNER
        elif (platform_role := self._platform_role(identity, descriptor)) is not None:
            access_type = AccessType.PLATFORM
        else:
            access_type = AccessType.NONE

        relation = Relation.resolved(
            entity=descriptor.name,
            identity_id=identity.user_id,
            instance_id=instance_id,
            access_type=access_type,
            platform_role=platform_role,
        )
        logger.debug(
            "Resolved %s:%s for identity %s -> %s",
            descriptor.name, instance_id or "*", identity.user_id, relation.state.value,
        )
        return relation

    def _platform_role(self, identity: Identity, descriptor: EntityDescriptor) -> str | None:
        required = descriptor.access.platform_capability
        if required is not None and not identity.can(required):
            return None
        for role in identity.roles:
            if self.platform_role_check(role):
                return role
        return None

    def scope_clause(
        self, relation: Relation, descriptor: EntityDescriptor
    ) -> WhereClause | None:
        """Row scoping predicate for a listing-scope relation.

        Returns None when the relation sees every row, and an unsatisfiable
        predicate when it sees none.
        """
        if relation.access_type in (AccessType.ADMIN, AccessType.PLATFORM):
            return None
        if relation.access_type is AccessType.NONE:
            return DENY_ALL
        clause = self.provider.scope_clause(descriptor, relation.identity_id)
        return clause if clause is not None else DENY_ALL

    def invalidate(self, entity: str, instance_id: str | int | None) -> int:
        """Drop memoized relations to an instance (call from write paths)."""
        return self.cache.invalidate(entity, None if instance_id is None else str(instance_id))

    def invalidate_identity(self, identity_id: str) -> int:
        return self.cache.invalidate_identity(identity_id)

    def reset(self) -> None:
        self.cache.reset()
