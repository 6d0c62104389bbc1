"""Entity descriptor types.

An EntityDescriptor is the static declaration of a queryable entity: its
base table, projected columns, searchable columns, default joins and
structural WHERE fragments, plus the status and access configuration the
listing engine needs. Descriptors are validated on construction so that a
malformed configuration fails at registration time instead of at the first
query.

Every SQL fragment in a descriptor is chosen by the module author and is
interpolated into queries verbatim. Request input never reaches these
fields.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from platformcore.access.types import AccessType
from platformcore.errors import DescriptorError

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
QUALIFIED_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

# Statement separators, comments and bind markers are never valid in
# author-supplied fragments.
_FORBIDDEN_TOKENS = (";", "--", "/*", "*/", ":")

JOIN_KINDS = ("INNER", "LEFT")


def check_identifier(value: str, what: str) -> str:
    if not isinstance(value, str) or not IDENTIFIER_RE.match(value):
        raise DescriptorError(f"{what} must be a plain identifier, got {value!r}")
    return value


def check_fragment(value: str, what: str) -> str:
    """Validate an author-supplied SQL fragment (expression or predicate)."""
    if not isinstance(value, str) or not value.strip():
        raise DescriptorError(f"{what} must be a non-empty string")
    for token in _FORBIDDEN_TOKENS:
        if token in value:
            raise DescriptorError(f"{what} contains forbidden token {token!r}: {value!r}")
    return value


@dataclass(frozen=True)
class ColumnSpec:
    """A projected column.

    Attributes:
        expression: SQL expression, e.g. "c.name" or "COUNT(e.id)"
        alias: Output key in result rows and formatted rows
        sortable: Whether the column may be used for ordering
    """

    expression: str
    alias: str
    sortable: bool = True

    def __post_init__(self) -> None:
        check_fragment(self.expression, "Column expression")
        check_identifier(self.alias, "Column alias")

    @classmethod
    def parse(cls, value: str | Mapping) -> ColumnSpec:
        """Build from YAML: either "c.name" or {expression, alias, sortable}."""
        if isinstance(value, str):
            return cls(expression=value, alias=value.rsplit(".", 1)[-1])
        expression = value.get("expression", "")
        alias = value.get("alias") or str(expression).rsplit(".", 1)[-1]
        return cls(
            expression=expression,
            alias=alias,
            sortable=bool(value.get("sortable", True)),
        )

    def render(self) -> str:
        if self.expression == self.alias:
            return self.expression
        return f"{self.expression} AS {self.alias}"


@dataclass(frozen=True)
class JoinSpec:
    """A JOIN fragment: ``<kind> JOIN <table> <alias> ON <on>``."""

    table: str
    alias: str
    on: str
    kind: str = "LEFT"

    def __post_init__(self) -> None:
        check_identifier(self.table, "Join table")
        check_identifier(self.alias, "Join alias")
        check_fragment(self.on, "Join condition")
        kind = self.kind.upper()
        if kind not in JOIN_KINDS:
            raise DescriptorError(f"Join kind must be one of {JOIN_KINDS}, got {self.kind!r}")
        object.__setattr__(self, "kind", kind)

    def render(self) -> str:
        return f"{self.kind} JOIN {self.table} {self.alias} ON {self.on}"


@dataclass(frozen=True)
class LinkSpec:
    """A link table relating identities to entity rows (or their parents).

    Attributes:
        table: Link table name
        identity_column: Column holding the identity id
        target_column: Column holding the entity id (membership) or the
            parent id (delegation)
        where: Optional static predicate on the link table, e.g. "status = 'active'"
    """

    table: str
    identity_column: str
    target_column: str
    where: str | None = None

    def __post_init__(self) -> None:
        check_identifier(self.table, "Link table")
        check_identifier(self.identity_column, "Link identity column")
        check_identifier(self.target_column, "Link target column")
        if self.where is not None:
            check_fragment(self.where, "Link predicate")


@dataclass(frozen=True)
class AccessConfig:
    """How relations to an entity are derived.

    Attributes:
        admin_capability: Capability that makes an identity a global administrator
        owner_column: Base-table column holding the owning identity id
        membership: Employment/membership link (most common relation)
        delegation: Link making an identity administrator of a parent record
        parent_column: Base-table column holding the parent id (for delegation)
        platform_capability: Extra capability a platform role must hold, if any
    """

    admin_capability: str = "manage_options"
    owner_column: str | None = None
    membership: LinkSpec | None = None
    delegation: LinkSpec | None = None
    parent_column: str | None = None
    platform_capability: str | None = None

    def __post_init__(self) -> None:
        if self.owner_column is not None:
            check_identifier(self.owner_column, "Owner column")
        if self.parent_column is not None:
            check_identifier(self.parent_column, "Parent column")
        if self.delegation is not None and self.parent_column is None:
            raise DescriptorError("Delegation requires parent_column")


ACTIONS = ("view", "update", "delete")


def _freeze(mapping: Mapping) -> Mapping[AccessType, str | None]:
    return MappingProxyType({AccessType(k): v for k, v in mapping.items()})


@dataclass(frozen=True)
class CapabilityMap:
    """Capabilities an identity needs per action and relation kind.

    For ``view``/``update``/``delete`` each map says, per access type, which
    capability is required. A value of None means the relation alone is
    enough; an absent access type means the action is never allowed.
    """

    listing: str
    create: str
    view: Mapping[AccessType, str | None]
    update: Mapping[AccessType, str | None]
    delete: Mapping[AccessType, str | None]

    def __post_init__(self) -> None:
        for action in ACTIONS:
            object.__setattr__(self, action, _freeze(getattr(self, action)))

    @classmethod
    def for_entity(cls, entity: str) -> CapabilityMap:
        """Default capability names derived from the entity name."""
        return cls(
            listing=f"view_{entity}_list",
            create=f"add_{entity}",
            view={
                AccessType.ADMIN: None,
                AccessType.MEMBER: f"view_own_{entity}",
                AccessType.DELEGATE: f"view_own_{entity}",
                AccessType.OWNER: f"view_own_{entity}",
                AccessType.PLATFORM: f"view_{entity}_detail",
            },
            update={
                AccessType.ADMIN: None,
                AccessType.DELEGATE: f"edit_own_{entity}",
                AccessType.OWNER: f"edit_own_{entity}",
                AccessType.PLATFORM: f"edit_all_{entity}s",
            },
            delete={
                AccessType.ADMIN: None,
                AccessType.OWNER: f"delete_{entity}",
                AccessType.PLATFORM: f"delete_{entity}",
            },
        )

    def merged(self, overrides: Mapping) -> CapabilityMap:
        """Return a copy with ``overrides`` (YAML-shaped) applied."""
        values = {
            "listing": overrides.get("list", self.listing),
            "create": overrides.get("create", self.create),
        }
        for action in ACTIONS:
            current = dict(getattr(self, action))
            current.update({AccessType(k): v for k, v in (overrides.get(action) or {}).items()})
            values[action] = current
        return CapabilityMap(**values)


@dataclass(frozen=True)
class EntityDescriptor:
    """Static declaration of a queryable entity.

    Attributes:
        name: Entity name (used in row identity and capability names)
        table: Base table name
        alias: Base table alias used by every expression
        columns: Projected columns, in display order
        index_column: Primary key column on the base table (unqualified)
        searchable_columns: Expressions matched by the global search
        base_joins: Joins every query needs
        base_where: Structural predicates honored by every count (e.g. soft delete)
        group_by: Default GROUP BY expression
        display_name: Human name used in messages
        status_column: Column driving the status badge and status filter
        active_value: Value of ``status_column`` meaning "active"
        status_labels: Badge labels for (active, inactive)
        status_filter_key: Request extra carrying the status filter
        access: Relation derivation config
        capabilities: Capability map (defaults derived from ``name``)
        per_row_access: Resolve the relation for each row when gating actions
    """

    name: str
    table: str
    alias: str
    columns: tuple[ColumnSpec, ...]
    index_column: str = "id"
    searchable_columns: tuple[str, ...] = ()
    base_joins: tuple[JoinSpec, ...] = ()
    base_where: tuple[str, ...] = ()
    group_by: str | None = None
    display_name: str = ""
    status_column: str | None = None
    active_value: str | None = None
    status_labels: tuple[str, str] = ("Active", "Inactive")
    status_filter_key: str = "status_filter"
    access: AccessConfig = field(default_factory=AccessConfig)
    capabilities: CapabilityMap | None = None
    per_row_access: bool = False

    def __post_init__(self) -> None:
        check_identifier(self.name, "Entity name")
        check_identifier(self.table, "Entity table")
        check_identifier(self.alias, "Entity alias")
        check_identifier(self.index_column, "Index column")

        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "searchable_columns", tuple(self.searchable_columns))
        object.__setattr__(self, "base_joins", tuple(self.base_joins))
        object.__setattr__(self, "base_where", tuple(self.base_where))
        object.__setattr__(self, "status_labels", tuple(self.status_labels))

        if not self.columns:
            raise DescriptorError(f"Entity '{self.name}' declares no columns")
        aliases = [c.alias for c in self.columns]
        duplicates = sorted({a for a in aliases if aliases.count(a) > 1})
        if duplicates:
            raise DescriptorError(
                f"Entity '{self.name}' has duplicate column aliases: {', '.join(duplicates)}"
            )
        if self.index_column not in aliases:
            raise DescriptorError(
                f"Entity '{self.name}' must project its index column '{self.index_column}'"
            )

        for expression in self.searchable_columns:
            check_fragment(expression, "Searchable column")
        for predicate in self.base_where:
            check_fragment(predicate, "Base WHERE")
        if self.group_by is not None:
            check_fragment(self.group_by, "GROUP BY")

        if (self.status_column is None) != (self.active_value is None):
            raise DescriptorError(
                f"Entity '{self.name}': status_column and active_value must be set together"
            )
        if self.status_column is not None:
            if not QUALIFIED_RE.match(self.status_column):
                raise DescriptorError(f"Status column must be a column name, got {self.status_column!r}")
        if len(self.status_labels) != 2:
            raise DescriptorError("status_labels must be (active_label, inactive_label)")

        if not self.display_name:
            object.__setattr__(self, "display_name", self.name.replace("_", " ").title())
        if self.capabilities is None:
            object.__setattr__(self, "capabilities", CapabilityMap.for_entity(self.name))

    def qualify(self, column: str) -> str:
        """Prefix a bare column name with the entity alias."""
        if "." in column or "(" in column:
            return column
        return f"{self.alias}.{column}"

    @property
    def qualified_index(self) -> str:
        return self.qualify(self.index_column)

    @property
    def qualified_status(self) -> str | None:
        return self.qualify(self.status_column) if self.status_column else None

    def column(self, alias: str) -> ColumnSpec | None:
        for column in self.columns:
            if column.alias == alias:
                return column
        return None
