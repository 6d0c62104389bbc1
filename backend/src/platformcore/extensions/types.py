"""Extension system types.

Defines the typed extension points other modules attach mutators to, and
the immutable contexts those mutators receive:
- ExtensionPoint: a named, typed stage of query construction or row output
- RequestContext: read-only view of the listing request
- RowContext: RequestContext plus the raw row being formatted
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Generic, TypeVar

from platformcore.access.types import AccessType, Identity
from platformcore.entities.types import ColumnSpec, JoinSpec
from platformcore.query.types import WhereClause

T = TypeVar("T")


@dataclass(frozen=True)
class RequestContext:
    """Immutable request context passed to every mutator.

    Mutators read filter parameters from here; nothing travels through
    shared mutable state.

    Attributes:
        entity: Entity being listed
        identity_id: Caller identity id
        capabilities: Capabilities the caller holds
        roles: Roles the caller holds
        access_type: The caller's resolved listing relation
        search_value: Global search text (may be empty)
        extra: Entity-specific request extras (e.g. status_filter)
    """

    entity: str
    identity_id: str
    capabilities: frozenset[str] = field(default_factory=frozenset)
    roles: tuple[str, ...] = ()
    access_type: AccessType = AccessType.NONE
    search_value: str = ""
    extra: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))

    @classmethod
    def for_request(
        cls,
        entity: str,
        identity: Identity,
        access_type: AccessType,
        search_value: str = "",
        extra: Mapping[str, str] | None = None,
    ) -> RequestContext:
        return cls(
            entity=entity,
            identity_id=identity.user_id,
            capabilities=identity.capabilities,
            roles=identity.roles,
            access_type=access_type,
            search_value=search_value,
            extra=extra or {},
        )

    def get(self, key: str, default: str | None = None) -> str | None:
        return self.extra.get(key, default)


@dataclass(frozen=True)
class RowContext:
    """Context for row-format mutators: the request plus the raw row."""

    request: RequestContext
    raw: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "raw", MappingProxyType(dict(self.raw)))


@dataclass(frozen=True)
class ExtensionPoint(Generic[T]):
    """A typed extension point.

    Attributes:
        name: Registry key (e.g. "where")
        expected: Human description of the accumulator type
        check: Predicate validating a mutator's return value
    """

    name: str
    expected: str
    check: Callable[[Any], bool] = field(compare=False, repr=False)

    def __str__(self) -> str:
        return self.name


def _list_of(kind: type) -> Callable[[Any], bool]:
    return lambda value: isinstance(value, list) and all(isinstance(v, kind) for v in value)


COLUMNS: ExtensionPoint[list[ColumnSpec]] = ExtensionPoint(
    "columns", "list[ColumnSpec]", _list_of(ColumnSpec)
)
WHERE: ExtensionPoint[list[WhereClause]] = ExtensionPoint(
    "where", "list[WhereClause]", _list_of(WhereClause)
)
JOINS: ExtensionPoint[list[JoinSpec]] = ExtensionPoint(
    "joins", "list[JoinSpec]", _list_of(JoinSpec)
)
GROUP_BY: ExtensionPoint[str | None] = ExtensionPoint(
    "group_by", "str | None", lambda value: value is None or (isinstance(value, str) and bool(value.strip()))
)
ROW_FORMAT: ExtensionPoint[dict[str, Any]] = ExtensionPoint(
    "row_format", "dict[str, Any]", lambda value: isinstance(value, dict)
)

EXTENSION_POINTS: dict[str, ExtensionPoint[Any]] = {
    p.name: p for p in (COLUMNS, WHERE, JOINS, GROUP_BY, ROW_FORMAT)
}

# Mutator signature: (accumulator, context) -> new accumulator
Mutator = Callable[[Any, Any], Any]
