"""Value types shared by the query builder and its contributors."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, value: Any, default: SortDirection | None = None) -> SortDirection:
        """Parse a direction, falling back to ``default`` (ASC) on anything unknown."""
        if isinstance(value, SortDirection):
            return value
        if isinstance(value, str) and value.strip().lower() in ("asc", "desc"):
            return cls(value.strip().lower())
        return default or cls.ASC


@dataclass(frozen=True)
class WhereClause:
    """A parameterized predicate.

    ``sql`` uses named binds (``:name``) for every request-derived value;
    ``params`` holds the values. Clauses in a list are ANDed.

    Example:
        WhereClause("c.status = :status_filter", {"status_filter": "active"})
    """

    sql: str
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.sql, str) or not self.sql.strip():
            raise ValueError("WhereClause.sql must be a non-empty string")
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    @classmethod
    def raw(cls, sql: str) -> WhereClause:
        """A predicate with no bound values."""
        return cls(sql=sql)

    @classmethod
    def equals(cls, expression: str, value: Any, name: str) -> WhereClause:
        return cls(sql=f"{expression} = :{name}", params={name: value})

    def __repr__(self) -> str:
        # Bound values may hold user input; only names are shown.
        return f"WhereClause({self.sql!r}, params={sorted(self.params)})"


# Structurally unsatisfiable predicate used for fail-closed scoping.
DENY_ALL = WhereClause.raw("1 = 0")

# Largest integer every supported driver binds as a native integer.
MAX_BIND_INT = 2**63 - 1
