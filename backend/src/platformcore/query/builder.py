"""Listing query builder.

Assembles the paged SELECT and the two count queries of a listing from an
entity descriptor plus the (extension-mutated) fragments of one request.

Only author-chosen, registration-validated identifiers and expressions are
interpolated into SQL. Every request-derived value (search text, filter
values, limit and offset) travels as a named bind parameter.

One QueryBuilder is built per request and discarded afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from platformcore.errors import QueryBuildError
from platformcore.query.types import SortDirection, WhereClause

if TYPE_CHECKING:
    from platformcore.entities.types import ColumnSpec, EntityDescriptor, JoinSpec
    from platformcore.persistence.database import Database

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LENGTH = 10
SEARCH_BIND = "search"
RESERVED_BINDS = frozenset({SEARCH_BIND, "limit", "offset"})


def escape_like(value: str) -> str:
    """Escape LIKE metacharacters so user text only matches literally.

    Uses backslash as the escape character (``ESCAPE '\\'`` in the predicate).
    """
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class QueryBuilder:
    """Builds listing queries for a single entity.

    Clause order in the WHERE is structural (base) predicates, then
    filters in the order they were added (extension, then relation
    scoping), then the search predicate. All clauses are ANDed.

    Example:
        builder = (
            QueryBuilder(descriptor)
            .add_filters(clauses)
            .set_search_value("acme")
            .set_ordering(1, "asc")
            .set_pagination(0, 25)
        )
        sql, params = builder.build_select_query()
    """

    def __init__(
        self,
        descriptor: EntityDescriptor,
        max_page_length: int | None = None,
        dialect: str = "sqlite",
    ):
        self._descriptor = descriptor
        self._max_page_length = max_page_length
        self._dialect = dialect
        self._columns: list[ColumnSpec] = list(descriptor.columns)
        self._searchable: list[str] = list(descriptor.searchable_columns)
        self._joins: list[JoinSpec] = list(descriptor.base_joins)
        self._where: list[WhereClause] = [WhereClause.raw(p) for p in descriptor.base_where]
        self._filters: list[WhereClause] = []
        self._group_by: str | None = descriptor.group_by
        self._order_expression: str = descriptor.qualified_index
        self._order_dir: SortDirection = SortDirection.DESC
        self._start = 0
        self._length = DEFAULT_PAGE_LENGTH
        self._search_value = ""

    # ------------------------------------------------------------------
    # Setters
    # ------------------------------------------------------------------

    def set_columns(self, columns: Iterable[ColumnSpec]) -> QueryBuilder:
        columns = list(columns)
        if not columns:
            raise QueryBuildError(f"No columns to select for '{self._descriptor.name}'")
        self._columns = columns
        return self

    def set_searchable_columns(self, expressions: Iterable[str]) -> QueryBuilder:
        self._searchable = list(expressions)
        return self

    def set_joins(self, joins: Iterable[JoinSpec]) -> QueryBuilder:
        self._joins = list(joins)
        return self

    def set_where(self, clauses: Iterable[WhereClause]) -> QueryBuilder:
        """Replace the structural predicates (honored by every count)."""
        self._where = list(clauses)
        return self

    def add_filters(self, clauses: Iterable[WhereClause]) -> QueryBuilder:
        """Append predicates that narrow the filtered count and the page only."""
        self._filters.extend(clauses)
        return self

    def set_group_by(self, expression: str | None) -> QueryBuilder:
        self._group_by = expression or None
        return self

    def set_ordering(
        self,
        column_index: int,
        direction: SortDirection | str = SortDirection.ASC,
        column_name: str | None = None,
    ) -> QueryBuilder:
        """Order by a projected column.

        ``column_name`` (a column alias) wins over ``column_index`` when it
        names a projected column. An unknown or non-sortable column falls
        back to the index column.
        """
        column = None
        if column_name:
            column = next((c for c in self._columns if c.alias == column_name), None)
        if column is None and 0 <= column_index < len(self._columns):
            column = self._columns[column_index]

        if column is None or not column.sortable:
            logger.debug(
                "Ordering on column %r/%r not allowed for '%s', using index column",
                column_index, column_name, self._descriptor.name,
            )
            self._order_expression = self._descriptor.qualified_index
        else:
            self._order_expression = column.expression
        self._order_dir = SortDirection.parse(direction, SortDirection.ASC)
        return self

    def set_pagination(self, start: int, length: int) -> QueryBuilder:
        """Set the page window. ``length = -1`` means no limit."""
        self._start = max(0, int(start))
        length = int(length)
        if length == -1:
            self._length = -1
        elif length <= 0:
            self._length = DEFAULT_PAGE_LENGTH
        elif self._max_page_length is None:
            self._length = length
        else:
            self._length = min(length, self._max_page_length)
        return self

    def set_search_value(self, value: str | None) -> QueryBuilder:
        self._search_value = (value or "").strip()
        return self

    @property
    def columns(self) -> list[ColumnSpec]:
        return list(self._columns)

    @property
    def start(self) -> int:
        return self._start

    @property
    def length(self) -> int:
        return self._length

    # ------------------------------------------------------------------
    # Query building
    # ------------------------------------------------------------------

    def build_select_query(self) -> tuple[str, dict[str, Any]]:
        """Build the paged SELECT.

        Returns:
            Tuple of (sql, bind params)
        """
        where_sql, params = self._render_where(self._where + self._filters, self._search_clause())

        parts = [
            "SELECT " + ", ".join(column.render() for column in self._columns),
            self._from_clause(),
        ]
        if where_sql:
            parts.append(where_sql)
        if self._group_by:
            parts.append(f"GROUP BY {self._group_by}")
        parts.append(self._order_clause())
        if self._length != -1:
            parts.append("LIMIT :limit OFFSET :offset")
            params["limit"] = self._length
            params["offset"] = self._start
        elif self._start:
            # SQLite needs a LIMIT before OFFSET; -1 means unbounded there.
            parts.append("LIMIT -1 OFFSET :offset" if self._dialect == "sqlite" else "OFFSET :offset")
            params["offset"] = self._start

        return "\n".join(parts), params

    def build_count_total_query(self) -> tuple[str, dict[str, Any]]:
        """Count base entity rows: structural predicates only."""
        return self._count_query(self._where, None)

    def build_count_filtered_query(self) -> tuple[str, dict[str, Any]]:
        """Count rows matching filters, relation scoping and search."""
        return self._count_query(self._where + self._filters, self._search_clause())

    def explain(self) -> dict[str, tuple[str, list[str]]]:
        """SQL and bind names (never values) of the three listing queries."""
        queries = {
            "select": self.build_select_query(),
            "count_total": self.build_count_total_query(),
            "count_filtered": self.build_count_filtered_query(),
        }
        return {name: (sql, sorted(params)) for name, (sql, params) in queries.items()}

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def count_total(self, db: Database) -> int:
        sql, params = self.build_count_total_query()
        return int(db.scalar(sql, params) or 0)

    def count_filtered(self, db: Database) -> int:
        sql, params = self.build_count_filtered_query()
        return int(db.scalar(sql, params) or 0)

    def fetch_rows(self, db: Database) -> list[dict[str, Any]]:
        sql, params = self.build_select_query()
        return db.fetch_all(sql, params)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _from_clause(self) -> str:
        descriptor = self._descriptor
        parts = [f"FROM {descriptor.table} {descriptor.alias}"]
        parts.extend(join.render() for join in self._joins)
        return "\n".join(parts)

    def _order_clause(self) -> str:
        direction = self._order_dir.value.upper()
        clause = f"ORDER BY {self._order_expression} {direction}"
        index = self._descriptor.qualified_index
        if self._order_expression != index:
            clause += f", {index} {direction}"
        return clause

    def _count_query(
        self, clauses: list[WhereClause], search: WhereClause | None
    ) -> tuple[str, dict[str, Any]]:
        where_sql, params = self._render_where(clauses, search)
        if self._group_by:
            select = f"SELECT COUNT(DISTINCT {self._descriptor.qualified_index})"
        else:
            select = "SELECT COUNT(*)"
        parts = [select, self._from_clause()]
        if where_sql:
            parts.append(where_sql)
        return "\n".join(parts), params

    def _search_clause(self) -> WhereClause | None:
        if not self._search_value or not self._searchable:
            return None
        # SQLite LOWER() and LIKE fold ASCII only; lowering non-ASCII text here
        # would never match there.
        value = self._search_value if self._dialect == "sqlite" else self._search_value.lower()
        pattern = f"%{escape_like(value)}%"
        predicates = " OR ".join(
            f"LOWER({expression}) LIKE :{SEARCH_BIND} ESCAPE '\\'"
            for expression in self._searchable
        )
        return WhereClause(predicates, {SEARCH_BIND: pattern})

    def _render_where(
        self, clauses: list[WhereClause], search: WhereClause | None
    ) -> tuple[str, dict[str, Any]]:
        params = _merge_params(clauses)
        if search is not None:
            clauses = clauses + [search]
            params.update(search.params)
        if not clauses:
            return "", params
        return "WHERE " + " AND ".join(f"({clause.sql})" for clause in clauses), params


def _merge_params(clauses: list[WhereClause]) -> dict[str, Any]:
    params: dict[str, Any] = {}
    for clause in clauses:
        for name, value in clause.params.items():
            if name in RESERVED_BINDS:
                raise QueryBuildError(f"Bind parameter ':{name}' is reserved")
            if name in params and params[name] != value:
                raise QueryBuildError(f"Bind parameter ':{name}' is bound to conflicting values")
            params[name] = value
    return params


def bind_names(params: Mapping[str, Any]) -> list[str]:
    """Sorted bind names, for logging without values."""
    return sorted(params)
