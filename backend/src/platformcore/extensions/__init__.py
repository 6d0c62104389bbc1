"""Platform core extension system.

Lets independently loaded modules alter a listing without touching the
engine, through typed extension points:
- columns: the projected column list
- where: WHERE fragments (filtered count and page only)
- joins: JOIN fragments
- group_by: the GROUP BY expression
- row_format: a formatted output row

Usage:
    from platformcore.extensions import WHERE, extension
    from platformcore.query import WhereClause

    @extension(WHERE, "customer", priority=5)
    def by_province(clauses, ctx):
        province = ctx.get("province_filter")
        if not province:
            return clauses
        return clauses + [WhereClause("c.province = :province", {"province": province})]
"""

from platformcore.extensions.registry import (
    ALL_ENTITIES,
    DEFAULT_PRIORITY,
    ExtensionRegistry,
    Registration,
    extension,
)
from platformcore.extensions.service import ExtensionChain
from platformcore.extensions.types import (
    COLUMNS,
    EXTENSION_POINTS,
    GROUP_BY,
    JOINS,
    ROW_FORMAT,
    WHERE,
    ExtensionPoint,
    RequestContext,
    RowContext,
)

__all__ = [
    "ALL_ENTITIES",
    "COLUMNS",
    "DEFAULT_PRIORITY",
    "EXTENSION_POINTS",
    "ExtensionChain",
    "ExtensionPoint",
    "ExtensionRegistry",
    "GROUP_BY",
    "JOINS",
    "ROW_FORMAT",
    "Registration",
    "RequestContext",
    "RowContext",
    "WHERE",
    "extension",
]
