"""Listing query construction - request parameters, predicates and the builder."""

from platformcore.query.builder import QueryBuilder, bind_names, escape_like
from platformcore.query.params import RequestParams
from platformcore.query.types import DENY_ALL, SortDirection, WhereClause

__all__ = [
    "DENY_ALL",
    "QueryBuilder",
    "RequestParams",
    "SortDirection",
    "WhereClause",
    "bind_names",
    "escape_like",
]
