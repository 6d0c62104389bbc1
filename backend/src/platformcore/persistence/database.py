"""Thin read-side wrapper around a SQLAlchemy engine.

All SQL reaching this module is produced by the query builder or the
relation provider: author-chosen identifiers interpolated, request values
bound as named parameters (``:name``).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from platformcore.persistence.config import DatabaseConfig, create_db_engine

if TYPE_CHECKING:
    from platformcore.entities.types import EntityDescriptor

logger = logging.getLogger(__name__)

# Errors a read can raise. Some DBAPI drivers raise OverflowError for
# out-of-range integer binds without SQLAlchemy wrapping it.
STORE_ERRORS = (SQLAlchemyError, OverflowError)


class Database:
    """Executes parameterized read queries. Dialect-neutral via SQLAlchemy Core."""

    def __init__(self, engine: Engine):
        self._engine = engine

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> Database:
        return cls(create_db_engine(config))

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect(self) -> str:
        return self._engine.dialect.name

    def fetch_all(
        self, sql: str, params: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Run a query and return every row as a plain dict."""
        with self._engine.connect() as conn:
            rows = conn.execute(text(sql), dict(params or {})).mappings().fetchall()
        return [dict(row) for row in rows]

    def scalar(self, sql: str, params: Mapping[str, Any] | None = None) -> Any:
        """Run a query and return the first column of the first row."""
        with self._engine.connect() as conn:
            return conn.execute(text(sql), dict(params or {})).scalar()

    def exists(self, sql: str, params: Mapping[str, Any] | None = None) -> bool:
        """Return True if the query yields at least one row."""
        with self._engine.connect() as conn:
            return conn.execute(text(sql), dict(params or {})).first() is not None

    def get_entity_by_id(self, descriptor: EntityDescriptor, entity_id: Any) -> dict[str, Any] | None:
        """Fetch one base-table record of an entity by its index column."""
        rows = self.fetch_all(
            f"SELECT * FROM {descriptor.table} WHERE {descriptor.index_column} = :entity_id",
            {"entity_id": entity_id},
        )
        return rows[0] if rows else None

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> int:
        """Run a single write statement in its own transaction.

        Returns:
            Number of affected rows
        """
        with self._engine.begin() as conn:
            return conn.execute(text(sql), dict(params or {})).rowcount

    def execute_script(self, statements: list[str]) -> None:
        """Run DDL/DML statements in one transaction (fixtures, seeding)."""
        with self._engine.begin() as conn:
            for statement in statements:
                conn.execute(text(statement))

    def dispose(self) -> None:
        self._engine.dispose()
