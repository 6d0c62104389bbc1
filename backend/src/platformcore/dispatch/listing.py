"""Listing request dispatcher.

Drives one listing request through its gates:

    RECEIVED -> AUTHENTICATED_CHECK -> ENTITY_RESOLVED -> RELATION_RESOLVED
             -> QUERY_EXECUTED -> RESPONDED

with an early exit to REJECTED at any gate. Security and permission
failures short-circuit before any query is built. Everything touching the
database runs in a worker thread bounded by the configured timeout; store
failures surface as a generic DataAccessError while the detail is logged.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from platformcore.access.policy import AccessPolicy, PolicyRegistry
from platformcore.access.resolver import AccessRelationResolver
from platformcore.access.types import AccessType, Identity, Relation
from platformcore.cache import CountCache
from platformcore.config import Settings
from platformcore.entities.registry import EntityRegistry
from platformcore.entities.types import EntityDescriptor
from platformcore.errors import (
    DataAccessError,
    ExtensionError,
    PermissionDeniedError,
    PlatformCoreError,
    QueryBuildError,
    UnknownEntityError,
)
from platformcore.extensions.service import ExtensionChain
from platformcore.extensions.types import COLUMNS, GROUP_BY, JOINS, WHERE, RequestContext
from platformcore.formatting.row import RowFormatter
from platformcore.persistence.database import STORE_ERRORS, Database
from platformcore.query.builder import QueryBuilder, bind_names
from platformcore.query.params import RequestParams
from platformcore.query.types import WhereClause
from platformcore.security.tokens import DEFAULT_ACTION, AntiForgeryTokenService

logger = logging.getLogger(__name__)

# Status filter value that disables status filtering.
ALL_STATUSES = "all"
STATUS_BIND = "status_filter"


class DispatchState(str, Enum):
    RECEIVED = "received"
    AUTHENTICATED_CHECK = "authenticated_check"
    ENTITY_RESOLVED = "entity_resolved"
    RELATION_RESOLVED = "relation_resolved"
    QUERY_EXECUTED = "query_executed"
    RESPONDED = "responded"
    REJECTED = "rejected"


@dataclass
class ResultEnvelope:
    """Listing response.

    ``records_filtered <= records_total`` and
    ``len(rows) <= min(length, records_filtered - start)`` always hold.
    """

    draw: int
    records_total: int
    records_filtered: int
    rows: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "draw": self.draw,
            "recordsTotal": self.records_total,
            "recordsFiltered": self.records_filtered,
            "data": self.rows,
        }


class ListingDispatcher:
    """Serves listing requests for every registered entity.

    Stateless across requests: each call builds its own RequestParams,
    RequestContext and QueryBuilder.
    """

    def __init__(
        self,
        db: Database,
        resolver: AccessRelationResolver,
        token_service: AntiForgeryTokenService,
        settings: Settings | None = None,
        chain: ExtensionChain | None = None,
        formatter: RowFormatter | None = None,
        count_cache: CountCache | None = None,
    ):
        self.db = db
        self.resolver = resolver
        self.token_service = token_service
        self.settings = settings or Settings()
        self.chain = chain or ExtensionChain()
        self.formatter = formatter or RowFormatter(self.settings.placeholder, self.chain)
        self.count_cache = count_cache or CountCache(self.settings.count_cache_ttl)

    async def dispatch(
        self,
        entity: str,
        payload: Mapping[str, Any],
        identity: Identity,
        token: str | None,
        trace: list[DispatchState] | None = None,
    ) -> ResultEnvelope:
        """Serve one listing request.

        Args:
            entity: Entity name
            payload: Raw wire request
            identity: The caller
            token: Anti-forgery token
            trace: If given, receives every state the request passes through

        Raises:
            SecurityError: Token missing or invalid
            UnknownEntityError: Entity not registered
            PermissionDeniedError: Caller may not list the entity
            DataAccessError: Store failure or timeout
        """
        states = trace if trace is not None else []
        lock = threading.Lock()
        closed = False

        def advance(state: DispatchState) -> None:
            # A worker outliving its timeout must not extend a rejected trace.
            with lock:
                if closed:
                    return
                states.append(state)
            logger.debug("Listing %s for identity %s: %s", entity, identity.user_id, state.value)

        advance(DispatchState.RECEIVED)
        try:
            advance(DispatchState.AUTHENTICATED_CHECK)
            self.token_service.verify(token, identity.user_id, DEFAULT_ACTION)

            descriptor = EntityRegistry.get(entity)
            if descriptor is None:
                logger.error("Listing requested for unregistered entity '%s'", entity)
                raise UnknownEntityError(f"Unknown entity '{entity}'")
            advance(DispatchState.ENTITY_RESOLVED)

            policy = PolicyRegistry.for_entity(descriptor)
            if not policy.can_list(identity):
                logger.info(
                    "Identity %s lacks '%s' for listing %s",
                    identity.user_id, descriptor.capabilities.listing, entity,
                )
                raise PermissionDeniedError()

            params = RequestParams.from_wire(payload, max_length=self.settings.max_page_length)
            envelope = await self._run(descriptor, policy, params, identity, advance)
        except PlatformCoreError:
            with lock:
                closed = True
                states.append(DispatchState.REJECTED)
            raise

        advance(DispatchState.RESPONDED)
        return envelope

    def invalidate(self, entity: str, instance_id: str | int | None) -> None:
        """Write-path hook: drop memoized relations and cached totals."""
        self.resolver.invalidate(entity, instance_id)
        self.count_cache.invalidate(entity)

    async def _run(self, descriptor, policy, params, identity, advance) -> ResultEnvelope:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._execute, descriptor, policy, params, identity, advance),
                timeout=self.settings.query_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                "Listing %s for identity %s exceeded %.1fs",
                descriptor.name, identity.user_id, self.settings.query_timeout,
            )
            raise DataAccessError() from None
        except (ExtensionError, QueryBuildError) as e:
            logger.error("Listing %s could not be built: %s", descriptor.name, e)
            raise DataAccessError() from e

    def _execute(
        self,
        descriptor: EntityDescriptor,
        policy: AccessPolicy,
        params: RequestParams,
        identity: Identity,
        advance,
    ) -> ResultEnvelope:
        try:
            relation = self.resolver.resolve(identity, descriptor)
        except STORE_ERRORS:
            logger.exception(
                "Relation lookup failed for %s (identity %s)", descriptor.name, identity.user_id
            )
            raise DataAccessError() from None
        advance(DispatchState.RELATION_RESOLVED)

        context = RequestContext.for_request(
            descriptor.name, identity, relation.access_type, params.search_value, params.extra
        )
        builder = self._build(descriptor, params, relation, context)

        shape = ""
        started = time.perf_counter()
        try:
            shape, _ = builder.build_count_filtered_query()
            filtered = builder.count_filtered(self.db)
            shape, total_params = builder.build_count_total_query()
            total = self.count_cache.get_or_compute(
                CountCache.key(descriptor.name, shape, total_params),
                lambda: builder.count_total(self.db),
            )
            shape, select_params = builder.build_select_query()
            rows = builder.fetch_rows(self.db)
        except STORE_ERRORS:
            logger.exception(
                "Listing query failed for %s (identity %s): %s",
                descriptor.name, identity.user_id, shape,
            )
            raise DataAccessError() from None
        elapsed_ms = (time.perf_counter() - started) * 1000
        advance(DispatchState.QUERY_EXECUTED)

        if elapsed_ms > self.settings.slow_query_ms:
            logger.warning(
                "Slow listing for %s (identity %s): %.0f ms\n%s\nbinds=%s",
                descriptor.name, identity.user_id, elapsed_ms, shape, bind_names(select_params),
            )

        # Counts and rows are independent reads; concurrent writes between
        # them are tolerated, the envelope invariants are restored here.
        if filtered > total:
            logger.debug("Filtered count %d exceeded total %d for %s", filtered, total, descriptor.name)
            filtered = total
        if builder.length != -1:
            rows = rows[: max(0, min(builder.length, filtered - builder.start))]
        else:
            rows = rows[: max(0, filtered - builder.start)]

        formatted = [
            self.formatter.format(
                descriptor,
                row,
                self._row_relation(descriptor, identity, relation, row),
                identity.capabilities,
                context=context,
                columns=builder.columns,
                policy=policy,
            )
            for row in rows
        ]
        return ResultEnvelope(
            draw=params.draw,
            records_total=total,
            records_filtered=filtered,
            rows=formatted,
        )

    def _build(
        self,
        descriptor: EntityDescriptor,
        params: RequestParams,
        relation: Relation,
        context: RequestContext,
    ) -> QueryBuilder:
        name = descriptor.name
        columns = self.chain.apply(COLUMNS, name, descriptor.columns, context)
        if not any(column.alias == descriptor.index_column for column in columns):
            raise ExtensionError(
                f"Column extensions for '{name}' dropped index column '{descriptor.index_column}'"
            )
        joins = self.chain.apply(JOINS, name, descriptor.base_joins, context)
        where = self.chain.apply(WHERE, name, status_clauses(descriptor, params.extra), context)
        group_by = self.chain.apply(GROUP_BY, name, descriptor.group_by, context)
        scope = self.resolver.scope_clause(relation, descriptor)

        builder = (
            QueryBuilder(descriptor, self.settings.max_page_length, dialect=self.db.dialect)
            .set_columns(columns)
            .set_joins(joins)
            .add_filters(where)
            .add_filters([scope] if scope is not None else [])
            .set_group_by(group_by)
            .set_search_value(params.search_value)
            .set_pagination(params.start, params.length)
        )
        if params.order_column >= 0 or params.order_name:
            builder.set_ordering(params.order_column, params.order_dir, params.order_name)
        return builder

    def _row_relation(
        self,
        descriptor: EntityDescriptor,
        identity: Identity,
        listing_relation: Relation,
        row: Mapping[str, Any],
    ) -> Relation:
        if not descriptor.per_row_access or listing_relation.access_type in (
            AccessType.ADMIN,
            AccessType.NONE,
        ):
            return listing_relation
        try:
            return self.resolver.resolve(identity, descriptor, row.get(descriptor.index_column))
        except STORE_ERRORS:
            logger.exception("Row relation lookup failed for %s", descriptor.name)
            raise DataAccessError() from None


def status_clauses(descriptor: EntityDescriptor, extra: Mapping[str, str]) -> list[WhereClause]:
    """Status filter seeded into the WHERE chain.

    Defaults to the entity's active value; ``"all"`` disables it.
    """
    if descriptor.qualified_status is None:
        return []
    value = extra.get(descriptor.status_filter_key) or descriptor.active_value
    if value == ALL_STATUSES:
        return []
    return [WhereClause.equals(descriptor.qualified_status, value, STATUS_BIND)]
