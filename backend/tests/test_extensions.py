"""Tests for typed extension points, the ordered registry and chain execution."""

import logging

import pytest

from platformcore.access import AccessType, Identity
from platformcore.entities import ColumnSpec
from platformcore.errors import ExtensionError
from platformcore.extensions import (
    ALL_ENTITIES,
    COLUMNS,
    GROUP_BY,
    ROW_FORMAT,
    WHERE,
    ExtensionChain,
    ExtensionRegistry,
    RequestContext,
    RowContext,
    extension,
)
from platformcore.query import WhereClause


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def chain():
    return ExtensionChain()


@pytest.fixture
def context():
    return RequestContext.for_request(
        "customer",
        Identity("7", {"view_customer_list"}),
        AccessType.ADMIN,
        search_value="",
        extra={"province_filter": "JB"},
    )


# =============================================================================
# RequestContext
# =============================================================================


class TestRequestContext:
    def test_extras_are_read_only(self, context):
        assert context.get("province_filter") == "JB"
        with pytest.raises(TypeError):
            context.extra["province_filter"] = "JT"

    def test_context_is_frozen(self, context):
        with pytest.raises(AttributeError):
            context.entity = "agency"

    def test_missing_extra_uses_default(self, context):
        assert context.get("unknown", "x") == "x"


# =============================================================================
# Registry
# =============================================================================


class TestExtensionRegistry:
    def test_unknown_point_rejected(self):
        with pytest.raises(ValueError, match="Unknown extension point"):
            ExtensionRegistry.register("having", "customer", lambda v, c: v)

    def test_non_callable_rejected(self):
        with pytest.raises(ValueError):
            ExtensionRegistry.register(WHERE, "customer", "not callable")

    def test_register_accepts_point_name(self):
        assert ExtensionRegistry.register("where", "customer", lambda v, c: v) is True
        assert len(ExtensionRegistry.for_point(WHERE, "customer")) == 1

    def test_same_registration_twice_is_noop(self):
        def mutator(value, ctx):
            return value

        assert ExtensionRegistry.register(WHERE, "customer", mutator, 10) is True
        assert ExtensionRegistry.register(WHERE, "customer", mutator, 10) is False
        assert len(ExtensionRegistry.for_point(WHERE, "customer")) == 1

    def test_priority_then_registration_order(self):
        def late(value, ctx):
            return value

        def early(value, ctx):
            return value

        def early_second(value, ctx):
            return value

        ExtensionRegistry.register(WHERE, "customer", late, 10)
        ExtensionRegistry.register(WHERE, "customer", early, 5)
        ExtensionRegistry.register(WHERE, "customer", early_second, 5)

        names = [reg.fn for reg in ExtensionRegistry.for_point(WHERE, "customer")]
        assert names == [early, early_second, late]

    def test_wildcard_registrations_apply_to_every_entity(self):
        def everywhere(value, ctx):
            return value

        ExtensionRegistry.register(WHERE, ALL_ENTITIES, everywhere)
        assert [r.fn for r in ExtensionRegistry.for_point(WHERE, "agency")] == [everywhere]

    def test_unregister(self):
        def mutator(value, ctx):
            return value

        ExtensionRegistry.register(WHERE, "customer", mutator)
        assert ExtensionRegistry.unregister(WHERE, "customer", mutator) is True
        assert ExtensionRegistry.for_point(WHERE, "customer") == []

    def test_decorator_registers(self):
        @extension(GROUP_BY, "customer")
        def group(value, ctx):
            return "c.id"

        assert ExtensionRegistry.list_registered() == [
            ("group_by", "customer", 10, group.__qualname__)
        ]


# =============================================================================
# Chain execution
# =============================================================================


class TestExtensionChain:
    def test_left_fold_in_priority_order(self, chain, context):
        calls = []

        @extension(WHERE, "customer", priority=10)
        def second(clauses, ctx):
            calls.append(("second", len(clauses)))
            return clauses + [WhereClause.raw("c.tier = 'gold'")]

        @extension(WHERE, "customer", priority=5)
        def first(clauses, ctx):
            calls.append(("first", len(clauses)))
            return clauses + [WhereClause.equals("c.province", ctx.get("province_filter"), "province")]

        result = chain.apply(WHERE, "customer", [], context)

        assert calls == [("first", 0), ("second", 1)]
        assert [c.sql for c in result] == ["c.province = :province", "c.tier = 'gold'"]
        assert result[0].params == {"province": "JB"}

    def test_idempotent_registration_does_not_duplicate_clauses(self, chain, context):
        def add_tier(clauses, ctx):
            return clauses + [WhereClause.raw("c.tier = 'gold'")]

        ExtensionRegistry.register(WHERE, "customer", add_tier, 10)
        ExtensionRegistry.register(WHERE, "customer", add_tier, 10)

        assert len(chain.apply(WHERE, "customer", [], context)) == 1

    def test_initial_value_not_mutated(self, chain, context):
        @extension(COLUMNS, "customer")
        def add_column(columns, ctx):
            columns.append(ColumnSpec("c.extra", "extra"))
            return columns

        defaults = (ColumnSpec("c.id", "id"),)
        result = chain.apply(COLUMNS, "customer", defaults, context)

        assert len(defaults) == 1
        assert [c.alias for c in result] == ["id", "extra"]

    def test_no_mutators_returns_copy(self, chain, context):
        initial = [WhereClause.raw("1 = 1")]
        result = chain.apply(WHERE, "customer", initial, context)
        assert result == initial
        assert result is not initial

    def test_wrong_return_type_raises(self, chain, context, caplog):
        @extension(WHERE, "customer")
        def broken(clauses, ctx):
            return "c.id = 1"

        with caplog.at_level(logging.ERROR):
            with pytest.raises(ExtensionError, match="broken"):
                chain.apply(WHERE, "customer", [], context)
        assert "expected list[WhereClause]" in caplog.text

    def test_mutator_exception_wrapped(self, chain, context):
        @extension(WHERE, "customer")
        def explodes(clauses, ctx):
            raise RuntimeError("boom")

        with pytest.raises(ExtensionError) as exc_info:
            chain.apply(WHERE, "customer", [], context)
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_group_by_accepts_none(self, chain, context):
        @extension(GROUP_BY, "customer")
        def drop_group(value, ctx):
            return None

        assert chain.apply(GROUP_BY, "customer", "c.id", context) is None

    def test_row_format_receives_raw_row(self, chain, context):
        @extension(ROW_FORMAT, "customer")
        def add_agency(row, ctx):
            return {**row, "agency": ctx.raw.get("agency_name") or "-"}

        row_ctx = RowContext(request=context, raw={"agency_name": "Agency One"})
        result = chain.apply(ROW_FORMAT, "customer", {"id": "1"}, row_ctx)
        assert result == {"id": "1", "agency": "Agency One"}

    def test_other_entity_mutators_not_applied(self, chain, context):
        @extension(WHERE, "agency")
        def agency_only(clauses, ctx):
            return clauses + [WhereClause.raw("a.id = 1")]

        assert chain.apply(WHERE, "customer", [], context) == []
