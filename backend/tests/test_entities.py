"""Tests for entity descriptors, the registry and the YAML loader."""

import pytest

from platformcore.access import AccessType
from platformcore.entities import (
    AccessConfig,
    CapabilityMap,
    ColumnSpec,
    EntityDescriptor,
    EntityLoader,
    EntityRegistry,
    JoinSpec,
    LinkSpec,
    resolve_descriptor,
)
from platformcore.errors import DescriptorError, DuplicateEntityError, UnknownEntityError

from conftest import make_customer_descriptor


def _descriptor(**overrides):
    values = {
        "name": "widget",
        "table": "app_widgets",
        "alias": "w",
        "columns": (ColumnSpec("w.id", "id"), ColumnSpec("w.name", "name")),
    }
    values.update(overrides)
    return EntityDescriptor(**values)


# =============================================================================
# Descriptor validation
# =============================================================================


class TestColumnSpec:
    def test_parse_string_uses_last_segment_as_alias(self):
        column = ColumnSpec.parse("c.name")
        assert column.expression == "c.name"
        assert column.alias == "name"
        assert column.sortable is True

    def test_parse_mapping(self):
        column = ColumnSpec.parse({"expression": "COUNT(b.id)", "alias": "branches", "sortable": False})
        assert column.render() == "COUNT(b.id) AS branches"
        assert column.sortable is False

    def test_rejects_statement_separator(self):
        with pytest.raises(DescriptorError):
            ColumnSpec("c.name; DROP TABLE x", "name")

    def test_rejects_comment(self):
        with pytest.raises(DescriptorError):
            ColumnSpec("c.name -- hidden", "name")

    def test_rejects_bind_marker(self):
        with pytest.raises(DescriptorError):
            ColumnSpec("c.name = :x", "name")

    def test_rejects_non_identifier_alias(self):
        with pytest.raises(DescriptorError):
            ColumnSpec("c.name", "full name")


class TestJoinSpec:
    def test_render(self):
        join = JoinSpec("app_branches", "b", "b.customer_id = c.id", kind="inner")
        assert join.render() == "INNER JOIN app_branches b ON b.customer_id = c.id"

    def test_rejects_unknown_kind(self):
        with pytest.raises(DescriptorError):
            JoinSpec("app_branches", "b", "b.customer_id = c.id", kind="cross")


class TestEntityDescriptor:
    def test_valid_descriptor(self):
        descriptor = _descriptor()
        assert descriptor.qualified_index == "w.id"
        assert descriptor.display_name == "Widget"
        assert descriptor.column("name").expression == "w.name"

    def test_requires_columns(self):
        with pytest.raises(DescriptorError, match="no columns"):
            _descriptor(columns=())

    def test_rejects_duplicate_aliases(self):
        with pytest.raises(DescriptorError, match="duplicate"):
            _descriptor(columns=(ColumnSpec("w.id", "id"), ColumnSpec("w.code", "id")))

    def test_requires_index_column_projection(self):
        with pytest.raises(DescriptorError, match="index column"):
            _descriptor(columns=(ColumnSpec("w.name", "name"),))

    def test_rejects_unsafe_table(self):
        with pytest.raises(DescriptorError):
            _descriptor(table="app_widgets w; --")

    def test_rejects_unsafe_base_where(self):
        with pytest.raises(DescriptorError):
            _descriptor(base_where=("1 = 1; DELETE FROM app_widgets",))

    def test_status_column_and_active_value_go_together(self):
        with pytest.raises(DescriptorError, match="together"):
            _descriptor(status_column="status")

    def test_delegation_requires_parent_column(self):
        with pytest.raises(DescriptorError):
            AccessConfig(delegation=LinkSpec("app_admins", "user_id", "division_id"))

    def test_descriptor_is_frozen(self):
        descriptor = _descriptor()
        with pytest.raises(AttributeError):
            descriptor.table = "other"


class TestCapabilityMap:
    def test_defaults_derive_from_entity_name(self):
        caps = CapabilityMap.for_entity("agency")
        assert caps.listing == "view_agency_list"
        assert caps.view[AccessType.PLATFORM] == "view_agency_detail"
        assert caps.update[AccessType.PLATFORM] == "edit_all_agencys"
        assert caps.delete[AccessType.OWNER] == "delete_agency"
        assert AccessType.MEMBER not in caps.delete

    def test_merged_overrides(self):
        caps = CapabilityMap.for_entity("agency").merged(
            {"list": "browse_agencies", "update": {"platform": "edit_all_agencies"}}
        )
        assert caps.listing == "browse_agencies"
        assert caps.update[AccessType.PLATFORM] == "edit_all_agencies"
        assert caps.update[AccessType.OWNER] == "edit_own_agency"


# =============================================================================
# Registry
# =============================================================================


class TestEntityRegistry:
    def test_register_and_get(self):
        descriptor = make_customer_descriptor()
        EntityRegistry.register(descriptor)
        assert EntityRegistry.get("customer") is descriptor
        assert EntityRegistry.is_registered("customer")
        assert EntityRegistry.list_registered() == ["customer"]

    def test_get_unknown_returns_none(self):
        assert EntityRegistry.get("nope") is None

    def test_require_unknown_raises(self):
        with pytest.raises(UnknownEntityError):
            EntityRegistry.require("nope")

    def test_identical_reregistration_is_noop(self):
        EntityRegistry.register(make_customer_descriptor())
        EntityRegistry.register(make_customer_descriptor())
        assert EntityRegistry.list_registered() == ["customer"]

    def test_conflicting_reregistration_raises(self):
        EntityRegistry.register(make_customer_descriptor())
        with pytest.raises(DuplicateEntityError):
            EntityRegistry.register(_descriptor(name="customer"))


# =============================================================================
# YAML loader
# =============================================================================


CUSTOMER_YAML = """
entity: customer
table: app_customers
alias: c
columns:
  - c.id
  - {expression: c.name, alias: name}
  - {expression: c.status, alias: status}
searchableColumns: [c.name]
where: ["c.deleted_at IS NULL"]
status:
  column: status
  activeValue: aktif
  labels: [Aktif, Tidak Aktif]
access:
  ownerColumn: user_id
  membership: {table: app_customer_employees, identityColumn: user_id, targetColumn: customer_id}
capabilities:
  view: {member: view_customer_detail}
"""


class TestEntityLoader:
    def test_load_all(self, tmp_path):
        (tmp_path / "customer.yaml").write_text(CUSTOMER_YAML)
        loader = EntityLoader(tmp_path)
        descriptors = loader.load_all()

        assert len(descriptors) == 1
        descriptor = descriptors[0]
        assert descriptor.alias == "c"
        assert descriptor.active_value == "aktif"
        assert descriptor.status_labels == ("Aktif", "Tidak Aktif")
        assert descriptor.access.membership.target_column == "customer_id"
        assert descriptor.capabilities.view[AccessType.MEMBER] == "view_customer_detail"

    def test_register_all(self, tmp_path):
        (tmp_path / "customer.yaml").write_text(CUSTOMER_YAML)
        assert EntityLoader(tmp_path).register_all() == ["customer"]
        assert EntityRegistry.is_registered("customer")

    def test_missing_directory_loads_nothing(self, tmp_path):
        assert EntityLoader(tmp_path / "missing").load_all() == []

    def test_malformed_descriptor_names_file(self, tmp_path):
        (tmp_path / "broken.yaml").write_text("entity: broken\ntable: t\ncolumns: []\n")
        with pytest.raises(DescriptorError, match="broken.yaml"):
            EntityLoader(tmp_path).load_all()

    def test_numeric_active_value_becomes_string(self):
        descriptor = resolve_descriptor({
            "entity": "flag",
            "table": "flags",
            "columns": ["id", "enabled"],
            "status": {"column": "enabled", "activeValue": 1},
        })
        assert descriptor.active_value == "1"
