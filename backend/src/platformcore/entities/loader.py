"""Load entity descriptors from YAML files.

One entity per file. Keys are camelCase, matching the rest of the
configuration surface:

    entity: customer
    table: app_customers
    alias: c
    indexColumn: id
    columns:
      - c.id
      - {expression: c.name, alias: name}
      - {expression: "COUNT(b.id)", alias: branch_count, sortable: false}
    searchableColumns: [c.name, c.code]
    joins:
      - {table: app_branches, alias: b, on: "b.customer_id = c.id", kind: left}
    where: ["c.deleted_at IS NULL"]
    groupBy: c.id
    status:
      column: status
      activeValue: active
      labels: [Active, Inactive]
    access:
      ownerColumn: user_id
      membership: {table: app_customer_employees, identityColumn: user_id, targetColumn: customer_id}
    capabilities:
      list: view_customer_list
      view: {owner: view_own_customer}
"""

from pathlib import Path
from typing import Any

import yaml

from platformcore.entities.registry import EntityRegistry
from platformcore.entities.types import (
    AccessConfig,
    CapabilityMap,
    ColumnSpec,
    EntityDescriptor,
    JoinSpec,
    LinkSpec,
)
from platformcore.errors import DescriptorError


class EntityLoader:
    """Loads entity descriptors from a directory of YAML files."""

    def __init__(self, entities_path: Path):
        self.entities_path = entities_path
        self.entities: dict[str, EntityDescriptor] = {}

    def load_all(self) -> list[EntityDescriptor]:
        """Parse every ``*.yaml`` file in the directory.

        Raises:
            DescriptorError: If any file is malformed (the message names the file)
        """
        if not self.entities_path.exists():
            return []

        for yaml_file in sorted(self.entities_path.glob("*.yaml")):
            descriptor = self.load_file(yaml_file)
            if descriptor is None:
                continue
            if descriptor.name in self.entities:
                raise DescriptorError(
                    f"{yaml_file.name}: entity '{descriptor.name}' is declared twice"
                )
            self.entities[descriptor.name] = descriptor

        return list(self.entities.values())

    def load_file(self, yaml_file: Path) -> EntityDescriptor | None:
        with open(yaml_file) as f:
            data = yaml.safe_load(f)
        if not data or "entity" not in data:
            return None
        try:
            return resolve_descriptor(data)
        except DescriptorError as e:
            raise DescriptorError(f"{yaml_file.name}: {e.message}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise DescriptorError(f"{yaml_file.name}: malformed descriptor ({e})") from e

    def register_all(self) -> list[str]:
        """Load (if needed) and register every descriptor. Returns entity names."""
        if not self.entities:
            self.load_all()
        for descriptor in self.entities.values():
            EntityRegistry.register(descriptor)
        return sorted(self.entities.keys())


def _resolve_link(data: dict[str, Any] | None) -> LinkSpec | None:
    if not data:
        return None
    return LinkSpec(
        table=data["table"],
        identity_column=data.get("identityColumn", "user_id"),
        target_column=data["targetColumn"],
        where=data.get("where"),
    )


def _resolve_access(data: dict[str, Any] | None) -> AccessConfig:
    if not data:
        return AccessConfig()
    return AccessConfig(
        admin_capability=data.get("adminCapability", "manage_options"),
        owner_column=data.get("ownerColumn"),
        membership=_resolve_link(data.get("membership")),
        delegation=_resolve_link(data.get("delegation")),
        parent_column=data.get("parentColumn"),
        platform_capability=data.get("platformCapability"),
    )


def resolve_descriptor(data: dict[str, Any]) -> EntityDescriptor:
    """Convert a YAML-shaped dict to a validated EntityDescriptor."""
    name = data["entity"]

    status = data.get("status") or {}
    labels = status.get("labels") or ["Active", "Inactive"]
    active_value = status.get("activeValue")

    capabilities = CapabilityMap.for_entity(name)
    if data.get("capabilities"):
        capabilities = capabilities.merged(data["capabilities"])

    return EntityDescriptor(
        name=name,
        table=data["table"],
        alias=data.get("alias", data["table"]),
        index_column=data.get("indexColumn", "id"),
        columns=tuple(ColumnSpec.parse(c) for c in data.get("columns", [])),
        searchable_columns=tuple(data.get("searchableColumns", [])),
        base_joins=tuple(
            JoinSpec(
                table=j["table"],
                alias=j["alias"],
                on=j["on"],
                kind=j.get("kind", "left"),
            )
            for j in data.get("joins", [])
        ),
        base_where=tuple(data.get("where", [])),
        group_by=data.get("groupBy"),
        display_name=data.get("displayName", ""),
        status_column=status.get("column"),
        active_value=None if active_value is None else str(active_value),
        status_labels=(labels[0], labels[1]),
        status_filter_key=status.get("filterKey", "status_filter"),
        access=_resolve_access(data.get("access")),
        capabilities=capabilities,
        per_row_access=bool(data.get("perRowAccess", False)),
    )
