"""Entity descriptors - declaration, validation, registry and YAML loading."""

from platformcore.entities.loader import EntityLoader, resolve_descriptor
from platformcore.entities.registry import EntityRegistry
from platformcore.entities.types import (
    AccessConfig,
    CapabilityMap,
    ColumnSpec,
    EntityDescriptor,
    JoinSpec,
    LinkSpec,
)

__all__ = [
    "AccessConfig",
    "CapabilityMap",
    "ColumnSpec",
    "EntityDescriptor",
    "EntityLoader",
    "EntityRegistry",
    "JoinSpec",
    "LinkSpec",
    "resolve_descriptor",
]
