"""Extension registry.

Provides ordered registration of mutators per (extension point, entity).
Follows the same pattern as EntityRegistry.
"""

import itertools
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from platformcore.extensions.types import EXTENSION_POINTS, ExtensionPoint, Mutator

logger = logging.getLogger(__name__)

# Mutators registered for this entity name apply to every entity.
ALL_ENTITIES = "*"

DEFAULT_PRIORITY = 10


@dataclass(frozen=True)
class Registration:
    """A registered mutator.

    Attributes:
        point: Extension point name
        entity: Entity name, or ALL_ENTITIES
        priority: Lower runs first
        order: Global registration sequence (tie breaker)
        fn: The mutator
    """

    point: str
    entity: str
    priority: int
    order: int
    fn: Mutator

    @property
    def name(self) -> str:
        return getattr(self.fn, "__qualname__", repr(self.fn))


class ExtensionRegistry:
    """Registry of query/row mutators.

    Mutators run as a left fold ordered by ``(priority, registration order)``:
    at equal priority, the first registered runs first. Registering the same
    function for the same point, entity and priority again is a no-op.

    Example:
        @extension(WHERE, "customer", priority=5)
        def only_enterprise(clauses, ctx):
            return clauses + [WhereClause.raw("c.tier = 'enterprise'")]
    """

    _registrations: dict[tuple[str, str], list[Registration]] = {}
    _sequence = itertools.count()
    _lock = threading.Lock()

    @classmethod
    def register(
        cls,
        point: ExtensionPoint[Any] | str,
        entity: str,
        fn: Mutator,
        priority: int = DEFAULT_PRIORITY,
    ) -> bool:
        """Register a mutator.

        Args:
            point: Extension point (or its name)
            entity: Entity name, or ALL_ENTITIES
            fn: Callable ``(value, context) -> value``
            priority: Ordering key; lower runs first

        Returns:
            True if added, False if the identical registration already existed

        Raises:
            ValueError: If the extension point is unknown
        """
        point_name = str(point)
        if point_name not in EXTENSION_POINTS:
            raise ValueError(
                f"Unknown extension point '{point_name}'. "
                f"Valid points: {', '.join(sorted(EXTENSION_POINTS))}"
            )
        if not callable(fn):
            raise ValueError("Extension mutator must be callable")

        key = (point_name, entity)
        with cls._lock:
            existing = cls._registrations.setdefault(key, [])
            for reg in existing:
                if reg.fn is fn and reg.priority == priority:
                    return False
            existing.append(
                Registration(
                    point=point_name,
                    entity=entity,
                    priority=int(priority),
                    order=next(cls._sequence),
                    fn=fn,
                )
            )
        logger.debug(
            "Registered %s mutator %s for '%s' at priority %d",
            point_name, getattr(fn, "__qualname__", fn), entity, priority,
        )
        return True

    @classmethod
    def unregister(cls, point: ExtensionPoint[Any] | str, entity: str, fn: Mutator) -> bool:
        """Remove every registration of ``fn``. Returns True if any was removed."""
        key = (str(point), entity)
        with cls._lock:
            existing = cls._registrations.get(key, [])
            kept = [reg for reg in existing if reg.fn is not fn]
            cls._registrations[key] = kept
            return len(kept) != len(existing)

    @classmethod
    def for_point(cls, point: ExtensionPoint[Any] | str, entity: str) -> list[Registration]:
        """Registrations applying to ``entity`` in execution order."""
        point_name = str(point)
        with cls._lock:
            regs = list(cls._registrations.get((point_name, entity), []))
            if entity != ALL_ENTITIES:
                regs.extend(cls._registrations.get((point_name, ALL_ENTITIES), []))
        return sorted(regs, key=lambda reg: (reg.priority, reg.order))

    @classmethod
    def list_registered(cls) -> list[tuple[str, str, int, str]]:
        """(point, entity, priority, mutator name) for every registration."""
        with cls._lock:
            regs = [reg for group in cls._registrations.values() for reg in group]
        regs.sort(key=lambda reg: (reg.point, reg.entity, reg.priority, reg.order))
        return [(reg.point, reg.entity, reg.priority, reg.name) for reg in regs]

    @classmethod
    def clear(cls) -> None:
        """Clear all registrations. Primarily for testing."""
        with cls._lock:
            cls._registrations.clear()


def extension(
    point: ExtensionPoint[Any] | str,
    entity: str,
    priority: int = DEFAULT_PRIORITY,
) -> Callable[[Mutator], Mutator]:
    """Decorator to register a mutator.

    Usage:
        @extension(ROW_FORMAT, "customer")
        def add_agency_name(row, ctx):
            return {**row, "agency": ctx.raw.get("agency_name") or "-"}
    """

    def decorator(fn: Mutator) -> Mutator:
        ExtensionRegistry.register(point, entity, fn, priority)
        return fn

    return decorator
