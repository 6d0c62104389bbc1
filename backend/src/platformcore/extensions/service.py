"""Extension chain execution.

Applies the registered mutators of one extension point as a strict left
fold, validating each mutator's output against the point's type.
"""

import copy
import logging
from typing import Any, TypeVar

from platformcore.errors import ExtensionError
from platformcore.extensions.registry import ExtensionRegistry
from platformcore.extensions.types import ExtensionPoint

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExtensionChain:
    """Runs mutators for an extension point.

    Each mutator receives the accumulator produced by the previous one and
    a read-only context. The initial value is copied first so defaults
    taken from an entity descriptor are never modified.
    """

    def apply(
        self,
        point: ExtensionPoint[T],
        entity: str,
        initial: T,
        context: Any,
    ) -> T:
        """Fold ``initial`` through the registered mutators.

        Raises:
            ExtensionError: If a mutator raises or returns the wrong type
        """
        value = copy.copy(initial)
        if isinstance(value, tuple):
            value = list(value)

        for reg in ExtensionRegistry.for_point(point, entity):
            try:
                result = reg.fn(value, context)
            except Exception as e:
                logger.exception(
                    "%s mutator '%s' failed for entity '%s'", point.name, reg.name, entity
                )
                raise ExtensionError(
                    f"Extension '{reg.name}' failed at '{point.name}'"
                ) from e

            if not point.check(result):
                logger.error(
                    "%s mutator '%s' returned %s, expected %s",
                    point.name, reg.name, type(result).__name__, point.expected,
                )
                raise ExtensionError(
                    f"Extension '{reg.name}' returned an invalid value for '{point.name}'"
                )
            value = result

        return value
