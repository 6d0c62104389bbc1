"""Listing request parameters.

Parses the DataTables-style wire request into a validated, immutable
RequestParams. Malformed pagination and sort values are clamped to safe
defaults (the listing UI must degrade gracefully); strict parsing raises
ValidationError instead.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from platformcore.errors import ValidationError
from platformcore.query.types import MAX_BIND_INT, SortDirection

logger = logging.getLogger(__name__)

DEFAULT_LENGTH = 10
UNLIMITED = -1
MAX_SEARCH_LENGTH = 255

RESERVED_KEYS = frozenset({"draw", "start", "length", "search", "order", "columns", "nonce", "action"})


@dataclass(frozen=True)
class RequestParams:
    """Validated listing request.

    Attributes:
        draw: Opaque correlation token echoed in the response
        start: Row offset (>= 0)
        length: Page size, or -1 for all remaining rows
        search_value: Global search text
        order_column: Index into the column list; -1 when absent
        order_dir: Sort direction
        order_name: Column key sent alongside the order index, if any
        extra: Entity-specific extras (e.g. status_filter)
        issues: Problems found (and clamped) while parsing
    """

    draw: int = 0
    start: int = 0
    length: int = DEFAULT_LENGTH
    search_value: str = ""
    order_column: int = -1
    order_dir: SortDirection = SortDirection.DESC
    order_name: str | None = None
    extra: Mapping[str, str] = field(default_factory=dict)
    issues: tuple[str, ...] = field(default=(), compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))

    @property
    def unlimited(self) -> bool:
        return self.length == UNLIMITED

    @classmethod
    def from_wire(
        cls,
        payload: Mapping[str, Any],
        max_length: int | None = None,
        strict: bool = False,
    ) -> RequestParams:
        """Build RequestParams from a wire request.

        Accepts nested JSON (``{"search": {"value": ...}}``) as well as the
        flat form-encoded keys DataTables posts (``search[value]``,
        ``order[0][column]``).

        Args:
            payload: Raw request mapping
            max_length: Positive page lengths are clamped to this; None
                leaves them as requested
            strict: Raise ValidationError instead of clamping

        Raises:
            ValidationError: In strict mode, if any parameter was malformed
        """
        issues: list[str] = []

        draw = _to_int(payload.get("draw"), 0)
        if draw is None or draw < 0 or draw > MAX_BIND_INT:
            issues.append(f"draw={payload.get('draw')!r}")
            draw = 0

        start = _to_int(payload.get("start"), 0)
        if start is None or start < 0:
            issues.append(f"start={payload.get('start')!r}")
            start = 0
        elif start > MAX_BIND_INT:
            issues.append(f"start={start} exceeds {MAX_BIND_INT}")
            start = MAX_BIND_INT

        length = _to_int(payload.get("length"), DEFAULT_LENGTH)
        if length is None or length == 0 or length < UNLIMITED:
            issues.append(f"length={payload.get('length')!r}")
            length = DEFAULT_LENGTH
        elif length > MAX_BIND_INT:
            issues.append(f"length={length} exceeds {MAX_BIND_INT}")
            length = MAX_BIND_INT
        if max_length is not None and length > max_length:
            issues.append(f"length={length} exceeds {max_length}")
            length = max_length

        search_value = _search_value(payload)
        if not isinstance(search_value, str):
            issues.append("search value is not a string")
            search_value = ""
        search_value = search_value.strip()
        if len(search_value) > MAX_SEARCH_LENGTH:
            issues.append("search value truncated")
            search_value = search_value[:MAX_SEARCH_LENGTH]

        raw_column, raw_dir = _first_order(payload)
        order_column = -1
        order_dir = SortDirection.DESC
        if raw_column is not None:
            parsed = _to_int(raw_column, -1)
            if parsed is None or parsed < 0:
                issues.append(f"order column={raw_column!r}")
            else:
                order_column = parsed
            order_dir = SortDirection.parse(raw_dir, SortDirection.ASC)
            if raw_dir is not None and str(raw_dir).strip().lower() not in ("asc", "desc"):
                issues.append(f"order dir={raw_dir!r}")

        order_name = _column_data(payload, order_column) if order_column >= 0 else None

        extra = {
            key: str(value)
            for key, value in payload.items()
            if key not in RESERVED_KEYS
            and "[" not in key
            and isinstance(value, (str, int, float, bool))
        }

        if issues:
            if strict:
                raise ValidationError(f"Invalid listing parameters: {'; '.join(issues)}")
            logger.warning("Clamped listing parameters: %s", "; ".join(issues))

        return cls(
            draw=draw,
            start=start,
            length=length,
            search_value=search_value,
            order_column=order_column,
            order_dir=order_dir,
            order_name=order_name,
            extra=extra,
            issues=tuple(issues),
        )


def _to_int(value: Any, default: int) -> int | None:
    """Coerce to int; None means "present but malformed"."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _search_value(payload: Mapping[str, Any]) -> Any:
    search = payload.get("search")
    if isinstance(search, Mapping):
        return search.get("value") or ""
    if isinstance(search, str):
        return search
    return payload.get("search[value]") or ""


def _first_order(payload: Mapping[str, Any]) -> tuple[Any, Any]:
    order = payload.get("order")
    if isinstance(order, list) and order and isinstance(order[0], Mapping):
        return order[0].get("column"), order[0].get("dir")
    if "order[0][column]" in payload:
        return payload.get("order[0][column]"), payload.get("order[0][dir]")
    return None, None


def _column_data(payload: Mapping[str, Any], index: int) -> str | None:
    columns = payload.get("columns")
    if isinstance(columns, list) and 0 <= index < len(columns):
        entry = columns[index]
        if isinstance(entry, Mapping) and isinstance(entry.get("data"), str):
            return entry["data"]
        return None
    flat = payload.get(f"columns[{index}][data]")
    return flat if isinstance(flat, str) else None
