"""Row formatting for listing responses.

Turns a raw result row into the wire row:
- DT_RowId / DT_RowData for UI binding ("{entity}-{id}")
- every projected column as an HTML-escaped string, with an explicit
  placeholder for missing values
- a status badge driven by the entity's configured active value
- view/edit/delete affordances gated by the entity policy

Formatting is deterministic and side-effect free; ROW_FORMAT mutators run
last.
"""

from __future__ import annotations

import html
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from platformcore.access.policy import AccessPolicy, PolicyRegistry
from platformcore.access.types import Relation
from platformcore.extensions.service import ExtensionChain
from platformcore.extensions.types import ROW_FORMAT, RequestContext, RowContext

if TYPE_CHECKING:
    from platformcore.entities.types import ColumnSpec, EntityDescriptor

DEFAULT_PLACEHOLDER = "-"
ACTIONS_KEY = "actions"

_BUTTONS = (
    ("view", "view", "View Details", "visibility"),
    ("update", "edit", "Edit", "edit"),
    ("delete", "delete", "Delete", "trash"),
)


def row_identity(entity: str, raw_id: Any) -> tuple[str, dict[str, Any]]:
    """Stable (DT_RowId, DT_RowData) for a row."""
    row_id = _normalize_id(raw_id)
    return f"{entity}-{row_id}", {"id": row_id, "entity": entity}


def _normalize_id(raw_id: Any) -> Any:
    if isinstance(raw_id, bool):
        return str(raw_id)
    if isinstance(raw_id, int):
        return raw_id
    text = str(raw_id)
    return int(text) if text.isdigit() else text


class RowFormatter:
    """Formats raw rows for one listing response."""

    def __init__(
        self,
        placeholder: str = DEFAULT_PLACEHOLDER,
        chain: ExtensionChain | None = None,
    ):
        self.placeholder = placeholder
        self.chain = chain or ExtensionChain()

    def format(
        self,
        descriptor: EntityDescriptor,
        raw_row: Mapping[str, Any],
        relation: Relation,
        capabilities: Iterable[str],
        context: RequestContext | None = None,
        columns: Iterable[ColumnSpec] | None = None,
        policy: AccessPolicy | None = None,
    ) -> dict[str, Any]:
        """Format one raw row.

        Args:
            descriptor: Entity of the row
            raw_row: Row as returned by the paged query
            relation: Relation gating the row's actions
            capabilities: Capabilities of the caller
            context: Request context; when given, ROW_FORMAT mutators run
            columns: Projected columns (defaults to the descriptor's)
            policy: Policy to gate actions (defaults to the registered one)
        """
        policy = policy or PolicyRegistry.for_entity(descriptor)
        capabilities = frozenset(capabilities)
        row_id, row_data = row_identity(descriptor.name, raw_row.get(descriptor.index_column))

        formatted: dict[str, Any] = {"DT_RowId": row_id, "DT_RowData": row_data}
        status_alias = descriptor.status_column.rsplit(".", 1)[-1] if descriptor.status_column else None

        for column in columns if columns is not None else descriptor.columns:
            value = raw_row.get(column.alias)
            if column.alias == status_alias:
                formatted[column.alias] = self.status_badge(descriptor, value)
            else:
                formatted[column.alias] = self.render_value(value)

        formatted[ACTIONS_KEY] = self.actions(descriptor, row_data["id"], relation, capabilities, policy)

        if context is not None:
            formatted = self.chain.apply(
                ROW_FORMAT, descriptor.name, formatted, RowContext(request=context, raw=raw_row)
            )
        return formatted

    def render_value(self, value: Any) -> str:
        if value is None or value == "":
            return self.placeholder
        return html.escape(str(value))

    def status_badge(self, descriptor: EntityDescriptor, value: Any) -> str:
        """Badge for the status column; placeholder when the value is missing."""
        if value is None or value == "":
            return self.placeholder
        active_label, inactive_label = descriptor.status_labels
        is_active = str(value) == descriptor.active_value
        return '<span class="badge badge-{kind}">{label}</span>'.format(
            kind="success" if is_active else "error",
            label=html.escape(active_label if is_active else inactive_label),
        )

    def actions(
        self,
        descriptor: EntityDescriptor,
        row_id: Any,
        relation: Relation,
        capabilities: frozenset[str],
        policy: AccessPolicy,
    ) -> str:
        """Action buttons, each gated individually by the policy."""
        entity = html.escape(descriptor.name, quote=True)
        ident = html.escape(str(row_id), quote=True)
        buttons = [
            f'<button type="button" class="btn btn-sm {entity}-{css}-btn" '
            f'data-id="{ident}" data-entity="{entity}" title="{title}">'
            f'<span class="icon icon-{icon}"></span></button>'
            for action, css, title, icon in _BUTTONS
            if policy.can(action, relation, capabilities)
        ]
        return " ".join(buttons) if buttons else self.placeholder
