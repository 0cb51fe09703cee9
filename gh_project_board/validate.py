from __future__ import annotations

PROJECT_PREFIX = "PVT_"
ITEM_PREFIX = "PVTI_"


def _non_blank(value: str, kind: str) -> None:
    if not value:
        raise ValueError(f"invalid {kind}: empty")
    if not value.strip():
        raise ValueError(f"invalid {kind}: contains only whitespace")


def _node_id(value: str, kind: str, prefix: str, node_type: str) -> None:
    _non_blank(value, kind)
    if value.isdigit() and value.isascii():
        raise ValueError(f'invalid {kind}: "{value}" is numeric only; '
                         f"expected {node_type} node ID (starts with '{prefix}')")
    if not value.startswith(prefix):
        raise ValueError(f"invalid {kind}: \"{value}\" does not start with '{prefix}'; "
                         f"expected {node_type} node ID format")


def validate_project_id(project_id: str) -> None:
    _node_id(project_id, "project ID", PROJECT_PREFIX, "ProjectV2")


def validate_item_id(item_id: str) -> None:
    _node_id(item_id, "item ID", ITEM_PREFIX, "ProjectV2Item")


def validate_status_update_ids(project_id: str, item_id: str, field_id: str, option_id: str) -> None:
    """Raise ValueError naming the first identifier that cannot be sent to the API."""
    validate_project_id(project_id)
    validate_item_id(item_id)
    _non_blank(field_id, "field ID")
    _non_blank(option_id, "option ID")
