"""
Snapshot loading - rebuild models from the portable JSON form.

Serialization lives on the models (``to_json_dict``); this module holds the
inverse, which needs the value type registry and the rebuilt node types to
resolve references. Any snapshot that cannot be turned into a consistent
graph raises ``SnapshotError``: a field whose value type is not registered
fails the whole load rather than being dropped.
"""

from typing import Any, Optional

from pydantic import ValidationError

from .errors import SnapshotError
from .models import EditorNode, NodeField, NodeType, Position
from .value_types import ValueTypeRegistry
from .viewport import Viewport


def _require_dict(data: Any, what: str) -> dict:
    if not isinstance(data, dict):
        raise SnapshotError(f"{what} must be an object, got {type(data).__name__}")
    return data


def _type_ref_name(data: dict, what: str) -> str:
    ref = data.get("type")
    if isinstance(ref, dict):
        name = ref.get("name")
    else:
        name = ref
    if not isinstance(name, str):
        raise SnapshotError(f"{what} has no type name")
    return name


def node_field_from_json_dict(data: Any, value_types: ValueTypeRegistry) -> NodeField:
    """Rebuild a field, resolving its value type against the registry."""
    data = _require_dict(data, "Field")
    type_name = _type_ref_name(data, f"Field '{data.get('name')}'")

    value_type = value_types.get(type_name)
    if value_type is None:
        raise SnapshotError(
            f"Field '{data.get('name')}' uses unknown value type '{type_name}' "
            f"(registered: {', '.join(value_types.names())})"
        )

    kwargs = {
        "name": data.get("name", ""),
        "value_type": value_type,
        "default": data.get("default"),
        "required": data.get("required", False),
        "shown": data.get("shown", True),
    }
    if data.get("id") not in (None, ""):
        kwargs["id"] = str(data["id"])

    try:
        return NodeField(**kwargs)
    except ValidationError as e:
        raise SnapshotError(f"Invalid field '{data.get('name')}': {e}") from e


def node_type_from_json_dict(data: Any, value_types: ValueTypeRegistry) -> NodeType:
    """Rebuild a node type, preserving field order and ids."""
    data = _require_dict(data, "Node type")
    fields = [node_field_from_json_dict(f, value_types) for f in data.get("fields") or []]

    kwargs = {"name": data.get("name", ""), "fields": fields}
    if data.get("id") not in (None, ""):
        kwargs["id"] = str(data["id"])

    try:
        return NodeType(**kwargs)
    except ValidationError as e:
        raise SnapshotError(f"Invalid node type '{data.get('name')}': {e}") from e


def resolve_node_type(ref: Any, node_types: list[NodeType]) -> Optional[NodeType]:
    """
    Find the node type a serialized node refers to.

    Matches by id first; snapshots written before types had ids only carry
    the name, so fall back to it.
    """
    if isinstance(ref, str):
        ref = {"name": ref}
    if not isinstance(ref, dict):
        return None

    type_id = ref.get("id")
    if type_id not in (None, ""):
        for node_type in node_types:
            if node_type.id == str(type_id):
                return node_type

    name = ref.get("name")
    for node_type in node_types:
        if node_type.name == name:
            return node_type
    return None


def editor_node_from_json_dict(data: Any, node_types: list[NodeType]) -> EditorNode:
    """
    Rebuild a node. Position, values and connections are kept verbatim;
    numeric ids (hand-written snapshots) are read as their string form.
    """
    data = _require_dict(data, "Node")
    node_type = resolve_node_type(data.get("type"), node_types)
    if node_type is None:
        raise SnapshotError(f"Node {data.get('id')} references unknown type {data.get('type')!r}")

    kwargs = {
        "type": node_type,
        "name": data.get("name", ""),
        "position": data.get("position") or {},
        "values": data.get("values") or {},
        "connections": data.get("connections") or [],
    }
    if data.get("id") not in (None, ""):
        kwargs["id"] = str(data["id"])

    try:
        return EditorNode(**kwargs)
    except ValidationError as e:
        raise SnapshotError(f"Invalid node {data.get('id')}: {e}") from e


def viewport_from_json_dict(data: Any, default_zoom: float = 1.0) -> Viewport:
    if data is None:
        return Viewport(zoom=default_zoom)
    data = _require_dict(data, "Viewport")
    try:
        return Viewport(
            position=Position(**(data.get("position") or {})),
            zoom=data.get("zoom", default_zoom),
        )
    except (TypeError, ValidationError) as e:
        raise SnapshotError(f"Invalid viewport: {e}") from e
