"""
Core data models for node graphs.

These models define the in-memory schema of a graph:
- Node types: named, ordered lists of typed fields
- Editor nodes: positioned instances of a node type with per-field values
- Connections: directed edges stored on their source node

Field Naming Convention:
- Node values are keyed by field *id*, never by field name
- Connections only record their target (``to``); the source is the node
  that owns the connection list
- For backward compatibility, ``target``/``to_node`` are accepted on input
  and converted to ``to``
"""

from copy import deepcopy
from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
import uuid

from .value_types import ValueType


def generate_node_id() -> str:
    """Generate a unique node ID."""
    return f"n{uuid.uuid4().hex[:8]}"


def generate_type_id() -> str:
    """Generate a unique node type ID."""
    return f"t{uuid.uuid4().hex[:8]}"


def generate_field_id() -> str:
    """Generate a unique field ID."""
    return f"f{uuid.uuid4().hex[:8]}"


class HighlightState(str, Enum):
    """Connection-gesture highlight of a node."""
    IDLE = "idle"
    SOURCE = "source"    # Node the gesture started from
    TARGET = "target"    # Node the source may connect to


class Position(BaseModel):
    """A point in canvas or screen coordinates."""
    x: float = 0.0
    y: float = 0.0


class Size(BaseModel):
    """Width and height of the editor surface in screen pixels."""
    width: float = 0.0
    height: float = 0.0


class NodeField(BaseModel):
    """One entry of a node type schema."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_field_id)
    name: str
    value_type: ValueType
    default: Any = None
    required: bool = False
    shown: bool = True

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "name": self.name,
            "type": {"name": self.value_type.name},
            "default": deepcopy(self.default),
            "required": self.required,
            "shown": self.shown,
        }


class NodeType(BaseModel):
    """
    A named schema that editor nodes instantiate.

    ``id`` is the stable identity of the type; ``name`` is the display name
    and may change through ``GraphEditor.update_node_type``. Instances are
    frozen: changing a type means replacing the whole object.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_type_id)
    name: str
    fields: list[NodeField] = Field(default_factory=list)

    @field_validator('fields')
    @classmethod
    def check_unique_field_ids(cls, fields: list[NodeField]) -> list[NodeField]:
        seen: set[str] = set()
        for node_field in fields:
            if node_field.id in seen:
                raise ValueError(f"Duplicate field id: {node_field.id}")
            seen.add(node_field.id)
        return fields

    def get_field(self, field_id: str) -> Optional[NodeField]:
        """Get a field by ID."""
        for node_field in self.fields:
            if node_field.id == field_id:
                return node_field
        return None

    def get_field_by_name(self, name: str) -> Optional[NodeField]:
        for node_field in self.fields:
            if node_field.name == name:
                return node_field
        return None

    def field_ids(self) -> set[str]:
        return {f.id for f in self.fields}

    def default_values(self) -> dict[str, Any]:
        """Values a fresh node of this type starts with."""
        return {f.id: deepcopy(f.default) for f in self.fields}

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "name": self.name,
            "fields": [f.to_json_dict() for f in self.fields],
        }


class Connection(BaseModel):
    """
    An outgoing edge, stored on its source node.

    Accepts ``target``/``to_node`` on input for backward compatibility.
    """
    to: str  # Target node ID

    @model_validator(mode='before')
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Convert legacy 'target'/'to_node' fields to 'to'."""
        if isinstance(data, dict):
            data = dict(data)
            if 'target' in data and 'to' not in data:
                data['to'] = data.pop('target')
            if 'to_node' in data and 'to' not in data:
                data['to'] = data.pop('to_node')
            if isinstance(data.get('to'), int) and not isinstance(data['to'], bool):
                data['to'] = str(data['to'])
        return data


class EditorNode(BaseModel):
    """
    A placed instance of a node type.

    Exposes the capability methods the editor drives during a connection
    gesture (``can_connect_to``, the highlight toggles and ``connect``); the
    editor never touches ``highlight`` directly.
    """
    id: str = Field(default_factory=generate_node_id)
    type: NodeType
    name: str = ""
    position: Position = Field(default_factory=Position)
    values: dict[str, Any] = Field(default_factory=dict)
    connections: list[Connection] = Field(default_factory=list)
    highlight: HighlightState = Field(default=HighlightState.IDLE, exclude=True)

    @model_validator(mode='after')
    def apply_type(self) -> "EditorNode":
        """Check values against the type and fill in field defaults."""
        unknown = set(self.values) - self.type.field_ids()
        if unknown:
            raise ValueError(
                f"Values reference fields not declared on type '{self.type.name}': "
                f"{', '.join(sorted(unknown))}"
            )
        for node_field in self.type.fields:
            if node_field.id not in self.values:
                self.values[node_field.id] = deepcopy(node_field.default)

        if any(c.to == self.id for c in self.connections):
            raise ValueError(f"Node {self.id} cannot connect to itself")

        if not self.name:
            self.name = self.type.name
        return self

    # --- Values ---

    def get_value(self, field_id: str) -> Any:
        return self.values.get(field_id)

    def set_value(self, field_id: str, value: Any) -> bool:
        """Set a field value. Returns False if the type has no such field."""
        if self.type.get_field(field_id) is None:
            return False
        self.values[field_id] = value
        return True

    def retype(self, node_type: NodeType) -> None:
        """
        Point this node at a replacement type.

        Values of fields that survive (by id) are kept, values of removed
        fields are dropped and new fields start at their default.
        """
        values = node_type.default_values()
        for field_id in values:
            if field_id in self.values:
                values[field_id] = self.values[field_id]
        if self.name == self.type.name:
            self.name = node_type.name
        self.type = node_type
        self.values = values

    # --- Connections ---

    def is_connected_to(self, target_id: str) -> bool:
        return any(c.to == target_id for c in self.connections)

    def can_connect_to(self, target_id: str) -> bool:
        """True if a new edge from this node to ``target_id`` is allowed."""
        return target_id != self.id and not self.is_connected_to(target_id)

    def connect(self, target_id: str) -> None:
        """Append an outgoing edge."""
        self.connections.append(Connection(to=target_id))

    def disconnect(self, target_id: str) -> bool:
        """Drop every outgoing edge to ``target_id``."""
        before = len(self.connections)
        self.connections = [c for c in self.connections if c.to != target_id]
        return len(self.connections) != before

    # --- Highlight ---

    def highlight_as_connection_source(self) -> None:
        self.highlight = HighlightState.SOURCE

    def unhighlight_as_connection_source(self) -> None:
        if self.highlight == HighlightState.SOURCE:
            self.highlight = HighlightState.IDLE

    def highlight_as_connection_target(self) -> None:
        self.highlight = HighlightState.TARGET

    def unhighlight_as_connection_target(self) -> None:
        if self.highlight == HighlightState.TARGET:
            self.highlight = HighlightState.IDLE

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict. The type is stored by reference."""
        return {
            "id": self.id,
            "name": self.name,
            "type": {"id": self.type.id, "name": self.type.name},
            "position": {"x": self.position.x, "y": self.position.y},
            "values": deepcopy(self.values),
            "connections": [{"to": c.to} for c in self.connections],
        }
