"""
Pydantic request models for the node editor API.

Node types and nodes are described here in their wire form (value types by
name, node types by id or name); the endpoints turn them into core models.
"""
from typing import Any, Optional
from pydantic import BaseModel, Field, model_validator


class FieldSpec(BaseModel):
    """A node type field as sent by clients."""
    id: Optional[str] = None
    name: str
    type: str  # Value type name
    default: Any = None
    required: bool = False
    shown: bool = True


class NodeTypeRequest(BaseModel):
    """Create or replace a node type."""
    name: str
    fields: list[FieldSpec] = Field(default_factory=list)


class CreateNodeRequest(BaseModel):
    """Request to create a new node."""
    type_id: Optional[str] = None
    type_name: Optional[str] = None
    name: str = ""
    x: float = 0
    y: float = 0
    values: dict[str, Any] = Field(default_factory=dict)


class MenuNodeRequest(BaseModel):
    """Place a node under the context menu. Position defaults to the menu's."""
    width: float
    height: float
    menu_x: Optional[float] = None
    menu_y: Optional[float] = None


class StartConnectionRequest(BaseModel):
    from_id: str


class ConnectionRequest(BaseModel):
    """
    Finish or remove a connection.

    Accepts ``from``/``to`` on input for backward compatibility.
    """
    from_id: str
    to_id: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Convert legacy 'from'/'to' fields to 'from_id'/'to_id'."""
        if isinstance(data, dict):
            if 'from' in data and 'from_id' not in data:
                data['from_id'] = data.pop('from')
            if 'to' in data and 'to_id' not in data:
                data['to_id'] = data.pop('to')
        return data


class ZoomRequest(BaseModel):
    delta_y: float


class PositionRequest(BaseModel):
    x: float
    y: float


class OpenGraphRequest(BaseModel):
    graph_id: str


class SaveSnapshotRequest(BaseModel):
    """Store a snapshot directly, without opening it."""
    graph: dict
    graph_id: Optional[str] = None
