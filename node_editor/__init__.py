"""
Node Editor Core - Graph model, connection rules, viewport and snapshots.

This package holds everything that mutates or inspects a node graph. It has
no view or transport dependencies; the backend and any UI drive it through
``GraphEditor``.
"""

from .value_types import (
    ValueType,
    ValueTypeRegistry,
    DEFAULT_VALUE_TYPES,
    STRING,
    TEXT,
    NUMBER,
    BOOLEAN,
    ENUM,
)

from .models import (
    # Enums
    HighlightState,
    # Core models
    Position,
    Size,
    NodeField,
    NodeType,
    Connection,
    EditorNode,
)

from .settings import EditorSettings, DEFAULT_EDITOR_SETTINGS
from .viewport import Viewport, ContextMenu, PanSession, PointerEvents
from .editor import GraphEditor, has_cycle
from .errors import NodeEditorError, SnapshotError
from .validation import validate_graph, validation_summary, ValidationIssue, IssueSeverity

__all__ = [
    # Value types
    "ValueType",
    "ValueTypeRegistry",
    "DEFAULT_VALUE_TYPES",
    "STRING",
    "TEXT",
    "NUMBER",
    "BOOLEAN",
    "ENUM",
    # Models
    "HighlightState",
    "Position",
    "Size",
    "NodeField",
    "NodeType",
    "Connection",
    "EditorNode",
    # Editor
    "EditorSettings",
    "DEFAULT_EDITOR_SETTINGS",
    "Viewport",
    "ContextMenu",
    "PanSession",
    "PointerEvents",
    "GraphEditor",
    "has_cycle",
    # Errors
    "NodeEditorError",
    "SnapshotError",
    # Validation
    "validate_graph",
    "validation_summary",
    "ValidationIssue",
    "IssueSeverity",
]
