"""
Editor Session - the graph being edited, its origin and its persistence.

This module implements:
- Single editor state management (one graph open at a time)
- Loading and saving through a GraphStore
- Dirty tracking driven by the editor's renderer callback
- Change and save callbacks for real-time sync
"""

import logging
from typing import Callable, Optional

from node_editor import DEFAULT_VALUE_TYPES, EditorSettings, GraphEditor, NodeType, ValueTypeRegistry

from .graph_store import GraphStore, StoredGraph

logger = logging.getLogger(__name__)


class GraphNotFoundError(LookupError):
    """Raised when a graph id does not exist in the store."""


class EditorSession:
    """
    Holds the active GraphEditor and where it came from.

    The session installs itself as the editor's renderer: every visible
    mutation marks the session dirty and fires the change callbacks.
    """

    def __init__(
        self,
        store: GraphStore,
        value_types: ValueTypeRegistry = DEFAULT_VALUE_TYPES,
        settings: Optional[EditorSettings] = None,
    ):
        self._store = store
        self._value_types = value_types
        self._settings = settings or EditorSettings()
        self._editor: Optional[GraphEditor] = None
        self._graph_id: Optional[str] = None
        self._user_id: Optional[str] = None
        self._version: Optional[int] = None
        self._dirty = False
        self._on_change_callbacks: list[Callable[[], None]] = []
        self._on_save_callbacks: list[Callable[[StoredGraph], None]] = []

    # --- Properties ---

    @property
    def editor(self) -> Optional[GraphEditor]:
        """Get the current editor."""
        return self._editor

    @property
    def store(self) -> GraphStore:
        return self._store

    @property
    def value_types(self) -> ValueTypeRegistry:
        return self._value_types

    @property
    def graph_id(self) -> Optional[str]:
        return self._graph_id

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_dirty(self) -> bool:
        """Check if there are unsaved changes."""
        return self._dirty

    # --- Callbacks ---

    def on_change(self, callback: Callable[[], None]):
        """Register a callback for graph changes."""
        self._on_change_callbacks.append(callback)

    def _notify_change(self):
        for callback in self._on_change_callbacks:
            callback()

    def on_save(self, callback: Callable[[StoredGraph], None]):
        """Register a callback that receives every successfully stored version."""
        self._on_save_callbacks.append(callback)

    def _notify_save(self, stored: StoredGraph):
        for callback in self._on_save_callbacks:
            try:
                callback(stored)
            except Exception as e:
                # Don't let callback failures affect the save itself
                logger.error(f"Save callback failed for graph {stored.graph_id}: {e}")

    def _handle_rerender(self):
        self._dirty = True
        self._notify_change()

    def _attach(self, editor: GraphEditor, graph_id: Optional[str], user_id: str,
                version: Optional[int]) -> GraphEditor:
        editor.set_renderer(self._handle_rerender)
        self._editor = editor
        self._graph_id = graph_id
        self._user_id = user_id
        self._version = version
        self._dirty = False
        self._notify_change()
        return editor

    # --- Graph Operations ---

    def require_editor(self) -> GraphEditor:
        if self._editor is None:
            raise ValueError("No graph open")
        return self._editor

    def new_graph(self, user_id: str, node_types: Optional[list[NodeType]] = None) -> GraphEditor:
        """Start a new, unsaved graph."""
        editor = GraphEditor(node_types, settings=self._settings, value_types=self._value_types)
        return self._attach(editor, None, user_id, None)

    def open_graph(self, user_id: str, graph_id: str) -> GraphEditor:
        """
        Load the latest stored version of a graph.

        Raises GraphNotFoundError if the id is unknown and SnapshotError if
        the stored snapshot cannot be loaded.
        """
        stored = self._store.get_graph(graph_id)
        if stored is None:
            raise GraphNotFoundError(f"Graph not found: {graph_id}")

        editor = GraphEditor.from_json(stored.graph, value_types=self._value_types, settings=self._settings)
        logger.info(f"Opened graph {graph_id} version {stored.version} ({len(editor.nodes)} nodes)")
        return self._attach(editor, stored.graph_id, user_id, stored.version)

    def save_graph(self) -> StoredGraph:
        """Store the current graph as a new version."""
        editor = self.require_editor()
        if self._user_id is None:
            raise ValueError("No user for the current graph")

        stored = self._store.save_graph(self._user_id, editor.to_json(), self._graph_id)
        self._graph_id = stored.graph_id
        self._version = stored.version
        self._dirty = False

        self._notify_save(stored)
        return stored

    def get_state(self) -> dict:
        """Get the full current state for API responses."""
        if self._editor is None:
            return {
                "graph": None,
                "graph_id": None,
                "version": None,
                "is_dirty": False,
                "context_menu": None,
            }

        menu = self._editor.context_menu
        return {
            "graph": self._editor.to_json(),
            "graph_id": self._graph_id,
            "version": self._version,
            "is_dirty": self._dirty,
            "context_menu": {
                "visible": menu.visible,
                "position": {"x": menu.position.x, "y": menu.position.y},
            },
            "highlights": {n.id: n.highlight.value for n in self._editor.nodes},
        }
