"""
Graph Editor - the controller that owns a node graph.

This module implements:
- Node type registry management (add / update / remove with node cascade)
- Node management with connection repair on removal
- The connection gesture (start -> highlight candidates -> finish)
- Cycle pre-check for new connections
- Viewport operations (pan, zoom, context menu placement)
- Conversion to and from the portable snapshot form

All mutation goes through ``GraphEditor``. Each public operation finishes its
whole mutation before calling the renderer, and calls it at most once.
"""

import logging
from typing import Callable, Iterable, Optional

from .errors import SnapshotError
from .models import EditorNode, NodeType, Position, Size
from .settings import DEFAULT_EDITOR_SETTINGS, EditorSettings
from .snapshot import (
    editor_node_from_json_dict,
    node_type_from_json_dict,
    viewport_from_json_dict,
)
from .value_types import DEFAULT_VALUE_TYPES, ValueTypeRegistry
from .viewport import ContextMenu, PanSession, PointerEvents, Viewport

logger = logging.getLogger(__name__)

# Zoom is rounded after every step so repeated steps do not drift below the floor
ZOOM_PRECISION = 6


def path_exists(nodes_by_id: dict[str, EditorNode], start: EditorNode, goal_id: str) -> bool:
    """
    True if ``goal_id`` is reachable from ``start`` over existing connections.

    Iterative depth-first search with a visited set; connections to missing
    nodes are skipped.
    """
    stack = [start]
    visited: set[str] = set()
    while stack:
        node = stack.pop()
        if node.id == goal_id:
            return True
        if node.id in visited:
            continue
        visited.add(node.id)
        for connection in node.connections:
            next_node = nodes_by_id.get(connection.to)
            if next_node is not None and next_node.id not in visited:
                stack.append(next_node)
    return False


def has_cycle(nodes: Iterable[EditorNode]) -> bool:
    """Check whether the connections between ``nodes`` contain a directed cycle."""
    nodes_by_id = {n.id: n for n in nodes}
    done: set[str] = set()

    for root in nodes_by_id.values():
        if root.id in done:
            continue
        # (node, index of next connection to follow)
        stack: list[tuple[EditorNode, int]] = [(root, 0)]
        on_path = {root.id}
        while stack:
            node, index = stack[-1]
            if index >= len(node.connections):
                stack.pop()
                on_path.discard(node.id)
                done.add(node.id)
                continue
            stack[-1] = (node, index + 1)
            next_node = nodes_by_id.get(node.connections[index].to)
            if next_node is None or next_node.id in done:
                continue
            if next_node.id in on_path:
                return True
            on_path.add(next_node.id)
            stack.append((next_node, 0))
    return False


class GraphEditor:
    """
    Owns the node types, nodes and viewport of one editing session.

    The value type registry is injected and never mutated. The renderer is a
    zero-argument callback set by the view layer; it is invoked after every
    visible mutation.
    """

    def __init__(
        self,
        node_types: Optional[Iterable[NodeType]] = None,
        nodes: Optional[Iterable[EditorNode]] = None,
        settings: EditorSettings = DEFAULT_EDITOR_SETTINGS,
        value_types: ValueTypeRegistry = DEFAULT_VALUE_TYPES,
        viewport: Optional[Viewport] = None,
    ):
        self._node_types: list[NodeType] = list(node_types or [])
        self._nodes: list[EditorNode] = list(nodes or [])
        self._settings = settings
        self._value_types = value_types
        self._viewport = viewport or Viewport(zoom=settings.initial_zoom)
        self._context_menu = ContextMenu()
        self._pan_session: Optional[PanSession] = None
        self._renderer: Callable[[], None] = self._default_renderer

    @classmethod
    def create(cls, node_types: Optional[Iterable[NodeType]] = None,
               nodes: Optional[Iterable[EditorNode]] = None, **kwargs) -> "GraphEditor":
        return cls(node_types, nodes, **kwargs)

    # --- Properties ---

    @property
    def node_types(self) -> list[NodeType]:
        """Registered node types (a copy)."""
        return list(self._node_types)

    @property
    def nodes(self) -> list[EditorNode]:
        """Nodes in the graph (a copy of the collection)."""
        return list(self._nodes)

    @property
    def settings(self) -> EditorSettings:
        return self._settings

    @property
    def value_types(self) -> ValueTypeRegistry:
        return self._value_types

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    @property
    def position(self) -> Position:
        return self._viewport.position

    @property
    def zoom_level(self) -> float:
        return self._viewport.zoom

    @property
    def context_menu(self) -> ContextMenu:
        return self._context_menu

    # --- Rendering ---

    @staticmethod
    def _default_renderer() -> None:
        logger.debug("Renderer is not set. Make sure your view calls set_renderer().")

    def set_renderer(self, method: Callable[[], None]) -> None:
        """Set the callback invoked when the view must refresh."""
        self._renderer = method

    def rerender(self) -> None:
        self._renderer()

    # --- Node Type Operations ---

    def _check_value_types(self, node_type: NodeType) -> None:
        for node_field in node_type.fields:
            if node_field.value_type not in self._value_types:
                raise ValueError(
                    f"Field '{node_field.name}' of type '{node_type.name}' uses "
                    f"unregistered value type '{node_field.value_type.name}'"
                )

    def add_node_type(self, node_type: NodeType) -> None:
        """Register a node type. Duplicate names are not rejected."""
        self._check_value_types(node_type)
        self._node_types.append(node_type)
        self.rerender()

    def update_node_type(self, node_type: NodeType) -> int:
        """
        Replace a registered type with ``node_type``.

        Types are matched by id. If no registered type has that id, every
        type with the same name is replaced instead. Nodes of a replaced
        type are re-pointed at the new object. Returns the number of types
        replaced.
        """
        self._check_value_types(node_type)

        matches = [t for t in self._node_types if t.id == node_type.id]
        if not matches:
            matches = [t for t in self._node_types if t.name == node_type.name]
        if not matches:
            logger.debug(f"No node type matches '{node_type.name}' ({node_type.id})")
            return 0

        replaced_ids = {t.id for t in matches}
        self._node_types = [node_type if t.id in replaced_ids else t for t in self._node_types]
        for node in self._nodes:
            if node.type.id in replaced_ids:
                node.retype(node_type)

        self.rerender()
        return len(matches)

    def get_node_type(self, type_id: str) -> Optional[NodeType]:
        """Get a node type by ID."""
        return next((t for t in self._node_types if t.id == type_id), None)

    def get_node_type_by_name(self, name: str) -> Optional[NodeType]:
        return next((t for t in self._node_types if t.name == name), None)

    def remove_node_type_by_name(self, name: str) -> None:
        """Remove the type(s) called ``name`` and every node of that type."""
        before = len(self._node_types)
        self._node_types = [t for t in self._node_types if t.name != name]
        removed = 0
        for node in [n for n in self._nodes if n.type.name == name]:
            removed += self._remove_node(node.id)
        if removed or len(self._node_types) != before:
            self.rerender()

    def remove_node_type(self, type_id: str) -> bool:
        """Remove a type by ID and every node of that type."""
        if self.get_node_type(type_id) is None:
            return False
        self._node_types = [t for t in self._node_types if t.id != type_id]
        for node in [n for n in self._nodes if n.type.id == type_id]:
            self._remove_node(node.id)
        self.rerender()
        return True

    # --- Node Operations ---

    def add_node(self, node: EditorNode) -> None:
        """Add a node. Id uniqueness is the caller's responsibility."""
        self._nodes.append(node)
        self.rerender()

    def get_node(self, node_id: str) -> Optional[EditorNode]:
        """Get a node by ID."""
        return next((n for n in self._nodes if n.id == node_id), None)

    def get_nodes_by_type(self, type_name: str) -> list[EditorNode]:
        """All nodes whose type is called ``type_name``."""
        return [n for n in self._nodes if n.type.name == type_name]

    def _remove_node(self, node_id: str) -> bool:
        """Remove a node and drop every connection pointing at it."""
        before = len(self._nodes)
        self._nodes = [n for n in self._nodes if n.id != node_id]
        if len(self._nodes) == before:
            return False
        for node in self._nodes:
            node.disconnect(node_id)
        return True

    def remove_node_by_id(self, node_id: str) -> bool:
        """Remove a node and all connections to it."""
        if not self._remove_node(node_id):
            logger.debug(f"Node not found: {node_id}")
            return False
        self.rerender()
        return True

    def remove_node_by_name(self, name: str) -> int:
        """Remove every node with display name ``name``. Returns the count removed."""
        removed = 0
        for node in [n for n in self._nodes if n.name == name]:
            removed += self._remove_node(node.id)
        if removed:
            self.rerender()
        return removed

    def remove_nodes_by_type(self, type_name: str) -> int:
        """Remove every node of the given type name. Returns the count removed."""
        removed = 0
        for node in self.get_nodes_by_type(type_name):
            removed += self._remove_node(node.id)
        if removed:
            self.rerender()
        return removed

    # --- Connections ---

    def _clear_highlights(self) -> None:
        for node in self._nodes:
            node.unhighlight_as_connection_source()
            node.unhighlight_as_connection_target()

    def start_connection(self, from_id: str) -> bool:
        """
        Begin a connection gesture from ``from_id``.

        Marks the source node and every node it may connect to.
        """
        self._clear_highlights()
        source = self.get_node(from_id)
        if source is None:
            logger.debug(f"Cannot start connection, node not found: {from_id}")
            return False

        for node in self._nodes:
            if node.id == from_id:
                node.highlight_as_connection_source()
            elif source.can_connect_to(node.id):
                node.highlight_as_connection_target()

        self.rerender()
        return True

    def finish_connection(self, from_id: str, to_id: Optional[str] = None) -> bool:
        """
        End a connection gesture, connecting to ``to_id`` if given.

        Highlights are always cleared. Returns True if an edge was created.
        """
        self._clear_highlights()
        created = self._connect(from_id, to_id) if to_id else False
        self.rerender()
        return created

    def _connect(self, from_id: str, to_id: str) -> bool:
        from_node = self.get_node(from_id)
        to_node = self.get_node(to_id)
        if from_node is None or to_node is None:
            logger.debug(f"Cannot connect {from_id} -> {to_id}: node not found")
            return False

        if from_id == to_id:
            logger.info(f"Node {from_id} cannot connect to itself. Not connecting.")
            return False
        if from_node.is_connected_to(to_id):
            logger.info(f"Connection {from_id} -> {to_id} already exists. Not connecting.")
            return False
        if self._settings.prevent_circular_connections and \
                self.connection_would_recurse(from_node, to_node):
            logger.info(f"Connection {from_id} -> {to_id} would recurse. Not connecting.")
            return False

        from_node.connect(to_node.id)
        return True

    def connection_would_recurse(self, from_node: EditorNode, to_node: EditorNode) -> bool:
        """True if adding ``from_node -> to_node`` would close a cycle."""
        if from_node.id == to_node.id:
            return True
        nodes_by_id = {n.id: n for n in self._nodes}
        return path_exists(nodes_by_id, to_node, from_node.id)

    def remove_connection(self, from_id: str, to_id: str) -> bool:
        """Remove the edge ``from_id -> to_id``."""
        from_node = self.get_node(from_id)
        if from_node is None or not from_node.disconnect(to_id):
            return False
        self.rerender()
        return True

    # --- Viewport ---

    def reset_position(self) -> None:
        self._viewport.position = Position(x=0, y=0)
        self.rerender()

    def begin_pan(self, mouse_x: float, mouse_y: float,
                  events: Optional[PointerEvents] = None) -> PanSession:
        """
        Start a pan-drag at the given screen coordinates.

        A pan still in progress is ended first, so its listeners never
        outlive the gesture.
        """
        if self._pan_session is not None:
            self._pan_session.end()
        self._pan_session = PanSession(
            self._viewport, mouse_x, mouse_y, on_move=self.rerender, events=events
        )
        return self._pan_session

    def pan_to(self, x: float, y: float) -> None:
        self._viewport.position = Position(x=x, y=y)
        self.rerender()

    def zoom(self, delta_y: float) -> bool:
        """
        Zoom one step. Positive ``delta_y`` (scrolling down) zooms out.

        Returns False when the step would go below the zoom floor.
        """
        direction = -1 if delta_y > 0 else 1
        zoom = round(self._viewport.zoom + direction * self._settings.zoom_step, ZOOM_PRECISION)
        if zoom < self._settings.min_zoom:
            logger.debug(f"Zoom {zoom} is below the minimum {self._settings.min_zoom}")
            return False

        self._viewport.zoom = zoom
        self.rerender()
        return True

    def open_context_menu(self, x: float, y: float) -> None:
        """Toggle the context menu at screen position (x, y)."""
        self._context_menu.visible = not self._context_menu.visible
        self._context_menu.position = Position(x=x, y=y)
        self.rerender()

    def close_context_menu(self) -> None:
        self._context_menu.visible = False
        self.rerender()

    def add_node_from_menu(self, menu_position: Position, editor_size: Size) -> Optional[EditorNode]:
        """
        Place a node of the first registered type under a context-menu click.

        The viewport is centered on the editor surface and scaled by zoom.
        """
        if not self._node_types:
            logger.warning("Cannot add node from menu: no node types registered")
            return None

        zoom = self._viewport.zoom
        position = Position(
            x=(menu_position.x / zoom) - editor_size.width / (2 * zoom),
            y=(menu_position.y / zoom) - editor_size.height / (2 * zoom),
        )
        node = EditorNode(type=self._node_types[0], position=position)
        self._nodes.append(node)
        self.rerender()
        return node

    # --- Serialization ---

    def to_json(self) -> dict:
        """Convert the whole graph to a JSON-serializable snapshot."""
        return {
            "nodeTypes": [t.to_json_dict() for t in self._node_types],
            "nodes": [n.to_json_dict() for n in self._nodes],
            "viewport": self._viewport.to_json_dict(),
        }

    @classmethod
    def from_json(
        cls,
        data: dict,
        value_types: ValueTypeRegistry = DEFAULT_VALUE_TYPES,
        settings: EditorSettings = DEFAULT_EDITOR_SETTINGS,
    ) -> "GraphEditor":
        """
        Rebuild an editor from a snapshot.

        Value types are resolved against ``value_types``, not the snapshot.
        Node and field ids are preserved verbatim.
        """
        if not isinstance(data, dict):
            raise SnapshotError("Snapshot must be an object")

        node_types = [node_type_from_json_dict(t, value_types) for t in data.get("nodeTypes") or []]
        nodes = [editor_node_from_json_dict(n, node_types) for n in data.get("nodes") or []]
        viewport = viewport_from_json_dict(data.get("viewport"), settings.initial_zoom)

        return cls(node_types, nodes, settings=settings, value_types=value_types, viewport=viewport)

    def __repr__(self) -> str:
        return f"GraphEditor(types={len(self._node_types)}, nodes={len(self._nodes)})"
