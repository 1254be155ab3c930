"""
Node Editor Backend - FastAPI Application

This is the main entry point for the node editor backend.
It provides:
- REST API driving one editing session (node types, nodes, connections,
  context menu, viewport)
- Persistence endpoints for stored graphs, keyed by the caller's user id
- WebSocket endpoint for real-time updates
- CORS configuration for local frontend development

Authentication is handled outside this service; the user id arrives in the
X-User-Id header.

Run with: uvicorn node_editor_backend.main:app --port 8765
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Header, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from node_editor import (
    EditorNode,
    GraphEditor,
    NodeField,
    NodeType,
    Position,
    Size,
    SnapshotError,
    validate_graph,
    validation_summary,
)

from .config import configure_logging, get_cors_origins, get_data_dir
from .graph_store import GraphOwnershipError, JsonFileGraphStore, StoreError, describe
from .models import (
    ConnectionRequest,
    CreateNodeRequest,
    MenuNodeRequest,
    NodeTypeRequest,
    OpenGraphRequest,
    PositionRequest,
    SaveSnapshotRequest,
    StartConnectionRequest,
    ZoomRequest,
)
from .session import EditorSession, GraphNotFoundError
from .websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)


def _node_dict(node: EditorNode) -> dict:
    return {**node.to_json_dict(), "highlight": node.highlight.value}


def _store_unavailable(e: StoreError) -> HTTPException:
    logger.error(f"Graph store failure: {e}")
    return HTTPException(status_code=503, detail=f"Graph store unavailable: {e}")


def create_app(session: Optional[EditorSession] = None,
               ws_manager: Optional[WebSocketManager] = None) -> FastAPI:
    """Build the API around an editor session (a JSON file store by default)."""
    session = session or EditorSession(JsonFileGraphStore(get_data_dir()))
    ws_manager = ws_manager or WebSocketManager()

    # --- Async change notification ---
    # Bridge between sync editor renderer callbacks and async WebSocket broadcasts.
    # The event belongs to the running lifespan; outside one, changes are not broadcast.

    def on_graph_change():
        """Callback for graph changes - sets event for async handler."""
        change_event = getattr(app.state, "change_event", None)
        if change_event is not None:
            change_event.set()

    async def change_broadcaster(change_event: asyncio.Event):
        """Background task that broadcasts changes to WebSocket clients."""
        while True:
            await change_event.wait()
            change_event.clear()
            await ws_manager.notify_graph_updated(session.graph_id)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan handler for startup/shutdown tasks."""
        change_event = asyncio.Event()
        app.state.change_event = change_event
        broadcaster_task = asyncio.create_task(change_broadcaster(change_event))

        yield

        app.state.change_event = None
        broadcaster_task.cancel()
        try:
            await broadcaster_task
        except asyncio.CancelledError:
            pass

    app = FastAPI(
        title="Node Editor API",
        description="Backend API for the visual node graph editor",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.session = session
    app.state.ws_manager = ws_manager
    app.state.change_event = None
    session.on_change(on_graph_change)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def require_editor() -> GraphEditor:
        if session.editor is None:
            raise HTTPException(status_code=400, detail="No graph open")
        return session.editor

    def build_node_type(request: NodeTypeRequest, type_id: Optional[str] = None) -> NodeType:
        editor = require_editor()
        fields = []
        for spec in request.fields:
            value_type = editor.value_types.get(spec.type)
            if value_type is None:
                raise HTTPException(
                    status_code=400,
                    detail=f"Unknown value type '{spec.type}' for field '{spec.name}'"
                )
            kwargs: dict[str, Any] = dict(
                name=spec.name, value_type=value_type, default=spec.default,
                required=spec.required, shown=spec.shown
            )
            if spec.id:
                kwargs["id"] = spec.id
            fields.append(NodeField(**kwargs))
        try:
            if type_id:
                return NodeType(id=type_id, name=request.name, fields=fields)
            return NodeType(name=request.name, fields=fields)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))

    # --- Health Check ---

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "connections": ws_manager.connection_count}

    # --- Editor State ---

    @app.get("/api/editor")
    async def get_editor():
        """Get the current editor state."""
        return session.get_state()

    @app.post("/api/editor/new")
    async def new_graph(user_id: str = Header(alias="X-User-Id")):
        """Start a new empty graph."""
        editor = session.new_graph(user_id)
        return {"success": True, "graph": editor.to_json()}

    @app.post("/api/editor/open")
    async def open_graph(request: OpenGraphRequest, user_id: str = Header(alias="X-User-Id")):
        """Open the latest stored version of a graph."""
        try:
            editor = session.open_graph(user_id, request.graph_id)
        except GraphNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except SnapshotError as e:
            raise HTTPException(status_code=400, detail=f"Failed to open graph: {e}")
        except StoreError as e:
            raise _store_unavailable(e)
        return {"success": True, "graph_id": session.graph_id, "graph": editor.to_json()}

    @app.post("/api/editor/save")
    async def save_graph():
        """Store the current graph as a new version."""
        try:
            stored = session.save_graph()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except GraphOwnershipError as e:
            raise HTTPException(status_code=403, detail=str(e))
        except StoreError as e:
            raise _store_unavailable(e)
        await ws_manager.notify_graph_saved(stored.graph_id, stored.version)
        return {"success": True, **stored.to_dict(include_graph=False)}

    @app.get("/api/editor/validate")
    async def validate_current_graph():
        """
        Validate the current graph for structural issues.

        Returns a list of issues (errors, warnings, info) and a summary.
        """
        issues = validate_graph(require_editor())
        return {
            "success": True,
            "issues": [issue.to_dict() for issue in issues],
            "summary": validation_summary(issues)
        }

    # --- Value Types ---

    @app.get("/api/value-types")
    async def list_value_types():
        return {"value_types": [{"name": v.name, "description": v.description} for v in session.value_types]}

    # --- Node Types ---

    @app.get("/api/node-types")
    async def list_node_types():
        editor = require_editor()
        return {"node_types": [t.to_json_dict() for t in editor.node_types]}

    @app.post("/api/node-types")
    async def create_node_type(request: NodeTypeRequest):
        """Register a new node type."""
        node_type = build_node_type(request)
        try:
            require_editor().add_node_type(node_type)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"success": True, "node_type": node_type.to_json_dict()}

    @app.put("/api/node-types/{type_id}")
    async def replace_node_type(type_id: str, request: NodeTypeRequest):
        """Replace a node type (may rename it); nodes of the type follow."""
        editor = require_editor()
        if editor.get_node_type(type_id) is None:
            raise HTTPException(status_code=404, detail="Node type not found")
        node_type = build_node_type(request, type_id=type_id)
        replaced = editor.update_node_type(node_type)
        return {"success": True, "replaced": replaced, "node_type": node_type.to_json_dict()}

    @app.delete("/api/node-types/{name}")
    async def delete_node_type(name: str):
        """Remove a node type by name, together with all its nodes."""
        editor = require_editor()
        if editor.get_node_type_by_name(name) is None:
            raise HTTPException(status_code=404, detail="Node type not found")
        editor.remove_node_type_by_name(name)
        return {"success": True}

    # --- Node Operations ---

    @app.get("/api/nodes")
    async def list_nodes(type: Optional[str] = Query(default=None)):
        editor = require_editor()
        nodes = editor.get_nodes_by_type(type) if type else editor.nodes
        return {"nodes": [_node_dict(n) for n in nodes]}

    @app.post("/api/nodes")
    async def create_node(request: CreateNodeRequest):
        """Create a new node."""
        editor = require_editor()
        node_type = None
        if request.type_id:
            node_type = editor.get_node_type(request.type_id)
        elif request.type_name:
            node_type = editor.get_node_type_by_name(request.type_name)
        if node_type is None:
            raise HTTPException(status_code=404, detail="Node type not found")

        # Values may be keyed by field id or by field name
        values = {}
        for key, value in request.values.items():
            node_field = node_type.get_field(key) or node_type.get_field_by_name(key)
            values[node_field.id if node_field else key] = value

        try:
            node = EditorNode(
                type=node_type,
                name=request.name,
                position=Position(x=request.x, y=request.y),
                values=values,
            )
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        editor.add_node(node)
        return {"success": True, "node": _node_dict(node)}

    @app.post("/api/nodes/from-menu")
    async def create_node_from_menu(request: MenuNodeRequest):
        """Place a node of the first registered type under the context menu."""
        editor = require_editor()
        menu = editor.context_menu.position
        menu_position = Position(
            x=request.menu_x if request.menu_x is not None else menu.x,
            y=request.menu_y if request.menu_y is not None else menu.y,
        )
        node = editor.add_node_from_menu(menu_position, Size(width=request.width, height=request.height))
        if node is None:
            raise HTTPException(status_code=400, detail="No node types registered")
        if editor.context_menu.visible:
            editor.close_context_menu()
        return {"success": True, "node": _node_dict(node)}

    @app.get("/api/nodes/{node_id}")
    async def get_node(node_id: str):
        node = require_editor().get_node(node_id)
        if node is None:
            raise HTTPException(status_code=404, detail="Node not found")
        return {"node": _node_dict(node)}

    @app.delete("/api/nodes/{node_id}")
    async def delete_node(node_id: str):
        """Delete a node and all connections to it."""
        if not require_editor().remove_node_by_id(node_id):
            raise HTTPException(status_code=404, detail="Node not found")
        return {"success": True}

    @app.delete("/api/nodes")
    async def delete_nodes_by_name(name: str = Query()):
        """Delete every node with the given display name."""
        removed = require_editor().remove_node_by_name(name)
        return {"success": True, "removed": removed}

    # --- Connections ---

    @app.post("/api/connections/start")
    async def start_connection(request: StartConnectionRequest):
        editor = require_editor()
        if not editor.start_connection(request.from_id):
            raise HTTPException(status_code=404, detail="Node not found")
        candidates = [n.id for n in editor.nodes if n.highlight.value == "target"]
        return {"success": True, "candidates": candidates}

    @app.post("/api/connections/finish")
    async def finish_connection(request: ConnectionRequest):
        """Finish a connection gesture; omit to_id to cancel it."""
        created = require_editor().finish_connection(request.from_id, request.to_id)
        return {"success": True, "connected": created}

    @app.delete("/api/connections")
    async def delete_connection(from_id: str = Query(), to_id: str = Query()):
        if not require_editor().remove_connection(from_id, to_id):
            raise HTTPException(status_code=404, detail="Connection not found")
        return {"success": True}

    # --- Context Menu & Viewport ---

    @app.post("/api/context-menu/open")
    async def open_context_menu(request: PositionRequest):
        editor = require_editor()
        editor.open_context_menu(request.x, request.y)
        return {"success": True, "visible": editor.context_menu.visible}

    @app.post("/api/context-menu/close")
    async def close_context_menu():
        require_editor().close_context_menu()
        return {"success": True}

    @app.post("/api/viewport/zoom")
    async def zoom(request: ZoomRequest):
        editor = require_editor()
        changed = editor.zoom(request.delta_y)
        return {"success": True, "changed": changed, "zoom": editor.zoom_level}

    @app.post("/api/viewport/reset")
    async def reset_position():
        editor = require_editor()
        editor.reset_position()
        return {"success": True, "viewport": editor.viewport.to_json_dict()}

    @app.post("/api/viewport/position")
    async def pan_to(request: PositionRequest):
        editor = require_editor()
        editor.pan_to(request.x, request.y)
        return {"success": True, "viewport": editor.viewport.to_json_dict()}

    # --- Stored Graphs ---

    @app.get("/api/graphs")
    async def list_graphs(user_id: str = Header(alias="X-User-Id")):
        """List the caller's stored graphs."""
        try:
            graphs = session.store.list_user_graphs(user_id)
        except StoreError as e:
            raise _store_unavailable(e)
        return {"success": True, "graphs": describe(graphs)}

    @app.post("/api/graphs")
    async def save_snapshot(request: SaveSnapshotRequest, user_id: str = Header(alias="X-User-Id")):
        """Store a snapshot as a new graph or a new version of an existing one."""
        try:
            GraphEditor.from_json(request.graph, value_types=session.value_types)
        except SnapshotError as e:
            raise HTTPException(status_code=400, detail=f"Invalid snapshot: {e}")
        try:
            stored = session.store.save_graph(user_id, request.graph, request.graph_id)
        except GraphOwnershipError as e:
            raise HTTPException(status_code=403, detail=str(e))
        except StoreError as e:
            raise _store_unavailable(e)
        return {"success": True, **stored.to_dict(include_graph=False)}

    @app.get("/api/graphs/{graph_id}")
    async def get_graph(graph_id: str):
        try:
            stored = session.store.get_graph(graph_id)
        except StoreError as e:
            raise _store_unavailable(e)
        if stored is None:
            raise HTTPException(status_code=404, detail="Graph not found")
        return {"success": True, **stored.to_dict()}

    @app.delete("/api/graphs/{graph_id}")
    async def delete_graph(graph_id: str, user_id: str = Header(alias="X-User-Id")):
        try:
            deleted = session.store.delete_graph(user_id, graph_id)
        except StoreError as e:
            raise _store_unavailable(e)
        if not deleted:
            raise HTTPException(status_code=404, detail="Graph not found")
        return {"success": True}

    # --- WebSocket ---

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """
        WebSocket endpoint for real-time updates.

        Clients connect here to receive graph_updated events.
        """
        await ws_manager.connect(websocket)

        try:
            while True:
                data = await websocket.receive_text()
                if data == "ping":
                    await websocket.send_text('{"type": "pong"}')
        except WebSocketDisconnect:
            await ws_manager.disconnect(websocket)

    return app


configure_logging()
app = create_app()


# --- Run with uvicorn ---

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8765)
