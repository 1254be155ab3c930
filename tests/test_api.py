# tests/test_api.py
"""
Tests for the HTTP API (node_editor_backend/main.py).

Covers:
    • Editor lifecycle (new / save / open) and user scoping
    • Node type and node endpoints
    • Connection gesture and viewport endpoints
    • Stored graph endpoints and error mapping
    • WebSocket change notifications
"""
import pytest
from fastapi.testclient import TestClient

from node_editor_backend.graph_store import InMemoryGraphStore, StoreError
from node_editor_backend.main import create_app
from node_editor_backend.session import EditorSession

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}

STEP_TYPE = {
    "name": "Step",
    "fields": [
        {"id": "f-label", "name": "label", "type": "string", "required": True},
        {"id": "f-weight", "name": "weight", "type": "number", "default": 1},
    ],
}


# ═════════════════════════════════════════════════════════════════
#  FIXTURES
# ═════════════════════════════════════════════════════════════════

@pytest.fixture
def store() -> InMemoryGraphStore:
    return InMemoryGraphStore()


@pytest.fixture
def session(store) -> EditorSession:
    return EditorSession(store)


@pytest.fixture
def client(session):
    with TestClient(create_app(session)) as test_client:
        yield test_client


@pytest.fixture
def open_client(client):
    """Client with a new graph holding the Step type and nodes a -> b, c."""
    client.post("/api/editor/new", headers=ALICE)
    type_id = client.post("/api/node-types", json=STEP_TYPE).json()["node_type"]["id"]
    ids = {}
    for name in ("a", "b", "c"):
        response = client.post("/api/nodes", json={"type_id": type_id, "name": name,
                                                   "values": {"label": name}})
        ids[name] = response.json()["node"]["id"]
    client.post("/api/connections/finish", json={"from": ids["a"], "to": ids["b"]})
    return client


@pytest.fixture
def ids(open_client) -> dict[str, str]:
    """Node ids of the open graph, keyed by node name."""
    return {n["name"]: n["id"] for n in open_client.get("/api/nodes").json()["nodes"]}


# ═════════════════════════════════════════════════════════════════
#  EDITOR
# ═════════════════════════════════════════════════════════════════

class TestEditorEndpoints:

    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok", "connections": 0}

    def test_state_without_graph(self, client):
        assert client.get("/api/editor").json()["graph"] is None

    def test_operations_require_open_graph(self, client):
        response = client.get("/api/node-types")
        assert response.status_code == 400
        assert response.json()["detail"] == "No graph open"

    def test_new_requires_user(self, client):
        assert client.post("/api/editor/new").status_code == 422

    def test_new_graph(self, client):
        body = client.post("/api/editor/new", headers=ALICE).json()
        assert body["graph"] == {
            "nodeTypes": [],
            "nodes": [],
            "viewport": {"position": {"x": 0, "y": 0}, "zoom": 1.0},
        }

    def test_save_and_reopen(self, open_client, store):
        saved = open_client.post("/api/editor/save").json()
        assert saved["version"] == 1
        assert open_client.get("/api/editor").json()["is_dirty"] is False

        open_client.post("/api/editor/new", headers=ALICE)
        body = open_client.post("/api/editor/open", json={"graph_id": saved["graph_id"]},
                                headers=ALICE).json()
        assert len(body["graph"]["nodes"]) == 3
        assert body["graph_id"] == saved["graph_id"]

    def test_open_missing(self, client):
        response = client.post("/api/editor/open", json={"graph_id": "gnone"}, headers=ALICE)
        assert response.status_code == 404

    def test_save_over_other_users_graph(self, open_client, store):
        saved = open_client.post("/api/editor/save").json()
        open_client.post("/api/editor/open", json={"graph_id": saved["graph_id"]}, headers=BOB)
        assert open_client.post("/api/editor/save").status_code == 403

    def test_store_failure_maps_to_503(self, open_client, store, monkeypatch):
        def fail(*args, **kwargs):
            raise StoreError("disk full")
        monkeypatch.setattr(store, "save_graph", fail)
        assert open_client.post("/api/editor/save").status_code == 503

    def test_validate(self, open_client):
        body = open_client.get("/api/editor/validate").json()
        assert body["summary"]["valid"] is True
        assert body["summary"]["info"] == 1

    def test_value_types(self, client):
        names = [v["name"] for v in client.get("/api/value-types").json()["value_types"]]
        assert names == ["string", "text", "number", "boolean", "enum"]


# ═════════════════════════════════════════════════════════════════
#  NODE TYPES & NODES
# ═════════════════════════════════════════════════════════════════

class TestNodeEndpoints:

    def test_unknown_value_type(self, open_client):
        response = open_client.post("/api/node-types", json={
            "name": "Bad", "fields": [{"name": "c", "type": "color"}]})
        assert response.status_code == 400
        assert "color" in response.json()["detail"]

    def test_replace_node_type(self, open_client):
        type_id = open_client.get("/api/node-types").json()["node_types"][0]["id"]
        response = open_client.put(f"/api/node-types/{type_id}", json={
            "name": "Stage", "fields": [{"id": "f-label", "name": "label", "type": "string"}]})
        assert response.json()["replaced"] == 1
        nodes = open_client.get("/api/nodes", params={"type": "Stage"}).json()["nodes"]
        assert len(nodes) == 3
        assert all(set(n["values"]) == {"f-label"} for n in nodes)

    def test_replace_missing_type(self, open_client):
        assert open_client.put("/api/node-types/tnone", json={"name": "X"}).status_code == 404

    def test_delete_node_type_cascades(self, open_client):
        assert open_client.delete("/api/node-types/Step").status_code == 200
        assert open_client.get("/api/nodes").json()["nodes"] == []
        assert open_client.delete("/api/node-types/Step").status_code == 404

    def test_create_node_values_by_name_or_id(self, open_client):
        response = open_client.post("/api/nodes", json={
            "type_name": "Step", "x": 5, "y": 6, "values": {"f-weight": 4, "label": "d"}})
        node = response.json()["node"]
        assert node["values"] == {"f-label": "d", "f-weight": 4}
        assert node["position"] == {"x": 5, "y": 6}
        assert node["name"] == "Step"

    def test_create_node_unknown_type(self, open_client):
        assert open_client.post("/api/nodes", json={"type_name": "Nope"}).status_code == 404

    def test_create_node_undeclared_value(self, open_client):
        response = open_client.post("/api/nodes", json={"type_name": "Step", "values": {"color": 1}})
        assert response.status_code == 400

    def test_delete_node_repairs_connections(self, open_client, ids):
        assert open_client.delete(f"/api/nodes/{ids['b']}").status_code == 200
        a = open_client.get(f"/api/nodes/{ids['a']}").json()["node"]
        assert a["connections"] == []
        assert open_client.delete(f"/api/nodes/{ids['b']}").status_code == 404

    def test_delete_nodes_by_name(self, open_client):
        body = open_client.delete("/api/nodes", params={"name": "c"}).json()
        assert body["removed"] == 1

    def test_node_from_menu(self, open_client):
        open_client.post("/api/context-menu/open", json={"x": 400, "y": 300})
        body = open_client.post("/api/nodes/from-menu", json={"width": 800, "height": 600}).json()
        assert body["node"]["position"] == {"x": 0, "y": 0}
        assert open_client.get("/api/editor").json()["context_menu"]["visible"] is False

    def test_node_from_menu_without_types(self, client):
        client.post("/api/editor/new", headers=ALICE)
        response = client.post("/api/nodes/from-menu", json={"width": 10, "height": 10})
        assert response.status_code == 400


# ═════════════════════════════════════════════════════════════════
#  CONNECTIONS & VIEWPORT
# ═════════════════════════════════════════════════════════════════

class TestConnectionEndpoints:

    def test_gesture(self, open_client, ids):
        started = open_client.post("/api/connections/start", json={"from_id": ids["b"]}).json()
        assert set(started["candidates"]) == {ids["a"], ids["c"]}
        finished = open_client.post("/api/connections/finish",
                                    json={"from_id": ids["b"], "to_id": ids["c"]}).json()
        assert finished["connected"] is True
        highlights = open_client.get("/api/editor").json()["highlights"]
        assert set(highlights.values()) == {"idle"}

    def test_cycle_rejected(self, open_client, ids):
        body = open_client.post("/api/connections/finish",
                                json={"from_id": ids["b"], "to_id": ids["a"]}).json()
        assert body["connected"] is False

    def test_start_unknown_node(self, open_client):
        assert open_client.post("/api/connections/start", json={"from_id": "nx"}).status_code == 404

    def test_delete_connection(self, open_client, ids):
        params = {"from_id": ids["a"], "to_id": ids["b"]}
        assert open_client.delete("/api/connections", params=params).status_code == 200
        assert open_client.delete("/api/connections", params=params).status_code == 404

    def test_zoom_floor(self, open_client):
        results = [open_client.post("/api/viewport/zoom", json={"delta_y": 1}).json()
                   for _ in range(10)]
        assert [r["changed"] for r in results] == [True] * 9 + [False]
        assert results[-1]["zoom"] == 0.1

    def test_pan_and_reset(self, open_client):
        body = open_client.post("/api/viewport/position", json={"x": 12, "y": -4}).json()
        assert body["viewport"]["position"] == {"x": 12, "y": -4}
        body = open_client.post("/api/viewport/reset").json()
        assert body["viewport"]["position"] == {"x": 0, "y": 0}


# ═════════════════════════════════════════════════════════════════
#  STORED GRAPHS
# ═════════════════════════════════════════════════════════════════

class TestGraphEndpoints:

    def test_save_list_get_delete(self, open_client):
        graph = open_client.get("/api/editor").json()["graph"]
        saved = open_client.post("/api/graphs", json={"graph": graph}, headers=ALICE).json()

        listed = open_client.get("/api/graphs", headers=ALICE).json()["graphs"]
        assert [g["graph_id"] for g in listed] == [saved["graph_id"]]
        assert listed[0]["nodes"] == 3
        assert open_client.get("/api/graphs", headers=BOB).json()["graphs"] == []

        fetched = open_client.get(f"/api/graphs/{saved['graph_id']}").json()
        assert fetched["graph"] == graph

        assert open_client.delete(f"/api/graphs/{saved['graph_id']}", headers=BOB).status_code == 404
        assert open_client.delete(f"/api/graphs/{saved['graph_id']}", headers=ALICE).status_code == 200
        assert open_client.get(f"/api/graphs/{saved['graph_id']}").status_code == 404

    def test_invalid_snapshot_rejected(self, client, store):
        response = client.post("/api/graphs", json={"graph": {"nodes": [{"type": "Ghost"}]}},
                               headers=ALICE)
        assert response.status_code == 400
        assert store.list_user_graphs("alice") == []


# ═════════════════════════════════════════════════════════════════
#  WEBSOCKET
# ═════════════════════════════════════════════════════════════════

class TestWebSocket:

    def test_ping(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("ping")
            assert ws.receive_json() == {"type": "pong"}

    def test_change_is_broadcast(self, client):
        with client.websocket_connect("/ws") as ws:
            # A pong means the socket is registered for broadcasts
            ws.send_text("ping")
            ws.receive_json()
            client.post("/api/editor/new", headers=ALICE)
            assert ws.receive_json() == {"type": "graph_updated", "graph_id": None}

    def test_save_is_broadcast(self, open_client):
        with open_client.websocket_connect("/ws") as ws:
            ws.send_text("ping")
            ws.receive_json()
            saved = open_client.post("/api/editor/save").json()
            # An update from earlier mutations may still be queued ahead of the save
            for _ in range(2):
                message = ws.receive_json()
                if message["type"] == "graph_saved":
                    break
            assert message == {"type": "graph_saved", "graph_id": saved["graph_id"], "version": 1}

    def test_broadcasts_survive_lifespan_restart(self, session):
        app = create_app(session)
        with TestClient(app) as first:
            assert first.get("/api/health").json()["status"] == "ok"
        with TestClient(app) as second:
            with second.websocket_connect("/ws") as ws:
                ws.send_text("ping")
                ws.receive_json()
                second.post("/api/editor/new", headers=ALICE)
                assert ws.receive_json() == {"type": "graph_updated", "graph_id": None}
        # One change callback per app, however many times it starts
        assert len(session._on_change_callbacks) == 1
