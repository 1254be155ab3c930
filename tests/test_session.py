# tests/test_session.py
"""
Tests for the editing session (node_editor_backend/session.py).
"""
import pytest

from node_editor import SnapshotError
from node_editor_backend.graph_store import InMemoryGraphStore, StoreError
from node_editor_backend.session import EditorSession, GraphNotFoundError


@pytest.fixture
def store() -> InMemoryGraphStore:
    return InMemoryGraphStore()


@pytest.fixture
def session(store) -> EditorSession:
    return EditorSession(store)


class TestLifecycle:

    def test_no_graph_open(self, session):
        assert session.editor is None
        assert session.get_state()["graph"] is None
        with pytest.raises(ValueError, match="No graph open"):
            session.save_graph()

    def test_new_graph(self, session, step_type):
        editor = session.new_graph("alice", [step_type])
        assert session.editor is editor
        assert session.user_id == "alice"
        assert session.graph_id is None
        assert session.is_dirty is False
        assert editor.node_types == [step_type]

    def test_mutation_marks_dirty_and_notifies(self, session, step_type):
        changes = []
        session.on_change(lambda: changes.append(1))
        editor = session.new_graph("alice")
        changes.clear()
        editor.add_node_type(step_type)
        assert session.is_dirty is True
        assert changes == [1]

    def test_save_assigns_id_and_clears_dirty(self, session, store, step_type):
        editor = session.new_graph("alice")
        editor.add_node_type(step_type)
        stored = session.save_graph()
        assert session.graph_id == stored.graph_id
        assert session.is_dirty is False
        assert store.get_graph(stored.graph_id).graph == editor.to_json()

        editor.pan_to(5, 5)
        second = session.save_graph()
        assert second.graph_id == stored.graph_id
        assert second.version == 2
        assert session.get_state()["version"] == 2

    def test_open_graph(self, session, store, editor):
        stored = store.save_graph("alice", editor.to_json())
        opened = session.open_graph("bob", stored.graph_id)
        assert opened.to_json() == editor.to_json()
        assert session.graph_id == stored.graph_id
        assert session.user_id == "bob"
        assert session.get_state()["version"] == 1

    def test_open_missing(self, session):
        with pytest.raises(GraphNotFoundError):
            session.open_graph("alice", "gmissing")

    def test_open_unloadable(self, session, store):
        stored = store.save_graph("alice", {"nodeTypes": [{"name": "T", "fields": [
            {"name": "c", "type": {"name": "color"}}]}]})
        with pytest.raises(SnapshotError):
            session.open_graph("alice", stored.graph_id)
        assert session.editor is None

    def test_state_reports_highlights_and_menu(self, session, store, editor):
        stored = store.save_graph("alice", editor.to_json())
        opened = session.open_graph("alice", stored.graph_id)
        opened.start_connection("n1")
        opened.open_context_menu(3, 4)
        state = session.get_state()
        assert state["highlights"]["n1"] == "source"
        assert state["context_menu"] == {"visible": True, "position": {"x": 3, "y": 4}}
        assert state["is_dirty"] is True


class TestSaveCallbacks:

    def test_callback_receives_stored_version(self, session):
        saved = []
        session.on_save(saved.append)
        session.new_graph("alice")
        stored = session.save_graph()
        assert saved == [stored]

    def test_failing_callback_does_not_break_save(self, session, caplog):
        def broken(_stored):
            raise RuntimeError("listener down")
        session.on_save(broken)
        session.new_graph("alice")
        stored = session.save_graph()
        assert stored.version == 1
        assert "listener down" in caplog.text

    def test_store_errors_propagate(self, session, monkeypatch, store):
        def fail(*args, **kwargs):
            raise StoreError("disk full")
        monkeypatch.setattr(store, "save_graph", fail)
        session.new_graph("alice")
        with pytest.raises(StoreError, match="disk full"):
            session.save_graph()
        assert session.graph_id is None
