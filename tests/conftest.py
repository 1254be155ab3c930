# tests/conftest.py
"""
Shared test fixtures.
Stub graph: a small processing pipeline with two node types.

    source(n1) --> filter(n2) --> sink(n3)      n4 (filter, unconnected)
"""
import pytest

from node_editor import (
    BOOLEAN,
    NUMBER,
    STRING,
    EditorNode,
    EditorSettings,
    GraphEditor,
    NodeField,
    NodeType,
    Position,
)


class RenderCounter:
    """Renderer stand-in that counts calls and snapshots the graph on each."""

    def __init__(self, editor: GraphEditor):
        self.editor = editor
        self.calls = 0
        self.snapshots: list[dict] = []

    def __call__(self):
        self.calls += 1
        self.snapshots.append(self.editor.to_json())


class FakePointerEvents:
    """In-memory PointerEvents source."""

    def __init__(self):
        self.listeners: dict[str, list] = {}

    def add_listener(self, event, callback):
        self.listeners.setdefault(event, []).append(callback)

    def remove_listener(self, event, callback):
        self.listeners.get(event, []).remove(callback)

    def emit(self, event, *args):
        for callback in list(self.listeners.get(event, [])):
            callback(*args)

    @property
    def count(self) -> int:
        return sum(len(v) for v in self.listeners.values())


# ── Node type definitions ────────────────────────────────────────

def make_step_type() -> NodeType:
    return NodeType(
        id="t-step",
        name="Step",
        fields=[
            NodeField(id="f-label", name="label", value_type=STRING, default="", required=True),
            NodeField(id="f-weight", name="weight", value_type=NUMBER, default=1),
        ],
    )


def make_flag_type() -> NodeType:
    return NodeType(
        id="t-flag",
        name="Flag",
        fields=[NodeField(id="f-on", name="on", value_type=BOOLEAN, default=False)],
    )


def _build_editor(settings: EditorSettings | None = None) -> GraphEditor:
    step, flag = make_step_type(), make_flag_type()
    n1 = EditorNode(id="n1", type=step, name="source", position=Position(x=0, y=0),
                    values={"f-label": "read"})
    n2 = EditorNode(id="n2", type=step, name="filter", position=Position(x=100, y=0),
                    values={"f-label": "keep", "f-weight": 3})
    n3 = EditorNode(id="n3", type=flag, name="sink", position=Position(x=200, y=0))
    n4 = EditorNode(id="n4", type=step, name="filter", position=Position(x=100, y=100),
                    values={"f-label": "drop"})
    n1.connect("n2")
    n2.connect("n3")
    kwargs = {"settings": settings} if settings else {}
    return GraphEditor([step, flag], [n1, n2, n3, n4], **kwargs)


# ═════════════════════════════════════════════════════════════════
#  FIXTURES
# ═════════════════════════════════════════════════════════════════

@pytest.fixture
def step_type() -> NodeType:
    return make_step_type()


@pytest.fixture
def flag_type() -> NodeType:
    return make_flag_type()


@pytest.fixture
def empty_editor() -> GraphEditor:
    return GraphEditor()


@pytest.fixture
def editor() -> GraphEditor:
    """Pipeline graph with cycle prevention on."""
    return _build_editor()


@pytest.fixture
def permissive_editor() -> GraphEditor:
    """Pipeline graph with cycle prevention off."""
    return _build_editor(EditorSettings(prevent_circular_connections=False))


@pytest.fixture
def renders(editor) -> RenderCounter:
    counter = RenderCounter(editor)
    editor.set_renderer(counter)
    return counter


@pytest.fixture
def pointer_events() -> FakePointerEvents:
    return FakePointerEvents()


def all_connection_targets(editor: GraphEditor) -> set[str]:
    return {c.to for n in editor.nodes for c in n.connections}
