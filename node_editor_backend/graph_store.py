"""
Graph store - durable storage for graph snapshots.

Design Pattern: Template Method
─────────────────────────────────
``VersionedGraphStore`` implements the store operations (save a new
version, read the latest version, list by owner, delete by owner) on top of
four record primitives that concrete stores provide:

    _load_record(graph_id)     → record dict or None
    _store_record(record)      → persist a record
    _delete_record(graph_id)   → remove a record
    _iter_records()            → every record

Every save inserts a new version; nothing is overwritten. The store performs
no retries: I/O failures surface as ``StoreError`` to the caller.
"""
import json
import logging
import os
import re
import tempfile
import uuid
from abc import ABC, abstractmethod
from copy import deepcopy
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional, Protocol

logger = logging.getLogger(__name__)

_GRAPH_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class StoreError(Exception):
    """Raised when the store cannot read or write."""


class GraphOwnershipError(StoreError):
    """Raised when a user writes to a graph owned by someone else."""


def generate_graph_id() -> str:
    """Generate a unique graph ID."""
    return f"g{uuid.uuid4().hex[:12]}"


@dataclass
class StoredGraph:
    """One stored version of a graph."""
    graph_id: str
    user_id: str
    version: int
    created_at: str
    graph: dict

    def to_dict(self, include_graph: bool = True) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "graph_id": self.graph_id,
            "user_id": self.user_id,
            "version": self.version,
            "created_at": self.created_at,
        }
        if include_graph:
            result["graph"] = self.graph
        return result


class GraphStore(Protocol):
    """Operations the backend needs from a store."""

    def save_graph(self, user_id: str, graph: dict, graph_id: Optional[str] = None) -> StoredGraph:
        ...

    def get_graph(self, graph_id: str) -> Optional[StoredGraph]:
        ...

    def list_user_graphs(self, user_id: str) -> list[StoredGraph]:
        ...

    def delete_graph(self, user_id: str, graph_id: str) -> bool:
        ...


class VersionedGraphStore(ABC):
    """
    Store operations over whole records of the form::

        {"graph_id": ..., "user_id": ...,
         "versions": [{"version": 1, "created_at": ..., "graph": {...}}, ...]}
    """

    # ── Record primitives ────────────────────────────────────────

    @abstractmethod
    def _load_record(self, graph_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    def _store_record(self, record: dict) -> None:
        ...

    @abstractmethod
    def _delete_record(self, graph_id: str) -> None:
        ...

    @abstractmethod
    def _iter_records(self) -> Iterator[dict]:
        ...

    # ── Store operations ─────────────────────────────────────────

    @staticmethod
    def _latest(record: dict) -> StoredGraph:
        latest = record["versions"][-1]
        return StoredGraph(
            graph_id=record["graph_id"],
            user_id=record["user_id"],
            version=latest["version"],
            created_at=latest["created_at"],
            graph=deepcopy(latest["graph"]),
        )

    def save_graph(self, user_id: str, graph: dict, graph_id: Optional[str] = None) -> StoredGraph:
        """
        Insert a new version of a graph.

        Without ``graph_id`` (or with an id that does not exist yet) a new
        graph is created.
        """
        if graph_id is not None and not _GRAPH_ID_PATTERN.match(graph_id):
            raise StoreError(f"Invalid graph id: {graph_id!r}")

        record = self._load_record(graph_id) if graph_id else None
        if record is None:
            record = {"graph_id": graph_id or generate_graph_id(), "user_id": user_id, "versions": []}
        elif record["user_id"] != user_id:
            raise GraphOwnershipError(f"Graph {graph_id} belongs to another user")

        record["versions"].append({
            "version": len(record["versions"]) + 1,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "graph": deepcopy(graph),
        })
        self._store_record(record)
        logger.info(f"Saved graph {record['graph_id']} version {len(record['versions'])} for user {user_id}")
        return self._latest(record)

    def get_graph(self, graph_id: str) -> Optional[StoredGraph]:
        """Latest version of a graph, or None."""
        if not _GRAPH_ID_PATTERN.match(graph_id):
            return None
        record = self._load_record(graph_id)
        if record is None or not record["versions"]:
            return None
        return self._latest(record)

    def list_user_graphs(self, user_id: str) -> list[StoredGraph]:
        """Latest version of every graph owned by ``user_id``, oldest first."""
        graphs = [
            self._latest(record)
            for record in self._iter_records()
            if record.get("user_id") == user_id and record.get("versions")
        ]
        return sorted(graphs, key=lambda g: g.created_at)

    def delete_graph(self, user_id: str, graph_id: str) -> bool:
        """Delete a graph owned by ``user_id``. Returns False if there was none."""
        if not _GRAPH_ID_PATTERN.match(graph_id):
            return False
        record = self._load_record(graph_id)
        if record is None or record["user_id"] != user_id:
            return False
        self._delete_record(graph_id)
        logger.info(f"Deleted graph {graph_id} for user {user_id}")
        return True


class InMemoryGraphStore(VersionedGraphStore):
    """Process-local store, used for tests and throwaway sessions."""

    def __init__(self):
        self._records: dict[str, dict] = {}

    def _load_record(self, graph_id: str) -> Optional[dict]:
        record = self._records.get(graph_id)
        return deepcopy(record) if record is not None else None

    def _store_record(self, record: dict) -> None:
        self._records[record["graph_id"]] = deepcopy(record)

    def _delete_record(self, graph_id: str) -> None:
        self._records.pop(graph_id, None)

    def _iter_records(self) -> Iterator[dict]:
        for record in list(self._records.values()):
            yield deepcopy(record)


class JsonFileGraphStore(VersionedGraphStore):
    """One JSON document per graph in a directory. Writes are atomic."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, graph_id: str) -> Path:
        return self.root / f"{graph_id}.json"

    def _read(self, path: Path) -> dict:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read graph file {path}: {e}")
            raise StoreError(f"Failed to read {path.name}: {e}") from e

    def _load_record(self, graph_id: str) -> Optional[dict]:
        path = self._path(graph_id)
        if not path.exists():
            return None
        return self._read(path)

    def _store_record(self, record: dict) -> None:
        path = self._path(record["graph_id"])
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.root, suffix=".tmp")
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(record, f, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to write graph file {path}: {e}")
            raise StoreError(f"Failed to write {path.name}: {e}") from e

    def _delete_record(self, graph_id: str) -> None:
        try:
            self._path(graph_id).unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to delete graph {graph_id}: {e}")
            raise StoreError(f"Failed to delete {graph_id}: {e}") from e

    def _iter_records(self) -> Iterator[dict]:
        if not self.root.exists():
            return
        for path in sorted(self.root.glob("*.json")):
            try:
                yield self._read(path)
            except StoreError:
                continue  # Unreadable files are logged and left out of listings


def describe(graphs: list[StoredGraph]) -> list[dict[str, Any]]:
    """Listing entries without the graph payload, plus node/type counts."""
    return [
        {
            **g.to_dict(include_graph=False),
            "nodes": len(g.graph.get("nodes", [])),
            "node_types": len(g.graph.get("nodeTypes", [])),
        }
        for g in graphs
    ]
