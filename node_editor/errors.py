"""
Exception types raised by the node editor core.

Most editor operations report misses and policy rejections through their
return values; exceptions are reserved for input that cannot be turned into a
consistent graph.
"""


class NodeEditorError(Exception):
    """Base class for node editor errors."""


class SnapshotError(NodeEditorError, ValueError):
    """Raised when a graph snapshot cannot be loaded."""
