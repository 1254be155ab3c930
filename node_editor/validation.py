"""
Graph validation - Check a graph for structural issues.

Editor operations keep the graph consistent, but nodes can be added without
checks and snapshots can be edited by hand. Validation reports what is wrong
without changing anything.
"""

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .editor import has_cycle

if TYPE_CHECKING:
    from .editor import GraphEditor


class IssueSeverity(str, Enum):
    """Severity levels for validation issues."""
    ERROR = "error"      # Invalid state, must be fixed
    WARNING = "warning"  # Potential problem, should review
    INFO = "info"        # Informational, may be intentional


@dataclass
class ValidationIssue:
    """A single validation issue found in a graph."""
    severity: IssueSeverity
    message: str
    node_id: str | None = None
    type_id: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.severity.value,
            "message": self.message
        }
        if self.node_id:
            result["node_id"] = self.node_id
        if self.type_id:
            result["type_id"] = self.type_id
        return result


def validate_graph(editor: "GraphEditor") -> list[ValidationIssue]:
    """
    Validate a graph and return a list of issues.

    Checks for:
    - Duplicate node ids / node type ids - ERROR
    - Duplicate node type names - WARNING
    - Nodes whose type is not registered - ERROR
    - Values keyed by fields the type does not declare - ERROR
    - Fields using unregistered value types - ERROR
    - Connections to missing nodes or to the node itself - ERROR
    - Cycles - ERROR if circular connections are prevented, else INFO
    - Required fields without a value - WARNING
    - Unconnected nodes - INFO
    - Empty graph - INFO
    """
    issues: list[ValidationIssue] = []

    node_types = editor.node_types
    nodes = editor.nodes

    # Node types
    for type_id, count in Counter(t.id for t in node_types).items():
        if count > 1:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Node type id used {count} times",
                type_id=type_id
            ))
    for name, count in Counter(t.name for t in node_types).items():
        if count > 1:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=f"Node type name '{name}' used {count} times; name lookups are ambiguous"
            ))
    for node_type in node_types:
        for node_field in node_type.fields:
            if node_field.value_type not in editor.value_types:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.ERROR,
                    message=f"Field '{node_field.name}' uses unregistered value type "
                            f"'{node_field.value_type.name}'",
                    type_id=node_type.id
                ))

    if not nodes:
        issues.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            message="Graph has no nodes"
        ))
        return issues

    # Quick lookup sets
    node_ids = {n.id for n in nodes}
    registered_type_ids = {t.id for t in node_types}

    for node_id, count in Counter(n.id for n in nodes).items():
        if count > 1:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Node id used {count} times",
                node_id=node_id
            ))

    connected: set[str] = set()
    for node in nodes:
        if node.type.id not in registered_type_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Node type '{node.type.name}' is not registered",
                node_id=node.id,
                type_id=node.type.id
            ))

        undeclared = set(node.values) - node.type.field_ids()
        if undeclared:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Values for undeclared fields: {', '.join(sorted(undeclared))}",
                node_id=node.id
            ))

        for node_field in node.type.fields:
            if node_field.required and node.values.get(node_field.id) is None:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.WARNING,
                    message=f"Required field '{node_field.name}' has no value",
                    node_id=node.id
                ))

        for connection in node.connections:
            if connection.to == node.id:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.ERROR,
                    message="Self-referencing connection (node points to itself)",
                    node_id=node.id
                ))
            elif connection.to not in node_ids:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.ERROR,
                    message=f"Connection references non-existent node: {connection.to}",
                    node_id=node.id
                ))
            else:
                connected.add(node.id)
                connected.add(connection.to)

    if has_cycle(nodes):
        prevented = editor.settings.prevent_circular_connections
        issues.append(ValidationIssue(
            severity=IssueSeverity.ERROR if prevented else IssueSeverity.INFO,
            message="Graph contains a cycle"
        ))

    unconnected = [n for n in nodes if n.id not in connected]
    if unconnected and len(nodes) > 1:
        labels = [f"{n.name} ({n.id})" for n in unconnected]
        issues.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            message=f"Unconnected nodes: {', '.join(labels)}"
        ))

    return issues


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """
    Create a summary of validation issues.

    Args:
        issues: List of validation issues

    Returns:
        Dictionary with counts by severity
    """
    return {
        "total": len(issues),
        "errors": len([i for i in issues if i.severity == IssueSeverity.ERROR]),
        "warnings": len([i for i in issues if i.severity == IssueSeverity.WARNING]),
        "info": len([i for i in issues if i.severity == IssueSeverity.INFO]),
        "valid": len([i for i in issues if i.severity == IssueSeverity.ERROR]) == 0
    }
