# autoflow/services/analyzer.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union
import logging

from autoflow.models.state import Document

logger = logging.getLogger("analyzer")

DEFAULT_TRIGGER_TYPES = (
    "n8n-nodes-base.webhook",
    "n8n-nodes-base.manualTrigger",
    "n8n-nodes-base.scheduleTrigger",
)
DEFAULT_TRIGGER_MARKERS = ("Trigger",)


@dataclass
class TriggerRegistry:
    """
    Decides which node types start a workflow.
    A type is a trigger if it is registered exactly, or contains a marker token.
    """

    types: Set[str] = field(default_factory=lambda: set(DEFAULT_TRIGGER_TYPES))
    markers: List[str] = field(default_factory=lambda: list(DEFAULT_TRIGGER_MARKERS))

    def register_type(self, node_type: str) -> None:
        self.types.add(node_type)

    def register_marker(self, marker: str) -> None:
        if marker and marker not in self.markers:
            self.markers.append(marker)

    def is_trigger(self, node_type: Any) -> bool:
        if not isinstance(node_type, str) or not node_type:
            return False
        if node_type in self.types:
            return True
        return any(m in node_type for m in self.markers)


default_trigger_registry = TriggerRegistry()


def _as_mapping(doc: Union[Document, Mapping[str, Any], Any]) -> Mapping[str, Any]:
    if isinstance(doc, Document):
        return doc.to_export()
    if isinstance(doc, Mapping):
        return doc
    return {}


def connection_targets(connections: Mapping[str, Any]) -> Set[str]:
    """
    Names of every node that appears as a target under any source's ``main`` outputs.
    Malformed entries are skipped.
    """
    targets: Set[str] = set()
    for group in connections.values():
        if not isinstance(group, Mapping):
            continue
        outputs = group.get("main") or []
        if not isinstance(outputs, list):
            continue
        for output in outputs:
            if not isinstance(output, list):
                continue
            for ref in output:
                if isinstance(ref, Mapping) and isinstance(ref.get("node"), str) and ref["node"]:
                    targets.add(ref["node"])
    return targets


def analyze(
    doc: Union[Document, Mapping[str, Any]],
    user_error_text: Optional[str] = None,
    registry: Optional[TriggerRegistry] = None,
) -> List[str]:
    """
    Read-only structural diagnosis of a workflow graph.

    Works on sanitized Documents and on raw uploads alike. Returns issues in
    presentation order: structure, trigger, disconnected nodes, unconfigured
    nodes, then the user-reported error if any.
    """
    registry = registry or default_trigger_registry
    data = _as_mapping(doc)
    issues: List[str] = []

    nodes = data.get("nodes")
    connections = data.get("connections")
    nodes_ok = isinstance(nodes, list)
    connections_ok = isinstance(connections, Mapping)

    if not nodes_ok:
        issues.append("Missing or invalid nodes array")
    if not connections_ok:
        issues.append("Missing or invalid connections object")

    if nodes_ok:
        node_dicts: List[Mapping[str, Any]] = [n for n in nodes if isinstance(n, Mapping)]

        if not any(registry.is_trigger(n.get("type")) for n in node_dicts):
            issues.append("No trigger node found")

        targets = connection_targets(connections) if connections_ok else set()
        if len(nodes) > 1:
            for node in node_dicts:
                name = node.get("name")
                if registry.is_trigger(node.get("type")) or (isinstance(name, str) and name in targets):
                    continue
                issues.append(f"Node {node.get('name')} appears to be disconnected")

        for node in node_dicts:
            params = node.get("parameters")
            if not params:
                issues.append(f"Node {node.get('name')} has no parameters configured")

    if user_error_text and user_error_text.strip():
        issues.append(f"User reported error: {user_error_text.strip()}")

    logger.info("Analyzed workflow %r: %d issue(s)", data.get("name"), len(issues))
    return issues


def summarize(issues: Iterable[str]) -> Dict[str, Any]:
    issues = list(issues)
    return {"issue_count": len(issues), "clean": not issues, "issues": issues}
