"""Dirty tracking for the workflow being edited."""

import hashlib
import json
from typing import Any, Dict, Iterable, List, Optional

from ..models.core import CanvasEdge, CanvasNode
from .logging import get_logger

logger = get_logger(__name__)


def _node_fingerprint_entry(node: CanvasNode) -> Dict[str, Any]:
    # Position, execution state and last result never make a workflow dirty
    return {
        "id": node.id,
        "type": node.type,
        "schema": node.node_schema.node_id,
        "parameters": node.parameters,
    }


def _edge_fingerprint_entry(edge: CanvasEdge) -> Dict[str, Any]:
    return edge.to_wire()


def snapshot(nodes: Iterable[CanvasNode], edges: Iterable[CanvasEdge]) -> str:
    """Canonical fingerprint of a graph.

    Insensitive to node and edge order, node positions and the execution
    overlay. Two graphs with equal fingerprints are interchangeable for
    saving and deploying.
    """
    canonical = {
        "nodes": sorted((_node_fingerprint_entry(n) for n in nodes), key=lambda n: n["id"]),
        "edges": sorted((_edge_fingerprint_entry(e) for e in edges), key=lambda e: e["id"]),
    }
    encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def is_dirty(current: str, baseline: Optional[str]) -> bool:
    return baseline is None or current != baseline


class ChangeDetector:
    """Compares the live graph against the last saved fingerprint.

    While hydrating, changes are ignored. When hydration ends the loaded
    graph becomes the baseline, unless the load came from a template or a
    file, in which case the workflow stays unsaved until the first commit.
    """

    snapshot = staticmethod(snapshot)
    is_dirty = staticmethod(is_dirty)

    def __init__(self):
        self.baseline: Optional[str] = None
        self.hydrating = False
        self._force_unsaved = False

    def commit(self, nodes: Iterable[CanvasNode], edges: Iterable[CanvasEdge]) -> str:
        """Record the given graph as saved."""
        return self.commit_fingerprint(snapshot(nodes, edges))

    def commit_fingerprint(self, fingerprint: str) -> str:
        """Record a fingerprint taken when the saved payload was built.

        Edits made after the fingerprint was taken stay unsaved.
        """
        self.baseline = fingerprint
        self._force_unsaved = False
        logger.debug(f"Committed workflow baseline {self.baseline[:12]}")
        return self.baseline

    def reset(self) -> None:
        self.baseline = None
        self.hydrating = False
        self._force_unsaved = False

    def begin_hydration(self) -> None:
        self.hydrating = True

    def end_hydration(
        self,
        nodes: List[CanvasNode],
        edges: List[CanvasEdge],
        mark_unsaved: bool = False
    ) -> None:
        """Finish a load; its first fingerprint becomes the baseline."""
        self.hydrating = False
        self.baseline = snapshot(nodes, edges)
        self._force_unsaved = mark_unsaved

    def has_unsaved_changes(self, nodes: List[CanvasNode], edges: List[CanvasEdge]) -> bool:
        """Whether the graph differs from what was last saved.

        A brand new workflow is dirty as soon as it holds any node or edge.
        """
        if self.hydrating:
            return False
        if self._force_unsaved:
            return True
        if self.baseline is None:
            return bool(nodes) or bool(edges)
        return is_dirty(snapshot(nodes, edges), self.baseline)
