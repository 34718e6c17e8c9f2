"""Persisting and hydrating workflow graphs."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from ..models.core import CanvasEdge, CanvasNode, NodeTypeSchema, Position
from .change_detector import ChangeDetector
from .graph_store import GraphStore
from .identity import edge_id
from .logging import get_logger

logger = get_logger(__name__)

UNTITLED_WORKFLOW = "Untitled Workflow"


class HydratedWorkflow(BaseModel):
    """Graph rebuilt from a persisted, template or file payload."""
    name: str = UNTITLED_WORKFLOW
    nodes: List[CanvasNode] = Field(default_factory=list)
    edges: List[CanvasEdge] = Field(default_factory=list)
    skipped_nodes: List[str] = Field(default_factory=list)


def persist(nodes: List[CanvasNode], edges: List[CanvasEdge]) -> Dict[str, Any]:
    """Wire shape of a graph: ``{nodes: [...], edges: [...]}``."""
    return {
        "nodes": [node.to_wire() for node in nodes],
        "edges": [edge.to_wire() for edge in edges],
    }


def _hydrate_node(raw: Dict[str, Any], catalog: Dict[str, NodeTypeSchema]) -> CanvasNode:
    data = raw.get("data") or {}
    raw_schema = data.get("nodeSchema") or {}
    schema_id = raw_schema.get("node_id") if isinstance(raw_schema, dict) else None

    # The live catalogue wins over the copy embedded in the payload
    schema = catalog.get(schema_id) if schema_id else None
    if schema is None:
        schema = NodeTypeSchema.model_validate(raw_schema)

    position = raw.get("position") or {}
    return CanvasNode(
        id=raw.get("id"),
        type=raw.get("type") or "custom",
        node_schema=schema,
        parameters=dict(data.get("parameters") or {}),
        position=Position(x=position.get("x", 0), y=position.get("y", 0))
    )


def _hydrate_edge(raw: Dict[str, Any]) -> CanvasEdge:
    source = raw["source"]
    target = raw["target"]
    source_handle = raw.get("sourceHandle")
    target_handle = raw.get("targetHandle")
    return CanvasEdge(
        id=raw.get("id") or edge_id(source, source_handle, target, target_handle),
        source=source,
        target=target,
        source_handle=source_handle,
        target_handle=target_handle
    )


def hydrate(
    payload: Dict[str, Any],
    catalog: Optional[Dict[str, NodeTypeSchema]] = None
) -> HydratedWorkflow:
    """
    Rebuild canvas nodes and edges from a wire payload.

    Args:
        payload: Mapping with ``nodes``, ``edges`` and optionally ``name``
        catalog: Current node type schemas keyed by type identifier

    Returns:
        HydratedWorkflow: nodes that could be rebuilt and edges whose
        endpoints both survived
    """
    catalog = catalog or {}
    result = HydratedWorkflow(name=payload.get("name") or UNTITLED_WORKFLOW)

    node_ids = set()
    roles = set()
    for raw_node in payload.get("nodes") or []:
        try:
            node = _hydrate_node(raw_node, catalog)
        except (PydanticValidationError, AttributeError, TypeError) as e:
            raw_id = raw_node.get("id") if isinstance(raw_node, dict) else None
            logger.warning(f"Skipping malformed node {raw_id!r}: {str(e)}")
            result.skipped_nodes.append(str(raw_id))
            continue
        if node.role is not None and node.role in roles:
            logger.warning(f"Dropping node {node.id}: a {node.role.value} node is already present")
            result.skipped_nodes.append(node.id)
            continue
        if node.role is not None:
            roles.add(node.role)
        node_ids.add(node.id)
        result.nodes.append(node)

    for raw_edge in payload.get("edges") or []:
        try:
            edge = _hydrate_edge(raw_edge)
        except (KeyError, PydanticValidationError, AttributeError, TypeError) as e:
            logger.warning(f"Skipping malformed edge: {str(e)}")
            continue
        if edge.source not in node_ids or edge.target not in node_ids:
            logger.warning(f"Dropping dangling edge {edge.id}")
            continue
        result.edges.append(edge)

    return result


def has_graph(payload: Any) -> bool:
    return isinstance(payload, dict) and "nodes" in payload and "edges" in payload


class WorkflowLoader:
    """Loads workflows into a GraphStore while dirty tracking is suspended.

    Loading the same workflow or template id twice is a no-op. Workflows
    loaded from the backend start clean; templates and imported files start
    unsaved.
    """

    def __init__(self, store: GraphStore, detector: ChangeDetector):
        self.store = store
        self.detector = detector
        self.loaded_workflow_id: Optional[str] = None
        self.loaded_template_id: Optional[str] = None

    def _apply(self, payload: Dict[str, Any], mark_unsaved: bool) -> HydratedWorkflow:
        self.detector.begin_hydration()
        try:
            hydrated = hydrate(payload, self.store.catalog)
            self.store.load(hydrated.nodes, hydrated.edges)
        finally:
            self.detector.end_hydration(self.store.nodes, self.store.edges, mark_unsaved=mark_unsaved)
        logger.info(
            f"Loaded workflow '{hydrated.name}' with {len(hydrated.nodes)} nodes "
            f"and {len(hydrated.edges)} edges"
        )
        return hydrated

    def load_workflow(self, workflow_id: str, record: Dict[str, Any]) -> Optional[HydratedWorkflow]:
        """Load a persisted workflow record ``{id, name, data: {nodes, edges}}``."""
        if workflow_id is not None and workflow_id == self.loaded_workflow_id:
            logger.debug(f"Workflow {workflow_id} already loaded")
            return None
        graph = record.get("data")
        if not has_graph(graph):
            logger.warning(f"Workflow {workflow_id} has no graph data")
            return None
        payload = dict(graph)
        payload["name"] = record.get("name") or UNTITLED_WORKFLOW
        hydrated = self._apply(payload, mark_unsaved=False)
        self.loaded_workflow_id = workflow_id
        return hydrated

    def load_template(self, template_id: str, template: Dict[str, Any]) -> Optional[HydratedWorkflow]:
        """Load a template workflow ``{name, nodes, edges}``; the result is unsaved."""
        if template_id == self.loaded_template_id:
            logger.debug(f"Template {template_id} already loaded")
            return None
        if not has_graph(template):
            logger.warning(f"Template {template_id} has no graph data")
            return None
        hydrated = self._apply(template, mark_unsaved=True)
        self.loaded_template_id = template_id
        return hydrated

    def load_file(self, payload: Dict[str, Any]) -> Optional[HydratedWorkflow]:
        """Load an imported workflow file; always reloads and the result is unsaved."""
        if not has_graph(payload):
            logger.warning("Imported file has no graph data")
            return None
        self.loaded_workflow_id = None
        self.loaded_template_id = None
        return self._apply(payload, mark_unsaved=True)

    def forget(self) -> None:
        self.loaded_workflow_id = None
        self.loaded_template_id = None
