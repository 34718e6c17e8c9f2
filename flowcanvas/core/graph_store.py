"""In-memory canonical workflow graph."""

import copy
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from ..models.core import (
    CanvasEdge,
    CanvasNode,
    ExecutionStateEnum,
    NodeRole,
    NodeTypeSchema,
    Position,
)
from .config_cache import NodeConfigCache
from .exceptions import (
    DuplicateRoleError,
    EdgeRejectedError,
    NodeNotFoundError,
    ValidationError,
)
from .identity import INPUT_HANDLE_PREFIX, NodeIdFactory, edge_id, random_node_id, strip_handle
from .logging import get_logger

logger = get_logger(__name__)

Listener = Callable[[str, Dict[str, Any]], None]

# Mutation events delivered to subscribers
NODE_ADDED = "node_added"
NODE_REMOVED = "node_removed"
NODE_UPDATED = "node_updated"
EDGE_ADDED = "edge_added"
EDGE_REMOVED = "edge_removed"
OVERLAY_CHANGED = "overlay_changed"
NODE_RESULT = "node_result"
SELECTION_CHANGED = "selection_changed"
GRAPH_LOADED = "graph_loaded"

ROLE_POSITIONS = {
    NodeRole.ENTRY: Position(x=200, y=250),
    NodeRole.TERMINAL: Position(x=900, y=250),
}
DEFAULT_POSITION = Position(x=550, y=250)


class GraphStore:
    """Owns the nodes and edges of the workflow being edited.

    Every mutation is synchronous. Failures that users can trigger from the
    canvas (a second query node, a self-loop) are returned as error values
    instead of raised.
    """

    def __init__(
        self,
        catalog: Optional[Dict[str, NodeTypeSchema]] = None,
        config_cache: Optional[NodeConfigCache] = None,
        id_factory: Optional[NodeIdFactory] = None,
        enforce_single_inbound: bool = False
    ):
        """Initialize an empty graph.

        Args:
            catalog: Node type schemas keyed by type identifier
            config_cache: Cache whose entries are dropped with their node
            id_factory: Builds a node id from a type identifier
            enforce_single_inbound: Reject a second edge into a single-inbound input
        """
        self.catalog: Dict[str, NodeTypeSchema] = dict(catalog or {})
        self.config_cache = config_cache
        self._id_factory = id_factory or random_node_id
        self.enforce_single_inbound = enforce_single_inbound
        self._nodes: Dict[str, CanvasNode] = {}
        self._edges: Dict[str, CanvasEdge] = {}
        self._listeners: List[Listener] = []
        self.selected_node_id: Optional[str] = None

    # ------------------------------------------------------------------
    # Read access

    @property
    def nodes(self) -> List[CanvasNode]:
        return list(self._nodes.values())

    @property
    def edges(self) -> List[CanvasEdge]:
        return list(self._edges.values())

    def get_node(self, node_id: str) -> Optional[CanvasNode]:
        return self._nodes.get(node_id)

    def get_edge(self, edge_identifier: str) -> Optional[CanvasEdge]:
        return self._edges.get(edge_identifier)

    def find_role(self, role: NodeRole) -> Optional[CanvasNode]:
        """Return the node currently playing ``role``, if any."""
        for node in self._nodes.values():
            if node.role == role:
                return node
        return None

    def is_empty(self) -> bool:
        return not self._nodes and not self._edges

    # ------------------------------------------------------------------
    # Subscription

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called as ``listener(event, payload)`` after each mutation.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: str, **payload):
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception as e:
                logger.error(f"Graph listener failed on {event}: {str(e)}", exc_info=True)

    # ------------------------------------------------------------------
    # Node mutations

    def add_node(
        self,
        node_type: Union[str, NodeTypeSchema],
        position: Optional[Position] = None
    ) -> Union[CanvasNode, DuplicateRoleError, ValidationError]:
        """
        Place a new node of the given type on the canvas.

        Args:
            node_type: Type identifier from the catalog, or a schema
            position: Canvas position; role-based default when omitted

        Returns:
            The new node, a DuplicateRoleError when its role is taken, or a
            ValidationError when the type is not in the catalog
        """
        if isinstance(node_type, NodeTypeSchema):
            schema = node_type
        else:
            schema = self.catalog.get(node_type)
            if schema is None:
                logger.warning(f"Cannot add node of unknown type '{node_type}'")
                return ValidationError(f"Unknown node type: {node_type}")

        role = schema.resolved_role
        if role is not None:
            existing = self.find_role(role)
            if existing is not None:
                logger.info(f"Rejected second {role.value} node of type {schema.node_id}")
                return DuplicateRoleError(
                    _role_label(role),
                    existing_node_id=existing.id
                )

        node_id = self._id_factory(schema.node_id)
        while node_id in self._nodes:
            node_id = self._id_factory(schema.node_id)

        if position is None:
            position = ROLE_POSITIONS.get(role, DEFAULT_POSITION)

        node = CanvasNode(
            id=node_id,
            node_schema=schema,
            parameters=schema.default_parameters(),
            position=position.model_copy()
        )
        self._nodes[node_id] = node
        logger.debug(f"Added node {node_id} of type {schema.node_id}")
        self._notify(NODE_ADDED, node=node)
        return node

    def remove_node(self, node_id: str) -> Union[CanvasNode, NodeNotFoundError]:
        """Remove a node together with its incident edges, cache entry and selection."""
        node = self._nodes.pop(node_id, None)
        if node is None:
            return NodeNotFoundError(node_id)

        incident = [e for e in self._edges.values() if e.source == node_id or e.target == node_id]
        for edge in incident:
            del self._edges[edge.id]

        if self.config_cache is not None:
            self.config_cache.delete(node_id)

        if self.selected_node_id == node_id:
            self.selected_node_id = None
            self._notify(SELECTION_CHANGED, node_id=None)

        logger.debug(f"Removed node {node_id} and {len(incident)} incident edge(s)")
        self._notify(NODE_REMOVED, node=node, edges=incident)
        return node

    def update_node_parameters(
        self,
        node_id: str,
        patch: Dict[str, Any]
    ) -> Union[CanvasNode, NodeNotFoundError]:
        """Merge ``patch`` into the node's parameters."""
        node = self._nodes.get(node_id)
        if node is None:
            return NodeNotFoundError(node_id)

        merged = dict(node.parameters)
        merged.update(copy.deepcopy(patch))
        node.parameters = merged
        self._notify(NODE_UPDATED, node=node, patch=patch)
        return node

    def move_node(self, node_id: str, position: Position) -> Union[CanvasNode, NodeNotFoundError]:
        node = self._nodes.get(node_id)
        if node is None:
            return NodeNotFoundError(node_id)
        node.position = position.model_copy()
        self._notify(NODE_UPDATED, node=node, patch={})
        return node

    def select_node(self, node_id: Optional[str]) -> Optional[NodeNotFoundError]:
        if node_id is not None and node_id not in self._nodes:
            return NodeNotFoundError(node_id)
        if self.selected_node_id != node_id:
            self.selected_node_id = node_id
            self._notify(SELECTION_CHANGED, node_id=node_id)
        return None

    # ------------------------------------------------------------------
    # Edge mutations

    def connect(
        self,
        source_id: str,
        source_handle: Optional[str],
        target_id: str,
        target_handle: Optional[str]
    ) -> Union[CanvasEdge, EdgeRejectedError]:
        """
        Connect a node output to a node input.

        Args:
            source_id: Source node id
            source_handle: Output handle on the source node
            target_id: Target node id
            target_handle: Input handle on the target node

        Returns:
            The new edge, or an EdgeRejectedError describing why no edge was made
        """
        derived_id = edge_id(source_id, source_handle, target_id, target_handle)

        for endpoint in (source_id, target_id):
            if endpoint not in self._nodes:
                return EdgeRejectedError(
                    f"Cannot connect unknown node '{endpoint}'",
                    EdgeRejectedError.UNKNOWN_NODE,
                    edge_id=derived_id
                )

        if source_id == target_id:
            return EdgeRejectedError(
                "A node cannot be connected to itself",
                EdgeRejectedError.SELF_LOOP,
                edge_id=derived_id
            )

        if derived_id in self._edges:
            return EdgeRejectedError(
                "These handles are already connected",
                EdgeRejectedError.DUPLICATE,
                edge_id=derived_id
            )

        if self.enforce_single_inbound and self._input_occupied(target_id, target_handle):
            return EdgeRejectedError(
                f"Input '{strip_handle(target_handle, INPUT_HANDLE_PREFIX)}' of node "
                f"'{target_id}' accepts a single connection",
                EdgeRejectedError.INPUT_OCCUPIED,
                edge_id=derived_id
            )

        edge = CanvasEdge(
            id=derived_id,
            source=source_id,
            target=target_id,
            source_handle=source_handle,
            target_handle=target_handle
        )
        self._edges[derived_id] = edge
        logger.debug(f"Connected {source_id}:{source_handle} -> {target_id}:{target_handle}")
        self._notify(EDGE_ADDED, edge=edge)
        return edge

    def _input_occupied(self, target_id: str, target_handle: Optional[str]) -> bool:
        target = self._nodes[target_id]
        port_name = strip_handle(target_handle, INPUT_HANDLE_PREFIX)
        port = target.node_schema.get_input(port_name) if port_name else None
        if port is not None and port.multiple:
            return False
        for edge in self._edges.values():
            if edge.target != target_id:
                continue
            if strip_handle(edge.target_handle, INPUT_HANDLE_PREFIX) == port_name:
                return True
        return False

    def disconnect(self, edge_identifier: str) -> bool:
        edge = self._edges.pop(edge_identifier, None)
        if edge is None:
            return False
        self._notify(EDGE_REMOVED, edge=edge)
        return True

    # ------------------------------------------------------------------
    # Execution overlay

    def set_execution_overlay(self, node_ids: Iterable[str], edge_ids: Iterable[str]) -> None:
        """Mark exactly the given nodes as running and edges as executing."""
        running = set(node_ids)
        executing = set(edge_ids)
        for node in self._nodes.values():
            node.execution_state = (
                ExecutionStateEnum.RUNNING if node.id in running else ExecutionStateEnum.IDLE
            )
        for edge in self._edges.values():
            edge.executing = edge.id in executing
        self._notify(OVERLAY_CHANGED, node_ids=sorted(running), edge_ids=sorted(executing))

    def clear_execution_overlay(self) -> None:
        self.set_execution_overlay([], [])

    def set_node_result(self, node_id: str, result: Optional[Dict[str, Any]]) -> Optional[NodeNotFoundError]:
        node = self._nodes.get(node_id)
        if node is None:
            return NodeNotFoundError(node_id)
        node.last_result = result
        self._notify(NODE_RESULT, node=node)
        return None

    # ------------------------------------------------------------------
    # Bulk replacement

    def load(self, nodes: Iterable[CanvasNode], edges: Iterable[CanvasEdge]) -> List[CanvasEdge]:
        """Replace the whole graph.

        A second query or response node is dropped. Edges whose endpoints
        are not among the loaded nodes are dropped, as are repeated edge ids.

        Returns:
            List of dropped edges
        """
        self._nodes = {}
        roles: Dict[NodeRole, str] = {}
        for node in nodes:
            if node.id in self._nodes:
                logger.warning(f"Duplicate node id '{node.id}' in loaded graph; keeping the last one")
            elif node.role is not None and node.role in roles:
                logger.warning(
                    f"Dropping node {node.id}: {_role_label(node.role)} node {roles[node.role]} is already loaded"
                )
                continue
            if node.role is not None:
                roles[node.role] = node.id
            self._nodes[node.id] = node

        self._edges = {}
        dropped: List[CanvasEdge] = []
        for edge in edges:
            if edge.source not in self._nodes or edge.target not in self._nodes or edge.id in self._edges:
                dropped.append(edge)
                continue
            self._edges[edge.id] = edge

        if dropped:
            logger.warning(f"Dropped {len(dropped)} dangling or repeated edge(s) while loading graph")

        self.selected_node_id = None
        self._notify(GRAPH_LOADED, node_count=len(self._nodes), edge_count=len(self._edges))
        return dropped

    def clear(self) -> None:
        self.load([], [])


def _role_label(role: NodeRole) -> str:
    return "query" if role == NodeRole.ENTRY else "response"
