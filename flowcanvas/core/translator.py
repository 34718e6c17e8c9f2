"""Projection of the canvas graph onto the backend execution contract."""

import copy
from collections import deque
from typing import Any, Dict, Iterable, List, Optional, Set

from ..models.core import (
    CanvasEdge,
    CanvasNode,
    ExecutionDAG,
    ExecutionEdgeSpec,
    ExecutionNodeSpec,
    InputRef,
    NodeRole,
    OutputRef,
    PortSpec,
    TranslationResult,
)
from .exceptions import MissingParameterError, StructuralError, ValidationError, WorkflowEngineError
from .identity import INPUT_HANDLE_PREFIX, OUTPUT_HANDLE_PREFIX, strip_handle
from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_TYPE_MAPPING = {
    "QueryNode": "querynode",
    "ResponseNode": "responsenode",
    "LanguageModelNode": "languagemodelnode",
}


class TypeRegistry:
    """Maps schema type names to backend execution type identifiers."""

    def __init__(
        self,
        mapping: Optional[Dict[str, str]] = None,
        known_types: Optional[Iterable[str]] = None
    ):
        """
        Args:
            mapping: Explicit schema name to execution type entries
            known_types: When given, execution types the backend accepts;
                anything else is rejected
        """
        self.mapping = dict(DEFAULT_TYPE_MAPPING if mapping is None else mapping)
        self.known_types: Optional[Set[str]] = set(known_types) if known_types is not None else None

    def register(self, schema_name: str, execution_type: str) -> None:
        self.mapping[schema_name] = execution_type
        if self.known_types is not None:
            self.known_types.add(execution_type)

    def resolve(self, schema_name: str) -> Optional[str]:
        """Execution type for ``schema_name``, or None when unknown."""
        execution_type = self.mapping.get(schema_name) or schema_name.lower()
        if self.known_types is not None and execution_type not in self.known_types:
            return None
        return execution_type


class DefaultPolicy:
    """Values seeded into empty required parameters before schema defaults."""

    def __init__(self, defaults: Optional[Dict[str, Dict[str, Any]]] = None):
        self.defaults = defaults if defaults is not None else {
            "QueryNode": {"query": "Hi there!"},
            "LanguageModelNode": {"service": "openai"},
        }

    @classmethod
    def from_config(cls, config) -> 'DefaultPolicy':
        return cls({
            "QueryNode": {"query": config.default_query},
            "LanguageModelNode": {"service": config.default_service},
        })

    def lookup(self, schema_name: str, parameter: str) -> Any:
        return self.defaults.get(schema_name, {}).get(parameter)


def is_empty_value(value: Any) -> bool:
    """None, empty strings and empty lists count as unset; 0 and False do not."""
    if value is None:
        return True
    if isinstance(value, str) and value == "":
        return True
    if isinstance(value, (list, tuple)) and len(value) == 0:
        return True
    return False


def resolve_port(ports: List[PortSpec], handle: Optional[str], prefix: str) -> Optional[str]:
    """Declared port name referenced by a handle.

    A missing handle resolves only when the node declares exactly one port on
    that side.
    """
    if handle is None:
        return ports[0].name if len(ports) == 1 else None
    name = strip_handle(handle, prefix)
    for port in ports:
        if port.name == name:
            return port.name
    return None


class ExecutionTranslator:
    """Turns canvas nodes and edges into an execution DAG.

    Translation is pure: inputs are never mutated and identical inputs
    produce byte-identical output. Every problem found is reported; a DAG is
    returned only when there are none.
    """

    def __init__(
        self,
        registry: Optional[TypeRegistry] = None,
        policy: Optional[DefaultPolicy] = None,
        require_connectivity: bool = False
    ):
        self.registry = registry or TypeRegistry()
        self.policy = policy or DefaultPolicy()
        self.require_connectivity = require_connectivity

    def translate(self, nodes: List[CanvasNode], edges: List[CanvasEdge]) -> TranslationResult:
        """
        Translate a graph into the execution contract.

        Args:
            nodes: Canvas nodes in graph order
            edges: Canvas edges in graph order

        Returns:
            TranslationResult: the DAG, or every error found
        """
        errors: List[WorkflowEngineError] = []
        node_specs: Dict[str, ExecutionNodeSpec] = {}
        by_id = {node.id: node for node in nodes}

        for node in nodes:
            spec = self._translate_node(node, errors)
            if spec is not None:
                node_specs[node.id] = spec

        edge_specs: List[ExecutionEdgeSpec] = []
        for edge in edges:
            spec = self._translate_edge(edge, by_id, errors)
            if spec is not None:
                edge_specs.append(spec)

        errors.extend(self._check_structure(nodes, edges))

        if errors:
            logger.info(f"Translation produced {len(errors)} error(s)")
            return TranslationResult(errors=errors)

        dag = ExecutionDAG(nodes=node_specs, edges=edge_specs)
        logger.debug(f"Translated graph into DAG with {len(node_specs)} nodes and {len(edge_specs)} edges")
        return TranslationResult(dag=dag)

    def _translate_node(
        self,
        node: CanvasNode,
        errors: List[WorkflowEngineError]
    ) -> Optional[ExecutionNodeSpec]:
        schema = node.node_schema
        execution_type = self.registry.resolve(schema.name)
        if execution_type is None:
            errors.append(ValidationError(
                f'Node "{schema.name}" has a type the execution engine does not support',
                node_id=node.id
            ))
            return None

        parameters = copy.deepcopy(node.parameters)
        failed = False
        for param in schema.parameters:
            if not param.required or not is_empty_value(parameters.get(param.name)):
                continue
            policy_value = self.policy.lookup(schema.name, param.name)
            if policy_value is not None:
                parameters[param.name] = copy.deepcopy(policy_value)
            elif param.has_default:
                parameters[param.name] = copy.deepcopy(param.default_value)
            else:
                errors.append(MissingParameterError(node.id, param.name, node_name=schema.name))
                failed = True

        if failed:
            return None
        return ExecutionNodeSpec(type=execution_type, parameters=parameters)

    def _translate_edge(
        self,
        edge: CanvasEdge,
        by_id: Dict[str, CanvasNode],
        errors: List[WorkflowEngineError]
    ) -> Optional[ExecutionEdgeSpec]:
        source = by_id.get(edge.source)
        target = by_id.get(edge.target)
        if source is None or target is None:
            missing = edge.source if source is None else edge.target
            errors.append(ValidationError(
                f"Edge references unknown node '{missing}'",
                edge_id=edge.id
            ))
            return None

        output_name = resolve_port(source.node_schema.outputs, edge.source_handle, OUTPUT_HANDLE_PREFIX)
        input_name = resolve_port(target.node_schema.inputs, edge.target_handle, INPUT_HANDLE_PREFIX)

        if output_name is None:
            errors.append(ValidationError(
                f'Node "{source.node_schema.name}" has no output matching handle '
                f"'{edge.source_handle}'",
                node_id=source.id,
                edge_id=edge.id
            ))
        if input_name is None:
            errors.append(ValidationError(
                f'Node "{target.node_schema.name}" has no input matching handle '
                f"'{edge.target_handle}'",
                node_id=target.id,
                edge_id=edge.id
            ))
        if output_name is None or input_name is None:
            return None

        return ExecutionEdgeSpec(
            from_=OutputRef(node=source.id, output=output_name),
            to=InputRef(node=target.id, input=input_name)
        )

    def _check_structure(self, nodes: List[CanvasNode], edges: List[CanvasEdge]) -> List[StructuralError]:
        entries = [n for n in nodes if n.role == NodeRole.ENTRY]
        terminals = [n for n in nodes if n.role == NodeRole.TERMINAL]

        if not nodes:
            return [StructuralError("Please add nodes to the workflow before executing")]
        if not entries or not terminals:
            return [StructuralError("Workflow must include at least one QueryNode and one ResponseNode")]

        if self.require_connectivity:
            reachable = _find_reachable_nodes(entries[0].id, edges)
            unreachable = [t.id for t in terminals if t.id not in reachable]
            if unreachable:
                return [StructuralError(
                    "The response node is not connected to the query node",
                    node_id=unreachable[0]
                )]
        return []


def _find_reachable_nodes(start: str, edges: List[CanvasEdge]) -> Set[str]:
    """Breadth-first search over edges from ``start``."""
    adjacency: Dict[str, List[str]] = {}
    for edge in edges:
        adjacency.setdefault(edge.source, []).append(edge.target)

    reachable = {start}
    queue = deque([start])
    while queue:
        current = queue.popleft()
        for neighbor in adjacency.get(current, []):
            if neighbor not in reachable:
                reachable.add(neighbor)
                queue.append(neighbor)
    return reachable


def translate(
    nodes: List[CanvasNode],
    edges: List[CanvasEdge],
    registry: Optional[TypeRegistry] = None,
    policy: Optional[DefaultPolicy] = None,
    require_connectivity: bool = False
) -> TranslationResult:
    """Translate with a one-off translator."""
    translator = ExecutionTranslator(registry, policy, require_connectivity)
    return translator.translate(nodes, edges)
