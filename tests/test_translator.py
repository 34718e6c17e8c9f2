"""Tests for execution DAG translation."""

import copy
import json

import pytest

from flowcanvas.core.exceptions import MissingParameterError, StructuralError, ValidationError
from flowcanvas.core.translator import (
    DefaultPolicy,
    ExecutionTranslator,
    TypeRegistry,
    is_empty_value,
    translate,
)
from flowcanvas.models.core import CanvasEdge


class TestTranslateChain:
    """Translation of a well-formed query to response chain."""

    def test_dag_shape(self, store, chain):
        """Test node types, parameters and port-named edges."""
        query, llm, response = chain

        result = translate(store.nodes, store.edges)

        assert result.is_valid
        payload = result.dag.to_payload()
        assert payload["nodes"][query.id] == {"type": "querynode", "parameters": {"query": "Hi there!"}}
        assert payload["nodes"][llm.id]["type"] == "languagemodelnode"
        assert payload["nodes"][llm.id]["parameters"]["service"] == "openai"
        assert payload["nodes"][response.id] == {"type": "responsenode", "parameters": {}}
        assert payload["edges"] == [
            {"from": {"node": query.id, "output": "query"}, "to": {"node": llm.id, "input": "query"}},
            {"from": {"node": llm.id, "output": "response"}, "to": {"node": response.id, "input": "response"}},
        ]

    def test_translation_is_pure_and_deterministic(self, store, chain):
        """Test that inputs are untouched and repeated runs give identical bytes."""
        nodes, edges = store.nodes, store.edges
        before = [n.model_dump() for n in nodes], [e.model_dump() for e in edges]

        first = translate(nodes, edges).dag.to_json()
        second = translate(nodes, edges).dag.to_json()

        assert first == second
        assert ([n.model_dump() for n in nodes], [e.model_dump() for e in edges]) == before

    def test_parameters_are_copied(self, store, chain):
        """Test that the DAG does not share parameter objects with the graph."""
        _, llm, _ = chain
        store.update_node_parameters(llm.id, {"stop": ["\n"]})

        dag = translate(store.nodes, store.edges).dag
        dag.nodes[llm.id].parameters["stop"].append("END")

        assert llm.parameters["stop"] == ["\n"]

    def test_edges_follow_graph_order(self, store, chain):
        """Test that reversing the edge list reverses the DAG edges."""
        edges = list(reversed(store.edges))
        dag = translate(store.nodes, edges).dag
        assert dag.edges[0].to.input == "response"
        assert json.loads(dag.to_json())["edges"][0]["from"]["output"] == "response"


class TestDefaults:
    """Default and policy handling for required parameters."""

    def test_policy_fills_empty_required_parameter(self, store, chain):
        """Test that an empty service is replaced by the policy default."""
        _, llm, _ = chain
        store.update_node_parameters(llm.id, {"service": ""})

        dag = translate(store.nodes, store.edges).dag
        assert dag.nodes[llm.id].parameters["service"] == "openai"

    def test_policy_is_configurable(self, store, chain):
        """Test a custom policy value."""
        query, _, _ = chain
        store.update_node_parameters(query.id, {"query": None})
        policy = DefaultPolicy({"QueryNode": {"query": "ping"}, "LanguageModelNode": {"service": "groq"}})

        dag = translate(store.nodes, store.edges, policy=policy).dag
        assert dag.nodes[query.id].parameters["query"] == "ping"

    def test_schema_default_used_without_policy(self, store, chain):
        """Test falling back to the declared default value."""
        _, llm, _ = chain
        store.update_node_parameters(llm.id, {"model": ""})

        dag = translate(store.nodes, store.edges).dag
        assert dag.nodes[llm.id].parameters["model"] == "gpt-4o-mini"

    def test_missing_parameter_without_any_default(self, store, chain):
        """Test that a required parameter with no default is reported."""
        _, llm, _ = chain
        store.update_node_parameters(llm.id, {"service": None})

        result = translate(store.nodes, store.edges, policy=DefaultPolicy({}))

        assert not result.is_valid
        assert result.dag is None
        assert len(result.errors) == 1
        error = result.errors[0]
        assert isinstance(error, MissingParameterError)
        assert error.node_id == llm.id
        assert error.parameter == "service"
        assert error.message == 'Node "LanguageModelNode" is missing required parameter: service'

    @pytest.mark.parametrize("value, empty", [
        (None, True), ("", True), ([], True), (0, False), (False, False), ("x", False),
    ])
    def test_is_empty_value(self, value, empty):
        """Test which values count as unset."""
        assert is_empty_value(value) is empty

    def test_zero_is_kept(self, store, chain):
        """Test that a numeric zero is not replaced by a default."""
        _, llm, _ = chain
        store.update_node_parameters(llm.id, {"temperature": 0})

        dag = translate(store.nodes, store.edges).dag
        assert dag.nodes[llm.id].parameters["temperature"] == 0


class TestStructure:
    """Whole-graph preconditions."""

    def test_empty_graph(self):
        """Test translating nothing."""
        result = translate([], [])

        assert result.dag is None
        assert isinstance(result.errors[0], StructuralError)
        assert result.messages == ["Please add nodes to the workflow before executing"]

    def test_missing_response_node(self, store):
        """Test that a graph without a response node yields no partial DAG."""
        store.add_node("QueryNode")
        store.add_node("LanguageModelNode")

        result = translate(store.nodes, store.edges)

        assert result.dag is None
        assert result.messages[-1] == "Workflow must include at least one QueryNode and one ResponseNode"

    def test_disconnected_graph_is_allowed_by_default(self, store):
        """Test that reachability is not checked unless requested."""
        store.add_node("QueryNode")
        store.add_node("ResponseNode")

        result = translate(store.nodes, store.edges)

        assert result.is_valid
        assert result.dag.edges == []

    def test_connectivity_check(self, store):
        """Test that an unreachable response node is rejected when requested."""
        store.add_node("QueryNode")
        response = store.add_node("ResponseNode")

        result = ExecutionTranslator(require_connectivity=True).translate(store.nodes, store.edges)

        assert result.dag is None
        assert result.messages == ["The response node is not connected to the query node"]
        assert result.errors[0].node_id == response.id

    def test_connectivity_check_passes_for_chain(self, store, chain):
        """Test a connected chain with the reachability check enabled."""
        result = ExecutionTranslator(require_connectivity=True).translate(store.nodes, store.edges)
        assert result.is_valid

    def test_all_errors_are_reported(self, store):
        """Test that node and structure problems are collected together."""
        llm = store.add_node("LanguageModelNode")
        registry = TypeRegistry(known_types=["querynode", "responsenode"])

        result = translate(store.nodes, store.edges, registry=registry)

        assert len(result.errors) == 2
        assert isinstance(result.errors[0], ValidationError)
        assert result.errors[0].node_id == llm.id
        assert isinstance(result.errors[1], StructuralError)


class TestHandles:
    """Handle to port resolution."""

    def test_unknown_handle(self, store, chain):
        """Test that a handle naming no declared port is an error."""
        query, llm, _ = chain
        edges = store.edges + [CanvasEdge(
            id="edge_bad", source=query.id, target=llm.id,
            source_handle="output-query", target_handle="input-nothing"
        )]

        result = translate(store.nodes, edges)

        assert result.dag is None
        assert result.errors[0].edge_id == "edge_bad"
        assert result.errors[0].node_id == llm.id

    def test_missing_handle_uses_sole_port(self, store, chain):
        """Test that a node with exactly one port accepts a handle-less edge."""
        query, llm, response = chain
        edges = [
            CanvasEdge(id="e1", source=query.id, target=llm.id, target_handle="input-query"),
            CanvasEdge(id="e2", source=llm.id, target=response.id),
        ]

        dag = translate(store.nodes, edges).dag

        assert dag.edges[0].from_.output == "query"
        assert dag.edges[1].to.input == "response"

    def test_missing_handle_is_ambiguous_with_several_ports(self, store, chain):
        """Test that a handle-less edge into a multi-input node is rejected."""
        query, llm, _ = chain
        edges = [CanvasEdge(id="e1", source=query.id, target=llm.id)]

        result = translate(store.nodes, edges)
        assert result.dag is None

    def test_unprefixed_handles(self, store, chain):
        """Test that bare port names are accepted as handles."""
        query, llm, _ = chain
        edges = [CanvasEdge(id="e1", source=query.id, source_handle="query",
                            target=llm.id, target_handle="query")]

        dag = translate(store.nodes, edges).dag
        assert dag.edges[0].to.input == "query"

    def test_edge_to_unknown_node(self, store, chain):
        """Test an edge pointing at a node outside the list."""
        query, _, _ = chain
        edges = [CanvasEdge(id="e1", source=query.id, target="ghost")]

        result = translate(store.nodes, edges)
        assert result.errors[0].edge_id == "e1"


class TestTypeRegistry:
    """Test cases for schema to execution type mapping."""

    def test_default_mapping_and_lowercase_fallback(self):
        """Test explicit entries and the lowercase fallback."""
        registry = TypeRegistry()
        assert registry.resolve("QueryNode") == "querynode"
        assert registry.resolve("WebSearchNode") == "websearchnode"

    def test_known_types_reject_unknown(self, store, chain):
        """Test that a restricted registry reports unsupported types."""
        registry = TypeRegistry(known_types=["querynode", "responsenode"])
        result = translate(store.nodes, store.edges, registry=registry)

        assert result.dag is None
        assert "does not support" in result.errors[0].message

    def test_register(self):
        """Test adding a mapping at runtime."""
        registry = TypeRegistry(known_types=[])
        registry.register("ChatNode", "chat")
        assert registry.resolve("ChatNode") == "chat"
        assert registry.resolve("Other") is None

    def test_registry_mapping_not_shared(self):
        """Test that registries do not share mapping state."""
        first = TypeRegistry()
        first.register("ChatNode", "chat")
        assert TypeRegistry().resolve("ChatNode") == "chatnode"
        assert copy.deepcopy(first.mapping)["ChatNode"] == "chat"
