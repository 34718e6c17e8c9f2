"""Pytest configuration and fixtures."""

import asyncio
import itertools
from typing import Any, Dict, List

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from flowcanvas.api.client import BackendClient
from flowcanvas.config import get_testing_config, reset_config
from flowcanvas.core.config_cache import NodeConfigCache
from flowcanvas.core.graph_store import GraphStore
from flowcanvas.models.core import NodeTypeSchema


QUERY_SCHEMA = {
    "node_id": "QueryNode",
    "name": "QueryNode",
    "description": "Entry point carrying the user query",
    "category": "input",
    "outputs": [{"name": "query", "type": "string"}],
    "parameters": [
        {"name": "query", "type": "string", "required": True, "default_value": "Hi there!"}
    ],
}

RESPONSE_SCHEMA = {
    "node_id": "ResponseNode",
    "name": "ResponseNode",
    "description": "Collects the final answer",
    "category": "output",
    "inputs": [{"name": "response", "type": "string"}],
    "outputs": [{"name": "final_response", "type": "string"}],
    "parameters": [],
}

LLM_SCHEMA = {
    "node_id": "LanguageModelNode",
    "name": "LanguageModelNode",
    "description": "Calls a language model provider",
    "category": "llm",
    "inputs": [
        {"name": "query", "type": "string", "required": True},
        {"name": "context", "type": "string", "multiple": True},
    ],
    "outputs": [{"name": "response", "type": "string"}],
    "parameters": [
        {"name": "service", "type": "string", "required": True},
        {"name": "model", "type": "string", "required": True, "default_value": "gpt-4o-mini"},
        {"name": "temperature", "type": "number", "default_value": 0.7},
    ],
    "ui_config": {
        "node_id": "LanguageModelNode",
        "node_name": "Language Model",
        "groups": [
            {
                "name": "provider",
                "label": "Provider",
                "components": [
                    {
                        "type": "select",
                        "name": "service",
                        "label": "Service",
                        "required": True,
                        "options": ["openai", {"value": "groq", "label": "Groq"}],
                    },
                    {"type": "select", "name": "model", "label": "Model", "required": True},
                ],
            },
            {
                "name": "sampling",
                "label": "Sampling",
                "components": [
                    {
                        "type": "slider",
                        "name": "temperature",
                        "label": "Temperature",
                        "min_value": 0,
                        "max_value": 2,
                        "step": 0.1,
                        "default_value": 0.7,
                    },
                    {"type": "label", "name": "hint", "text": "Higher is more creative"},
                ],
            },
        ],
    },
}

MODELS = {
    "openai": ["gpt-4o", "gpt-4o-mini"],
    "groq": ["llama-3.1-8b-instant", "mixtral-8x7b"],
}


@pytest.fixture(autouse=True)
def clean_config():
    """Reset the process configuration around every test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config():
    return get_testing_config()


@pytest.fixture
def query_schema():
    return NodeTypeSchema.model_validate(QUERY_SCHEMA)


@pytest.fixture
def response_schema():
    return NodeTypeSchema.model_validate(RESPONSE_SCHEMA)


@pytest.fixture
def llm_schema():
    return NodeTypeSchema.model_validate(LLM_SCHEMA)


@pytest.fixture
def catalog(query_schema, response_schema, llm_schema):
    return {
        "QueryNode": query_schema,
        "ResponseNode": response_schema,
        "LanguageModelNode": llm_schema,
    }


def counter_ids():
    """Deterministic node id factory: ``<type>_1``, ``<type>_2``..."""
    counter = itertools.count(1)
    return lambda type_id: f"{type_id}_{next(counter)}"


@pytest.fixture
def id_factory():
    return counter_ids()


@pytest.fixture
def cache():
    return NodeConfigCache(max_entries=32)


@pytest.fixture
def store(catalog, cache, id_factory):
    return GraphStore(catalog=catalog, config_cache=cache, id_factory=id_factory)


@pytest.fixture
def chain(store):
    """Query -> LanguageModel -> Response graph."""
    query = store.add_node("QueryNode")
    llm = store.add_node("LanguageModelNode")
    response = store.add_node("ResponseNode")
    store.update_node_parameters(llm.id, {"service": "openai"})
    store.connect(query.id, "output-query", llm.id, "input-query")
    store.connect(llm.id, "output-response", response.id, "input-response")
    return query, llm, response


def create_fake_backend() -> FastAPI:
    """Small stand-in for the workflow backend."""
    app = FastAPI()
    app.state.workflows = {}
    app.state.deployments = {}
    app.state.executions = []
    app.state.execute_response = (200, {"success": True, "data": {}})
    app.state.templates = []
    app.state.fail_saves = False
    app.state.save_gate = None

    def ok(data: Any = None, **extra) -> Dict[str, Any]:
        return {"success": True, "data": data, **extra}

    @app.get("/api/v1/nodes/")
    async def list_nodes():
        schemas = {s["node_id"]: s for s in (QUERY_SCHEMA, RESPONSE_SCHEMA, LLM_SCHEMA)}
        return ok({"nodes": list(schemas), "schemas": schemas, "total_count": len(schemas)})

    @app.get("/api/v1/nodes/models/{service}")
    async def list_models(service: str):
        if service == "broken":
            return ok(["gpt-4o"])
        if service not in MODELS:
            return JSONResponse(status_code=404, content={"detail": f"Unknown service {service}"})
        return ok({"models": MODELS[service]})

    @app.get("/api/v1/vector-store/collections")
    async def list_collections():
        return {"success": True, "collections": [{"name": "docs", "points_count": 12}]}

    @app.post("/api/v1/nodes/execute")
    async def execute(request: Request):
        app.state.executions.append(await request.json())
        status_code, body = app.state.execute_response
        return JSONResponse(status_code=status_code, content=body)

    @app.get("/api/v1/workflows/")
    async def list_workflows():
        return ok([
            {"id": wid, "name": wf["name"], "created_at": "2024-01-01T00:00:00"}
            for wid, wf in app.state.workflows.items()
        ])

    @app.get("/api/v1/workflows/{workflow_id}")
    async def get_workflow(workflow_id: str):
        workflow = app.state.workflows.get(workflow_id)
        if workflow is None:
            return {"success": False, "error": "Workflow not found"}
        return ok({"id": workflow_id, **workflow})

    async def hold_save():
        # (entered, release) events let a test act while a save is in flight
        if app.state.save_gate is not None:
            entered, release = app.state.save_gate
            entered.set()
            await release.wait()

    @app.post("/api/v1/workflows/")
    async def create_workflow(request: Request):
        await hold_save()
        if app.state.fail_saves:
            return JSONResponse(status_code=500, content={"detail": "database unavailable"})
        payload = await request.json()
        workflow_id = f"wf-{len(app.state.workflows) + 1}"
        app.state.workflows[workflow_id] = {"name": payload["name"], "data": payload["data"]}
        return ok({"id": workflow_id, "name": payload["name"]})

    @app.put("/api/v1/workflows/{workflow_id}")
    async def update_workflow(workflow_id: str, request: Request):
        await hold_save()
        if app.state.fail_saves:
            return JSONResponse(status_code=500, content={"detail": "database unavailable"})
        payload = await request.json()
        workflow = app.state.workflows.setdefault(workflow_id, {"name": "Untitled Workflow", "data": {}})
        workflow.update(payload)
        return ok({"id": workflow_id, "name": workflow["name"]})

    @app.get("/api/v1/templates/")
    async def list_templates():
        return ok(app.state.templates)

    @app.post("/api/v1/deployments/")
    async def create_deployment(request: Request):
        payload = await request.json()
        deployment = {"id": f"dep-{len(app.state.deployments) + 1}", "is_active": 1, **payload}
        app.state.deployments[payload["workflow_id"]] = deployment
        return ok(deployment)

    @app.get("/api/v1/deployments/workflow/{workflow_id}")
    async def deployment_status(workflow_id: str):
        deployment = app.state.deployments.get(workflow_id)
        if deployment is None:
            return {"success": False, "error": "Not deployed"}
        return ok(deployment)

    return app


@pytest.fixture
def fake_backend():
    return create_fake_backend()


@pytest_asyncio.fixture
async def http_client(fake_backend):
    transport = httpx.ASGITransport(app=fake_backend)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest_asyncio.fixture
async def backend(config, http_client):
    client = BackendClient(config, http_client)
    yield client
    await client.aclose()


class FakeOptionSource:
    """Option fetcher whose responses are released by the test."""

    def __init__(self, responses: Dict[str, List[str]]):
        self.responses = responses
        self.gates: Dict[str, asyncio.Event] = {}
        self.calls: List[str] = []

    def gate(self, key: str) -> asyncio.Event:
        if key not in self.gates:
            self.gates[key] = asyncio.Event()
        return self.gates[key]

    async def get_models(self, service: str) -> List[str]:
        self.calls.append(service)
        await self.gate(service).wait()
        return self.responses[service]

    async def get_collections(self) -> List[Dict[str, str]]:
        self.calls.append("collections")
        return [{"value": "docs", "label": "docs (12 docs)"}]


@pytest.fixture
def option_source():
    return FakeOptionSource(MODELS)
