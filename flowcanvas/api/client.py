"""Async HTTP client for the workflow backend."""

from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..config import AppConfig, get_config
from ..core.exceptions import NetworkError
from ..core.logging import get_logger
from ..models.core import ExecutionDAG, NodeTypeSchema, WorkflowSummary

logger = get_logger(__name__)


class BackendClient:
    """Thin wrapper over the backend routes used by the editor.

    Every route answers with the ``{success, data, message, error}``
    envelope. Read operations that only populate lists degrade to empty
    results when the backend is unreachable; mutating operations raise
    :class:`NetworkError` so the caller can tell the user.
    """

    def __init__(self, config: Optional[AppConfig] = None, http_client: Optional[httpx.AsyncClient] = None):
        """
        Args:
            config: Connection settings; the process configuration by default
            http_client: Pre-built client, e.g. one mounted on an ASGI app
        """
        self.config = config or get_config()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=self.config.request_timeout)

    async def __aenter__(self) -> 'BackendClient':
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _url(self, path: str) -> str:
        return f"{self.config.api_root}{path}"

    async def _send(
        self,
        method: str,
        path: str,
        json: Any = None,
        timeout: Optional[float] = None,
        timeout_message: Optional[str] = None
    ) -> httpx.Response:
        url = self._url(path)
        try:
            return await self._client.request(
                method,
                url,
                json=json,
                timeout=timeout if timeout is not None else self.config.request_timeout
            )
        except httpx.TimeoutException as e:
            logger.error(f"{method} {path} timed out: {str(e)}")
            raise NetworkError(
                timeout_message or f"Request to {path} timed out",
                endpoint=path
            )
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {str(e)}")
            raise NetworkError(
                f"Cannot connect to backend server at {self.config.api_base_url}",
                endpoint=path
            )

    async def _envelope(self, method: str, path: str, json: Any = None) -> Dict[str, Any]:
        """Send a request and return the decoded envelope of a 2xx response."""
        response = await self._send(method, path, json=json)
        if response.is_error:
            raise NetworkError(
                f"HTTP error! status: {response.status_code}",
                status_code=response.status_code,
                endpoint=path,
                body=_decode(response)
            )
        body = _decode(response)
        if not isinstance(body, dict):
            raise NetworkError(
                f"Unexpected response from {path}",
                status_code=response.status_code,
                endpoint=path,
                body=body
            )
        return body

    async def _data(self, method: str, path: str, json: Any = None) -> Any:
        """Envelope ``data`` of a successful response; NetworkError otherwise."""
        body = await self._envelope(method, path, json=json)
        if not body.get("success"):
            raise NetworkError(
                body.get("error") or body.get("message") or f"Request to {path} was not successful",
                endpoint=path,
                body=body
            )
        return body.get("data")

    # ------------------------------------------------------------------
    # Node catalogue

    async def get_node_schemas(self) -> Dict[str, NodeTypeSchema]:
        """Node type schemas keyed by type identifier; empty when unavailable."""
        try:
            data = await self._data("GET", "/nodes/")
        except NetworkError as e:
            logger.warning(f"Node catalogue unavailable: {e.message}")
            return {}

        schemas: Dict[str, NodeTypeSchema] = {}
        raw_schemas = data.get("schemas") if isinstance(data, dict) else None
        if not isinstance(raw_schemas, dict):
            raw_schemas = {}
        for type_id, raw in raw_schemas.items():
            try:
                schemas[type_id] = NodeTypeSchema.model_validate(raw)
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed node schema '{type_id}': {e.error_count()} error(s)")
        logger.info(f"Loaded {len(schemas)} node schemas")
        return schemas

    async def get_models(self, service: str) -> List[str]:
        """Model names offered by ``service``."""
        path = f"/nodes/models/{service}"
        data = await self._data("GET", path)
        models = data.get("models") if isinstance(data, dict) else None
        if not isinstance(models, list):
            raise NetworkError(f"Unexpected response from {path}", endpoint=path, body=data)
        return [str(model) for model in models]

    async def get_collections(self) -> List[Dict[str, str]]:
        """Vector-store collections as ``{value, label}`` options."""
        body = await self._envelope("GET", "/vector-store/collections")
        if not body.get("success"):
            raise NetworkError("Could not list collections", endpoint="/vector-store/collections", body=body)
        options = []
        collections = body.get("collections")
        if not isinstance(collections, list):
            collections = []
        for collection in collections:
            name = collection.get("name") if isinstance(collection, dict) else None
            if not name:
                continue
            options.append({
                "value": name,
                "label": f"{name} ({collection.get('points_count', 0)} docs)"
            })
        return options

    # ------------------------------------------------------------------
    # Workflow persistence

    async def get_workflow(self, workflow_id: str) -> Optional[Dict[str, Any]]:
        """A workflow record ``{id, name, data: {nodes, edges}, ...}`` or None."""
        body = await self._envelope("GET", f"/workflows/{workflow_id}")
        if not body.get("success") or not body.get("data"):
            return None
        return body["data"]

    async def list_workflows(self) -> List[WorkflowSummary]:
        try:
            data = await self._data("GET", "/workflows/")
        except NetworkError as e:
            logger.warning(f"Backend unavailable, returning empty workflows list: {e.message}")
            return []
        summaries = []
        for raw in data or []:
            try:
                summaries.append(WorkflowSummary.model_validate(raw))
            except PydanticValidationError:
                logger.warning(f"Skipping malformed workflow summary: {raw!r}")
        return summaries

    async def create_workflow(self, name: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._data("POST", "/workflows/", json={"name": name, "data": data}) or {}

    async def update_workflow(
        self,
        workflow_id: str,
        name: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if name is not None:
            payload["name"] = name
        if data is not None:
            payload["data"] = data
        return await self._data("PUT", f"/workflows/{workflow_id}", json=payload) or {}

    # ------------------------------------------------------------------
    # Execution

    async def execute(self, dag: ExecutionDAG) -> Tuple[int, Any]:
        """
        Submit an execution DAG.

        Args:
            dag: Translated workflow

        Returns:
            Tuple of HTTP status and decoded body; non-2xx statuses are
            returned, not raised, so their details can be interpreted

        Raises:
            NetworkError: If the backend is unreachable or the execution
                timeout elapses
        """
        response = await self._send(
            "POST",
            "/nodes/execute",
            json=dag.to_payload(),
            timeout=self.config.execution_timeout,
            timeout_message=f"Workflow execution timed out after {self.config.execution_timeout:g}s"
        )
        return response.status_code, _decode(response)

    # ------------------------------------------------------------------
    # Templates and deployments

    async def get_templates(self) -> List[Dict[str, Any]]:
        try:
            data = await self._data("GET", "/templates/")
        except NetworkError as e:
            logger.warning(f"Templates unavailable: {e.message}")
            return []
        return data if isinstance(data, list) else []

    async def create_deployment(self, workflow_id: str, name: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"workflow_id": workflow_id}
        if name:
            payload["name"] = name
        return await self._data("POST", "/deployments/", json=payload) or {}

    async def get_deployment_status(self, workflow_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._data("GET", f"/deployments/workflow/{workflow_id}")
        except NetworkError as e:
            logger.warning(f"Deployment status unavailable for {workflow_id}: {e.message}")
            return None


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
