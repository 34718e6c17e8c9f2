"""Interpretation of execution responses and application of results."""

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import (
    MissingCredentialsError,
    NodeExecutionError,
    WorkflowEngineError,
)
from .graph_store import GraphStore
from .logging import get_logger

logger = get_logger(__name__)


class ExecutionReport(BaseModel):
    """Outcome of one workflow execution request.

    Partial success is a normal outcome: ``response_inputs`` holds what the
    successful branches produced while ``node_errors`` names the nodes that
    failed.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool = False
    status_code: Optional[int] = None
    executed_nodes: List[str] = Field(default_factory=list)
    skipped_nodes: List[str] = Field(default_factory=list)
    response_inputs: Dict[str, Any] = Field(default_factory=dict)
    node_errors: Dict[str, str] = Field(default_factory=dict)
    missing_credentials: Dict[str, List[str]] = Field(default_factory=dict)
    node_info: Dict[str, Any] = Field(default_factory=dict)
    message: Optional[str] = None
    errors: List[Any] = Field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.response_inputs) and bool(self.node_errors)

    @property
    def error(self) -> Optional[WorkflowEngineError]:
        return self.errors[0] if self.errors else None

    def summary(self) -> str:
        """One-line, user facing description of the outcome."""
        if self.missing_credentials:
            return self.errors[0].message
        if len(self.node_errors) == 1:
            node_id, error = next(iter(self.node_errors.items()))
            return f"Execution Error: {str(error).splitlines()[0] if error else ''} (node {node_id})"
        if self.node_errors:
            return f"Execution completed with {len(self.node_errors)} error(s)"
        if self.success:
            return f"Workflow executed successfully! Executed {len(self.executed_nodes)} node(s)"
        return self.message or "Execution failed"


def _as_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    return [str(value)]


def _credentials_message(missing: Dict[str, List[str]], all_missing: Optional[List[str]] = None) -> str:
    names: List[str] = list(all_missing or [])
    if not names:
        for creds in missing.values():
            for cred in creds:
                if cred not in names:
                    names.append(cred)
    return (
        f"{len(missing)} node(s) require credentials: {', '.join(names)}. "
        f"Please configure them before running the workflow."
    )


def _node_errors(errors: Any) -> Dict[str, str]:
    if not isinstance(errors, dict):
        return {}
    return {str(node_id): str(message) for node_id, message in errors.items()}


def interpret_execution_response(status_code: int, body: Any) -> ExecutionReport:
    """
    Turn an execution response into an ExecutionReport.

    Args:
        status_code: HTTP status of the response
        body: Decoded JSON body, or the raw text when it was not JSON

    Returns:
        ExecutionReport: never raises for a malformed body
    """
    if 200 <= status_code < 300:
        body = body if isinstance(body, dict) else {}
        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        report = ExecutionReport(
            success=body.get("success") is not False,
            status_code=status_code,
            executed_nodes=list(data.get("executed_nodes") or []),
            skipped_nodes=list(data.get("skipped_nodes") or []),
            response_inputs=dict(data.get("response_inputs") or {}),
            node_errors=_node_errors(data.get("errors")),
            message=body.get("message") or body.get("error")
        )
        report.errors = [
            NodeExecutionError(message, node_id=node_id)
            for node_id, message in report.node_errors.items()
        ]
        if report.node_errors:
            logger.warning(f"Execution finished with {len(report.node_errors)} node error(s)")
        return report

    detail = body.get("detail") if isinstance(body, dict) else body

    if isinstance(detail, dict) and detail.get("missing_credentials"):
        missing = {
            str(node_id): _as_list(creds)
            for node_id, creds in detail["missing_credentials"].items()
        }
        message = _credentials_message(missing, detail.get("all_missing_credentials"))
        error = MissingCredentialsError(
            message,
            missing_credentials=missing,
            node_info=detail.get("node_info") or {}
        )
        logger.warning(f"Execution refused: missing credentials for {len(missing)} node(s)")
        return ExecutionReport(
            status_code=status_code,
            missing_credentials=missing,
            node_info=detail.get("node_info") or {},
            message=detail.get("message") or "Missing required credentials for workflow execution",
            errors=[error]
        )

    if isinstance(detail, dict):
        node_errors = _node_errors(detail.get("errors"))
        message = detail.get("message") or f"HTTP error! status: {status_code}"
        errors: List[WorkflowEngineError] = [
            NodeExecutionError(node_message, node_id=node_id)
            for node_id, node_message in node_errors.items()
        ]
        if not errors:
            errors.append(NodeExecutionError(message))
        logger.error(f"Execution failed with status {status_code}: {message}")
        return ExecutionReport(
            status_code=status_code,
            executed_nodes=list(detail.get("executed_nodes") or []),
            skipped_nodes=list(detail.get("skipped_nodes") or []),
            response_inputs=dict(detail.get("response_inputs") or {}),
            node_errors=node_errors,
            message=message,
            errors=errors
        )

    if not detail and isinstance(body, dict):
        detail = body.get("message") or body.get("error")
    message = str(detail) if detail else f"HTTP error! status: {status_code}"
    logger.error(f"Execution failed with status {status_code}: {message}")
    return ExecutionReport(
        status_code=status_code,
        node_errors={"workflow_error": message},
        message=message,
        errors=[NodeExecutionError(message)]
    )


def node_result_from_outputs(outputs: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Canvas payload for one node's ``response_inputs`` entry."""
    if not isinstance(outputs, dict):
        return None
    result: Dict[str, Any] = {}
    final_response = outputs.get("final_response")
    if final_response:
        result["response"] = final_response
        result["response_content"] = final_response

    if outputs.get("debug_content"):
        result["node_data"] = {"debug_content": outputs["debug_content"]}
    elif outputs.get("__node_data__"):
        result["node_data"] = outputs["__node_data__"]
    elif outputs.get("debug_info"):
        result["node_data"] = {"debug_content": json.dumps(outputs["debug_info"], indent=2)}

    return result or None


def apply_results(store: GraphStore, report: ExecutionReport) -> Optional[str]:
    """Attach results to the nodes that produced them.

    Returns:
        The first final response, used as the chat preview
    """
    preview: Optional[str] = None
    for node_id, outputs in report.response_inputs.items():
        result = node_result_from_outputs(outputs)
        if result is None:
            continue
        if preview is None and "response" in result:
            preview = str(result["response"])
        if store.set_node_result(node_id, result) is not None:
            logger.debug(f"Result for node {node_id} has no matching canvas node")
    return preview


class ChatMessage(BaseModel):
    id: str
    type: str
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ConversationHistory:
    """User and bot turns exchanged through the query and response nodes."""

    def __init__(self):
        self.messages: List[ChatMessage] = []

    def add_user(self, content: str) -> ChatMessage:
        message = ChatMessage(id=f"user-{uuid.uuid4().hex[:8]}", type="user", content=content)
        self.messages.append(message)
        return message

    def add_bot(self, content: str) -> ChatMessage:
        message = ChatMessage(id=f"bot-{uuid.uuid4().hex[:8]}", type="bot", content=content)
        self.messages.append(message)
        return message

    def start(self, query: str, response: str) -> None:
        """Replace the history with a fresh exchange."""
        self.messages = []
        self.add_user(query)
        self.add_bot(response)

    def clear(self) -> None:
        self.messages = []
