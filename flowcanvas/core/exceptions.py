"""Error taxonomy for the workflow graph engine.

Graph and translation errors are returned as values rather than raised
across component boundaries, so every error carries enough context to be
rendered directly as an actionable message.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorSeverity(Enum):
    """Error severity levels for categorizing exceptions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for better classification."""
    GRAPH = "graph"
    VALIDATION = "validation"
    EXECUTION = "execution"
    CREDENTIALS = "credentials"
    NETWORK = "network"
    CONFIGURATION = "configuration"


class WorkflowEngineError(Exception):
    """Base exception for all workflow engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.EXECUTION,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.category = category
        self.details = details or {}
        self.recoverable = recoverable
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and display."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__
        }

    def add_context(self, **kwargs):
        """Add additional context to the exception."""
        self.context.update(kwargs)
        return self

    def add_details(self, **kwargs):
        """Add additional details to the exception."""
        self.details.update(kwargs)
        return self


class DuplicateRoleError(WorkflowEngineError):
    """Returned when a second entry-role or terminal-role node is added."""

    def __init__(self, role: str, existing_node_id: Optional[str] = None, **kwargs):
        super().__init__(
            f"Only one {role} node is allowed per workflow. "
            f"Remove the existing {role} node first.",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.GRAPH,
            **kwargs
        )
        self.role = role
        self.add_context(role=role)
        if existing_node_id:
            self.add_context(existing_node_id=existing_node_id)


class EdgeRejectedError(WorkflowEngineError):
    """Returned when a connection request cannot be turned into an edge."""

    SELF_LOOP = "self_loop"
    DUPLICATE = "duplicate"
    UNKNOWN_NODE = "unknown_node"
    INPUT_OCCUPIED = "input_occupied"

    def __init__(self, message: str, reason: str, edge_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.GRAPH,
            **kwargs
        )
        self.reason = reason
        self.add_context(reason=reason)
        if edge_id:
            self.add_context(edge_id=edge_id)


class NodeNotFoundError(WorkflowEngineError):
    """Returned when an operation names a node that is not in the graph."""

    def __init__(self, node_id: str, **kwargs):
        super().__init__(
            f"Node '{node_id}' does not exist in this workflow",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.GRAPH,
            **kwargs
        )
        self.node_id = node_id
        self.add_context(node_id=node_id)


class ValidationError(WorkflowEngineError):
    """A node or edge cannot be projected onto the execution contract."""

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        edge_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.VALIDATION,
            **kwargs
        )
        self.node_id = node_id
        self.edge_id = edge_id
        if node_id:
            self.add_context(node_id=node_id)
        if edge_id:
            self.add_context(edge_id=edge_id)


class StructuralError(ValidationError):
    """The graph as a whole violates an execution precondition."""


class MissingParameterError(ValidationError):
    """A required parameter is empty and no default can be applied."""

    def __init__(self, node_id: str, parameter: str, node_name: Optional[str] = None, **kwargs):
        label = node_name or node_id
        super().__init__(
            f'Node "{label}" is missing required parameter: {parameter}',
            node_id=node_id,
            **kwargs
        )
        self.parameter = parameter
        self.add_context(parameter=parameter)


class MissingCredentialsError(WorkflowEngineError):
    """The backend refused to execute because credentials are not configured."""

    def __init__(
        self,
        message: str,
        missing_credentials: Optional[Dict[str, List[str]]] = None,
        node_info: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CREDENTIALS,
            **kwargs
        )
        self.missing_credentials = missing_credentials or {}
        self.node_info = node_info or {}
        self.add_details(missing_credentials=self.missing_credentials)

    @property
    def credential_names(self) -> List[str]:
        """All distinct credential names, in first-seen order."""
        names: List[str] = []
        for creds in self.missing_credentials.values():
            for cred in creds:
                if cred not in names:
                    names.append(cred)
        return names


class NodeExecutionError(WorkflowEngineError):
    """A single node failed at runtime while others may have succeeded."""

    def __init__(self, message: str, node_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.EXECUTION,
            **kwargs
        )
        self.node_id = node_id
        if node_id:
            self.add_context(node_id=node_id)


class NetworkError(WorkflowEngineError):
    """A collaborator request failed, timed out or returned a non-2xx status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        body: Any = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.NETWORK,
            **kwargs
        )
        self.status_code = status_code
        self.body = body
        if endpoint:
            self.add_context(endpoint=endpoint)
        if status_code is not None:
            self.add_details(status_code=status_code)


class ConfigurationError(WorkflowEngineError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
            recoverable=False,
            **kwargs
        )
        if config_key:
            self.add_context(config_key=config_key)
