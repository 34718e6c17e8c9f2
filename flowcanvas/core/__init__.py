"""Core workflow graph engine components."""

from .exceptions import (
    WorkflowEngineError,
    DuplicateRoleError,
    EdgeRejectedError,
    NodeNotFoundError,
    ValidationError,
    StructuralError,
    MissingParameterError,
    MissingCredentialsError,
    NodeExecutionError,
    NetworkError,
    ConfigurationError,
)
from .logging import setup_logging, get_logger
from .config_cache import NodeConfigCache
from .graph_store import GraphStore
from .change_detector import ChangeDetector, snapshot, is_dirty
from .translator import ExecutionTranslator, TypeRegistry, DefaultPolicy, translate
from .hydration import WorkflowLoader, hydrate, persist
from .execution import ExecutionReport, interpret_execution_response, apply_results

__all__ = [
    "WorkflowEngineError",
    "DuplicateRoleError",
    "EdgeRejectedError",
    "NodeNotFoundError",
    "ValidationError",
    "StructuralError",
    "MissingParameterError",
    "MissingCredentialsError",
    "NodeExecutionError",
    "NetworkError",
    "ConfigurationError",
    "setup_logging",
    "get_logger",
    "NodeConfigCache",
    "GraphStore",
    "ChangeDetector",
    "snapshot",
    "is_dirty",
    "ExecutionTranslator",
    "TypeRegistry",
    "DefaultPolicy",
    "translate",
    "WorkflowLoader",
    "hydrate",
    "persist",
    "ExecutionReport",
    "interpret_execution_response",
    "apply_results",
]
