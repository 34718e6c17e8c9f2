"""Data models for the workflow graph engine."""

from .core import (
    NodeRole,
    ExecutionStateEnum,
    PortSpec,
    ParameterSpec,
    NodeTypeSchema,
    Position,
    CanvasNode,
    CanvasEdge,
    ExecutionNodeSpec,
    ExecutionEdgeSpec,
    ExecutionDAG,
    TranslationResult,
    WorkflowSummary,
)
from .ui_schema import (
    ComponentType,
    UIOption,
    UIComponent,
    UnsupportedComponent,
    UIGroup,
    NodeUIConfig,
)

__all__ = [
    "NodeRole",
    "ExecutionStateEnum",
    "PortSpec",
    "ParameterSpec",
    "NodeTypeSchema",
    "Position",
    "CanvasNode",
    "CanvasEdge",
    "ExecutionNodeSpec",
    "ExecutionEdgeSpec",
    "ExecutionDAG",
    "TranslationResult",
    "WorkflowSummary",
    "ComponentType",
    "UIOption",
    "UIComponent",
    "UnsupportedComponent",
    "UIGroup",
    "NodeUIConfig",
]
