"""Core pydantic models for the workflow graph engine."""

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class NodeRole(str, Enum):
    """Unique roles a node type can play in a workflow."""
    ENTRY = "entry"
    TERMINAL = "terminal"


class ExecutionStateEnum(str, Enum):
    """Transient execution state of a node on the canvas."""
    IDLE = "idle"
    RUNNING = "running"


class PortSpec(BaseModel):
    """A named, typed input or output declared by a node type."""
    model_config = ConfigDict(extra="allow")

    name: str = Field(..., description="Port name used verbatim in the execution contract")
    type: str = Field(default="any", description="Declared data type")
    description: str = Field(default="", description="Human readable description")
    required: bool = Field(default=False, description="Whether the port must be connected")
    multiple: bool = Field(default=False, description="Whether an input accepts several inbound edges")

    @field_validator('name')
    @classmethod
    def validate_name(cls, name):
        """Ensure port name is not empty."""
        if not name or not name.strip():
            raise ValueError("Port name cannot be empty")
        return name.strip()


class ParameterSpec(BaseModel):
    """A typed parameter declared by a node type."""
    model_config = ConfigDict(extra="allow")

    name: str = Field(..., description="Parameter name")
    type: str = Field(default="string", description="Declared value type")
    description: str = Field(default="", description="Human readable description")
    required: bool = Field(default=False, description="Whether a value must be present at run time")
    default_value: Any = Field(default=None, description="Schema-declared default")
    options: Optional[List[Any]] = Field(default=None, description="Static choices")

    @property
    def has_default(self) -> bool:
        """True when the schema declares a usable default value."""
        return self.default_value is not None


class NodeTypeSchema(BaseModel):
    """Server-declared schema of a node type."""
    model_config = ConfigDict(extra="allow")

    node_id: str = Field(..., description="Type identifier in the node catalogue")
    name: str = Field(..., description="Display name")
    description: str = Field(default="", description="Type description")
    category: str = Field(default="", description="Catalogue category")
    role: Optional[NodeRole] = Field(default=None, description="Explicit unique role, if any")
    inputs: List[PortSpec] = Field(default_factory=list, description="Ordered input ports")
    outputs: List[PortSpec] = Field(default_factory=list, description="Ordered output ports")
    parameters: List[ParameterSpec] = Field(default_factory=list, description="Ordered parameters")
    ui_config: Optional[Dict[str, Any]] = Field(default=None, description="Declarative configuration UI")
    styling: Dict[str, Any] = Field(default_factory=dict, description="Presentation hints")

    @field_validator('node_id', 'name')
    @classmethod
    def validate_identifiers(cls, value):
        """Ensure identifiers are not empty."""
        if not value or not value.strip():
            raise ValueError("Node type identifiers cannot be empty")
        return value.strip()

    @property
    def resolved_role(self) -> Optional[NodeRole]:
        """Explicit role, or the role implied by the type identifier."""
        if self.role is not None:
            return self.role
        identifier = self.node_id.lower()
        if "response" in identifier:
            return NodeRole.TERMINAL
        if "query" in identifier and "textinput" not in identifier:
            return NodeRole.ENTRY
        return None

    def get_parameter(self, name: str) -> Optional[ParameterSpec]:
        """Find a parameter declaration by name."""
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def get_input(self, name: str) -> Optional[PortSpec]:
        """Find an input port by name."""
        for port in self.inputs:
            if port.name == name:
                return port
        return None

    def get_output(self, name: str) -> Optional[PortSpec]:
        """Find an output port by name."""
        for port in self.outputs:
            if port.name == name:
                return port
        return None

    def default_parameters(self) -> Dict[str, Any]:
        """Initial parameter map built from declared default values."""
        return {
            param.name: param.default_value
            for param in self.parameters
            if param.has_default
        }


class Position(BaseModel):
    """Advisory canvas position."""
    x: float = 0.0
    y: float = 0.0


class CanvasNode(BaseModel):
    """A node placed on the workflow canvas."""

    id: str = Field(..., description="Identifier unique within the workflow")
    type: str = Field(default="custom", description="Canvas renderer type")
    node_schema: NodeTypeSchema = Field(..., description="Server-declared type schema")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="User-set parameter values")
    position: Position = Field(default_factory=Position, description="Canvas position")
    execution_state: ExecutionStateEnum = Field(default=ExecutionStateEnum.IDLE)
    last_result: Optional[Dict[str, Any]] = Field(default=None, description="Payload set after a run")

    @field_validator('id')
    @classmethod
    def validate_id(cls, id_value):
        """Ensure node ID is not empty."""
        if not id_value or not id_value.strip():
            raise ValueError("Node ID cannot be empty")
        return id_value.strip()

    @property
    def role(self) -> Optional[NodeRole]:
        return self.node_schema.resolved_role

    def to_wire(self) -> Dict[str, Any]:
        """Persisted node shape: ``{id, type, position, data: {nodeSchema, parameters}}``."""
        return {
            "id": self.id,
            "type": self.type,
            "position": self.position.model_dump(),
            "data": {
                "nodeSchema": self.node_schema.model_dump(mode="json", exclude_none=True),
                "parameters": self.parameters,
            },
        }


class CanvasEdge(BaseModel):
    """A directed connection between a node output and a node input."""

    id: str = Field(..., description="Identifier derived from the endpoint fields")
    source: str = Field(..., description="Source node ID")
    target: str = Field(..., description="Target node ID")
    source_handle: Optional[str] = Field(default=None, description="Source output handle")
    target_handle: Optional[str] = Field(default=None, description="Target input handle")
    executing: bool = Field(default=False, description="Execution overlay flag")

    @property
    def endpoint_key(self) -> tuple:
        return (self.source, self.source_handle, self.target, self.target_handle)

    def to_wire(self) -> Dict[str, Any]:
        """Persisted edge shape: ``{id, source, target, sourceHandle, targetHandle}``."""
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "sourceHandle": self.source_handle,
            "targetHandle": self.target_handle,
        }


class ExecutionNodeSpec(BaseModel):
    """A node as the backend execution engine consumes it."""
    type: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


class OutputRef(BaseModel):
    node: str
    output: str


class InputRef(BaseModel):
    node: str
    input: str


class ExecutionEdgeSpec(BaseModel):
    """An edge of the execution DAG."""
    model_config = ConfigDict(populate_by_name=True)

    from_: OutputRef = Field(..., alias="from")
    to: InputRef


class ExecutionDAG(BaseModel):
    """Wire-level execution request."""
    nodes: Dict[str, ExecutionNodeSpec] = Field(default_factory=dict)
    edges: List[ExecutionEdgeSpec] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready request body."""
        return self.model_dump(by_alias=True)

    def to_json(self) -> str:
        """Canonical request body; identical graphs produce identical bytes."""
        return self.model_dump_json(by_alias=True)


class TranslationResult(BaseModel):
    """Outcome of translating a canvas graph into an execution DAG."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    dag: Optional[ExecutionDAG] = Field(default=None, description="Set only when there are no errors")
    errors: List[Any] = Field(default_factory=list, description="Translation errors, in discovery order")

    @property
    def is_valid(self) -> bool:
        return self.dag is not None and not self.errors

    @property
    def messages(self) -> List[str]:
        return [error.message for error in self.errors]


class WorkflowSummary(BaseModel):
    """Workflow metadata as returned by the persistence collaborator."""
    model_config = ConfigDict(extra="allow")

    id: str
    name: str = "Untitled Workflow"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    node_count: Optional[int] = None
    is_deployed: Optional[bool] = None
