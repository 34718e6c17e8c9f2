"""Declarative configuration UI schema models.

A node type may ship a ``ui_config`` describing its configuration form as
ordered groups of typed components. The payload comes from the backend and is
only partially trusted, so parsing is lenient: a malformed component becomes
an :class:`UnsupportedComponent` placeholder instead of failing the form.
"""

import math
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from ..core.logging import get_logger

logger = get_logger(__name__)


class ComponentType(str, Enum):
    """Component types understood by the configuration engine."""
    TEXT_INPUT = "text_input"
    TEXTAREA = "textarea"
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    NUMBER_INPUT = "number_input"
    SLIDER = "slider"
    TOGGLE = "toggle"
    COLOR_PICKER = "color_picker"
    FILE_UPLOAD = "file_upload"
    DATE_PICKER = "date_picker"
    LABEL = "label"
    DIVIDER = "divider"
    BUTTON = "button"

    @classmethod
    def known(cls) -> set:
        return {member.value for member in cls}


# Components that display content but never hold a parameter value
DISPLAY_ONLY_TYPES = {ComponentType.LABEL.value, ComponentType.DIVIDER.value, ComponentType.BUTTON.value}


class UIOption(BaseModel):
    """A single choice of a select, multi-select or radio component."""
    value: str
    label: str
    disabled: bool = False

    @classmethod
    def coerce(cls, raw: Any) -> Optional['UIOption']:
        """Build an option from a bare string or a mapping; None when unusable."""
        if isinstance(raw, UIOption):
            return raw
        if isinstance(raw, (str, int, float)) and not isinstance(raw, bool):
            return cls(value=str(raw), label=str(raw))
        if isinstance(raw, dict) and raw.get("value") is not None:
            value = str(raw["value"])
            return cls(
                value=value,
                label=str(raw.get("label") or value),
                disabled=bool(raw.get("disabled", False))
            )
        return None


def coerce_options(raw_options: Any) -> List[UIOption]:
    """Turn an arbitrary option payload into a clean option list."""
    if not isinstance(raw_options, list):
        return []
    options = []
    for raw in raw_options:
        option = UIOption.coerce(raw)
        if option is None:
            logger.debug(f"Dropping malformed option: {raw!r}")
            continue
        options.append(option)
    return options


# Expected types of constraints declared inside a component's ``validation``
CONSTRAINT_TYPES = {
    "min_length": int,
    "max_length": int,
    "max_selections": int,
    "max_files": int,
    "max_file_size": int,
    "min_value": float,
    "max_value": float,
    "step": float,
    "precision": int,
    "pattern": str,
    "min_date": str,
    "max_date": str,
}


def _coerce_constraint(kind: type, value: Any) -> Any:
    """Convert a constraint value to ``kind``; None when it cannot be used."""
    if value is None or isinstance(value, bool):
        return None
    if kind is str:
        return value if isinstance(value, str) else None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    if kind is int:
        return int(number) if number.is_integer() else None
    return number


class UIComponent(BaseModel):
    """A typed field of a configuration form."""
    model_config = ConfigDict(extra="allow")

    type: str = Field(..., description="Component type")
    name: str = Field(..., description="Bound parameter name")
    label: str = Field(default="", description="Display label")
    description: Optional[str] = None
    required: bool = False
    default_value: Any = None
    placeholder: Optional[str] = None
    disabled: bool = False
    visible: bool = True
    validation: Dict[str, Any] = Field(default_factory=dict)

    # Text constraints
    rows: Optional[int] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None

    # Choice components
    options: List[UIOption] = Field(default_factory=list)
    multiple: bool = False
    max_selections: Optional[int] = None

    # Boolean components
    checked_value: Any = None
    unchecked_value: Any = None
    on_value: Any = None
    off_value: Any = None

    # Numeric components
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    step: Optional[float] = None
    precision: Optional[int] = None

    # File and date components
    accept: Optional[str] = None
    max_file_size: Optional[int] = None
    max_files: Optional[int] = None
    min_date: Optional[str] = None
    max_date: Optional[str] = None

    # Display-only components
    text: Optional[str] = None
    button_text: Optional[str] = None

    @field_validator('options', mode='before')
    @classmethod
    def validate_options(cls, options):
        """Accept bare strings and drop malformed entries."""
        if options is None:
            return []
        return coerce_options(options)

    @field_validator('name')
    @classmethod
    def validate_name(cls, name):
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Component name cannot be empty")
        return name.strip()

    @field_validator('validation', mode='before')
    @classmethod
    def validate_validation(cls, validation):
        """Coerce known constraints to their types and drop unusable ones."""
        if not isinstance(validation, dict):
            return {}
        cleaned = {}
        for key, value in validation.items():
            kind = CONSTRAINT_TYPES.get(key)
            if kind is None:
                cleaned[key] = value
                continue
            coerced = _coerce_constraint(kind, value)
            if coerced is None:
                logger.debug(f"Dropping unusable constraint {key}={value!r}")
                continue
            cleaned[key] = coerced
        return cleaned

    @property
    def is_supported(self) -> bool:
        return self.type in ComponentType.known()

    @property
    def holds_value(self) -> bool:
        return self.type not in DISPLAY_ONLY_TYPES

    def constraint(self, key: str) -> Any:
        """Constraint declared either at top level or inside ``validation``."""
        value = getattr(self, key, None)
        if value is None:
            value = self.validation.get(key)
        return value


class UnsupportedComponent(BaseModel):
    """Placeholder for a component the engine cannot render."""
    type: str = "unsupported"
    name: str
    original_type: Optional[str] = None
    reason: str = ""
    raw: Dict[str, Any] = Field(default_factory=dict)

    visible: bool = True
    required: bool = False

    @property
    def is_supported(self) -> bool:
        return False

    @property
    def holds_value(self) -> bool:
        return False


AnyComponent = Union[UIComponent, UnsupportedComponent]


class UIGroup(BaseModel):
    """An ordered group of components."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    label: str = ""
    description: Optional[str] = None
    collapsible: bool = False
    collapsed: bool = False
    components: List[Any] = Field(default_factory=list)


class NodeUIConfig(BaseModel):
    """The whole configuration form of a node type."""
    model_config = ConfigDict(extra="allow")

    node_id: str = ""
    node_name: str = ""
    groups: List[UIGroup] = Field(default_factory=list)
    layout: Optional[str] = None
    columns: Optional[int] = None
    dialog_config: Optional[Dict[str, Any]] = None

    @classmethod
    def parse_lenient(cls, raw: Any) -> 'NodeUIConfig':
        """Parse a backend ``ui_config`` without ever raising.

        Components that fail validation, lack a name or declare an unknown
        type are kept in place as :class:`UnsupportedComponent` entries so
        the rest of the form stays usable.
        """
        if not isinstance(raw, dict):
            logger.warning(f"Ignoring ui_config of type {type(raw).__name__}")
            return cls()

        groups: List[UIGroup] = []
        raw_groups = raw.get("groups") if isinstance(raw.get("groups"), list) else []
        for group_index, raw_group in enumerate(raw_groups):
            if not isinstance(raw_group, dict):
                logger.warning(f"Skipping malformed ui group at index {group_index}")
                continue
            components: List[AnyComponent] = []
            raw_components = raw_group.get("components")
            if not isinstance(raw_components, list):
                raw_components = []
            for comp_index, raw_component in enumerate(raw_components):
                components.append(_parse_component(raw_component, group_index, comp_index))
            groups.append(UIGroup(
                name=str(raw_group.get("name") or f"group_{group_index}"),
                label=str(raw_group.get("label") or ""),
                description=raw_group.get("description") if isinstance(raw_group.get("description"), str) else None,
                collapsible=bool(raw_group.get("collapsible", False)),
                collapsed=bool(raw_group.get("collapsed", False)),
                components=components
            ))

        dialog_config = raw.get("dialog_config")
        columns = raw.get("columns")
        return cls(
            node_id=str(raw.get("node_id") or ""),
            node_name=str(raw.get("node_name") or ""),
            groups=groups,
            layout=raw.get("layout") if isinstance(raw.get("layout"), str) else None,
            columns=columns if isinstance(columns, int) and not isinstance(columns, bool) else None,
            dialog_config=dialog_config if isinstance(dialog_config, dict) else None
        )

    def iter_components(self):
        for group in self.groups:
            for component in group.components:
                yield component

    def get_component(self, name: str) -> Optional[AnyComponent]:
        for component in self.iter_components():
            if component.name == name:
                return component
        return None


def _parse_component(raw: Any, group_index: int, comp_index: int) -> AnyComponent:
    fallback_name = f"component_{group_index}_{comp_index}"
    if not isinstance(raw, dict):
        return UnsupportedComponent(name=fallback_name, reason="component is not an object")

    raw_type = raw.get("type")
    name = raw.get("name") if isinstance(raw.get("name"), str) and raw.get("name").strip() else fallback_name
    if not isinstance(raw_type, str) or raw_type not in ComponentType.known():
        logger.warning(f"Unknown component type {raw_type!r} for '{name}'")
        return UnsupportedComponent(
            name=name,
            original_type=str(raw_type) if raw_type is not None else None,
            reason=f"Unknown component type: {raw_type}",
            raw=raw
        )

    try:
        return UIComponent.model_validate(raw)
    except PydanticValidationError as e:
        logger.warning(f"Malformed component '{name}': {e.error_count()} validation error(s)")
        return UnsupportedComponent(
            name=name,
            original_type=raw_type,
            reason="Malformed component definition",
            raw=raw
        )
