"""Constraint checks for configuration component values."""

import re
from datetime import date
from typing import Any, Dict, List, Optional

from ..core.logging import get_logger
from ..core.translator import is_empty_value
from ..models.ui_schema import ComponentType, NodeUIConfig, UIComponent

logger = get_logger(__name__)


def _label(component: UIComponent) -> str:
    return component.label or component.name


def _as_date(value: Any) -> Optional[date]:
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def check_constraints(component: UIComponent, value: Any) -> List[str]:
    """
    Check every declared constraint except ``required``.

    Args:
        component: Component declaring the constraints
        value: Current (coerced) value

    Returns:
        List of human readable problems; empty when the value conforms
    """
    if is_empty_value(value):
        return []

    errors: List[str] = []
    label = _label(component)

    if isinstance(value, str) and component.type in (
        ComponentType.TEXT_INPUT.value, ComponentType.TEXTAREA.value
    ):
        min_length = component.constraint("min_length")
        max_length = component.constraint("max_length")
        pattern = component.constraint("pattern")
        if min_length is not None and len(value) < min_length:
            errors.append(f"{label} must be at least {min_length} characters")
        if max_length is not None and len(value) > max_length:
            errors.append(f"{label} must be at most {max_length} characters")
        if pattern:
            try:
                if not re.fullmatch(pattern, value):
                    errors.append(f"{label} does not match the required format")
            except re.error:
                logger.warning(f"Ignoring invalid pattern on component '{component.name}'")

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        min_value = component.constraint("min_value")
        max_value = component.constraint("max_value")
        if min_value is not None and value < min_value:
            errors.append(f"{label} must be at least {min_value:g}")
        if max_value is not None and value > max_value:
            errors.append(f"{label} must be at most {max_value:g}")

    if isinstance(value, list) and component.type in (
        ComponentType.MULTI_SELECT.value, ComponentType.SELECT.value
    ):
        max_selections = component.constraint("max_selections")
        if max_selections is not None and len(value) > max_selections:
            errors.append(f"Select at most {max_selections} options for {label}")

    if component.type == ComponentType.FILE_UPLOAD.value:
        files = value if isinstance(value, list) else [value]
        max_files = component.constraint("max_files")
        max_file_size = component.constraint("max_file_size")
        if max_files is not None and len(files) > max_files:
            errors.append(f"At most {max_files} files are allowed for {label}")
        if max_file_size is not None:
            for item in files:
                if isinstance(item, dict) and item.get("size", 0) > max_file_size:
                    errors.append(f"File '{item.get('name')}' exceeds the maximum size of {max_file_size} bytes")

    if component.type == ComponentType.DATE_PICKER.value:
        current = _as_date(value)
        min_date = _as_date(component.constraint("min_date"))
        max_date = _as_date(component.constraint("max_date"))
        if current is not None and min_date is not None and current < min_date:
            errors.append(f"{label} must be on or after {min_date.isoformat()}")
        if current is not None and max_date is not None and current > max_date:
            errors.append(f"{label} must be on or before {max_date.isoformat()}")

    return errors


def validate_component(component: UIComponent, value: Any) -> List[str]:
    """All problems with ``value``, including a missing required value."""
    if component.required and is_empty_value(value):
        return [f"{_label(component)} is required"]
    return check_constraints(component, value)


def validate_form(ui_config: NodeUIConfig, values: Dict[str, Any]) -> Dict[str, List[str]]:
    """Validate every visible, value-holding component.

    Returns:
        Mapping of component name to its problems; only failing components
        appear
    """
    errors: Dict[str, List[str]] = {}
    for component in ui_config.iter_components():
        if not component.is_supported or not component.holds_value or not component.visible:
            continue
        value = values.get(component.name)
        if value is None:
            value = component.default_value
        problems = validate_component(component, value)
        if problems:
            errors[component.name] = problems
    return errors
