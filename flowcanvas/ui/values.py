"""Typed parameter values produced by configuration components."""

import math
import re
from datetime import date, datetime
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ValidationError as PydanticValidationError, model_validator

from ..models.ui_schema import ComponentType, UIComponent

HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


class FileReference(BaseModel):
    """An uploaded file as stored in a node parameter."""
    name: str
    size: int = 0
    content_type: Optional[str] = None
    url: Optional[str] = None
    path: Optional[str] = None

    @model_validator(mode="after")
    def check_size(self):
        if self.size < 0:
            raise ValueError("File size cannot be negative")
        return self


Coerced = Tuple[Any, Optional[str]]


def _text(component: UIComponent, raw: Any) -> Coerced:
    if isinstance(raw, str):
        return raw, None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return str(raw), None
    return None, f"{_label(component)} expects text"


def _number(component: UIComponent, raw: Any) -> Coerced:
    if isinstance(raw, bool):
        return None, f"{_label(component)} expects a number"
    if isinstance(raw, str):
        try:
            raw = float(raw) if any(c in raw for c in ".eE") else int(raw)
        except ValueError:
            return None, f"{_label(component)} expects a number"
    if not isinstance(raw, (int, float)):
        return None, f"{_label(component)} expects a number"
    if isinstance(raw, float) and not math.isfinite(raw):
        return None, f"{_label(component)} expects a finite number"
    precision = component.constraint("precision")
    if precision is not None:
        raw = round(float(raw), int(precision))
        if int(precision) == 0:
            raw = int(raw)
    return raw, None


def _boolean(component: UIComponent, raw: Any) -> Coerced:
    if component.type == ComponentType.CHECKBOX.value:
        on, off = component.checked_value, component.unchecked_value
    else:
        on, off = component.on_value, component.off_value

    if on is not None or off is not None:
        if raw is True:
            return (on if on is not None else True), None
        if raw is False:
            return (off if off is not None else False), None
        if raw in (on, off):
            return raw, None
        return None, f"{_label(component)} expects an on or off value"

    if isinstance(raw, bool):
        return raw, None
    return None, f"{_label(component)} expects true or false"


def _choice(component: UIComponent, raw: Any) -> Coerced:
    if component.multiple:
        return _multi_choice(component, raw)
    if isinstance(raw, str):
        return raw, None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return str(raw), None
    return None, f"{_label(component)} expects a single choice"


def _multi_choice(component: UIComponent, raw: Any) -> Coerced:
    if isinstance(raw, str):
        return [raw], None
    if isinstance(raw, (list, tuple)) and all(isinstance(item, str) for item in raw):
        return list(raw), None
    return None, f"{_label(component)} expects a list of choices"


def _color(component: UIComponent, raw: Any) -> Coerced:
    if not isinstance(raw, str) or not HEX_COLOR.match(raw.strip()):
        return None, f"{_label(component)} expects a #rrggbb color"
    value = raw.strip().lower()
    if len(value) == 4:
        value = "#" + "".join(c * 2 for c in value[1:])
    return value, None


def _date(component: UIComponent, raw: Any) -> Coerced:
    if isinstance(raw, datetime):
        return raw.date().isoformat(), None
    if isinstance(raw, date):
        return raw.isoformat(), None
    if isinstance(raw, str):
        try:
            return date.fromisoformat(raw.strip()[:10]).isoformat(), None
        except ValueError:
            pass
    return None, f"{_label(component)} expects an ISO date"


def _file(component: UIComponent, raw: Any) -> Coerced:
    items = raw if isinstance(raw, (list, tuple)) else [raw]
    files: List[FileReference] = []
    for item in items:
        try:
            files.append(item if isinstance(item, FileReference) else FileReference.model_validate(item))
        except PydanticValidationError:
            return None, f"{_label(component)} received an invalid file"
    dumped = [f.model_dump(exclude_none=True) for f in files]
    if component.multiple or isinstance(raw, (list, tuple)):
        return dumped, None
    return dumped[0], None


_COERCERS = {
    ComponentType.TEXT_INPUT.value: _text,
    ComponentType.TEXTAREA.value: _text,
    ComponentType.NUMBER_INPUT.value: _number,
    ComponentType.SLIDER.value: _number,
    ComponentType.CHECKBOX.value: _boolean,
    ComponentType.TOGGLE.value: _boolean,
    ComponentType.SELECT.value: _choice,
    ComponentType.RADIO.value: _choice,
    ComponentType.MULTI_SELECT.value: _multi_choice,
    ComponentType.COLOR_PICKER.value: _color,
    ComponentType.DATE_PICKER.value: _date,
    ComponentType.FILE_UPLOAD.value: _file,
}


def coerce_value(component: UIComponent, raw: Any) -> Coerced:
    """Convert a raw edit into the value type of ``component``.

    Returns:
        Tuple of the coerced value and an error message. On error the value
        is None and the caller keeps the previous value.
    """
    if raw is None:
        return None, None
    coercer = _COERCERS.get(component.type)
    if coercer is None:
        return None, f"{_label(component)} does not hold a value"
    return coercer(component, raw)


def _label(component: UIComponent) -> str:
    return component.label or component.name
