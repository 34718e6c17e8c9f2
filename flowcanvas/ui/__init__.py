"""Declarative configuration UI engine."""

from .engine import ConfigSession, ConfigPanelManager, SessionState, RenderedForm, RenderedField
from .options import DynamicOptionStore, DynamicOptionBinding, model_binding, collection_binding, default_bindings
from .values import FileReference, coerce_value
from .validation import validate_component, validate_form

__all__ = [
    "ConfigSession",
    "ConfigPanelManager",
    "SessionState",
    "RenderedForm",
    "RenderedField",
    "DynamicOptionStore",
    "DynamicOptionBinding",
    "model_binding",
    "collection_binding",
    "default_bindings",
    "FileReference",
    "coerce_value",
    "validate_component",
    "validate_form",
]
