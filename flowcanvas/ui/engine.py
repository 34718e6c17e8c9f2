"""Declarative configuration UI engine.

A :class:`ConfigSession` edits one node's parameters through the form its
type declares in ``ui_config``. Edits go to a draft; saving commits the draft
to the node configuration cache and the graph. Option lists that depend on
other fields are fetched asynchronously through a shared
:class:`~flowcanvas.ui.options.DynamicOptionStore`.
"""

import copy
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from ..core.config_cache import NodeConfigCache
from ..core.exceptions import NodeNotFoundError, ValidationError
from ..core.graph_store import GRAPH_LOADED, NODE_REMOVED, GraphStore
from ..core.logging import get_logger
from ..core.translator import is_empty_value
from ..models.ui_schema import NodeUIConfig, UIComponent, UIOption, UnsupportedComponent
from .options import DynamicOptionBinding, DynamicOptionStore
from .validation import check_constraints, validate_form
from .values import coerce_value

logger = get_logger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    EDITING = "editing"
    SAVING = "saving"
    CANCELLED = "cancelled"


class RenderedField(BaseModel):
    """A component as it should be presented right now."""
    name: str
    type: str
    label: str = ""
    value: Any = None
    options: List[UIOption] = Field(default_factory=list)
    required: bool = False
    disabled: bool = False
    loading: bool = False
    supported: bool = True
    placeholder: Optional[str] = None
    message: Optional[str] = None
    errors: List[str] = Field(default_factory=list)


class RenderedGroup(BaseModel):
    name: str
    label: str = ""
    collapsible: bool = False
    collapsed: bool = False
    fields: List[RenderedField] = Field(default_factory=list)


class RenderedForm(BaseModel):
    node_id: str
    groups: List[RenderedGroup] = Field(default_factory=list)

    def field(self, name: str) -> Optional[RenderedField]:
        for group in self.groups:
            for rendered in group.fields:
                if rendered.name == name:
                    return rendered
        return None


class ConfigSession:
    """Editing session for one node's configuration panel."""

    def __init__(
        self,
        store: GraphStore,
        cache: NodeConfigCache,
        option_store: DynamicOptionStore,
        bindings: Optional[List[DynamicOptionBinding]] = None
    ):
        self.store = store
        self.cache = cache
        self.option_store = option_store
        self.bindings = list(bindings or [])
        self.node_id: Optional[str] = None
        self.ui_config = NodeUIConfig()
        self.draft: Dict[str, Any] = {}
        self.field_errors: Dict[str, List[str]] = {}
        self.state = SessionState.IDLE
        self.history: List[SessionState] = [SessionState.IDLE]
        self._current_keys: Dict[str, Optional[str]] = {}
        self._unsubscribe = None

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.EDITING

    def _transition(self, state: SessionState) -> None:
        logger.debug(f"Config session for {self.node_id}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    # ------------------------------------------------------------------
    # Lifecycle

    def open(self, node_id: str) -> Optional[NodeNotFoundError]:
        """
        Start editing ``node_id``.

        The draft is seeded from the configuration cache when it holds a
        non-empty entry for the node, otherwise from the graph.

        Returns:
            NodeNotFoundError when the node does not exist, else None
        """
        node = self.store.get_node(node_id)
        if node is None:
            return NodeNotFoundError(node_id)

        self.node_id = node_id
        self.draft = self.cache.resolve(node_id, node.parameters)
        self.ui_config = NodeUIConfig.parse_lenient(node.node_schema.ui_config or {})
        self.field_errors = {}
        self._current_keys = {}
        self._transition(SessionState.EDITING)
        self._unsubscribe = self.option_store.subscribe(self._on_options)
        self._refresh_options()
        return None

    def _detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def cancel(self) -> None:
        """Discard the draft."""
        if self.state != SessionState.EDITING:
            return
        self._detach()
        self._transition(SessionState.CANCELLED)
        self.draft = {}
        self.field_errors = {}
        self._transition(SessionState.IDLE)

    close = cancel

    def save(self) -> Union[Dict[str, Any], ValidationError]:
        """
        Validate and commit the draft.

        Returns:
            The committed parameters, or a ValidationError naming the fields
            that block saving; the session stays in editing in that case
        """
        if self.state != SessionState.EDITING:
            return ValidationError("No configuration is being edited", node_id=self.node_id)

        self._transition(SessionState.SAVING)
        errors = self.validate()
        if errors:
            self.field_errors = errors
            self._transition(SessionState.EDITING)
            first = next(iter(errors.values()))[0]
            return ValidationError(first, node_id=self.node_id).add_details(fields=errors)

        committed = copy.deepcopy(self.draft)
        self.cache.save(self.node_id, committed)
        result = self.store.update_node_parameters(self.node_id, committed)
        if isinstance(result, NodeNotFoundError):
            self._transition(SessionState.EDITING)
            return ValidationError(result.message, node_id=self.node_id)

        self._detach()
        self._transition(SessionState.IDLE)
        logger.info(f"Saved configuration for node {self.node_id}")
        return committed

    # ------------------------------------------------------------------
    # Editing

    def value_of(self, component: Union[UIComponent, UnsupportedComponent]) -> Any:
        value = self.draft.get(component.name)
        if value is None and isinstance(component, UIComponent):
            return component.default_value
        return value

    def current_values(self) -> Dict[str, Any]:
        values = {}
        for component in self.ui_config.iter_components():
            if isinstance(component, UIComponent) and component.holds_value:
                values[component.name] = self.value_of(component)
        for name, value in self.draft.items():
            values.setdefault(name, value)
        return values

    def set_value(self, name: str, raw: Any) -> List[str]:
        """
        Apply an edit to the draft.

        Values that cannot be coerced to the component's type are ignored and
        the previous value is kept.

        Returns:
            Advisory problems for the field; they block only at save time
        """
        if self.state != SessionState.EDITING:
            logger.debug(f"Ignoring edit of '{name}' outside an editing session")
            return []

        component = self.ui_config.get_component(name)
        if isinstance(component, UnsupportedComponent) or (
            isinstance(component, UIComponent) and not component.holds_value
        ):
            return [f"{name} does not hold a value"]

        if component is None:
            self.draft[name] = copy.deepcopy(raw)
            problems: List[str] = []
        else:
            value, error = coerce_value(component, raw)
            if error:
                logger.debug(f"Rejected value for '{name}': {error}")
                return [error]
            self.draft[name] = value
            problems = check_constraints(component, value)

        if problems:
            self.field_errors[name] = problems
        else:
            self.field_errors.pop(name, None)

        self._refresh_options()
        return problems

    def validate(self) -> Dict[str, List[str]]:
        return validate_form(self.ui_config, self.draft)

    # ------------------------------------------------------------------
    # Dynamic options

    def _bound(self) -> List[DynamicOptionBinding]:
        return [b for b in self.bindings if self.ui_config.get_component(b.consumer) is not None]

    def _refresh_options(self) -> None:
        values = self.current_values()
        for binding in self._bound():
            key = binding.key_for(values)
            self._current_keys[binding.consumer] = key
            if key is None:
                continue
            if self.option_store.has(key):
                self._reconcile(binding, key)
            else:
                self.option_store.request(key, binding.loader(values))

    def _on_options(self, key: str) -> None:
        if not self.is_active:
            return
        for binding in self._bound():
            if self._current_keys.get(binding.consumer) == key:
                self._reconcile(binding, key)

    def _reconcile(self, binding: DynamicOptionBinding, key: str) -> None:
        """Clear the consumer value when a non-empty list arrives without it."""
        options = self.option_store.get(key)
        if not options:
            return
        value = self.draft.get(binding.consumer)
        if is_empty_value(value):
            return
        allowed = {option.value for option in options}
        selected = value if isinstance(value, list) else [value]
        if any(item not in allowed for item in selected):
            logger.info(f"Clearing '{binding.consumer}' value {value!r}; not offered for {key}")
            self.draft[binding.consumer] = ""

    # ------------------------------------------------------------------
    # Rendering

    def render(self) -> RenderedForm:
        """Snapshot of the form for presentation; hidden components are omitted."""
        form = RenderedForm(node_id=self.node_id or "")
        bindings = {b.consumer: b for b in self._bound()}
        for group in self.ui_config.groups:
            rendered_group = RenderedGroup(
                name=group.name,
                label=group.label,
                collapsible=group.collapsible,
                collapsed=group.collapsed
            )
            for component in group.components:
                if not component.visible:
                    continue
                rendered_group.fields.append(self._render_component(component, bindings))
            form.groups.append(rendered_group)
        return form

    def _render_component(self, component, bindings: Dict[str, DynamicOptionBinding]) -> RenderedField:
        if isinstance(component, UnsupportedComponent):
            return RenderedField(
                name=component.name,
                type=component.original_type or "unsupported",
                supported=False,
                disabled=True,
                message=component.reason or f"Unknown component type: {component.original_type}"
            )

        rendered = RenderedField(
            name=component.name,
            type=component.type,
            label=component.label,
            value=self.value_of(component),
            options=list(component.options),
            required=component.required,
            disabled=component.disabled,
            placeholder=component.placeholder,
            errors=list(self.field_errors.get(component.name, []))
        )

        binding = bindings.get(component.name)
        if binding is not None:
            key = self._current_keys.get(component.name)
            if key is None:
                rendered.disabled = True
                rendered.placeholder = binding.placeholder
                rendered.options = []
            else:
                rendered.loading = self.option_store.is_loading(key)
                dynamic = self.option_store.get(key)
                if dynamic is not None:
                    rendered.options = dynamic
                elif not component.options:
                    rendered.options = []
                if rendered.loading:
                    rendered.disabled = True
                    rendered.placeholder = binding.loading_text
        return rendered


class ConfigPanelManager:
    """Keeps at most one configuration session open."""

    def __init__(
        self,
        store: GraphStore,
        cache: NodeConfigCache,
        option_store: DynamicOptionStore,
        bindings: Optional[List[DynamicOptionBinding]] = None
    ):
        self.store = store
        self.cache = cache
        self.option_store = option_store
        self.bindings = list(bindings or [])
        self.active: Optional[ConfigSession] = None
        store.subscribe(self._on_graph_event)

    def open(self, node_id: str) -> Union[ConfigSession, NodeNotFoundError]:
        """Open ``node_id``'s panel, closing any other panel first."""
        self.close()
        session = ConfigSession(self.store, self.cache, self.option_store, self.bindings)
        error = session.open(node_id)
        if error is not None:
            return error
        self.active = session
        self.store.select_node(node_id)
        return session

    def close(self) -> None:
        if self.active is not None:
            self.active.cancel()
            self.active = None

    def _on_graph_event(self, event: str, payload: Dict[str, Any]) -> None:
        if self.active is None:
            return
        if event == GRAPH_LOADED:
            self.close()
        elif event == NODE_REMOVED and payload["node"].id == self.active.node_id:
            self.close()
