"""Editor controller tying the graph engine to the backend."""

from typing import Any, Dict, Optional

from .config import AppConfig, get_config
from .models.core import NodeRole
from .core.change_detector import ChangeDetector, snapshot
from .core.config_cache import NodeConfigCache
from .core.exceptions import NetworkError, WorkflowEngineError
from .core.execution import ConversationHistory, ExecutionReport, apply_results, interpret_execution_response
from .core.graph_store import GraphStore
from .core.hydration import UNTITLED_WORKFLOW, HydratedWorkflow, WorkflowLoader, persist
from .core.identity import NodeIdFactory
from .core.logging import clear_logging_context, get_logger, set_logging_context
from .core.notifications import NotificationCenter, NotificationLevel, Notifier
from .core.translator import DefaultPolicy, ExecutionTranslator, TypeRegistry
from .ui.engine import ConfigPanelManager
from .ui.options import DynamicOptionStore, default_bindings

logger = get_logger(__name__)


class WorkflowSession:
    """One open workflow in the editor.

    Owns the scoped stores (graph, configuration cache, option lists) and
    evicts them whenever a different workflow is opened. Failed mutating
    actions are reported through the notification center instead of raised.
    """

    def __init__(
        self,
        client,
        config: Optional[AppConfig] = None,
        notifier: Optional[Notifier] = None,
        id_factory: Optional[NodeIdFactory] = None,
        registry: Optional[TypeRegistry] = None
    ):
        self.client = client
        self.config = config or get_config()
        self.notifications = NotificationCenter(notifier)
        self.cache = NodeConfigCache(self.config.config_cache_max_entries)
        self.store = GraphStore(
            config_cache=self.cache,
            id_factory=id_factory,
            enforce_single_inbound=self.config.enforce_single_inbound
        )
        self.detector = ChangeDetector()
        self.loader = WorkflowLoader(self.store, self.detector)
        self.option_store = DynamicOptionStore()
        self.panels = ConfigPanelManager(self.store, self.cache, self.option_store, default_bindings(client))
        self.translator = ExecutionTranslator(
            registry=registry,
            policy=DefaultPolicy.from_config(self.config),
            require_connectivity=self.config.require_connectivity
        )
        self.conversation = ConversationHistory()
        self.workflow_id: Optional[str] = None
        self.name = UNTITLED_WORKFLOW
        self.last_report: Optional[ExecutionReport] = None

    # ------------------------------------------------------------------
    # Catalogue and workflow switching

    async def load_catalog(self) -> int:
        """Fetch node type schemas; returns how many are available."""
        schemas = await self.client.get_node_schemas()
        self.store.catalog.update(schemas)
        return len(schemas)

    def _evict(self) -> None:
        self.panels.close()
        self.option_store.clear()
        self.cache.clear()
        self.conversation.clear()
        self.last_report = None

    def new_workflow(self) -> None:
        self._evict()
        self.loader.forget()
        self.store.clear()
        self.detector.reset()
        self.workflow_id = None
        self.name = UNTITLED_WORKFLOW

    def has_unsaved_changes(self) -> bool:
        return self.detector.has_unsaved_changes(self.store.nodes, self.store.edges)

    async def open_workflow(self, workflow_id: str) -> Optional[HydratedWorkflow]:
        """Load a persisted workflow; a no-op when it is already open."""
        if workflow_id == self.loader.loaded_workflow_id:
            return None
        try:
            record = await self.client.get_workflow(workflow_id)
        except NetworkError as e:
            self.notifications.notify_error("Failed to load workflow", e)
            return None
        if record is None:
            self.notifications.notify(NotificationLevel.ERROR, "Workflow not found", workflow_id)
            return None

        self._evict()
        hydrated = self.loader.load_workflow(workflow_id, record)
        if hydrated is not None:
            self.workflow_id = workflow_id
            self.name = hydrated.name
            set_logging_context(workflow_id=workflow_id)
        return hydrated

    async def open_template(self, template_id: str, template: Dict[str, Any]) -> Optional[HydratedWorkflow]:
        """Start an unsaved workflow from a template's graph."""
        if template_id == self.loader.loaded_template_id:
            return None
        if not self.store.catalog:
            await self.load_catalog()
        self._evict()
        hydrated = self.loader.load_template(template_id, template)
        if hydrated is not None:
            self.workflow_id = None
            self.name = hydrated.name
            clear_logging_context()
        return hydrated

    def import_file(self, payload: Dict[str, Any]) -> Optional[HydratedWorkflow]:
        """Replace the canvas with an imported workflow file; the result is unsaved."""
        self._evict()
        hydrated = self.loader.load_file(payload)
        if hydrated is not None:
            self.workflow_id = None
            self.name = hydrated.name
            clear_logging_context()
        return hydrated

    def export_file(self) -> Dict[str, Any]:
        payload = persist(self.store.nodes, self.store.edges)
        payload["name"] = self.name
        return payload

    # ------------------------------------------------------------------
    # Save and deploy

    async def save(self, name: Optional[str] = None) -> bool:
        """
        Create or update the workflow in the backend.

        Args:
            name: New workflow name, if renaming

        Returns:
            bool: True when the backend accepted the save
        """
        if name:
            self.name = name
        nodes, edges = self.store.nodes, self.store.edges
        data = persist(nodes, edges)
        fingerprint = snapshot(nodes, edges)
        try:
            if self.workflow_id:
                await self.client.update_workflow(self.workflow_id, name=self.name, data=data)
            else:
                created = await self.client.create_workflow(self.name, data)
                self.workflow_id = created.get("id")
                self.loader.loaded_workflow_id = self.workflow_id
        except NetworkError as e:
            logger.error(f"Failed to save workflow '{self.name}': {e.message}")
            self.notifications.notify_error("Failed to save workflow", e)
            return False

        self.detector.commit_fingerprint(fingerprint)
        self.notifications.notify(NotificationLevel.SUCCESS, "Workflow saved", self.name)
        logger.info(f"Saved workflow {self.workflow_id}")
        return True

    async def deploy(self, name: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Save pending changes, then deploy the workflow."""
        if self.workflow_id is None or self.has_unsaved_changes():
            if not await self.save():
                return None
        try:
            deployment = await self.client.create_deployment(self.workflow_id, name=name or self.name)
        except NetworkError as e:
            logger.error(f"Failed to deploy workflow {self.workflow_id}: {e.message}")
            self.notifications.notify_error("Failed to deploy workflow", e)
            return None
        self.notifications.notify(NotificationLevel.SUCCESS, "Workflow deployed", self.name)
        return deployment

    # ------------------------------------------------------------------
    # Execution

    async def run(self, query: Optional[str] = None) -> ExecutionReport:
        """
        Translate and execute the workflow.

        Args:
            query: Follow-up message of an ongoing conversation; replaces the
                entry node's query before running

        Returns:
            ExecutionReport describing the outcome
        """
        continued = bool(query)
        entry = self.store.find_role(NodeRole.ENTRY)
        if continued and entry is not None:
            self.store.update_node_parameters(entry.id, {"query": query})
            self.conversation.add_user(query)

        result = self.translator.translate(self.store.nodes, self.store.edges)
        if not result.is_valid:
            for error in result.errors:
                self.notifications.notify_error("Cannot run workflow", error)
            report = ExecutionReport(message=result.errors[0].message, errors=list(result.errors))
            self.last_report = report
            return report

        current_query = ""
        if entry is not None:
            current_query = str(result.dag.nodes[entry.id].parameters.get("query") or "")

        self.store.set_execution_overlay(
            [n.id for n in self.store.nodes],
            [e.id for e in self.store.edges]
        )
        try:
            status_code, body = await self.client.execute(result.dag)
        except NetworkError as e:
            self.notifications.notify_error("Execution Failed", e)
            report = ExecutionReport(message=e.message, errors=[e])
            self.last_report = report
            return report
        finally:
            self.store.clear_execution_overlay()

        report = interpret_execution_response(status_code, body)
        self.last_report = report
        self._announce(report)

        if report.response_inputs:
            preview = apply_results(self.store, report)
            if preview is not None:
                if continued:
                    self.conversation.add_bot(preview)
                else:
                    self.conversation.start(current_query, preview)
        return report

    def _announce(self, report: ExecutionReport) -> None:
        if report.missing_credentials:
            self.notifications.notify(
                NotificationLevel.ERROR, "Missing Required Credentials", report.summary(),
                error_code="MissingCredentialsError"
            )
        elif report.node_errors:
            error: WorkflowEngineError = report.errors[0]
            self.notifications.notify(NotificationLevel.ERROR, report.summary(), error.message, error.error_code)
        elif report.success:
            self.notifications.notify(NotificationLevel.SUCCESS, report.summary())
        else:
            self.notifications.notify(NotificationLevel.ERROR, "Execution Failed", report.message)
