"""
Flow Editor Service
One EditorSession per open editor: it owns the in-editor flow model, wires the
canvas engine, the config interpreter and the persistence coordinator together,
and is what the HTTP layer drives.
"""
import time
import uuid
from typing import Optional, List, Dict, Any, Callable, Awaitable

# Utils
from utils.log_utils import LogUtil
from utils.environment_utils import EnvironmentUtils
from utils.notification_utils import NotificationUtil
from utils.edge_utils import rekey_option_edges, prune_option_edges

# Services
from services.block_registry_service import BlockRegistryService
from services.config_schema_service import ConfigSchemaService
from services.canvas_reconciliation_service import CanvasReconciliationService
from services.flow_persistence_service import FlowPersistenceService, FlowListStore
from services.internal.flow_api_service import FlowApiService
from services.internal.reference_data_service import ReferenceDataService
from services.internal.file_upload_service import FileUploadService

# Models
from models.flow_data import Flow, FlowNode, FlowEdge, FLOW_CHANNELS
from models.canvas_data import CanvasNode, CanvasEdge, CanvasConnection, CanvasDrop
from models.block_definition_data import FieldKind
from models.reference_data import ReferenceLists, REFERENCE_FIELD_KINDS
from models.node_config_data import NodeFormView
from models.notification_data import Notification

# Exceptions
from exceptions.flow_exception import (
    FlowException,
    FlowNotFoundException,
    FlowValidationException,
    EditorSessionException,
)


class EditorSession:

    def __init__(
        self,
        session_id: str,
        organization_id: str,
        user_id: Optional[str],
        log_util: LogUtil,
        block_registry_service: BlockRegistryService,
        config_schema_service: ConfigSchemaService,
        flow_api_service: FlowApiService,
        reference_data_service: ReferenceDataService,
        file_upload_service: FileUploadService,
        flow_list_store: FlowListStore,
        autosave_debounce_seconds: float = 3.0,
        canvas_debounce_seconds: float = 0.5
    ):
        self.session_id = session_id
        self.organization_id = organization_id
        self.user_id = user_id
        self.log_util = log_util
        self.block_registry_service = block_registry_service
        self.config_schema_service = config_schema_service
        self.reference_data_service = reference_data_service
        self.file_upload_service = file_upload_service
        self.flow_list_store = flow_list_store
        self.notification_util = NotificationUtil(log_util=log_util)
        self.persistence = FlowPersistenceService(
            log_util=log_util,
            config_schema_service=config_schema_service,
            flow_api_service=flow_api_service,
            flow_list_store=flow_list_store,
            notification_util=self.notification_util,
            autosave_debounce_seconds=autosave_debounce_seconds
        )
        self.canvas = CanvasReconciliationService(
            log_util=log_util,
            block_registry_service=block_registry_service,
            config_schema_service=config_schema_service,
            on_flow_change=self._on_canvas_change,
            debounce_seconds=canvas_debounce_seconds
        )
        self.current_flow: Optional[Flow] = None
        self.selected_node_id: Optional[str] = None
        self.reference_lists = ReferenceLists()
        self.closed = False
        # Bumped whenever the open flow changes or the session closes
        self._generation = 0
        self.last_active = time.monotonic()

    @property
    def generation(self) -> int:
        return self._generation

    def touch(self):
        self.last_active = time.monotonic()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _require_open(self):
        if self.closed:
            raise EditorSessionException(message=f"Editor session {self.session_id} is closed")

    def _require_flow(self) -> Flow:
        self._require_open()
        if self.current_flow is None:
            raise EditorSessionException(message="No flow is open in this editor session")
        return self.current_flow

    def _switch_to(self, flow: Flow):
        self._generation += 1
        self.persistence.cancel_autosave()
        self.selected_node_id = None
        self.reference_lists = ReferenceLists()
        self.current_flow = flow
        self.canvas.load(flow)
        self.log_util.info(
            service_name="EditorSession",
            message=f"Session {self.session_id} opened flow {flow.identity} ({len(flow.nodes)} nodes, {len(flow.edges)} edges)"
        )

    def create_new_flow(self) -> Flow:
        """
        Open an unsaved flow from the new-flow template. It gets an id on its
        first explicit save; until then autosave leaves it alone.
        """
        self._require_open()
        flow = Flow(organization_id=self.organization_id, owner_user_id=self.user_id)
        self._switch_to(flow)
        return flow

    async def open_flow(self, flow_id: str) -> Flow:
        self._require_open()
        flow = await self.flow_list_store.find(self.organization_id, flow_id)
        self._switch_to(flow)
        return flow

    def close(self):
        if self.closed:
            return
        self._generation += 1
        self.persistence.dispose()
        self.canvas.dispose()
        self.closed = True
        self.log_util.info(service_name="EditorSession", message=f"Session {self.session_id} closed")

    # ------------------------------------------------------------------
    # Model updates
    # ------------------------------------------------------------------

    async def _on_canvas_change(self, nodes: List[FlowNode], edges: List[FlowEdge]):
        if self.closed or self.current_flow is None or self.current_flow.identity != self.canvas.flow_identity:
            return
        self.current_flow = self.current_flow.model_copy(update={"nodes": nodes, "edges": edges})
        self.persistence.schedule_autosave(self.current_flow)

    def _commit(self, flow: Flow):
        self.current_flow = flow
        self.canvas.receive_model(flow)
        self.persistence.schedule_autosave(flow)

    async def _node_for_edit(self, node_id: str) -> FlowNode:
        # Pending canvas edits reach the model before it is patched
        self._require_flow()
        await self.canvas.flush()
        node = self.current_flow.node_by_id(node_id)
        if node is None:
            raise FlowNotFoundException(message=f"Node {node_id} not found in flow {self.current_flow.identity}")
        return node

    def _patch_node(self, node_id: str, config: Dict[str, Any], label: Optional[str] = None,
                    edges: Optional[List[FlowEdge]] = None) -> FlowNode:
        flow = self.current_flow
        edges = list(flow.edges if edges is None else edges)
        node = flow.node_by_id(node_id)
        config = self.config_schema_service.normalize_config(node.type, config)
        definition = self.block_registry_service.definition_for(node.type)
        if definition is not None:
            for descriptor in definition.configFields:
                if descriptor.kind == FieldKind.OPTIONS:
                    option_count = len(self.config_schema_service.read_field(descriptor, config))
                    edges = prune_option_edges(edges, node_id, option_count)

        patched = node.model_copy(update={
            "data": node.data.model_copy(update={"config": config, "label": label or node.data.label})
        })
        nodes = [patched if existing.id == node_id else existing for existing in flow.nodes]
        self._commit(flow.model_copy(update={"nodes": nodes, "edges": edges}))
        return patched

    def update_flow_details(self, name: Optional[str] = None, description: Optional[str] = None,
                            channel: Optional[str] = None) -> Flow:
        """
        Edit the flow's header fields. Only the given fields change; an empty
        name is kept locally and reported by the explicit save's validation.
        """
        flow = self._require_flow()
        update = {}
        if name is not None:
            update["name"] = name
        if description is not None:
            update["description"] = description
        if channel is not None:
            if channel not in FLOW_CHANNELS:
                raise FlowValidationException(message=f"Canal inválido: {channel}")
            update["channel"] = channel
        if not update:
            return flow
        self._commit(flow.model_copy(update=update))
        return self.current_flow

    async def apply_node_config(self, node_id: str, config: Dict[str, Any], label: Optional[str] = None) -> FlowNode:
        """
        Optimistic local write of a node's whole config; the canvas re-renders
        through its content gate and autosave is (re)scheduled.
        """
        await self._node_for_edit(node_id)
        return self._patch_node(node_id, dict(config or {}), label)

    async def set_field(self, node_id: str, key: str, value: Any) -> FlowNode:
        node = await self._node_for_edit(node_id)
        config = self.config_schema_service.set_value(node.type, node.data.config, key, value)
        return self._patch_node(node_id, config)

    async def add_option(self, node_id: str, key: str) -> FlowNode:
        node = await self._node_for_edit(node_id)
        config = self.config_schema_service.add_option(node.type, node.data.config, key)
        return self._patch_node(node_id, config)

    async def change_option(self, node_id: str, key: str, index: int, value: str) -> FlowNode:
        node = await self._node_for_edit(node_id)
        config = self.config_schema_service.change_option(node.type, node.data.config, key, index, value)
        return self._patch_node(node_id, config)

    async def remove_option(self, node_id: str, key: str, index: int) -> FlowNode:
        """
        Remove an option and keep the node's outgoing connections on the right
        options: the removed option's edges go, later options' ports shift down.
        """
        node = await self._node_for_edit(node_id)
        config, removed = self.config_schema_service.remove_option(node.type, node.data.config, key, index)
        if not removed:
            return node
        edges = rekey_option_edges(self.current_flow.edges, node_id, index)
        return self._patch_node(node_id, config, edges=edges)

    async def toggle_weekday(self, node_id: str, key: str, day: str, checked: bool) -> FlowNode:
        node = await self._node_for_edit(node_id)
        config = self.config_schema_service.toggle_weekday(node.type, node.data.config, key, day, checked)
        return self._patch_node(node_id, config)

    async def add_horario(self, node_id: str, key: str) -> FlowNode:
        node = await self._node_for_edit(node_id)
        config = self.config_schema_service.add_horario(node.type, node.data.config, key)
        return self._patch_node(node_id, config)

    async def change_horario(self, node_id: str, key: str, index: int, end: str, value: str) -> FlowNode:
        node = await self._node_for_edit(node_id)
        config = self.config_schema_service.change_horario(node.type, node.data.config, key, index, end, value)
        return self._patch_node(node_id, config)

    async def remove_horario(self, node_id: str, key: str, index: int) -> FlowNode:
        node = await self._node_for_edit(node_id)
        config = self.config_schema_service.remove_horario(node.type, node.data.config, key, index)
        return self._patch_node(node_id, config)

    async def select_reference(self, node_id: str, key: str, item_id: str) -> FlowNode:
        node = await self._node_for_edit(node_id)
        definition = self.block_registry_service.require_definition(node.type)
        descriptor = next((field for field in definition.configFields if field.key == key), None)
        if descriptor is None or descriptor.kind not in REFERENCE_FIELD_KINDS:
            raise FlowValidationException(message=f"Field '{key}' of block '{node.type}' is not a reference selector")
        reference_kind, _ = REFERENCE_FIELD_KINDS[descriptor.kind]
        items = self.reference_lists.for_kind(reference_kind) or []
        config = self.config_schema_service.select_reference(node.type, node.data.config, key, item_id, items)
        return self._patch_node(node_id, config)

    async def upload_file(self, node_id: str, key: str, filename: str, content_type: str, content: bytes) -> FlowNode:
        node = await self._node_for_edit(node_id)
        descriptor = self.config_schema_service.file_descriptor(node.type, key)
        if not self.config_schema_service.handler_for(FieldKind.FILE).accepts(descriptor, filename, content_type):
            raise FlowValidationException(
                message=f"Arquivo '{filename}' não aceito em {descriptor.label} ({descriptor.accept})"
            )
        generation = self._generation
        file_reference = await self.file_upload_service.upload(
            organization_id=self.organization_id,
            filename=filename,
            content_type=content_type,
            content=content
        )
        if generation != self._generation:
            raise EditorSessionException(message="The flow changed while the file was uploading")
        node = await self._node_for_edit(node_id)
        config = self.config_schema_service.set_file(node.type, node.data.config, key, file_reference)
        return self._patch_node(node_id, config)

    # ------------------------------------------------------------------
    # Selection and rendering
    # ------------------------------------------------------------------

    def describe_node(self, node_id: str) -> NodeFormView:
        flow = self._require_flow()
        node = flow.node_by_id(node_id)
        if node is None:
            raise FlowNotFoundException(message=f"Node {node_id} not found in flow {flow.identity}")
        return self.config_schema_service.render(node, self.reference_lists)

    async def select_node(self, node_id: str) -> NodeFormView:
        node = await self._node_for_edit(node_id)
        config, changed = self.config_schema_service.materialize_defaults(node.type, node.data.config)
        if changed:
            self._patch_node(node_id, config)
        self.selected_node_id = node_id
        self.canvas.select_nodes([node_id])
        return self.describe_node(node_id)

    def deselect_node(self):
        self._require_flow()
        self.selected_node_id = None
        self.canvas.select_nodes([])

    # ------------------------------------------------------------------
    # Canvas events
    # ------------------------------------------------------------------

    def move_node(self, node_id: str, x: float, y: float) -> CanvasNode:
        self._require_flow()
        return self.canvas.move_node(node_id, x, y)

    def connect(self, connection: CanvasConnection) -> Optional[CanvasEdge]:
        self._require_flow()
        return self.canvas.connect(connection)

    def remove_edge(self, edge_id: str) -> bool:
        self._require_flow()
        return self.canvas.remove_edge(edge_id)

    def drop_block(self, drop: CanvasDrop) -> CanvasNode:
        self._require_flow()
        return self.canvas.drop_block(drop)

    def delete_nodes(self, node_ids: List[str]) -> int:
        self._require_flow()
        if self.selected_node_id in node_ids:
            self.selected_node_id = None
        return self.canvas.delete_nodes(node_ids)

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    async def refresh_reference_data(self) -> Optional[ReferenceLists]:
        """
        Reload the reference lists and clear selections that no longer exist.
        A response that arrives after the flow was switched or closed is dropped.

        Returns:
            The applied lists, or None when the response was discarded
        """
        self._require_flow()
        generation = self._generation
        reference_lists = await self.reference_data_service.load_all(organization_id=self.organization_id)
        if generation != self._generation or self.closed:
            self.log_util.info(
                service_name="EditorSession",
                message=f"Discarding reference data for session {self.session_id}: flow changed while loading"
            )
            return None

        self.reference_lists = reference_lists
        await self.canvas.flush()
        flow = self.current_flow
        nodes = []
        changed_any = False
        for node in flow.nodes:
            config, changed = self.config_schema_service.reconcile_references(node.type, node.data.config, reference_lists)
            if changed:
                changed_any = True
                node = node.model_copy(update={"data": node.data.model_copy(update={"config": config})})
            nodes.append(node)
        if changed_any:
            self.log_util.info(
                service_name="EditorSession",
                message=f"Reference selections reconciled for flow {flow.identity}"
            )
            self._commit(flow.model_copy(update={"nodes": nodes}))
        return reference_lists

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    async def _save_explicitly(self, save: Callable[[Flow], Awaitable[Flow]]) -> Flow:
        """
        Send the current flow through an explicit save. When nothing changed
        while the request was in flight the editor takes the saved flow as is;
        otherwise the newer local edits stay and only the server id and
        activation state are adopted, with an autosave for the edits.
        """
        self._require_flow()
        await self.canvas.flush()
        sent = self.current_flow
        generation = self._generation
        saved = await save(sent)
        if generation != self._generation or self.closed:
            return saved

        if self.current_flow is sent and not self.canvas.has_pending_changes:
            self.current_flow = saved
            self.canvas.load(saved)
            return saved

        self.log_util.info(
            service_name="EditorSession",
            message=f"Flow {saved.id} changed while saving, keeping the newer local edits"
        )
        self.current_flow = self.current_flow.model_copy(update={"id": saved.id, "active": saved.active})
        self.canvas.adopt_identity(self.current_flow)
        self.persistence.schedule_autosave(self.current_flow)
        return saved

    async def update(self) -> Flow:
        return await self._save_explicitly(self.persistence.update)

    async def publish(self) -> Flow:
        return await self._save_explicitly(self.persistence.publish)

    def notifications(self) -> List[Notification]:
        return self.notification_util.drain()


class EditorSessionRegistry:
    """In-memory editor sessions keyed by session id."""

    def __init__(
        self,
        log_util: LogUtil,
        environment_utils: EnvironmentUtils,
        block_registry_service: BlockRegistryService,
        config_schema_service: ConfigSchemaService,
        flow_api_service: FlowApiService,
        reference_data_service: ReferenceDataService,
        file_upload_service: FileUploadService,
        flow_list_store: FlowListStore
    ):
        self.log_util = log_util
        self.block_registry_service = block_registry_service
        self.config_schema_service = config_schema_service
        self.flow_api_service = flow_api_service
        self.reference_data_service = reference_data_service
        self.file_upload_service = file_upload_service
        self.flow_list_store = flow_list_store
        self.autosave_debounce_seconds = environment_utils.get_env_variable("AUTOSAVE_DEBOUNCE_SECONDS")
        self.canvas_debounce_seconds = environment_utils.get_env_variable("CANVAS_DEBOUNCE_SECONDS")
        self.idle_timeout_seconds = environment_utils.get_env_variable("SESSION_IDLE_TIMEOUT_SECONDS")
        self._sessions: Dict[str, EditorSession] = {}

    def reap_idle_sessions(self) -> int:
        """
        Close sessions the host abandoned without closing them
        """
        cutoff = time.monotonic() - self.idle_timeout_seconds
        idle = [session_id for session_id, session in self._sessions.items() if session.last_active < cutoff]
        for session_id in idle:
            self.log_util.info(service_name="EditorSessionRegistry", message=f"Closing idle session {session_id}")
            self.close_session(session_id)
        return len(idle)

    def create_session(self, organization_id: str, user_id: Optional[str] = None) -> EditorSession:
        self.reap_idle_sessions()
        session = EditorSession(
            session_id=str(uuid.uuid4()),
            organization_id=str(organization_id),
            user_id=str(user_id) if user_id is not None else None,
            log_util=self.log_util,
            block_registry_service=self.block_registry_service,
            config_schema_service=self.config_schema_service,
            flow_api_service=self.flow_api_service,
            reference_data_service=self.reference_data_service,
            file_upload_service=self.file_upload_service,
            flow_list_store=self.flow_list_store,
            autosave_debounce_seconds=self.autosave_debounce_seconds,
            canvas_debounce_seconds=self.canvas_debounce_seconds
        )
        self._sessions[session.session_id] = session
        self.log_util.info(
            service_name="EditorSessionRegistry",
            message=f"Session {session.session_id} created for organization {organization_id}"
        )
        return session

    def get_session(self, session_id: str) -> EditorSession:
        self.reap_idle_sessions()
        session = self._sessions.get(session_id)
        if session is None:
            raise FlowNotFoundException(message=f"Editor session {session_id} not found")
        session.touch()
        return session

    def close_session(self, session_id: str):
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise FlowNotFoundException(message=f"Editor session {session_id} not found")
        session.close()

    def __len__(self) -> int:
        return len(self._sessions)

    async def dispose_all(self):
        for session_id in list(self._sessions.keys()):
            try:
                self.close_session(session_id)
            except FlowException as e:
                self.log_util.warning(service_name="EditorSessionRegistry", message=f"Error closing {session_id}: {e.message}")
        self.log_util.info(service_name="EditorSessionRegistry", message="All editor sessions disposed")
