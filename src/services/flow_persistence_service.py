import asyncio
import copy
import traceback
from typing import Optional, List, Dict, Any

# Utils
from utils.log_utils import LogUtil
from utils.debounce_utils import DebouncedTask
from utils.edge_utils import dedupe_edges
from utils.notification_utils import NotificationUtil

# Services
from services.config_schema_service import ConfigSchemaService
from services.internal.flow_api_service import FlowApiService

# Models
from models.flow_data import Flow, FlowNode, FlowNodeData, FlowEdge

# Exceptions
from exceptions.flow_exception import (
    FlowException,
    FlowServiceException,
    FlowNotFoundException,
    FlowValidationException,
    FlowConflictException,
)


def normalize_flow(flow: Flow) -> Flow:
    """
    Reduce a flow to exactly what is persisted: nodes carry only
    {id, type, position, data: {label, config}} and edges are deduplicated and
    carry only {id, source, target, label, type, sourceHandle, targetHandle}.
    """
    nodes = [
        FlowNode(
            id=node.id,
            type=node.type,
            position=node.position.model_copy(),
            data=FlowNodeData(label=node.data.label, config=copy.deepcopy(node.data.config or {})),
        )
        for node in flow.nodes
    ]
    edges = [
        FlowEdge(
            id=edge.id,
            source=edge.source,
            target=edge.target,
            label=edge.label,
            type=edge.type,
            sourceHandle=edge.sourceHandle,
            targetHandle=edge.targetHandle,
        )
        for edge in dedupe_edges(flow.edges)
    ]
    return flow.model_copy(update={"nodes": nodes, "edges": edges})


class FlowListStore:
    """
    Cached flow list per organization. After any mutation the list is
    invalidated and fetched again rather than patched locally.
    """
    def __init__(self, log_util: LogUtil, flow_api_service: FlowApiService):
        self.log_util = log_util
        self.flow_api_service = flow_api_service
        self._flows: Dict[str, List[Flow]] = {}
        self._stale: set = set()

    def invalidate(self, organization_id: str):
        self._stale.add(organization_id)

    def is_stale(self, organization_id: str) -> bool:
        return organization_id in self._stale or organization_id not in self._flows

    async def load(self, organization_id: str) -> List[Flow]:
        flows = await self.flow_api_service.list_flows(organization_id=organization_id)
        self._flows[organization_id] = flows
        self._stale.discard(organization_id)
        return list(flows)

    async def get(self, organization_id: str) -> List[Flow]:
        if self.is_stale(organization_id):
            return await self.load(organization_id)
        return list(self._flows[organization_id])

    def cached(self, organization_id: str, flow_id: Optional[str]) -> Optional[Flow]:
        """
        Last loaded copy of a flow, without fetching
        """
        for flow in self._flows.get(organization_id) or []:
            if flow.id == flow_id:
                return flow
        return None

    async def find(self, organization_id: str, flow_id: str) -> Flow:
        for flow in await self.get(organization_id):
            if flow.id == str(flow_id):
                return flow
        # The cache may predate the flow; one fresh fetch before giving up
        for flow in await self.load(organization_id):
            if flow.id == str(flow_id):
                return flow
        raise FlowNotFoundException(message=f"Flow {flow_id} not found")

    async def create_flow(self, organization_id: str, owner_user_id: Optional[str], name: Optional[str] = None,
                          channel: str = "whatsapp") -> Flow:
        """
        Persist an empty flow from the new-flow template and reload the list
        """
        template = Flow(
            name=name or "Novo Fluxo",
            channel=channel,
            organization_id=organization_id,
            owner_user_id=owner_user_id,
        )
        flow_id = await self.flow_api_service.save_flow(template.to_payload())
        self.log_util.info(service_name="FlowListStore", message=f"Created flow {flow_id} for organization {organization_id}")
        await self.load(organization_id)
        return template.model_copy(update={"id": flow_id})

    async def delete_flow(self, organization_id: str, flow_id: str):
        await self.flow_api_service.delete_flow(flow_id=flow_id, organization_id=organization_id)
        await self.load(organization_id)

    async def toggle_active(self, organization_id: str, flow_id: str, active: bool) -> List[Flow]:
        try:
            await self.flow_api_service.toggle_active(flow_id=flow_id, organization_id=organization_id, active=active)
        finally:
            # A refused activation still reloads so the list shows the server's truth
            self.invalidate(organization_id)
        return await self.load(organization_id)


class FlowPersistenceService:
    """
    Persistence Coordinator for one editor session.

    Three tiers, all serialised through one lock so an in-flight autosave can
    never land after an explicit save:
      - autosave: debounced and silent, failures only raise an indicator
      - update: validated explicit save that always reports the outcome
      - publish: explicit save with the flow switched to active
    """

    def __init__(
        self,
        log_util: LogUtil,
        config_schema_service: ConfigSchemaService,
        flow_api_service: FlowApiService,
        flow_list_store: FlowListStore,
        notification_util: NotificationUtil,
        autosave_debounce_seconds: float = 3.0
    ):
        self.log_util = log_util
        self.config_schema_service = config_schema_service
        self.flow_api_service = flow_api_service
        self.flow_list_store = flow_list_store
        self.notification_util = notification_util
        self._save_lock = asyncio.Lock()
        self._autosave = DebouncedTask(
            log_util=log_util,
            name="autosave",
            delay_seconds=autosave_debounce_seconds,
            callback=self.autosave
        )

    @property
    def autosave_pending(self) -> bool:
        return self._autosave.pending

    def schedule_autosave(self, flow: Flow):
        """
        Restart the autosave window with the latest flow. Flows that were
        never saved have no id and are left to the explicit save.
        """
        if not flow.id:
            return
        self._autosave.schedule(flow)

    def cancel_autosave(self):
        self._autosave.cancel()

    async def flush_autosave(self):
        await self._autosave.flush()

    @staticmethod
    def _payload(flow: Flow, include_active: bool = False) -> Dict[str, Any]:
        payload = normalize_flow(flow).to_payload()
        if flow.id and not include_active:
            # Activation of a stored flow belongs to the server; only publish and toggle change it
            payload.pop("ativo", None)
        return payload

    async def autosave(self, flow: Flow) -> bool:
        if not flow.id:
            return False
        payload = self._payload(flow)
        async with self._save_lock:
            try:
                await self.flow_api_service.save_flow(payload)
            except FlowException as e:
                self.log_util.warning(
                    service_name="FlowPersistenceService",
                    message=f"Autosave of flow {flow.id} failed: {e.message}"
                )
                self.notification_util.indicator(title="Falha no salvamento automático", description=e.message)
                return False
            except Exception as e:
                self.log_util.error(
                    service_name="FlowPersistenceService",
                    message=f"Autosave of flow {flow.id} failed: {str(e)}"
                )
                self.log_util.error(service_name="FlowPersistenceService", message=f"Traceback: {traceback.format_exc()}")
                self.notification_util.indicator(title="Falha no salvamento automático", description=str(e))
                return False
        self.flow_list_store.invalidate(flow.organization_id)
        self.log_util.debug(service_name="FlowPersistenceService", message=f"Autosaved flow {flow.id}")
        return True

    def _validate(self, flow: Flow):
        issues = self.config_schema_service.validate_flow(flow)
        if issues:
            summary = "; ".join(issue.message for issue in issues[:5])
            self.notification_util.error(title="Verifique a configuração do fluxo", description=summary)
            raise FlowValidationException(message=f"Flow has {len(issues)} configuration issue(s)", issues=issues)

    async def _save(self, flow: Flow, title_ok: str, title_error: str, include_active: bool = False) -> Flow:
        payload = self._payload(flow, include_active=include_active)
        async with self._save_lock:
            try:
                flow_id = await self.flow_api_service.save_flow(payload)
            except FlowConflictException as e:
                self.notification_util.error(title=title_error, description=e.message)
                raise
            except FlowException as e:
                self.log_util.error(service_name="FlowPersistenceService", message=f"{title_error}: {e.message}")
                self.notification_util.error(title=title_error, description=e.message)
                raise
            except Exception as e:
                self.log_util.error(service_name="FlowPersistenceService", message=f"{title_error}: {str(e)}")
                self.notification_util.error(title=title_error, description=str(e))
                raise FlowServiceException(message=str(e))

        await self._reload_list(flow.organization_id)
        active = payload.get("ativo")
        if active is None:
            stored = self.flow_list_store.cached(flow.organization_id, flow_id)
            active = stored.active if stored is not None else flow.active
        saved = Flow.model_validate({**payload, "id": flow_id, "ativo": active})
        self.notification_util.success(title=title_ok, description=saved.name)
        self.log_util.info(service_name="FlowPersistenceService", message=f"Saved flow {flow_id} ({len(saved.nodes)} nodes)")
        return saved

    async def _reload_list(self, organization_id: str):
        try:
            await self.flow_list_store.load(organization_id)
        except FlowException as e:
            self.flow_list_store.invalidate(organization_id)
            self.log_util.warning(service_name="FlowPersistenceService", message=f"Flow list reload failed: {e.message}")

    async def _explicit_save(self, flow: Flow, sent: Flow, title_ok: str, title_error: str,
                             include_active: bool = False) -> Flow:
        # A rejected explicit save leaves the pending autosave in place;
        # one that is sent replaces it and restores it if the request fails
        self._validate(flow)
        autosave_was_pending = self.autosave_pending
        self.cancel_autosave()
        try:
            return await self._save(sent, title_ok=title_ok, title_error=title_error, include_active=include_active)
        except FlowException:
            if autosave_was_pending:
                self.schedule_autosave(flow)
            raise

    async def update(self, flow: Flow) -> Flow:
        """
        Explicit save. Supersedes any pending autosave; on success the returned
        flow is exactly the payload that was sent, plus the server id and the
        activation state the server holds.
        """
        return await self._explicit_save(flow, flow, title_ok="Fluxo salvo", title_error="Erro ao salvar fluxo")

    async def publish(self, flow: Flow) -> Flow:
        """
        Save the flow as active. A conflict with another active flow is
        reported verbatim and the caller keeps its local flow.
        """
        if not flow.id:
            self.notification_util.error(title="Erro ao publicar fluxo", description="Salve o fluxo antes de publicar")
            raise FlowValidationException(message="Flow must be saved before it can be published")
        return await self._explicit_save(
            flow,
            flow.model_copy(update={"active": True}),
            title_ok="Fluxo publicado",
            title_error="Erro ao publicar fluxo",
            include_active=True
        )

    def dispose(self):
        self._autosave.cancel()
