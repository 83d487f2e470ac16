from typing import Optional, List, Dict, Any
import httpx

# Utils
from utils.log_utils import LogUtil
from utils.environment_utils import EnvironmentUtils

# Models
from models.flow_data import Flow

# Exceptions
from exceptions.flow_exception import FlowApiException, FlowConflictException

# Prefix of the server's refusal when another flow is already active
ACTIVE_FLOW_CONFLICT_MARKER = "Já existe um fluxo ativo"


class FlowApiService:
    """Client for the external Flow API that owns flow persistence."""
    def __init__(
        self,
        log_util: LogUtil,
        environment_utils: EnvironmentUtils,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.log_util = log_util
        self.flow_api_url = environment_utils.get_env_variable("FLOW_API_URL")
        self.timeout = environment_utils.get_env_variable("HTTP_TIMEOUT_SECONDS")
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.flow_api_url, timeout=self.timeout, transport=self.transport)

    def _parse(self, response: httpx.Response, action: str) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.is_success and body.get("success", True):
            return body

        message = body.get("error") or body.get("message") or f"Flow API {action} failed with status {response.status_code}"
        if ACTIVE_FLOW_CONFLICT_MARKER in message:
            raise FlowConflictException(message=message)
        raise FlowApiException(message=message, upstream_status=response.status_code)

    async def _send(self, method: str, path: str, action: str, **kwargs) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            self.log_util.error(service_name="FlowApiService", message=f"Flow API {action} unreachable: {str(e)}")
            raise FlowApiException(message=f"Flow API unreachable: {str(e)}")
        return self._parse(response, action)

    async def list_flows(self, organization_id: str) -> List[Flow]:
        body = await self._send("GET", "/api/flows/list", "list", params={"organization_id": organization_id})
        flows = [Flow.model_validate(flow) for flow in body.get("flows") or []]
        self.log_util.info(
            service_name="FlowApiService",
            message=f"Loaded {len(flows)} flow(s) for organization {organization_id}"
        )
        return flows

    async def save_flow(self, payload: Dict[str, Any]) -> str:
        """
        Create or update a flow. Returns the id the server holds it under.
        """
        body = await self._send("POST", "/api/flows/save", "save", json={"flow": payload})
        saved = body.get("flow") or {}
        flow_id = body.get("id") or saved.get("id") or payload.get("id")
        if flow_id is None:
            raise FlowApiException(message="Flow API save response carried no flow id")
        return str(flow_id)

    async def delete_flow(self, flow_id: str, organization_id: str):
        await self._send(
            "DELETE", "/api/flows/delete", "delete",
            json={"id": flow_id, "organization_id": organization_id}
        )
        self.log_util.info(service_name="FlowApiService", message=f"Deleted flow {flow_id}")

    async def toggle_active(self, flow_id: str, organization_id: str, active: bool):
        await self._send(
            "POST", "/api/flows/toggle-active", "toggle-active",
            json={"id": flow_id, "organization_id": organization_id, "ativo": active}
        )
        self.log_util.info(service_name="FlowApiService", message=f"Flow {flow_id} ativo={active}")
