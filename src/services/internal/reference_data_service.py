import asyncio
from typing import Optional, List, Dict, Any
import httpx

# Utils
from utils.log_utils import LogUtil
from utils.environment_utils import EnvironmentUtils

# Models
from models.reference_data import ReferenceItem, ReferenceKind, ReferenceLists

# Exceptions
from exceptions.flow_exception import FlowApiException

REFERENCE_ENDPOINTS = {
    ReferenceKind.AGENT: "/api/users",
    ReferenceKind.DEPARTMENT: "/api/departments/list",
    ReferenceKind.TEAM: "/api/teams",
    ReferenceKind.AI_AGENT: "/api/ai/agents",
}

# Collection key each endpoint wraps its list in
REFERENCE_COLLECTION_KEYS = ("users", "departments", "teams", "agents", "data", "items")


class ReferenceDataService:
    """Loads the agent, department, team and AI agent lists offered by reference selectors."""
    def __init__(
        self,
        log_util: LogUtil,
        environment_utils: EnvironmentUtils,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.log_util = log_util
        self.reference_api_url = environment_utils.get_env_variable("REFERENCE_API_URL")
        self.timeout = environment_utils.get_env_variable("HTTP_TIMEOUT_SECONDS")
        self.transport = transport

    @staticmethod
    def normalize_items(body: Any) -> List[ReferenceItem]:
        """
        Accepts a bare list or a {<collection>: [...]} envelope; entries without
        an id are skipped and the display name falls back to nome/email.
        """
        raw_items = body
        if isinstance(body, dict):
            raw_items = next((body[key] for key in REFERENCE_COLLECTION_KEYS if isinstance(body.get(key), list)), [])
        items = []
        for raw in raw_items or []:
            if not isinstance(raw, dict) or raw.get("id") is None:
                continue
            name = raw.get("name") or raw.get("nome") or raw.get("full_name") or raw.get("email") or str(raw["id"])
            items.append(ReferenceItem(
                id=raw["id"],
                name=name,
                description=raw.get("description") or raw.get("descricao"),
                email=raw.get("email"),
            ))
        return items

    async def load(self, kind: ReferenceKind, organization_id: str) -> List[ReferenceItem]:
        path = REFERENCE_ENDPOINTS[kind]
        try:
            async with httpx.AsyncClient(base_url=self.reference_api_url, timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(path, params={"organization_id": organization_id})
        except httpx.HTTPError as e:
            raise FlowApiException(message=f"Reference API unreachable for {kind.value}: {str(e)}")
        if not response.is_success:
            raise FlowApiException(
                message=f"Reference API {path} failed with status {response.status_code}",
                upstream_status=response.status_code
            )
        return self.normalize_items(response.json())

    async def load_all(self, organization_id: str) -> ReferenceLists:
        """
        Fetch the four lists concurrently. A failing list is logged and left
        as None so the rest still reach the editor.
        """
        kinds = list(REFERENCE_ENDPOINTS.keys())
        results = await asyncio.gather(
            *(self.load(kind, organization_id) for kind in kinds),
            return_exceptions=True
        )
        loaded: Dict[ReferenceKind, Optional[List[ReferenceItem]]] = {}
        for kind, result in zip(kinds, results):
            if isinstance(result, Exception):
                self.log_util.warning(
                    service_name="ReferenceDataService",
                    message=f"Could not load {kind.value} list: {str(result)}"
                )
                loaded[kind] = None
            else:
                loaded[kind] = result
        return ReferenceLists(
            agents=loaded[ReferenceKind.AGENT],
            departments=loaded[ReferenceKind.DEPARTMENT],
            teams=loaded[ReferenceKind.TEAM],
            ai_agents=loaded[ReferenceKind.AI_AGENT],
        )
