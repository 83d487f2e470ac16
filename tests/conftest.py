"""Pytest configuration and fixtures."""
import asyncio
import copy
import os
from typing import Dict, List, Optional

import pytest

# Keep test runs off any real collaborators
os.environ.pop("LOKI_URL", None)
os.environ.pop("SESSION_IDLE_TIMEOUT_SECONDS", None)
os.environ["FLOW_API_URL"] = "http://flow-api.test"
os.environ["REFERENCE_API_URL"] = "http://reference-api.test"
os.environ["UPLOAD_API_URL"] = "http://upload-api.test"

from utils.log_utils import LogUtil
from utils.environment_utils import EnvironmentUtils
from services.block_registry_service import BlockRegistryService
from services.config_schema_service import ConfigSchemaService
from services.flow_persistence_service import FlowListStore
from services.flow_editor_service import EditorSession
from models.flow_data import Flow
from models.node_config_data import FileReference
from models.reference_data import ReferenceItem, ReferenceLists
from exceptions.flow_exception import FlowConflictException, FlowException

ORGANIZATION_ID = "org-1"


class FakeFlowApiService:
    """In-memory Flow API with the server's single-active-flow rule."""

    def __init__(self):
        self.flows: Dict[str, dict] = {}
        self.saved_payloads: List[dict] = []
        self.list_calls = 0
        self.fail_next_save: Optional[FlowException] = None
        self.save_delay = 0.0
        self._next_id = 1

    def seed(self, flow: dict) -> dict:
        flow = copy.deepcopy(flow)
        self.flows[flow["id"]] = flow
        return flow

    async def list_flows(self, organization_id: str) -> List[Flow]:
        self.list_calls += 1
        return [
            Flow.model_validate(copy.deepcopy(flow))
            for flow in self.flows.values()
            if flow.get("organization_id") == organization_id
        ]

    def _check_single_active(self, flow_id: Optional[str], organization_id: str):
        for other in self.flows.values():
            if other["id"] != flow_id and other.get("organization_id") == organization_id and other.get("ativo"):
                raise FlowConflictException(message="Já existe um fluxo ativo para esta organização.")

    async def save_flow(self, payload: dict) -> str:
        if self.save_delay:
            await asyncio.sleep(self.save_delay)
        if self.fail_next_save is not None:
            error, self.fail_next_save = self.fail_next_save, None
            raise error
        payload = copy.deepcopy(payload)
        if payload.get("ativo"):
            self._check_single_active(payload.get("id"), payload.get("organization_id"))
        flow_id = payload.get("id")
        if not flow_id:
            flow_id = f"flow-{self._next_id}"
            self._next_id += 1
        payload["id"] = flow_id
        self.saved_payloads.append(payload)
        # Keys left out of an update keep their stored value
        self.flows[flow_id] = {**self.flows.get(flow_id, {}), **copy.deepcopy(payload)}
        return flow_id

    async def delete_flow(self, flow_id: str, organization_id: str):
        self.flows.pop(flow_id, None)

    async def toggle_active(self, flow_id: str, organization_id: str, active: bool):
        if active:
            self._check_single_active(flow_id, organization_id)
        self.flows[flow_id]["ativo"] = active


class FakeReferenceDataService:
    """Serves fixed reference lists; a gate event lets tests hold a response back."""

    def __init__(self):
        self.lists = ReferenceLists(
            agents=[ReferenceItem(id="7", name="Ana"), ReferenceItem(id="8", name="Bruno")],
            departments=[ReferenceItem(id="d1", name="Vendas")],
            teams=[ReferenceItem(id="t1", name="Plantão")],
            ai_agents=[ReferenceItem(id="ia1", name="Assistente")],
        )
        self.gate: Optional[asyncio.Event] = None
        self.calls = 0

    async def load_all(self, organization_id: str) -> ReferenceLists:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        return self.lists.model_copy(deep=True)


class FakeFileUploadService:
    def __init__(self):
        self.uploads: List[str] = []

    async def upload(self, organization_id: str, filename: str, content_type: str, content: bytes) -> FileReference:
        self.uploads.append(filename)
        return FileReference(token=f"tok-{len(self.uploads)}", filename=filename, contentType=content_type)


def build_sample_flow(flow_id: Optional[str] = "flow-100", active: bool = False) -> dict:
    """
    inicio -> opcoes(Vendas, Suporte, Financeiro) -> one message per option,
    plus an agent handoff that still points at agent 7 (Ana).
    """
    def node(node_id, node_type, x, y, label, config):
        return {"id": node_id, "type": node_type, "position": {"x": x, "y": y},
                "data": {"label": label, "config": config}}

    flow = {
        "nome": "Atendimento",
        "descricao": "Fluxo principal",
        "ativo": active,
        "canal": "whatsapp",
        "organization_id": ORGANIZATION_ID,
        "user_id": "u-1",
        "nodes": [
            node("inicio-1", "inicio", 0, 0, "Início", {"mensagemInicial": "Olá!"}),
            node("opcoes-1", "opcoes", 0, 150, "Menu", {
                "pergunta": "Como podemos ajudar?",
                "opcoes": ["Vendas", "Suporte", "Financeiro"],
                "tipoApresentacao": "lista",
            }),
            node("msg-a", "mensagem", -200, 300, "Vendas", {"texto": "Vendas"}),
            node("msg-b", "mensagem", 0, 300, "Suporte", {"texto": "Suporte"}),
            node("msg-c", "mensagem", 200, 300, "Financeiro", {"texto": "Financeiro"}),
            node("agente-1", "transferencia_agente", 0, 450, "Agente", {"agenteId": "7", "agenteNome": "Ana"}),
        ],
        "edges": [
            {"id": "e-start", "source": "inicio-1", "target": "opcoes-1"},
            {"id": "e-a", "source": "opcoes-1", "target": "msg-a", "sourceHandle": "opcao_0"},
            {"id": "e-b", "source": "opcoes-1", "target": "msg-b", "sourceHandle": "opcao_1"},
            {"id": "e-c", "source": "opcoes-1", "target": "msg-c", "sourceHandle": "opcao_2"},
            {"id": "e-handoff", "source": "msg-b", "target": "agente-1"},
        ],
    }
    if flow_id is not None:
        flow["id"] = flow_id
    return flow


@pytest.fixture
def log_util():
    return LogUtil()


@pytest.fixture
def environment_utils(log_util):
    return EnvironmentUtils(log_util=log_util)


@pytest.fixture
def block_registry_service(log_util):
    return BlockRegistryService(log_util=log_util)


@pytest.fixture
def config_schema_service(log_util, block_registry_service):
    return ConfigSchemaService(log_util=log_util, block_registry_service=block_registry_service)


@pytest.fixture
def sample_flow_data():
    return build_sample_flow()


@pytest.fixture
def flow_api_service(sample_flow_data):
    service = FakeFlowApiService()
    service.seed(sample_flow_data)
    return service


@pytest.fixture
def reference_data_service():
    return FakeReferenceDataService()


@pytest.fixture
def file_upload_service():
    return FakeFileUploadService()


@pytest.fixture
def flow_list_store(log_util, flow_api_service):
    return FlowListStore(log_util=log_util, flow_api_service=flow_api_service)


@pytest.fixture
def make_session(log_util, block_registry_service, config_schema_service, flow_api_service,
                 reference_data_service, file_upload_service, flow_list_store):
    """Build an editor session with short debounce windows."""
    def _make(autosave_debounce_seconds: float = 0.05, canvas_debounce_seconds: float = 0.01) -> EditorSession:
        return EditorSession(
            session_id="session-1",
            organization_id=ORGANIZATION_ID,
            user_id="u-1",
            log_util=log_util,
            block_registry_service=block_registry_service,
            config_schema_service=config_schema_service,
            flow_api_service=flow_api_service,
            reference_data_service=reference_data_service,
            file_upload_service=file_upload_service,
            flow_list_store=flow_list_store,
            autosave_debounce_seconds=autosave_debounce_seconds,
            canvas_debounce_seconds=canvas_debounce_seconds,
        )
    return _make
