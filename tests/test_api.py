"""API tests for the flow builder service."""
import base64
from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from apis.block_api import create_block_api
from apis.editor_api import create_editor_api
from apis.flow_api import create_flow_api
from services.flow_editor_service import EditorSessionRegistry

HEADERS = {"x-organization-id": "org-1", "x-user-id": "u-1"}


@pytest.fixture
def client(log_util, environment_utils, block_registry_service, config_schema_service, flow_api_service,
           reference_data_service, file_upload_service, flow_list_store):
    registry = EditorSessionRegistry(
        log_util=log_util,
        environment_utils=environment_utils,
        block_registry_service=block_registry_service,
        config_schema_service=config_schema_service,
        flow_api_service=flow_api_service,
        reference_data_service=reference_data_service,
        file_upload_service=file_upload_service,
        flow_list_store=flow_list_store,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await registry.dispose_all()

    app = FastAPI(lifespan=lifespan)
    app.include_router(create_block_api(log_util=log_util, block_registry_service=block_registry_service))
    app.include_router(create_flow_api(log_util=log_util, flow_list_store=flow_list_store))
    app.include_router(create_editor_api(log_util=log_util, editor_session_registry=registry))
    with TestClient(app) as test_client:
        yield test_client


def open_session(client, flow_id="flow-100"):
    response = client.post("/editor/sessions", json={"flow_id": flow_id}, headers=HEADERS)
    assert response.status_code == 200
    return response.json()["session_id"]


def test_health_endpoint():
    from main import app

    with TestClient(app) as test_client:
        response = test_client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "flow_builder_service"


def test_block_endpoints(client):
    response = client.get("/blocks/list")
    assert response.status_code == 200
    assert response.json()[0]["type"] == "inicio"

    response = client.get("/blocks/opcoes")
    assert response.status_code == 200
    assert response.json()["configFields"][1]["kind"] == "options"

    assert client.get("/blocks/carrossel").status_code == 404
    assert client.get("/blocks/category/Inexistente").status_code == 400
    response = client.get("/blocks/category/Atendimento")
    assert "transferencia_agente" in [block["type"] for block in response.json()]


def test_flow_list_requires_organization(client):
    assert client.get("/flows/list").status_code == 401

    response = client.get("/flows/list", headers=HEADERS)
    assert response.status_code == 200
    assert response.json()[0]["nome"] == "Atendimento"


def test_create_flow_checks_channel(client, flow_api_service):
    response = client.post("/flows/create", json={"nome": "Novo", "canal": "sms"}, headers=HEADERS)
    assert response.status_code == 422

    response = client.post("/flows/create", json={"nome": "Novo", "canal": "telegram"}, headers=HEADERS)
    assert response.status_code == 200
    created = flow_api_service.flows[response.json()["id"]]
    assert created["canal"] == "telegram"
    assert created["nodes"] == []


def test_flow_status_conflict_returns_409(client, flow_api_service):
    from conftest import build_sample_flow
    flow_api_service.seed(build_sample_flow(flow_id="flow-900", active=True))

    response = client.post("/flows/status/flow-100", json={"ativo": True}, headers=HEADERS)

    assert response.status_code == 409
    assert response.json()["detail"] == "Já existe um fluxo ativo para esta organização."


def test_editor_session_lifecycle(client):
    session_id = open_session(client)

    state = client.get(f"/editor/sessions/{session_id}").json()
    assert state["canvas_state"] == "synchronized"
    assert state["flow"]["id"] == "flow-100"
    assert len(state["nodes"]) == 6

    assert client.delete(f"/editor/sessions/{session_id}").status_code == 200
    assert client.get(f"/editor/sessions/{session_id}").status_code == 404


def test_node_config_and_option_removal(client):
    session_id = open_session(client)

    response = client.delete(f"/editor/sessions/{session_id}/nodes/opcoes-1/options/opcoes/0")
    assert response.status_code == 200
    opcoes = next(field for field in response.json()["fields"] if field["key"] == "opcoes")
    assert opcoes["value"] == ["Suporte", "Financeiro"]

    state = client.get(f"/editor/sessions/{session_id}").json()
    handles = sorted(edge["sourceHandle"] for edge in state["flow"]["edges"] if edge["source"] == "opcoes-1")
    assert handles == ["opcao_0", "opcao_1"]


def test_canvas_events_and_update(client, flow_api_service):
    response = client.post("/editor/sessions", json={"new_flow": True}, headers=HEADERS)
    session_id = response.json()["session_id"]

    drop = client.post(f"/editor/sessions/{session_id}/canvas/drop", json={
        "block_type": "mensagem", "client_x": 300, "client_y": 200,
    })
    assert drop.status_code == 200
    node_id = drop.json()["id"]

    response = client.put(f"/editor/sessions/{session_id}/nodes/{node_id}/fields/texto", json={"value": "Oi!"})
    assert response.status_code == 200

    response = client.post(f"/editor/sessions/{session_id}/update")
    assert response.status_code == 200
    assert response.json()["flow"]["id"] == "flow-1"
    assert flow_api_service.saved_payloads[-1]["nodes"][0]["data"]["config"] == {"texto": "Oi!"}

    notifications = client.get(f"/editor/sessions/{session_id}/notifications").json()
    assert [n["level"] for n in notifications] == ["success"]


def test_flow_details_route(client):
    session_id = open_session(client)

    response = client.put(f"/editor/sessions/{session_id}/flow", json={"nome": "Comercial", "descricao": "Triagem"})
    assert response.status_code == 200
    flow = response.json()["flow"]
    assert (flow["nome"], flow["descricao"], flow["canal"]) == ("Comercial", "Triagem", "whatsapp")
    assert response.json()["autosave_pending"] is True

    assert client.put(f"/editor/sessions/{session_id}/flow", json={"canal": "sms"}).status_code == 400


def test_update_with_invalid_config_returns_issues(client):
    session_id = open_session(client)
    client.put(f"/editor/sessions/{session_id}/nodes/msg-a/config", json={"config": {"texto": ""}})

    response = client.post(f"/editor/sessions/{session_id}/update")

    assert response.status_code == 400
    issues = response.json()["detail"]["issues"]
    assert issues[0]["node_id"] == "msg-a"


def test_unknown_block_drop_is_rejected(client):
    session_id = open_session(client)

    response = client.post(f"/editor/sessions/{session_id}/canvas/drop", json={
        "block_type": "carrossel", "client_x": 0, "client_y": 0,
    })

    assert response.status_code == 400
    assert response.json()["detail"] == "Tipo de bloco não encontrado: carrossel"


def test_file_upload_route(client, file_upload_service):
    response = client.post("/editor/sessions", json={"new_flow": True}, headers=HEADERS)
    session_id = response.json()["session_id"]
    node_id = client.post(f"/editor/sessions/{session_id}/canvas/drop", json={
        "block_type": "imagem", "client_x": 0, "client_y": 0,
    }).json()["id"]

    response = client.post(f"/editor/sessions/{session_id}/nodes/{node_id}/files/imagem", json={
        "filename": "logo.png",
        "content_type": "image/png",
        "content_base64": base64.b64encode(b"\x89PNG").decode(),
    })

    assert response.status_code == 200
    imagem = next(field for field in response.json()["fields"] if field["key"] == "imagem")
    assert imagem["value"]["token"] == "tok-1"

    bad = client.post(f"/editor/sessions/{session_id}/nodes/{node_id}/files/imagem", json={
        "filename": "logo.png", "content_type": "image/png", "content_base64": "***",
    })
    assert bad.status_code == 400
