"""Tests for the persistence coordinator and the flow list store."""
import asyncio

import pytest

from conftest import ORGANIZATION_ID, build_sample_flow
from exceptions.flow_exception import FlowApiException, FlowConflictException, FlowValidationException
from models.flow_data import Flow
from models.notification_data import NotificationLevel
from services.flow_persistence_service import FlowPersistenceService, normalize_flow
from utils.notification_utils import NotificationUtil


@pytest.fixture
def notification_util(log_util):
    return NotificationUtil(log_util=log_util)


@pytest.fixture
def persistence(log_util, config_schema_service, flow_api_service, flow_list_store, notification_util):
    return FlowPersistenceService(
        log_util=log_util,
        config_schema_service=config_schema_service,
        flow_api_service=flow_api_service,
        flow_list_store=flow_list_store,
        notification_util=notification_util,
        autosave_debounce_seconds=0.05,
    )


@pytest.fixture
def sample_flow(sample_flow_data):
    return Flow.model_validate(sample_flow_data)


def test_normalize_flow_reduces_and_dedupes(sample_flow_data):
    sample_flow_data["nodes"][2]["data"]["color"] = "blue"
    sample_flow_data["nodes"][2]["selected"] = True
    sample_flow_data["edges"].append({"id": "e-dup", "source": "opcoes-1", "target": "msg-a", "sourceHandle": "opcao_0"})

    payload = normalize_flow(Flow.model_validate(sample_flow_data)).to_payload()

    assert set(payload["nodes"][2].keys()) == {"id", "type", "position", "data"}
    assert set(payload["nodes"][2]["data"].keys()) == {"label", "config"}
    assert set(payload["edges"][0].keys()) == {"id", "source", "target", "label", "type", "sourceHandle", "targetHandle"}
    assert "e-dup" not in {edge["id"] for edge in payload["edges"]}
    assert payload["nome"] == "Atendimento"
    assert payload["ativo"] is False


@pytest.mark.asyncio
async def test_round_trip_preserves_structure(persistence, flow_api_service, sample_flow):
    saved = await persistence.update(sample_flow)

    reloaded = next(flow for flow in await flow_api_service.list_flows(ORGANIZATION_ID) if flow.id == saved.id)

    assert [(n.id, n.type, n.position, n.data.config) for n in reloaded.nodes] == \
        [(n.id, n.type, n.position, n.data.config) for n in sample_flow.nodes]
    assert {edge.identity_key() for edge in reloaded.edges} == {edge.identity_key() for edge in sample_flow.edges}


@pytest.mark.asyncio
async def test_update_returns_exactly_the_sent_payload(persistence, flow_api_service, notification_util, sample_flow):
    saved = await persistence.update(sample_flow)

    sent = flow_api_service.saved_payloads[-1]
    assert "ativo" not in sent
    assert {key: value for key, value in saved.to_payload().items() if key != "ativo"} == sent
    assert [n.level for n in notification_util.drain()] == [NotificationLevel.SUCCESS]


@pytest.mark.asyncio
async def test_saves_leave_server_activation_alone(persistence, flow_api_service, flow_list_store, sample_flow):
    await flow_list_store.toggle_active(ORGANIZATION_ID, "flow-100", True)

    persistence.schedule_autosave(sample_flow)
    await persistence.flush_autosave()
    assert flow_api_service.flows["flow-100"]["ativo"] is True

    saved = await persistence.update(sample_flow)
    assert flow_api_service.flows["flow-100"]["ativo"] is True
    assert saved.active is True
    assert sample_flow.active is False


@pytest.mark.asyncio
async def test_first_save_assigns_server_id(persistence, sample_flow_data):
    new_flow = Flow.model_validate(build_sample_flow(flow_id=None))

    saved = await persistence.update(new_flow)

    assert saved.id == "flow-1"
    assert new_flow.id is None


@pytest.mark.asyncio
async def test_validation_errors_block_the_save(persistence, flow_api_service, notification_util, sample_flow):
    broken = sample_flow.model_copy(deep=True)
    broken.nodes[2].data.config["texto"] = ""

    with pytest.raises(FlowValidationException) as exc_info:
        await persistence.update(broken)

    assert exc_info.value.issues[0].node_id == "msg-a"
    assert flow_api_service.saved_payloads == []
    assert notification_util.drain()[0].level == NotificationLevel.ERROR


@pytest.mark.asyncio
async def test_autosave_burst_saves_last_state_once(persistence, flow_api_service, sample_flow):
    for index in range(4):
        flow = sample_flow.model_copy(deep=True)
        flow.nodes[2].data.config["texto"] = f"rascunho {index}"
        persistence.schedule_autosave(flow)

    await asyncio.sleep(0.15)

    assert len(flow_api_service.saved_payloads) == 1
    assert flow_api_service.saved_payloads[0]["nodes"][2]["data"]["config"]["texto"] == "rascunho 3"


@pytest.mark.asyncio
async def test_autosave_skips_flows_without_id(persistence, flow_api_service):
    persistence.schedule_autosave(Flow.model_validate(build_sample_flow(flow_id=None)))

    assert persistence.autosave_pending is False
    await asyncio.sleep(0.1)
    assert flow_api_service.saved_payloads == []


@pytest.mark.asyncio
async def test_autosave_failure_only_raises_indicator(persistence, flow_api_service, notification_util, sample_flow):
    flow_api_service.fail_next_save = FlowApiException(message="timeout", upstream_status=504)

    persistence.schedule_autosave(sample_flow)
    await persistence.flush_autosave()

    notifications = notification_util.drain()
    assert [n.level for n in notifications] == [NotificationLevel.INDICATOR]
    assert notifications[0].description == "timeout"


@pytest.mark.asyncio
async def test_autosave_success_is_silent_and_invalidates_list(
    persistence, flow_list_store, notification_util, sample_flow
):
    await flow_list_store.load(ORGANIZATION_ID)

    persistence.schedule_autosave(sample_flow)
    await persistence.flush_autosave()

    assert notification_util.drain() == []
    assert flow_list_store.is_stale(ORGANIZATION_ID) is True


@pytest.mark.asyncio
async def test_update_cancels_pending_autosave(persistence, flow_api_service, sample_flow):
    stale = sample_flow.model_copy(deep=True)
    stale.nodes[2].data.config["texto"] = "antigo"
    persistence.schedule_autosave(stale)

    await persistence.update(sample_flow)
    await asyncio.sleep(0.15)

    assert len(flow_api_service.saved_payloads) == 1
    assert flow_api_service.saved_payloads[0]["nodes"][2]["data"]["config"]["texto"] == "Vendas"


@pytest.mark.asyncio
async def test_rejected_update_keeps_pending_autosave(persistence, flow_api_service, sample_flow):
    draft = sample_flow.model_copy(deep=True)
    draft.nodes[2].data.config["texto"] = ""
    persistence.schedule_autosave(draft)

    with pytest.raises(FlowValidationException):
        await persistence.update(draft)
    assert persistence.autosave_pending is True
    await asyncio.sleep(0.2)

    assert len(flow_api_service.saved_payloads) == 1
    assert flow_api_service.flows["flow-100"]["nodes"][2]["data"]["config"]["texto"] == ""


@pytest.mark.asyncio
async def test_failed_update_restores_pending_autosave(persistence, flow_api_service, sample_flow):
    draft = sample_flow.model_copy(deep=True)
    draft.nodes[2].data.config["texto"] = "rascunho"
    persistence.schedule_autosave(draft)
    flow_api_service.fail_next_save = FlowApiException(message="timeout", upstream_status=504)

    with pytest.raises(FlowApiException):
        await persistence.update(draft)
    assert persistence.autosave_pending is True
    await persistence.flush_autosave()

    assert flow_api_service.flows["flow-100"]["nodes"][2]["data"]["config"]["texto"] == "rascunho"


@pytest.mark.asyncio
async def test_in_flight_autosave_lands_before_explicit_save(persistence, flow_api_service, sample_flow):
    flow_api_service.save_delay = 0.05
    stale = sample_flow.model_copy(deep=True)
    stale.nodes[2].data.config["texto"] = "antigo"

    autosave = asyncio.create_task(persistence.autosave(stale))
    await asyncio.sleep(0.01)
    await persistence.update(sample_flow)
    await autosave

    assert [p["nodes"][2]["data"]["config"]["texto"] for p in flow_api_service.saved_payloads] == ["antigo", "Vendas"]


@pytest.mark.asyncio
async def test_publish_requires_saved_flow(persistence, flow_api_service):
    with pytest.raises(FlowValidationException):
        await persistence.publish(Flow.model_validate(build_sample_flow(flow_id=None)))

    assert flow_api_service.saved_payloads == []


@pytest.mark.asyncio
async def test_publish_sets_active(persistence, sample_flow):
    published = await persistence.publish(sample_flow)

    assert published.active is True
    assert sample_flow.active is False


@pytest.mark.asyncio
async def test_publish_conflict_is_reported_verbatim(persistence, flow_api_service, notification_util, sample_flow):
    flow_api_service.seed(build_sample_flow(flow_id="flow-900", active=True))

    with pytest.raises(FlowConflictException):
        await persistence.publish(sample_flow)

    notifications = notification_util.drain()
    assert notifications[-1].level == NotificationLevel.ERROR
    assert notifications[-1].description == "Já existe um fluxo ativo para esta organização."
    assert sample_flow.active is False


@pytest.mark.asyncio
async def test_list_store_reloads_after_structural_changes(flow_list_store, flow_api_service):
    flows = await flow_list_store.get(ORGANIZATION_ID)
    assert [flow.id for flow in flows] == ["flow-100"]

    created = await flow_list_store.create_flow(ORGANIZATION_ID, owner_user_id="u-1")
    assert created.name == "Novo Fluxo"
    assert created.channel == "whatsapp"
    assert {flow.id for flow in await flow_list_store.get(ORGANIZATION_ID)} == {"flow-100", created.id}

    await flow_list_store.delete_flow(ORGANIZATION_ID, created.id)
    assert [flow.id for flow in await flow_list_store.get(ORGANIZATION_ID)] == ["flow-100"]

    flows = await flow_list_store.toggle_active(ORGANIZATION_ID, "flow-100", True)
    assert flows[0].active is True


@pytest.mark.asyncio
async def test_list_store_toggle_conflict_still_reloads(flow_list_store, flow_api_service):
    flow_api_service.seed(build_sample_flow(flow_id="flow-900", active=True))
    await flow_list_store.load(ORGANIZATION_ID)
    calls_before = flow_api_service.list_calls

    with pytest.raises(FlowConflictException):
        await flow_list_store.toggle_active(ORGANIZATION_ID, "flow-100", True)

    assert flow_list_store.is_stale(ORGANIZATION_ID) is True
    await flow_list_store.get(ORGANIZATION_ID)
    assert flow_api_service.list_calls == calls_before + 1
