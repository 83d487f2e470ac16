"""Tests for canvas/model reconciliation."""
import asyncio

import pytest

from conftest import build_sample_flow
from exceptions.flow_exception import EditorSessionException, FlowValidationException
from models.canvas_data import CanvasConnection, CanvasDrop, ReconcilerState
from models.flow_data import Flow
from services.canvas_reconciliation_service import CanvasReconciliationService


@pytest.fixture
def propagated():
    return []


@pytest.fixture
def canvas(log_util, block_registry_service, config_schema_service, propagated):
    async def on_flow_change(nodes, edges):
        propagated.append((nodes, edges))

    return CanvasReconciliationService(
        log_util=log_util,
        block_registry_service=block_registry_service,
        config_schema_service=config_schema_service,
        on_flow_change=on_flow_change,
        debounce_seconds=0.02,
    )


@pytest.fixture
def sample_flow():
    return Flow.model_validate(build_sample_flow())


def test_load_hydrates_and_dedupes_edges(canvas):
    flow = Flow.model_validate({
        "id": "f1",
        "nodes": [
            {"id": "A", "type": "mensagem", "data": {"label": "A", "config": {"texto": "a"}}},
            {"id": "B", "type": "mensagem", "data": {"label": "B", "config": {"texto": "b"}}},
            {"id": "C", "type": "mensagem", "data": {"label": "C", "config": {"texto": "c"}}},
        ],
        "edges": [
            {"id": "e1", "source": "A", "target": "B"},
            {"id": "e2", "source": "A", "target": "B"},
            {"id": "e3", "source": "A", "target": "C"},
        ],
    })

    assert canvas.load(flow) is True

    assert canvas.state == ReconcilerState.SYNCHRONIZED
    assert [edge.id for edge in canvas.edges] == ["e1", "e3"]
    assert canvas.nodes[0].type == "flowNode"
    assert canvas.nodes[0].data.nodeType == "mensagem"
    assert canvas.nodes[0].data.color == "blue"


def test_missing_edge_ids_are_synthesized(canvas):
    flow = Flow.model_validate({
        "id": "f1",
        "nodes": [
            {"id": "A", "type": "mensagem"},
            {"id": "B", "type": "mensagem"},
        ],
        "edges": [{"source": "A", "target": "B"}],
    })

    canvas.load(flow)

    assert canvas.edges[0].id.startswith("edge-A-B-default-")


def test_empty_flow_hydrates_to_empty_canvas(canvas):
    canvas.load(Flow())

    assert canvas.state == ReconcilerState.SYNCHRONIZED
    assert canvas.nodes == []
    assert canvas.edges == []


@pytest.mark.asyncio
async def test_receive_model_with_same_content_is_a_noop(canvas, sample_flow):
    canvas.load(sample_flow)
    canvas.move_node("msg-a", 999, 999)

    moved_positions_only = sample_flow.model_copy(deep=True)
    moved_positions_only.nodes[0].position.x = 12345

    assert canvas.receive_model(moved_positions_only) is False
    assert next(node for node in canvas.nodes if node.id == "msg-a").position.x == 999
    canvas.dispose()


def test_receive_model_rebuilds_on_content_change(canvas, sample_flow):
    canvas.load(sample_flow)

    changed = sample_flow.model_copy(deep=True)
    changed.nodes[2].data.config["texto"] = "Novo texto"

    assert canvas.receive_model(changed) is True
    node = next(node for node in canvas.nodes if node.id == "msg-a")
    assert node.data.config["texto"] == "Novo texto"


@pytest.mark.asyncio
async def test_rebuild_keeps_unpropagated_positions(canvas, sample_flow):
    canvas.load(sample_flow)
    canvas.move_node("msg-a", 500, 600)
    assert canvas.has_pending_changes is True

    changed = sample_flow.model_copy(deep=True)
    changed.nodes[3].data.label = "Renomeado"
    canvas.receive_model(changed)

    node = next(node for node in canvas.nodes if node.id == "msg-a")
    assert (node.position.x, node.position.y) == (500, 600)
    canvas.dispose()


@pytest.mark.asyncio
async def test_edits_within_window_propagate_once(canvas, sample_flow, propagated):
    canvas.load(sample_flow)

    for index in range(5):
        canvas.update_node("msg-a", {"texto": f"versão {index}"})
    await asyncio.sleep(0.1)

    assert len(propagated) == 1
    nodes, _ = propagated[0]
    assert next(node for node in nodes if node.id == "msg-a").data.config["texto"] == "versão 4"


@pytest.mark.asyncio
async def test_propagated_state_does_not_rehydrate(canvas, sample_flow, propagated):
    canvas.load(sample_flow)
    canvas.update_node("msg-a", {"texto": "editado"})
    await canvas.flush()

    nodes, edges = propagated[-1]
    echoed = sample_flow.model_copy(update={"nodes": nodes, "edges": edges})

    assert canvas.receive_model(echoed) is False


@pytest.mark.asyncio
async def test_connect_ignores_duplicates_and_checks_ports(canvas, sample_flow):
    canvas.load(sample_flow)

    duplicate = canvas.connect(CanvasConnection(source="opcoes-1", target="msg-a", sourceHandle="opcao_0"))
    assert duplicate is None

    edge = canvas.connect(CanvasConnection(source="opcoes-1", target="msg-c", sourceHandle="opcao_0"))
    assert edge.id.startswith("edge-opcoes-1-msg-c-opcao_0-")
    assert edge.type == "removable"

    with pytest.raises(FlowValidationException):
        canvas.connect(CanvasConnection(source="opcoes-1", target="msg-a", sourceHandle="opcao_9"))
    with pytest.raises(FlowValidationException):
        canvas.connect(CanvasConnection(source="agente-1", target="msg-a"))
    with pytest.raises(FlowValidationException):
        canvas.connect(CanvasConnection(source="msg-a", target="inicio-1"))
    canvas.dispose()


@pytest.mark.asyncio
async def test_drop_block_uses_defaults_and_offset(canvas, sample_flow):
    canvas.load(sample_flow)

    node = canvas.drop_block(CanvasDrop(block_type="opcoes", client_x=400, client_y=300, bounds_left=100, bounds_top=50))

    assert node.id.startswith("opcoes-")
    assert (node.position.x, node.position.y) == (200, 200)
    assert node.data.label == "Opções"
    assert node.data.config == {"pergunta": "", "opcoes": [""], "tipoApresentacao": ""}
    canvas.dispose()


@pytest.mark.asyncio
async def test_delete_nodes_cascades_to_edges(canvas, sample_flow, propagated):
    canvas.load(sample_flow)

    assert canvas.delete_nodes(["msg-b"]) == 1
    await canvas.flush()

    _, edges = propagated[-1]
    assert {edge.id for edge in edges} == {"e-start", "e-a", "e-c"}


@pytest.mark.asyncio
async def test_dispose_cancels_pending_propagation(canvas, sample_flow, propagated):
    canvas.load(sample_flow)
    canvas.move_node("msg-a", 1, 1)

    canvas.dispose()
    await asyncio.sleep(0.05)

    assert propagated == []
    assert canvas.state == ReconcilerState.DISPOSED
    with pytest.raises(EditorSessionException):
        canvas.move_node("msg-a", 2, 2)


@pytest.mark.asyncio
async def test_loading_another_flow_drops_pending_edits(canvas, sample_flow, propagated):
    canvas.load(sample_flow)
    canvas.move_node("msg-a", 1, 1)

    canvas.load(Flow.model_validate(build_sample_flow(flow_id="flow-200")))
    await asyncio.sleep(0.05)

    assert propagated == []
    assert canvas.flow_identity == "flow-200"


def test_events_before_load_are_rejected(canvas):
    with pytest.raises(EditorSessionException):
        canvas.move_node("x", 0, 0)
