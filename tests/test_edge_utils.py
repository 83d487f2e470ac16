"""Tests for edge identity and option port helpers."""
from models.flow_data import FlowEdge
from utils.edge_utils import (
    dedupe_edges,
    edge_key_set,
    option_index,
    rekey_option_edges,
    prune_option_edges,
)


def test_dedupe_keeps_first_edge_per_connection():
    edges = [
        FlowEdge(id="e1", source="A", target="B", label="first"),
        FlowEdge(id="e2", source="A", target="B", label="second"),
        FlowEdge(id="e3", source="A", target="C"),
    ]

    result = dedupe_edges(edges)

    assert [edge.id for edge in result] == ["e1", "e3"]
    assert result[0].label == "first"


def test_dedupe_is_idempotent():
    edges = [
        FlowEdge(id="e1", source="A", target="B"),
        FlowEdge(id="e2", source="A", target="B", sourceHandle="default"),
        FlowEdge(id="e3", source="A", target="B", sourceHandle="opcao_1"),
    ]

    once = dedupe_edges(edges)
    twice = dedupe_edges(once)

    assert [edge.id for edge in once] == ["e1", "e3"]
    assert [edge.id for edge in twice] == ["e1", "e3"]
    assert edge_key_set(once) == edge_key_set(edges)


def test_option_index_parses_only_option_ports():
    assert option_index("opcao_3") == 3
    assert option_index("opcao_x") is None
    assert option_index("sim") is None
    assert option_index(None) is None


def test_rekey_drops_removed_option_and_shifts_later_ones():
    edges = [
        FlowEdge(id="e0", source="menu", target="a", sourceHandle="opcao_0"),
        FlowEdge(id="e1", source="menu", target="b", sourceHandle="opcao_1"),
        FlowEdge(id="e2", source="menu", target="c", sourceHandle="opcao_2"),
        FlowEdge(id="other", source="x", target="y", sourceHandle="opcao_2"),
    ]

    result = rekey_option_edges(edges, "menu", removed_index=1)

    assert [(edge.id, edge.sourceHandle) for edge in result] == [
        ("e0", "opcao_0"),
        ("e2", "opcao_1"),
        ("other", "opcao_2"),
    ]
    assert edges[2].sourceHandle == "opcao_2"


def test_prune_drops_ports_beyond_option_count():
    edges = [
        FlowEdge(id="e0", source="menu", target="a", sourceHandle="opcao_0"),
        FlowEdge(id="e2", source="menu", target="c", sourceHandle="opcao_2"),
        FlowEdge(id="plain", source="menu", target="d"),
    ]

    result = prune_option_edges(edges, "menu", option_count=2)

    assert [edge.id for edge in result] == ["e0", "plain"]
