from typing import Iterable, List, Tuple, TypeVar, Protocol, Optional

# Models
from models.flow_data import DEFAULT_EDGE_HANDLE

class _Connectable(Protocol):
    source: str
    target: str
    sourceHandle: Optional[str]

EdgeT = TypeVar("EdgeT", bound=_Connectable)

OPTION_HANDLE_PREFIX = "opcao_"

def edge_identity_key(edge: _Connectable) -> Tuple[str, str, str]:
    """
    Two edges are the same connection iff source, target and source handle match.
    A missing source handle is the node's default output.
    """
    return (edge.source, edge.target, edge.sourceHandle or DEFAULT_EDGE_HANDLE)

def dedupe_edges(edges: Iterable[EdgeT]) -> List[EdgeT]:
    """
    Keep the first edge per identity key, in input order; later duplicates are dropped.
    """
    seen = set()
    unique_edges = []
    for edge in edges:
        key = edge_identity_key(edge)
        if key in seen:
            continue
        seen.add(key)
        unique_edges.append(edge)
    return unique_edges

def edge_key_set(edges: Iterable[_Connectable]) -> frozenset:
    return frozenset(edge_identity_key(edge) for edge in edges)

def option_handle(index: int) -> str:
    return f"{OPTION_HANDLE_PREFIX}{index}"

def option_index(handle: Optional[str]) -> Optional[int]:
    """
    Index encoded in an options-node output port, None for any other handle.
    """
    if not handle or not handle.startswith(OPTION_HANDLE_PREFIX):
        return None
    suffix = handle[len(OPTION_HANDLE_PREFIX):]
    if not suffix.isdigit():
        return None
    return int(suffix)

def rekey_option_edges(edges: Iterable[EdgeT], node_id: str, removed_index: int) -> List[EdgeT]:
    """
    Follow an option removal on an options node: edges leaving the removed
    option's port are dropped and the ports of later options shift down by one.
    Edges are updated with model_copy so callers keep their originals.
    """
    rekeyed = []
    for edge in edges:
        index = option_index(edge.sourceHandle) if edge.source == node_id else None
        if index is None or index < removed_index:
            rekeyed.append(edge)
        elif index > removed_index:
            rekeyed.append(edge.model_copy(update={"sourceHandle": option_handle(index - 1)}))
    return rekeyed

def prune_option_edges(edges: Iterable[EdgeT], node_id: str, option_count: int) -> List[EdgeT]:
    """
    Drop edges leaving option ports that no longer exist on the node
    """
    pruned = []
    for edge in edges:
        index = option_index(edge.sourceHandle) if edge.source == node_id else None
        if index is not None and index >= option_count:
            continue
        pruned.append(edge)
    return pruned
