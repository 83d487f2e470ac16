"""
Canvas Reconciliation Service
Keeps the canvas-native copy of the open flow and the editor's flow model in
step without feedback loops: upstream changes pass a content gate before the
canvas is rebuilt, downstream canvas edits reach the model on a debounce.
"""
import time
import itertools
from typing import Optional, List, Dict, Any, Tuple, Callable, Awaitable, Iterable

# Utils
from utils.log_utils import LogUtil
from utils.debounce_utils import DebouncedTask
from utils.edge_utils import dedupe_edges, edge_identity_key, edge_key_set

# Services
from services.block_registry_service import BlockRegistryService
from services.config_schema_service import ConfigSchemaService

# Models
from models.flow_data import Flow, FlowNode, FlowNodeData, FlowEdge, NodePosition, DEFAULT_EDGE_HANDLE
from models.canvas_data import (
    ReconcilerState,
    CanvasNode,
    CanvasNodeData,
    CanvasEdge,
    CanvasConnection,
    CanvasDrop,
    CANVAS_EDGE_TYPE,
)

# Exceptions
from exceptions.flow_exception import EditorSessionException, FlowValidationException

# Offset so the dropped block is centred under the pointer
DROP_OFFSET_X = 100
DROP_OFFSET_Y = 50

FlowChangeCallback = Callable[[List[FlowNode], List[FlowEdge]], Awaitable[None]]


class CanvasReconciliationService:

    def __init__(
        self,
        log_util: LogUtil,
        block_registry_service: BlockRegistryService,
        config_schema_service: ConfigSchemaService,
        on_flow_change: FlowChangeCallback,
        debounce_seconds: float = 0.5
    ):
        self.log_util = log_util
        self.block_registry_service = block_registry_service
        self.config_schema_service = config_schema_service
        self.on_flow_change = on_flow_change
        self._state = ReconcilerState.UNINITIALIZED
        self._flow_identity: Optional[str] = None
        self._nodes: List[CanvasNode] = []
        self._edges: List[CanvasEdge] = []
        self._snapshot: Optional[Tuple[Any, frozenset]] = None
        self._sequence = itertools.count(1)
        self._propagation = DebouncedTask(
            log_util=log_util,
            name="canvas-propagation",
            delay_seconds=debounce_seconds,
            callback=self._propagate
        )

    @property
    def state(self) -> ReconcilerState:
        return self._state

    @property
    def flow_identity(self) -> Optional[str]:
        return self._flow_identity

    @property
    def nodes(self) -> List[CanvasNode]:
        return list(self._nodes)

    @property
    def edges(self) -> List[CanvasEdge]:
        return list(self._edges)

    @property
    def has_pending_changes(self) -> bool:
        return self._propagation.pending

    # ------------------------------------------------------------------
    # Upstream: model -> canvas
    # ------------------------------------------------------------------

    def load(self, flow: Flow) -> bool:
        """
        Open a flow on the canvas. A different flow identity resets the canvas
        and drops any propagation still pending for the previous flow.

        Returns:
            True when the canvas was (re)hydrated
        """
        if self._state == ReconcilerState.DISPOSED:
            raise EditorSessionException(message="Canvas has been disposed")

        if flow.identity == self._flow_identity and self._state == ReconcilerState.SYNCHRONIZED:
            return self.receive_model(flow)

        self._propagation.cancel()
        self._state = ReconcilerState.UNINITIALIZED
        self._flow_identity = flow.identity
        self._nodes = []
        self._edges = []
        self._snapshot = None
        self._hydrate(flow)
        return True

    def adopt_identity(self, flow: Flow):
        """
        The open flow was given its server id. Canvas content and any pending
        propagation stay; only the identity they belong to changes.
        """
        if self._state == ReconcilerState.DISPOSED:
            raise EditorSessionException(message="Canvas has been disposed")
        if self._state == ReconcilerState.SYNCHRONIZED:
            self._flow_identity = flow.identity

    def receive_model(self, flow: Flow) -> bool:
        """
        Upstream change of the open flow. Rebuilds the canvas only when the
        node {id, data} content or the edge key set differs from what the
        canvas last materialised.

        Returns:
            True when the canvas was rebuilt
        """
        if self._state == ReconcilerState.DISPOSED:
            raise EditorSessionException(message="Canvas has been disposed")
        if flow.identity != self._flow_identity or self._state != ReconcilerState.SYNCHRONIZED:
            return self.load(flow)

        incoming = self._content_snapshot(flow.nodes, flow.edges)
        if incoming == self._snapshot:
            return False

        self.log_util.debug(
            service_name="CanvasReconciliationService",
            message=f"Upstream change detected for flow {self._flow_identity}, rebuilding canvas"
        )
        # Unpropagated moves stay where the operator left them
        keep_positions = self._propagation.pending
        self._hydrate(flow, keep_positions=keep_positions)
        return True

    def _hydrate(self, flow: Flow, keep_positions: bool = False):
        self._state = ReconcilerState.HYDRATING
        current_positions = {node.id: node.position for node in self._nodes} if keep_positions else {}

        nodes = []
        for node in flow.nodes:
            definition = self.block_registry_service.definition_for(node.type)
            nodes.append(CanvasNode(
                id=node.id,
                position=current_positions.get(node.id, node.position).model_copy(),
                data=CanvasNodeData(
                    label=node.data.label,
                    nodeType=node.type,
                    config=dict(node.data.config or {}),
                    color=definition.color if definition else None,
                ),
            ))

        timestamp = int(time.time() * 1000)
        edges = []
        for index, edge in enumerate(dedupe_edges(flow.edges)):
            edge_id = edge.id or f"edge-{edge.source}-{edge.target}-{edge.sourceHandle or DEFAULT_EDGE_HANDLE}-{timestamp}-{index}"
            edges.append(CanvasEdge(
                id=edge_id,
                source=edge.source,
                target=edge.target,
                sourceHandle=edge.sourceHandle,
                targetHandle=edge.targetHandle,
                label=edge.label,
            ))

        self._nodes = nodes
        self._edges = edges
        self._snapshot = self._content_snapshot(flow.nodes, flow.edges)
        self._state = ReconcilerState.SYNCHRONIZED
        self.log_util.debug(
            service_name="CanvasReconciliationService",
            message=f"Canvas hydrated for flow {self._flow_identity}: {len(nodes)} node(s), {len(edges)} edge(s)"
        )

    @staticmethod
    def _content_snapshot(nodes: Iterable[FlowNode], edges: Iterable[FlowEdge]) -> Tuple[Any, frozenset]:
        node_content = tuple((node.id, node.data.model_dump(mode='json')) for node in nodes)
        return (repr(node_content), edge_key_set(edges))

    # ------------------------------------------------------------------
    # Downstream: canvas -> model
    # ------------------------------------------------------------------

    def to_model(self) -> Tuple[List[FlowNode], List[FlowEdge]]:
        """
        Translate the canvas into flow nodes and deduplicated flow edges
        """
        nodes = [
            FlowNode(
                id=node.id,
                type=node.data.nodeType,
                position=node.position.model_copy(),
                data=FlowNodeData(label=node.data.label, config=dict(node.data.config or {})),
            )
            for node in self._nodes
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
            for edge in dedupe_edges(self._edges)
        ]
        return nodes, edges

    async def _propagate(self):
        if self._state != ReconcilerState.SYNCHRONIZED:
            return
        nodes, edges = self.to_model()
        self._snapshot = self._content_snapshot(nodes, edges)
        await self.on_flow_change(nodes, edges)

    async def flush(self):
        """
        Push pending canvas edits to the model now instead of at the end of the window
        """
        await self._propagation.flush()

    def _changed(self):
        self._propagation.schedule()

    def _require_synchronized(self):
        if self._state == ReconcilerState.DISPOSED:
            raise EditorSessionException(message="Canvas has been disposed")
        if self._state != ReconcilerState.SYNCHRONIZED:
            raise EditorSessionException(message="No flow is loaded on the canvas")

    def _node(self, node_id: str) -> CanvasNode:
        for node in self._nodes:
            if node.id == node_id:
                return node
        raise FlowValidationException(message=f"Node {node_id} is not on the canvas")

    def move_node(self, node_id: str, x: float, y: float) -> CanvasNode:
        self._require_synchronized()
        node = self._node(node_id)
        node.position = NodePosition(x=x, y=y)
        self._changed()
        return node

    def connect(self, connection: CanvasConnection) -> Optional[CanvasEdge]:
        """
        Add an edge for a connection drawn by the operator.

        Returns:
            The new edge, or None when the same connection already exists
        """
        self._require_synchronized()
        source = self._node(connection.source)
        target = self._node(connection.target)

        outputs = self.block_registry_service.output_handles(source.data.nodeType, source.data.config)
        if outputs is not None and connection.sourceHandle not in outputs:
            raise FlowValidationException(
                message=f"Block '{source.data.nodeType}' has no output port '{connection.sourceHandle or DEFAULT_EDGE_HANDLE}'"
            )
        if not self.block_registry_service.accepts_input(target.data.nodeType):
            raise FlowValidationException(message=f"Block '{target.data.nodeType}' does not accept incoming connections")

        key = edge_identity_key(connection)
        if any(edge_identity_key(edge) == key for edge in self._edges):
            return None

        edge = CanvasEdge(
            id=f"edge-{connection.source}-{connection.target}-{connection.sourceHandle or DEFAULT_EDGE_HANDLE}-{int(time.time() * 1000)}",
            source=connection.source,
            target=connection.target,
            sourceHandle=connection.sourceHandle,
            targetHandle=connection.targetHandle,
            label=connection.label,
            type=CANVAS_EDGE_TYPE,
        )
        self._edges.append(edge)
        self._changed()
        return edge

    def remove_edge(self, edge_id: str) -> bool:
        self._require_synchronized()
        remaining = [edge for edge in self._edges if edge.id != edge_id]
        if len(remaining) == len(self._edges):
            return False
        self._edges = remaining
        self._changed()
        return True

    def drop_block(self, drop: CanvasDrop) -> CanvasNode:
        """
        Place a new block from the palette at the drop point
        """
        self._require_synchronized()
        definition = self.block_registry_service.require_definition(drop.block_type)
        node = CanvasNode(
            id=f"{definition.type}-{int(time.time() * 1000)}-{next(self._sequence)}",
            position=NodePosition(
                x=drop.client_x - drop.bounds_left - DROP_OFFSET_X,
                y=drop.client_y - drop.bounds_top - DROP_OFFSET_Y,
            ),
            data=CanvasNodeData(
                label=definition.label,
                nodeType=definition.type,
                config=self.config_schema_service.default_config(definition.type),
                color=definition.color,
            ),
        )
        self._nodes.append(node)
        self._changed()
        self.log_util.info(
            service_name="CanvasReconciliationService",
            message=f"Block '{definition.type}' dropped as node {node.id}"
        )
        return node

    def delete_nodes(self, node_ids: List[str]) -> int:
        """
        Remove nodes and every edge touching them.

        Returns:
            Number of nodes removed
        """
        self._require_synchronized()
        doomed = set(node_ids)
        before = len(self._nodes)
        self._nodes = [node for node in self._nodes if node.id not in doomed]
        self._edges = [edge for edge in self._edges if edge.source not in doomed and edge.target not in doomed]
        removed = before - len(self._nodes)
        if removed:
            self._changed()
        return removed

    def update_node(self, node_id: str, config: Dict[str, Any], label: Optional[str] = None) -> CanvasNode:
        self._require_synchronized()
        node = self._node(node_id)
        node.data = node.data.model_copy(update={
            "config": dict(config or {}),
            "label": label or node.data.label,
        })
        self._changed()
        return node

    def select_nodes(self, node_ids: List[str]) -> List[CanvasNode]:
        """
        Selection is canvas-only state and never propagates to the model
        """
        self._require_synchronized()
        wanted = set(node_ids)
        for node in self._nodes:
            node.selected = node.id in wanted
        return [node for node in self._nodes if node.selected]

    def dispose(self):
        self._propagation.cancel()
        self._state = ReconcilerState.DISPOSED
        self._nodes = []
        self._edges = []
        self._snapshot = None
        self.log_util.debug(
            service_name="CanvasReconciliationService",
            message=f"Canvas disposed for flow {self._flow_identity}"
        )
