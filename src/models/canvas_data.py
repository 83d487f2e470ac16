from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any
from enum import Enum

# Models
from models.flow_data import NodePosition

CANVAS_NODE_TYPE = "flowNode"
CANVAS_EDGE_TYPE = "removable"

class ReconcilerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    HYDRATING = "hydrating"
    SYNCHRONIZED = "synchronized"
    DISPOSED = "disposed"

class CanvasNodeData(BaseModel):
    """
    Node payload in the shape the canvas library paints: the block type moves
    into nodeType because the canvas-level type is always "flowNode".
    """
    model_config = ConfigDict(extra='allow')

    label: str = ""
    nodeType: str
    config: Dict[str, Any] = Field(default_factory=dict)
    color: Optional[str] = None

class CanvasNode(BaseModel):
    id: str
    type: str = CANVAS_NODE_TYPE
    position: NodePosition = Field(default_factory=NodePosition)
    data: CanvasNodeData
    selected: bool = False

class CanvasEdge(BaseModel):
    id: str
    source: str
    target: str
    sourceHandle: Optional[str] = None
    targetHandle: Optional[str] = None
    label: Optional[str] = None
    type: str = CANVAS_EDGE_TYPE
    animated: bool = False

class CanvasConnection(BaseModel):
    """
    Connection drawn by the operator between two ports
    """
    source: str
    target: str
    sourceHandle: Optional[str] = None
    targetHandle: Optional[str] = None
    label: Optional[str] = None

class CanvasDrop(BaseModel):
    """
    Block dropped from the palette; client coordinates plus the canvas bounds
    """
    block_type: str
    client_x: float
    client_y: float
    bounds_left: float = 0.0
    bounds_top: float = 0.0
