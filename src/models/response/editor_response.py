from pydantic import BaseModel, Field
from typing import Optional, List

# Models
from models.flow_data import Flow
from models.canvas_data import CanvasNode, CanvasEdge, ReconcilerState


class EditorSessionResponse(BaseModel):
    """
    Snapshot of an editor session for the host UI
    """
    session_id: str
    organization_id: str
    flow: Optional[Flow] = None
    canvas_state: ReconcilerState
    nodes: List[CanvasNode] = Field(default_factory=list)
    edges: List[CanvasEdge] = Field(default_factory=list)
    selected_node_id: Optional[str] = None
    autosave_pending: bool = False
