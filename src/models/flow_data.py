from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from typing import Optional, List, Dict, Any, Tuple
from datetime import datetime

# Identity used for a flow that has never been saved (no server id yet)
NEW_FLOW_SENTINEL = "__new__"

DEFAULT_EDGE_HANDLE = "default"

FLOW_CHANNELS = ("whatsapp", "webchat", "telegram")

class NodePosition(BaseModel):
    x: float = 0.0
    y: float = 0.0

class FlowNodeData(BaseModel):
    model_config = ConfigDict(extra='ignore')

    label: str = ""
    config: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("label", mode="before")
    @classmethod
    def _label_not_none(cls, value):
        return value or ""

    @field_validator("config", mode="before")
    @classmethod
    def _config_not_none(cls, value):
        return value or {}

class FlowNode(BaseModel):
    model_config = ConfigDict(extra='ignore')

    id: str
    type: str
    position: NodePosition = Field(default_factory=NodePosition)
    data: FlowNodeData = Field(default_factory=FlowNodeData)

    @model_validator(mode="before")
    @classmethod
    def _prefer_declared_node_type(cls, values: Any) -> Any:
        # Canvas-shaped nodes carry the block type in data.nodeType and "flowNode" as type
        if isinstance(values, dict):
            data = values.get("data") or {}
            if isinstance(data, dict) and data.get("nodeType"):
                values = {**values, "type": data["nodeType"]}
        return values

class FlowEdge(BaseModel):
    model_config = ConfigDict(extra='ignore')

    id: str = ""
    source: str
    target: str
    sourceHandle: Optional[str] = None
    targetHandle: Optional[str] = None
    label: Optional[str] = None
    type: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_not_none(cls, value):
        return value or ""

    def identity_key(self) -> Tuple[str, str, str]:
        return (self.source, self.target, self.sourceHandle or DEFAULT_EDGE_HANDLE)

class Flow(BaseModel):
    """
    The flow aggregate as the editor holds it.
    Attribute names are English; the Flow API wire names are the aliases
    (nome, descricao, ativo, canal, user_id). Both are accepted on input.
    """
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    id: Optional[str] = None
    name: str = Field(default="Novo Fluxo", alias="nome")
    description: Optional[str] = Field(default="", alias="descricao")
    active: bool = Field(default=False, alias="ativo")
    channel: str = Field(default="whatsapp", alias="canal")
    organization_id: str = ""
    owner_user_id: Optional[str] = Field(default=None, alias="user_id")
    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @field_validator("id", "organization_id", "owner_user_id", mode="before")
    @classmethod
    def _ids_as_strings(cls, value):
        if value is None or value == "":
            return value
        return str(value)

    @field_validator("active", mode="before")
    @classmethod
    def _active_not_none(cls, value):
        return bool(value)

    @field_validator("channel", mode="before")
    @classmethod
    def _channel_default(cls, value):
        return value or "whatsapp"

    @property
    def identity(self) -> str:
        return self.id or NEW_FLOW_SENTINEL

    def node_by_id(self, node_id: str) -> Optional[FlowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def to_payload(self) -> Dict[str, Any]:
        """
        Wire shape expected by the Flow API save endpoint
        """
        payload = self.model_dump(by_alias=True, mode='json', exclude={"created_at"})
        if payload.get("id") is None:
            payload.pop("id", None)
        return payload
