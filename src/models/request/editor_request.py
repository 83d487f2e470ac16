from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


class CreateSessionRequest(BaseModel):
    """
    Opens an editor session. Without flow_id the session starts empty;
    new_flow=True starts it on the unsaved new-flow template.
    """
    flow_id: Optional[str] = None
    new_flow: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "flow_id": "65f1c2a9e4b0a1b2c3d4e5f6",
                "new_flow": False
            }
        }


class MoveNodeRequest(BaseModel):
    node_id: str
    x: float
    y: float


class DeleteNodesRequest(BaseModel):
    node_ids: List[str] = Field(default_factory=list)


class NodeConfigRequest(BaseModel):
    """
    Whole-config write for a node, as the configuration panel sends it
    """
    config: Dict[str, Any] = Field(default_factory=dict)
    label: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "config": {"mensagem": "Escolha uma opção", "opcoes": ["Vendas", "Suporte"]},
                "label": "Menu principal"
            }
        }


class FieldValueRequest(BaseModel):
    value: Any = None


class OptionValueRequest(BaseModel):
    value: str = ""


class WeekdayRequest(BaseModel):
    day: str  # segunda .. domingo
    checked: bool


class HorarioValueRequest(BaseModel):
    end: str  # "horaInicio" | "horaFim"
    value: str


class ReferenceSelectionRequest(BaseModel):
    item_id: Optional[str] = None


class FileUploadRequest(BaseModel):
    filename: str
    content_type: str
    content_base64: str


class FlowDetailsRequest(BaseModel):
    """
    Header fields of the open flow; omitted fields are left as they are
    """
    nome: Optional[str] = None
    descricao: Optional[str] = None
    canal: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "nome": "Atendimento comercial",
                "descricao": "Triagem de vendas e suporte"
            }
        }
