from pydantic import BaseModel, Field
from typing import Optional, List, Any

# Models
from models.block_definition_data import FieldKind, SelectOption

WEEKDAY_KEYS = ["segunda", "terca", "quarta", "quinta", "sexta", "sabado", "domingo"]

class HorarioInterval(BaseModel):
    horaInicio: str = "09:00"
    horaFim: str = "18:00"

class FileReference(BaseModel):
    """
    Upload token for a file-kind field; the bytes live with the upload service
    """
    token: str
    filename: str = ""
    contentType: str = ""

class ConfigIssue(BaseModel):
    node_id: Optional[str] = None
    field_key: Optional[str] = None
    message: str

class FieldView(BaseModel):
    """
    One configuration field as the host UI renders it
    """
    key: str
    label: str
    kind: FieldKind
    required: bool = False
    value: Any = None
    options: Optional[List[SelectOption]] = None
    accept: Optional[str] = None
    display_name: Optional[str] = None  # reference selectors only
    stale: bool = False

class NodeFormView(BaseModel):
    node_id: str
    node_type: str
    label: str
    known_type: bool = True
    diagnostic: Optional[str] = None
    fields: List[FieldView] = Field(default_factory=list)
