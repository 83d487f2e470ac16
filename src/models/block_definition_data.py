from pydantic import BaseModel, Field
from typing import Optional, List, Union
from enum import Enum

class FieldKind(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    SELECT = "select"
    OPTIONS = "options"
    DIAS_SEMANA = "diasSemana"
    TIME = "time"
    HORARIOS = "horarios"
    FILE = "file"
    SELECT_AGENT = "selectAgent"
    SELECT_DEPARTMENT = "selectDepartment"
    SELECT_TEAM = "selectTeam"
    SELECT_AI_AGENT = "selectAIAgent"

class SelectOption(BaseModel):
    value: str
    label: str

class FieldDescriptor(BaseModel):
    key: str
    label: str
    kind: FieldKind
    required: bool = False
    options: Optional[List[Union[str, SelectOption]]] = None  # select kind only
    accept: Optional[str] = None  # file kind only, e.g. "image/*" or ".pdf,.doc"

    def option_values(self) -> List[str]:
        values = []
        for option in self.options or []:
            values.append(option if isinstance(option, str) else option.value)
        return values

class BlockDefinition(BaseModel):
    """
    Registry entry describing what a node of a given type can contain.
    Not persisted; the catalog is static.
    """
    type: str
    label: str
    icon: str
    category: str
    color: str
    description: str = ""
    configFields: List[FieldDescriptor] = Field(default_factory=list)

class BlockCategory(BaseModel):
    name: str
    blocks: List[BlockDefinition]
