from pydantic import BaseModel, ConfigDict, field_validator
from typing import Optional, List, Dict
from enum import Enum

# Models
from models.block_definition_data import FieldKind

class ReferenceKind(str, Enum):
    AGENT = "agent"
    DEPARTMENT = "department"
    TEAM = "team"
    AI_AGENT = "ai_agent"

class ReferenceItem(BaseModel):
    """
    One selectable entry of an externally fetched reference list
    """
    model_config = ConfigDict(extra='ignore')

    id: str
    name: str
    description: Optional[str] = None
    email: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_string(cls, value):
        return str(value)

class ReferenceLists(BaseModel):
    agents: Optional[List[ReferenceItem]] = None
    departments: Optional[List[ReferenceItem]] = None
    teams: Optional[List[ReferenceItem]] = None
    ai_agents: Optional[List[ReferenceItem]] = None

    def for_kind(self, kind: ReferenceKind) -> Optional[List[ReferenceItem]]:
        return {
            ReferenceKind.AGENT: self.agents,
            ReferenceKind.DEPARTMENT: self.departments,
            ReferenceKind.TEAM: self.teams,
            ReferenceKind.AI_AGENT: self.ai_agents,
        }[kind]

# Field kind -> (reference list, companion key holding the denormalised display name)
REFERENCE_FIELD_KINDS: Dict[FieldKind, tuple] = {
    FieldKind.SELECT_AGENT: (ReferenceKind.AGENT, "agenteNome"),
    FieldKind.SELECT_DEPARTMENT: (ReferenceKind.DEPARTMENT, "departamentoNome"),
    FieldKind.SELECT_TEAM: (ReferenceKind.TEAM, "teamNome"),
    FieldKind.SELECT_AI_AGENT: (ReferenceKind.AI_AGENT, "agenteIaNome"),
}
