from pydantic import BaseModel, field_validator
from typing import Optional

# Models
from models.flow_data import FLOW_CHANNELS


class CreateFlowRequest(BaseModel):
    nome: Optional[str] = None
    canal: str = "whatsapp"

    @field_validator("canal")
    @classmethod
    def _known_channel(cls, value):
        if value not in FLOW_CHANNELS:
            raise ValueError(f"canal must be one of: {', '.join(FLOW_CHANNELS)}")
        return value

    class Config:
        json_schema_extra = {
            "example": {
                "nome": "Atendimento inicial",
                "canal": "whatsapp"
            }
        }


class ToggleActiveRequest(BaseModel):
    ativo: bool

    class Config:
        json_schema_extra = {
            "example": {
                "ativo": True
            }
        }
