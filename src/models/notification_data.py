from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone
from enum import Enum

class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    # Low-priority status marker, used for background autosave failures
    INDICATOR = "indicator"

class Notification(BaseModel):
    level: NotificationLevel
    title: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
