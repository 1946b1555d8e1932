from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class EmergencyRequest(BaseModel):
    cause: str
    notify: bool = False
    message: Optional[str] = None


class WhatsAppAlertRequest(BaseModel):
    message: Optional[str] = None
    phone_numbers: List[str] = []


class EmergencyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: Optional[int] = None
    cause: str
    created_at: datetime
