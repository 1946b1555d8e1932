from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class CreateStudentRequest(BaseModel):
    name: str
    phone: str
    image: Optional[str] = None
    status: str = "inside"


class StudentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    phone: str
    image: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
