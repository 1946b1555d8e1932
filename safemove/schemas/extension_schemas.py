from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


class ExtensionCreateRequest(BaseModel):
    extend_minutes: int
    personal_message: Optional[str] = None


class ExtensionReviewRequest(BaseModel):
    action: Literal["approve", "reject"]


class ExtensionOut(BaseModel):
    id: int
    student_id: int
    student_name: str
    extend_minutes: int
    personal_message: Optional[str] = None
    status: str
    created_at: datetime
    resolved_at: Optional[datetime] = None
