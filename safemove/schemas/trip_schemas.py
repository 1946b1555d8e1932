from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class StartTripRequest(BaseModel):
    student_ids: List[int]
    duration_minutes: Optional[int] = None
    duration_seconds: Optional[int] = None
    notify: bool = False

    def total_seconds(self):
        if self.duration_seconds is not None:
            return self.duration_seconds
        if self.duration_minutes is not None:
            return self.duration_minutes * 60
        return None


class TripOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: int
    duration_seconds: int
    started_at: datetime
    ended_at: Optional[datetime] = None
    status: str


class TripTimeOut(BaseModel):
    trip_id: int
    student_id: int
    student_name: str
    status: str
    duration_seconds: int
    remaining_seconds: int
    elapsed_seconds: int
    ending_soon: bool
