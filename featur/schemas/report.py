from pydantic import BaseModel, Field
from datetime import datetime
from typing import Literal, Optional

class ReportCreate(BaseModel):
    reporter_id: str = Field(min_length=1)
    reported_user_id: str = Field(min_length=1)
    reason: str = Field(min_length=1)
    description: Optional[str] = None

class ReportResponse(BaseModel):
    id: str
    reporter_id: str
    reported_user_id: str
    reason: str
    description: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None

class ReportStatusUpdate(BaseModel):
    status: Literal["pending", "reviewed", "action_taken", "dismissed"]

class AnalyticsResponse(BaseModel):
    total_users: int
    active_users_today: int
    active_matches: int
    total_messages: int
