from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from featur.schemas.user import ProfileResponse

class FeaturedCreate(BaseModel):
    user_id: str = Field(min_length=1)
    category: str = Field(min_length=1)
    duration_seconds: int = Field(gt=0)
    priority: int = 0
    highlight_text: Optional[str] = None

class FeaturedResponse(BaseModel):
    id: str
    user_id: str
    category: str
    highlight_text: Optional[str] = None
    priority: int
    featured_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    profile: Optional[ProfileResponse] = None
