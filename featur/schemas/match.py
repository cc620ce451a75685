from pydantic import BaseModel, Field
from datetime import datetime
from typing import Literal, Optional

from featur.schemas.user import ProfileResponse

class SwipeCreate(BaseModel):
    user_id: str = Field(min_length=1)
    target_user_id: str = Field(min_length=1)
    action: Literal["like", "pass", "super_like"] = "like"

class SwipeResponse(BaseModel):
    status: str
    swipe_id: Optional[str] = None
    matched: bool
    match_id: Optional[str] = None

class SwipedIdsResponse(BaseModel):
    user_id: str
    swiped_user_ids: list[str]

class MatchResponse(BaseModel):
    match_id: str
    user_id_1: str
    user_id_2: str
    matched_at: Optional[datetime] = None
    has_messaged: bool
    last_message_at: Optional[datetime] = None
    is_active: bool
    unmatched_at: Optional[datetime] = None

class MatchListItem(MatchResponse):
    other_user_id: str
    profile: Optional[ProfileResponse] = None
