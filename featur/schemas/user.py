from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from featur.models.user import ContentStyle

class Location(BaseModel):
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

class SocialAccount(BaseModel):
    username: str
    follower_count: Optional[int] = Field(None, ge=0)
    is_verified: bool = False

class SocialLinks(BaseModel):
    tiktok: Optional[SocialAccount] = None
    instagram: Optional[SocialAccount] = None
    youtube: Optional[SocialAccount] = None
    twitch: Optional[SocialAccount] = None
    spotify: Optional[str] = None
    snapchat: Optional[str] = None

class CollaborationPreferences(BaseModel):
    looking_for: list[str] = []
    availability: Optional[str] = None
    preferred_platforms: list[str] = []
    open_to_remote: bool = True

class ProfileCreate(BaseModel):
    id: str = Field(min_length=1, max_length=128)
    display_name: str = Field(min_length=1)
    email: Optional[str] = None
    age: Optional[int] = Field(None, ge=13, le=120)
    bio: Optional[str] = None
    location: Optional[Location] = None
    content_styles: list[ContentStyle] = []
    interests: list[str] = []
    social_links: Optional[SocialLinks] = None
    follower_count: Optional[int] = Field(None, ge=0)
    collaboration_preferences: Optional[CollaborationPreferences] = None

class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = None
    age: Optional[int] = Field(None, ge=13, le=120)
    bio: Optional[str] = None
    location: Optional[Location] = None
    content_styles: Optional[list[ContentStyle]] = None
    interests: Optional[list[str]] = None
    profile_image_url: Optional[str] = None
    social_links: Optional[SocialLinks] = None
    follower_count: Optional[int] = Field(None, ge=0)
    collaboration_preferences: Optional[CollaborationPreferences] = None
    is_active: Optional[bool] = None

class ProfileResponse(BaseModel):
    id: str
    display_name: str
    email: Optional[str] = None
    age: Optional[int] = None
    bio: Optional[str] = None
    location: Optional[dict] = None
    content_styles: list[str] = []
    interests: list[str] = []
    media_urls: list[str] = []
    profile_image_url: Optional[str] = None
    social_links: Optional[dict] = None
    follower_count: Optional[int] = None
    is_verified: bool = False
    collaboration_preferences: Optional[dict] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class PhotoRemoveRequest(BaseModel):
    url: str

class DiscoveryItem(BaseModel):
    profile: ProfileResponse
    score: int

class DiscoveryResponse(BaseModel):
    user_id: str
    results: list[DiscoveryItem]
