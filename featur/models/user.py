"""
Featur — User profile model.
"""

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from featur.database import Base, JSONType, utcnow


class ContentStyle(str, enum.Enum):
    """Closed set of content-style tags a creator can carry."""

    COMEDY = "Comedy"
    EDITING = "Editing"
    BEAUTY = "Beauty"
    FASHION = "Fashion"
    FITNESS = "Fitness"
    MUKBANG = "Mukbang"
    COOKING = "Cooking"
    DANCE = "Dance"
    MUSIC = "Music"
    GAMING = "Video Games"
    PET = "Pet"
    TECH = "Tech"
    ART = "Art"
    SPORTS = "Sports"


class UserProfile(Base):
    __tablename__ = "users"

    # Opaque uid issued by the identity provider.
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, index=True, nullable=True)
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True, comment="city / state / country / latitude / longitude"
    )
    content_styles: Mapped[list] = mapped_column(
        JSONType, default=list, nullable=False, comment="ContentStyle values"
    )
    interests: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    media_urls: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    profile_image_url: Mapped[str | None] = mapped_column(String, nullable=True)
    social_links: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True, comment="Per-platform username / follower count"
    )
    follower_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_verified: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    collaboration_preferences: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    last_active_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserProfile {self.display_name!r} id={self.id}>"
