"""
Featur — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from featur.models.user import ContentStyle, UserProfile
from featur.models.match import Match, SwipeAction, pair_key
from featur.models.conversation import Conversation, ConversationParticipant, Message
from featur.models.featured import FeaturedCreator, Report

__all__ = [
    "ContentStyle",
    "UserProfile",
    "SwipeAction",
    "Match",
    "pair_key",
    "Conversation",
    "ConversationParticipant",
    "Message",
    "FeaturedCreator",
    "Report",
]
