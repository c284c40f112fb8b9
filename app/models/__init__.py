"""
GenBridge SG — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from app.models.profile import Profile
from app.models.role import UserRole
from app.models.conversation import Conversation, Message
from app.models.report import Report

__all__ = [
    "Profile",
    "UserRole",
    "Conversation",
    "Message",
    "Report",
]
