"""Models package."""

from .base import Base, engine
from .profile import Profile
from .user_usage import UserUsage

__all__ = [
    "Base",
    "engine",
    "Profile",
    "UserUsage",
]
