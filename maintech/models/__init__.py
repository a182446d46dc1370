"""Database models module."""
from .base import Base
from .user import User
from .session import RefreshSession
from .reset_token import ResetToken

__all__ = [
    "Base",
    "User",
    "RefreshSession",
    "ResetToken",
]
