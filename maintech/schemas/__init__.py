"""Pydantic schemas module."""
from .auth import (
    UserPublic,
    UserProfile,
    RegisterRequest,
    RegisterResponse,
    ApproveRequest,
    LoginRequest,
    LoginResponse,
    TokenInfo,
    TokenPair,
    RefreshResponse,
    ProfileResponse,
    ForgotPasswordRequest,
    ResetPasswordRequest,
)
from .user import (
    UserCreate,
    UserUpdate,
    UserDetail,
    UserListResponse,
    UserMutationResponse,
)
from .common import (
    ErrorResponse,
    HealthResponse,
    MessageResponse,
)

__all__ = [
    # Auth
    "UserPublic",
    "UserProfile",
    "RegisterRequest",
    "RegisterResponse",
    "ApproveRequest",
    "LoginRequest",
    "LoginResponse",
    "TokenInfo",
    "TokenPair",
    "RefreshResponse",
    "ProfileResponse",
    "ForgotPasswordRequest",
    "ResetPasswordRequest",
    # Users
    "UserCreate",
    "UserUpdate",
    "UserDetail",
    "UserListResponse",
    "UserMutationResponse",
    # Common
    "ErrorResponse",
    "HealthResponse",
    "MessageResponse",
]
