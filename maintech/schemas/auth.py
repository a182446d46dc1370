"""Authentication schemas."""
import uuid
from typing import Optional

from pydantic import EmailStr, Field

from ..core.roles import Role
from .common import BaseSchema, Password


class UserPublic(BaseSchema):
    """Public-safe user projection; never carries hashes or codes."""

    id: uuid.UUID = Field(..., description="User ID")
    nom: str = Field(..., description="Family name")
    prenom: str = Field(..., description="Given name")
    email: str = Field(..., description="User email address")
    role: str = Field(..., description="User role")


class UserProfile(UserPublic):
    """Projection returned by the profile endpoint."""

    is_approved: bool = Field(..., description="Approval status")


class RegisterRequest(BaseSchema):
    """Registration request schema."""

    nom: str = Field(..., description="Family name")
    prenom: str = Field(..., description="Given name")
    email: EmailStr = Field(..., description="User email address")
    mot_de_passe: Password = Field(..., description="User password")
    role: Role = Field(..., description="User role")


class RegisterResponse(BaseSchema):
    """Registration response schema."""

    message: str
    utilisateur: UserPublic


class ApproveRequest(BaseSchema):
    """Approval code submission."""

    email: EmailStr = Field(..., description="User email")
    approval_code: str = Field(..., description="Six-digit code sent by email")


class LoginRequest(BaseSchema):
    """Login request schema."""

    email: EmailStr = Field(..., description="User email")
    mot_de_passe: str = Field(..., description="User password")


class TokenInfo(BaseSchema):
    """A signed token and its expiry."""

    token: str = Field(..., description="JWT")
    expires_at: str = Field(..., description="Expiry as ISO-8601")


class TokenPair(BaseSchema):
    """Access and refresh tokens issued together."""

    access_token: TokenInfo
    refresh_token: TokenInfo


class LoginResponse(BaseSchema):
    """Login response schema."""

    message: str
    utilisateur: UserPublic
    tokens: TokenPair
    redirect_url: str = Field(..., description="Role-specific landing route")


class RefreshResponse(BaseSchema):
    """New access token minted from a refresh token."""

    access_token: str = Field(..., description="JWT access token")
    expires_at: str = Field(..., description="Expiry as ISO-8601")


class ProfileResponse(BaseSchema):
    """Profile response schema."""

    utilisateur: UserProfile


class ForgotPasswordRequest(BaseSchema):
    """Password reset request schema."""

    email: EmailStr = Field(..., description="User email")


class ResetPasswordRequest(BaseSchema):
    """Password reset confirmation schema."""

    token: str = Field(..., description="Reset token received by email")
    password: Password = Field(..., description="New password")
    email: Optional[EmailStr] = Field(None, description="Email carried by the reset link")
