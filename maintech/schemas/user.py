"""User administration schemas."""
from datetime import datetime
from typing import List, Optional

from pydantic import EmailStr, Field

from ..core.roles import Role
from .auth import UserProfile
from .common import BaseSchema, Password


class UserDetail(UserProfile):
    """User as seen by administrators."""

    created_at: datetime = Field(..., description="Account creation time")
    updated_at: datetime = Field(..., description="Account last update time")


class UserCreate(BaseSchema):
    """Administrator-created account."""

    nom: str
    prenom: str
    email: EmailStr
    mot_de_passe: Password
    role: Role


class UserUpdate(BaseSchema):
    """Partial account update; omitted fields are left unchanged."""

    nom: Optional[str] = None
    prenom: Optional[str] = None
    email: Optional[EmailStr] = None
    mot_de_passe: Optional[Password] = None
    role: Optional[Role] = None
    is_approved: Optional[bool] = None


class UserMutationResponse(BaseSchema):
    """Confirmation carrying the affected user."""

    message: str
    utilisateur: UserDetail


class UserListResponse(BaseSchema):
    """All users."""

    results: List[UserDetail]
    total_users: int
