"""User administration routes (admin only)."""
import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.auth import AuthService, get_auth_service
from ...core.security import admin_required
from ...database import get_db
from ...models.user import User
from ...schemas.common import ErrorResponse, MessageResponse
from ...schemas.user import (
    UserCreate,
    UserDetail,
    UserListResponse,
    UserMutationResponse,
    UserUpdate,
)
from ...services.users import UserService

router = APIRouter(
    prefix="/user",
    tags=["Users"],
    responses={code: {"model": ErrorResponse} for code in (401, 403, 404)},
)


def get_user_service(auth: AuthService = Depends(get_auth_service)) -> UserService:
    return UserService(auth)


@router.get("", response_model=UserListResponse)
async def list_users(
    current_user: User = Depends(admin_required),
    db: AsyncSession = Depends(get_db),
    service: UserService = Depends(get_user_service)
):
    """List all users."""
    users = await service.list_users(db)
    return UserListResponse(
        results=[UserDetail.model_validate(user) for user in users],
        total_users=len(users),
    )


@router.get("/{user_id}", response_model=UserDetail)
async def get_user(
    user_id: uuid.UUID,
    current_user: User = Depends(admin_required),
    db: AsyncSession = Depends(get_db),
    service: UserService = Depends(get_user_service)
):
    """Get one user."""
    return UserDetail.model_validate(await service.get_user(db, user_id))


@router.post("", response_model=UserMutationResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_create: UserCreate,
    current_user: User = Depends(admin_required),
    db: AsyncSession = Depends(get_db),
    service: UserService = Depends(get_user_service)
):
    """Create an approved user."""
    user = await service.create_user(db, user_create, current_user)
    return UserMutationResponse(
        message="Utilisateur créé avec succès",
        utilisateur=UserDetail.model_validate(user),
    )


@router.put("/{user_id}", response_model=UserMutationResponse)
async def update_user(
    user_id: uuid.UUID,
    user_update: UserUpdate,
    current_user: User = Depends(admin_required),
    db: AsyncSession = Depends(get_db),
    service: UserService = Depends(get_user_service)
):
    """Update a user's fields."""
    user = await service.update_user(db, user_id, user_update, current_user)
    return UserMutationResponse(
        message="Utilisateur mis à jour avec succès",
        utilisateur=UserDetail.model_validate(user),
    )


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: uuid.UUID,
    current_user: User = Depends(admin_required),
    db: AsyncSession = Depends(get_db),
    service: UserService = Depends(get_user_service)
):
    """Delete a user."""
    await service.delete_user(db, user_id, current_user)
    return MessageResponse(message="Utilisateur supprimé avec succès")
