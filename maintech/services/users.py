"""Administrative user management."""
import uuid
from typing import List

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthService
from ..core.exceptions import EmailTakenError, UserNotFoundError
from ..core.logging import AccountLogger
from ..models.reset_token import ResetToken
from ..models.session import RefreshSession
from ..models.user import User
from ..schemas.user import UserCreate, UserUpdate


class UserService:
    """CRUD over user accounts for administrators."""

    def __init__(self, auth: AuthService):
        self.auth = auth

    async def list_users(self, db: AsyncSession) -> List[User]:
        result = await db.execute(select(User).order_by(User.created_at))
        return list(result.scalars().all())

    async def get_user(self, db: AsyncSession, user_id: uuid.UUID) -> User:
        user = await self.auth.get_user_by_id(db, user_id)
        if user is None:
            raise UserNotFoundError("Utilisateur non trouvé")
        return user

    async def create_user(self, db: AsyncSession, data: UserCreate, actor: User) -> User:
        """Create an account; administrator-created accounts are pre-approved."""
        if await self.auth.get_user_by_email(db, data.email):
            raise EmailTakenError("Email déjà utilisé")

        user = User(
            nom=data.nom,
            prenom=data.prenom,
            email=data.email,
            hashed_password=self.auth.hash_password(data.mot_de_passe),
            role=data.role.value,
            is_approved=True,
        )
        db.add(user)
        await self._commit_unique_email(db)
        AccountLogger.log_user_admin_action("create", str(user.id), str(actor.id))
        return user

    async def update_user(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        data: UserUpdate,
        actor: User
    ) -> User:
        """Apply the provided fields. Role changes apply to the next request."""
        user = await self.get_user(db, user_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        if "email" in changes and changes["email"] != user.email:
            if await self.auth.get_user_by_email(db, changes["email"]):
                raise EmailTakenError("Email déjà utilisé")
            user.email = changes["email"]
        if "nom" in changes:
            user.nom = changes["nom"]
        if "prenom" in changes:
            user.prenom = changes["prenom"]
        if "role" in changes:
            user.role = changes["role"].value
        if "is_approved" in changes:
            user.is_approved = changes["is_approved"]
            if user.is_approved:
                user.approval_code = None
        if "mot_de_passe" in changes:
            user.hashed_password = self.auth.hash_password(changes["mot_de_passe"])
            await self.auth.revoke_user_sessions(db, user.id)

        await self._commit_unique_email(db)
        await db.refresh(user)
        AccountLogger.log_user_admin_action("update", str(user.id), str(actor.id))
        return user

    async def delete_user(self, db: AsyncSession, user_id: uuid.UUID, actor: User) -> None:
        """Hard delete, along with the user's sessions and reset tokens."""
        user = await self.get_user(db, user_id)
        await db.execute(delete(RefreshSession).where(RefreshSession.user_id == user.id))
        await db.execute(delete(ResetToken).where(ResetToken.user_id == user.id))
        await db.delete(user)
        await db.commit()
        AccountLogger.log_user_admin_action("delete", str(user_id), str(actor.id))

    async def _commit_unique_email(self, db: AsyncSession) -> None:
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise EmailTakenError("Email déjà utilisé")
