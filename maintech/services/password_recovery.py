"""Password recovery with single-use, time-boxed reset tokens."""
import secrets
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthService
from ..core.exceptions import InvalidResetTokenError, UserNotFoundError
from ..core.logging import AccountLogger
from ..models.base import as_utc, utcnow
from ..models.reset_token import ResetToken
from .email import EmailService

SELECTOR_BYTES = 12
VERIFIER_BYTES = 32


def split_reset_token(token: str) -> Optional[Tuple[str, str]]:
    """Split ``<selector>.<verifier>``; None if malformed."""
    selector, sep, verifier = token.partition(".")
    if not sep or not selector or not verifier:
        return None
    return selector, verifier


class PasswordRecoveryService:
    """Issues reset tokens by email and consumes them to set a new password."""

    def __init__(self, auth: AuthService, email: EmailService):
        self.auth = auth
        self.email = email

    @property
    def expire_minutes(self) -> int:
        return self.auth.config.reset_token_expire_minutes

    async def forgot_password(self, db: AsyncSession, email: str) -> str:
        """Create a reset token for the user and email it.

        Returns the plaintext token; it is never persisted.
        """
        user = await self.auth.get_user_by_email(db, email)
        if not user:
            raise UserNotFoundError("Utilisateur non trouvé")

        selector = secrets.token_hex(SELECTOR_BYTES)
        verifier = secrets.token_hex(VERIFIER_BYTES)
        db.add(ResetToken(
            user_id=user.id,
            selector=selector,
            verifier_hash=self.auth.hash_password(verifier),
        ))
        await db.commit()

        token = f"{selector}.{verifier}"
        sent = await self.email.send_password_reset(user.email, token, self.expire_minutes)
        AccountLogger.log_password_reset_requested(str(user.id), sent)
        return token

    def is_expired(self, reset_token: ResetToken) -> bool:
        age = utcnow() - as_utc(reset_token.created_at)
        return age > timedelta(minutes=self.expire_minutes)

    async def reset_password(self, db: AsyncSession, token: str, password: str) -> None:
        """Consume a reset token and replace the owner's password.

        Only the presented token is deleted; other outstanding tokens of the
        same user remain usable until they expire. The user's refresh
        sessions are revoked.
        """
        parts = split_reset_token(token)
        if parts is None:
            AccountLogger.log_password_reset(success=False, failure_reason="malformed")
            raise InvalidResetTokenError()
        selector, verifier = parts

        result = await db.execute(select(ResetToken).where(ResetToken.selector == selector))
        reset_token = result.scalar_one_or_none()
        if reset_token is None:
            AccountLogger.log_password_reset(success=False, failure_reason="unknown_selector")
            raise InvalidResetTokenError()

        if self.is_expired(reset_token):
            await db.delete(reset_token)
            await db.commit()
            AccountLogger.log_password_reset(
                user_id=str(reset_token.user_id), success=False, failure_reason="expired"
            )
            raise InvalidResetTokenError()

        if not self.auth.verify_password(verifier, reset_token.verifier_hash):
            AccountLogger.log_password_reset(
                user_id=str(reset_token.user_id), success=False, failure_reason="bad_verifier"
            )
            raise InvalidResetTokenError()

        user = await self.auth.get_user_by_id(db, reset_token.user_id)
        if user is None:
            raise UserNotFoundError("Utilisateur non trouvé")

        user.hashed_password = self.auth.hash_password(password)
        await db.delete(reset_token)
        await self.auth.revoke_user_sessions(db, user.id)
        await db.commit()
        AccountLogger.log_password_reset(user_id=str(user.id))
