"""Authentication and authorization core functionality."""
import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import bcrypt
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..config.settings import AuthSettings
from ..models.session import RefreshSession
from ..models.user import User
from ..schemas.auth import LoginResponse, TokenInfo, TokenPair, UserPublic
from .exceptions import (
    AccountNotApprovedError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    RefreshTokenNotRecognizedError,
    UserNotFoundError,
)
from .logging import SecurityLogger
from .roles import dashboard_route
from .tokens import TokenError, compute_expiry, issue_token, verify_token

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

# Stored for federated accounts; not a bcrypt hash, so password login never matches
FEDERATED_PASSWORD_HASH = "!federated"


@dataclass
class IssuedToken:
    """A signed token and its absolute expiry in milliseconds."""

    token: str
    expires_ms: int

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.expires_ms / 1000, tz=timezone.utc)

    def to_schema(self) -> TokenInfo:
        return TokenInfo(token=self.token, expires_at=self.expires_at.isoformat())


@dataclass
class IssuedTokenPair:
    access: IssuedToken
    refresh: IssuedToken

    def to_schema(self) -> TokenPair:
        return TokenPair(
            access_token=self.access.to_schema(),
            refresh_token=self.refresh.to_schema(),
        )


def hash_refresh_token(token: str) -> str:
    """Index key for a refresh token; tokens are high-entropy so SHA-256 suffices."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AuthService:
    """Authentication service."""

    def __init__(self, config: Optional[AuthSettings] = None):
        self.config = config or settings.auth

    # Passwords

    def hash_password(self, password: str) -> str:
        """Hash password using bcrypt."""
        salt = bcrypt.gensalt(rounds=self.config.bcrypt_salt_rounds)
        return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Verify password against hash."""
        try:
            return bcrypt.checkpw(
                plain_password.encode('utf-8'),
                hashed_password.encode('utf-8')
            )
        except ValueError:
            # Placeholder hashes (federated accounts) and input over 72 bytes
            return False

    # Tokens

    def create_access_token(self, user: User) -> IssuedToken:
        """Create JWT access token."""
        expires_ms = compute_expiry(self.config.access_token_expire_minutes, "minutes")
        claims = {
            "userId": str(user.id),
            "roleId": user.role,
            "type": ACCESS_TOKEN,
            "jti": uuid.uuid4().hex,
        }
        token = issue_token(claims, expires_ms, self.config.secret_key, self.config.algorithm)
        return IssuedToken(token=token, expires_ms=expires_ms)

    def create_refresh_token(self, user: User) -> IssuedToken:
        """Create JWT refresh token."""
        expires_ms = compute_expiry(self.config.refresh_token_expire_days, "days")
        claims = {
            "userId": str(user.id),
            "type": REFRESH_TOKEN,
            "jti": uuid.uuid4().hex,
        }
        token = issue_token(claims, expires_ms, self.config.secret_key, self.config.algorithm)
        return IssuedToken(token=token, expires_ms=expires_ms)

    def verify_token(
        self,
        token: str,
        token_type: str = ACCESS_TOKEN,
        verify_expiry: bool = True
    ) -> Dict[str, Any]:
        """Verify and decode a JWT of the given type.

        Raises TokenError when the signature, expiry, type or subject is bad.
        """
        payload = verify_token(
            token,
            self.config.secret_key,
            self.config.algorithm,
            verify_expiry=verify_expiry,
        )
        if payload.get("type") != token_type:
            raise TokenError(f"Expected a {token_type} token")
        if parse_user_id(payload.get("userId")) is None:
            raise TokenError("Token has no valid userId claim")
        return payload

    # Users

    async def get_user_by_id(
        self,
        db: AsyncSession,
        user_id: uuid.UUID
    ) -> Optional[User]:
        """Get user by ID."""
        stmt = select(User).where(User.id == user_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user_by_email(
        self,
        db: AsyncSession,
        email: str
    ) -> Optional[User]:
        """Get user by email."""
        stmt = select(User).where(User.email == email)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    # Session ledger

    async def store_refresh_session(
        self,
        db: AsyncSession,
        user: User,
        refresh: IssuedToken,
        device_info: Optional[str] = None
    ) -> RefreshSession:
        """Record a refresh token, evicting the oldest sessions beyond the limit."""
        session = RefreshSession(
            user_id=user.id,
            token_hash=hash_refresh_token(refresh.token),
            device_info=(device_info or "")[:255] or None,
            expires_at=refresh.expires_at,
        )
        db.add(session)
        await db.flush()

        stmt = (
            select(RefreshSession.id)
            .where(
                RefreshSession.user_id == user.id,
                RefreshSession.id != session.id,
            )
            .order_by(RefreshSession.created_at.desc())
            .offset(self.config.max_sessions_per_user - 1)
        )
        stale_ids = list((await db.execute(stmt)).scalars().all())
        if stale_ids:
            await db.execute(delete(RefreshSession).where(RefreshSession.id.in_(stale_ids)))

        return session

    async def find_refresh_session(
        self,
        db: AsyncSession,
        token: str
    ) -> Optional[RefreshSession]:
        """Live session holding exactly this refresh token."""
        stmt = select(RefreshSession).where(
            RefreshSession.token_hash == hash_refresh_token(token)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def revoke_refresh_session(self, db: AsyncSession, token: str) -> int:
        """Delete the session holding this refresh token."""
        result = await db.execute(
            delete(RefreshSession).where(
                RefreshSession.token_hash == hash_refresh_token(token)
            )
        )
        return result.rowcount or 0

    async def revoke_user_sessions(self, db: AsyncSession, user_id: uuid.UUID) -> int:
        """Delete every session of a user."""
        result = await db.execute(
            delete(RefreshSession).where(RefreshSession.user_id == user_id)
        )
        return result.rowcount or 0

    async def issue_token_pair(
        self,
        db: AsyncSession,
        user: User,
        device_info: Optional[str] = None
    ) -> IssuedTokenPair:
        """Issue access and refresh tokens and record the refresh session."""
        pair = IssuedTokenPair(
            access=self.create_access_token(user),
            refresh=self.create_refresh_token(user),
        )
        await self.store_refresh_session(db, user, pair.refresh, device_info)
        await db.commit()
        return pair

    # Flows

    async def login(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        device_info: Optional[str] = None,
        ip_address: Optional[str] = None
    ) -> Tuple[LoginResponse, IssuedTokenPair]:
        """Authenticate user with email and password."""
        user = await self.get_user_by_email(db, email)
        if not user:
            SecurityLogger.log_login_attempt(
                email, False, ip_address=ip_address, user_agent=device_info,
                failure_reason="user_not_found"
            )
            raise UserNotFoundError()

        if not self.verify_password(password, user.hashed_password):
            SecurityLogger.log_login_attempt(
                email, False, ip_address=ip_address, user_agent=device_info,
                failure_reason="invalid_password"
            )
            raise InvalidCredentialsError()

        if not user.is_approved:
            SecurityLogger.log_login_attempt(
                email, False, ip_address=ip_address, user_agent=device_info,
                failure_reason="not_approved"
            )
            raise AccountNotApprovedError()

        pair = await self.issue_token_pair(db, user, device_info)
        SecurityLogger.log_login_attempt(
            email, True, ip_address=ip_address, user_agent=device_info
        )

        response = LoginResponse(
            message="Connexion réussie.",
            utilisateur=UserPublic.model_validate(user),
            tokens=pair.to_schema(),
            redirect_url=dashboard_route(user.role),
        )
        return response, pair

    async def refresh_access_token(
        self,
        db: AsyncSession,
        refresh_token: str
    ) -> IssuedToken:
        """Mint a new access token for a refresh token on file.

        The refresh token itself is not rotated.
        """
        try:
            payload = self.verify_token(refresh_token, token_type=REFRESH_TOKEN)
        except TokenError as e:
            SecurityLogger.log_token_refresh(success=False, failure_reason=str(e))
            raise InvalidRefreshTokenError()

        session = await self.find_refresh_session(db, refresh_token)
        user = None
        if session is not None and str(session.user_id) == payload["userId"]:
            user = await self.get_user_by_id(db, session.user_id)
        if user is None:
            SecurityLogger.log_token_refresh(
                user_id=payload["userId"], success=False, failure_reason="session_not_found"
            )
            raise RefreshTokenNotRecognizedError()

        SecurityLogger.log_token_refresh(user_id=str(user.id))
        return self.create_access_token(user)

    async def logout(
        self,
        db: AsyncSession,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None
    ) -> int:
        """Revoke sessions named by the presented credentials.

        A bearer token revokes every session of its owner (its expiry is not
        checked, so an expired session can still be closed); a refresh
        cookie revokes its own session. Unverifiable credentials are ignored.
        """
        revoked = 0
        user_id = None

        if access_token:
            try:
                payload = self.verify_token(access_token, verify_expiry=False)
            except TokenError:
                payload = None
            if payload is not None:
                user_id = parse_user_id(payload["userId"])
                revoked += await self.revoke_user_sessions(db, user_id)

        if refresh_token:
            revoked += await self.revoke_refresh_session(db, refresh_token)

        await db.commit()
        SecurityLogger.log_logout(
            user_id=str(user_id) if user_id else None, sessions_revoked=revoked
        )
        return revoked


def parse_user_id(value: Any) -> Optional[uuid.UUID]:
    """UUID from a userId claim, or None if it is not one."""
    if not isinstance(value, str):
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


# Global auth service instance
auth_service = AuthService()


def get_auth_service() -> AuthService:
    """Dependency returning the auth service."""
    return auth_service
