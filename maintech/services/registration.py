"""Account registration and approval."""
import secrets

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthService
from ..core.exceptions import EmailTakenError, InvalidApprovalCodeError, UserNotFoundError
from ..core.logging import AccountLogger
from ..models.user import User
from ..schemas.auth import ApproveRequest, RegisterRequest, RegisterResponse, UserPublic
from .email import EmailService


def generate_approval_code() -> str:
    """Six-digit code, uniform in [100000, 999999]."""
    return str(100000 + secrets.randbelow(900000))


class RegistrationService:
    """Creates unapproved accounts and activates them on code confirmation."""

    def __init__(self, auth: AuthService, email: EmailService):
        self.auth = auth
        self.email = email

    async def register(self, db: AsyncSession, request: RegisterRequest) -> RegisterResponse:
        """Register a new user and email the approval code.

        A failed email is logged; the account is kept and can still be
        approved.
        """
        if await self.auth.get_user_by_email(db, request.email):
            raise EmailTakenError()

        approval_code = generate_approval_code()
        user = User(
            nom=request.nom,
            prenom=request.prenom,
            email=request.email,
            hashed_password=self.auth.hash_password(request.mot_de_passe),
            role=request.role.value,
            approval_code=approval_code,
            is_approved=False,
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            await db.rollback()
            raise EmailTakenError()

        code_sent = await self.email.send_approval_code(user.email, approval_code)
        AccountLogger.log_registered(str(user.id), user.email, user.role, code_sent)

        return RegisterResponse(
            message="Utilisateur enregistré. Code d'approbation envoyé par e-mail.",
            utilisateur=UserPublic.model_validate(user),
        )

    async def approve(self, db: AsyncSession, request: ApproveRequest) -> None:
        """Activate an account if the code matches exactly."""
        user = await self.auth.get_user_by_email(db, request.email)
        if not user:
            AccountLogger.log_approval(request.email, False, failure_reason="user_not_found")
            raise UserNotFoundError()

        stored = user.approval_code
        if stored is None or not secrets.compare_digest(
            stored.encode("utf-8"), request.approval_code.encode("utf-8")
        ):
            AccountLogger.log_approval(request.email, False, failure_reason="invalid_code")
            raise InvalidApprovalCodeError()

        user.is_approved = True
        user.approval_code = None
        await db.commit()
        AccountLogger.log_approval(request.email, True)
