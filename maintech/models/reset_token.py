"""Password reset token model."""
import uuid

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class ResetToken(Base):
    """Single-use password reset grant.

    The emailed token is ``<selector>.<verifier>``; only the selector is
    stored in clear, the verifier is kept as a bcrypt hash.
    """

    __tablename__ = "reset_tokens"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    selector: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    verifier_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="reset_tokens")

    def __repr__(self) -> str:
        return f"<ResetToken(user_id={self.user_id}, created_at={self.created_at})>"
