"""Signed bearer token encoding and verification.

Tokens are JWTs whose ``exp`` claim is an absolute epoch-seconds timestamp.
Verification is purely cryptographic: nothing here touches the database.
"""
import time
from typing import Any, Dict, Optional

from jose import JWTError, jwt

_UNIT_MS = {
    "minutes": 60 * 1000,
    "hours": 60 * 60 * 1000,
    "days": 24 * 60 * 60 * 1000,
}


class TokenError(Exception):
    """Token could not be verified."""


class InvalidUnitError(ValueError):
    """Expiry unit is not one of minutes, hours or days."""


def now_ms() -> int:
    """Current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def compute_expiry(amount: int, unit: str, now: Optional[int] = None) -> int:
    """Return an absolute expiry timestamp in milliseconds."""
    try:
        multiplier = _UNIT_MS[unit]
    except KeyError:
        raise InvalidUnitError(f"Unsupported expiry unit: {unit!r}") from None

    base = now if now is not None else now_ms()
    return base + amount * multiplier


def issue_token(
    claims: Dict[str, Any],
    expires_ms: int,
    secret: str,
    algorithm: str = "HS256"
) -> str:
    """Sign claims with an absolute expiry."""
    to_encode = {"exp": expires_ms // 1000, **claims}
    return jwt.encode(to_encode, secret, algorithm=algorithm)


def verify_token(
    token: str,
    secret: str,
    algorithm: str = "HS256",
    verify_expiry: bool = True
) -> Dict[str, Any]:
    """Verify signature (and expiry unless disabled) and return the claims."""
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"verify_exp": verify_expiry},
        )
    except JWTError as e:
        raise TokenError(str(e)) from e
