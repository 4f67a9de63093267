"""Verification of the bearer tokens that identify lead finder callers.

Tokens are minted by the account service; this API only checks them.
"""

from dataclasses import dataclass
from typing import Optional

from jose import JWTError, jwt

from config import settings


SESSION_TOKEN_TYPE = "lead_finder_session"


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    expires_at: int
    email: Optional[str] = None


def verify_session_token(token: str) -> SessionClaims:
    """Check signature, expiry and token type. Raises ValueError when any fails."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require_exp": True, "require_sub": True},
        )
    except JWTError as exc:
        raise ValueError("Invalid or expired session token.") from exc

    if payload.get("type") != SESSION_TOKEN_TYPE:
        raise ValueError("Token is not a lead finder session.")

    user_id = str(payload.get("sub") or "").strip()
    if not user_id:
        raise ValueError("Session token missing subject.")

    return SessionClaims(
        user_id=user_id,
        expires_at=int(payload["exp"]),
        email=str(payload.get("email") or "").strip() or None,
    )
