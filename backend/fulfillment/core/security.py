"""
Bearer token verification.

Sessions are issued by the external identity provider; this module only
verifies the signed JWT it hands out and extracts the caller's user ID and
email. create_access_token mints compatible tokens for local tooling and
tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from jose import ExpiredSignatureError, JWTError, jwt

from fulfillment.core.config import Settings, get_settings
from fulfillment.core.logging import get_logger

logger = get_logger(__name__)


class TokenError(Exception):
    """Raised when a bearer token cannot be verified."""

    def __init__(self, message: str, code: str, **context: Any):
        super().__init__(message)
        self.code = code
        self.context = context


def create_access_token(
    subject: UUID,
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
    settings: Optional[Settings] = None,
) -> str:
    """
    Create a signed access token.

    Args:
        subject: User ID placed in the ``sub`` claim
        email: Optional email claim
        expires_delta: Custom lifetime, defaults to the configured one
        settings: Settings override

    Returns:
        Encoded JWT string
    """
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta
        or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )

    claims: Dict[str, Any] = {
        "sub": str(subject),
        "exp": expire,
        "iat": now,
        "type": "access",
    }
    if email:
        claims["email"] = email

    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Decode and validate a JWT token.

    Args:
        token: JWT token string to decode
        settings: Settings override

    Returns:
        Dictionary of decoded token claims

    Raises:
        TokenError: If token is empty, expired, or malformed
    """
    if not token:
        raise TokenError("Token cannot be empty", code="EMPTY_TOKEN")

    settings = settings or get_settings()

    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except ExpiredSignatureError as e:
        logger.warning("Token has expired", error=str(e))
        raise TokenError("Token has expired", code="TOKEN_EXPIRED") from e
    except JWTError as e:
        logger.warning(
            "Invalid token",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise TokenError(
            "Invalid token",
            code="TOKEN_INVALID",
            original_error=str(e),
        ) from e

    return payload


def get_token_user_id(payload: Dict[str, Any]) -> UUID:
    """
    Extract the user ID from decoded claims.

    Raises:
        TokenError: If the ``sub`` claim is missing or not a UUID
    """
    subject = payload.get("sub")
    if not subject:
        raise TokenError("Token missing subject", code="TOKEN_NO_SUBJECT")

    try:
        return UUID(str(subject))
    except ValueError as e:
        raise TokenError(
            "Token subject is not a user ID",
            code="TOKEN_BAD_SUBJECT",
            subject=subject,
        ) from e
