"""JWT bearer token helpers.

Tokens are normally minted by the hosted auth provider with the shared
secret; create_local_token exists for local development and tests.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from hardmoney_audit.config.settings import settings


def create_local_token(user_id: str, email: str, role: str = "user") -> str:
    """Create a JWT access token.

    Args:
        user_id: User ID to encode in the token
        email: User email to encode in the token
        role: Marketplace role (borrower, investor, admin, ...)

    Returns:
        str: Encoded JWT token
    """
    now = datetime.now(timezone.utc)
    exp = now + timedelta(seconds=settings.LOCAL_AUTH_TOKEN_EXP_SECONDS)
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "exp": exp,
        "iat": now,
    }
    return jwt.encode(payload, settings.LOCAL_AUTH_SECRET, algorithm="HS256")


def decode_local_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Args:
        token: JWT token string

    Returns:
        dict: Decoded token payload

    Raises:
        ValueError: If token is invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.LOCAL_AUTH_SECRET,
            algorithms=["HS256"],
        )
        return payload
    except JWTError as exc:
        raise ValueError(f"Invalid token: {exc}") from exc
