"""Authentication utilities and dependency injection."""

from typing import Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hardmoney_audit.config.logger import app_logger
from hardmoney_audit.utils.local_tokens import decode_local_token

ADMIN_ROLE = "admin"

# HTTP Bearer token security scheme
security_scheme = HTTPBearer(
    scheme_name="Bearer",
    description="Bearer token authentication",
    auto_error=False,  # We'll handle errors manually for better control
)


async def get_auth_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security_scheme),
) -> str:
    """Extract and validate Bearer token from Authorization header.

    Raises:
        HTTPException: If token is missing or invalid
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials.strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return token


async def verify_token(token: str = Depends(get_auth_token)) -> dict:
    """Verify and decode JWT authentication token.

    Args:
        token: Authentication token from get_auth_token dependency

    Returns:
        dict: user_id, email, role and the raw token

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        payload = decode_local_token(token)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc

    user_id = payload.get("sub")
    email = payload.get("email")
    if not user_id or not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return {
        "user_id": str(user_id),
        "email": email,
        "role": payload.get("role") or "user",
        "token": token,
    }


async def require_admin(token_payload: dict = Depends(verify_token)) -> dict:
    """Dependency that requires an administrator token.

    Returns:
        dict: Verified token payload

    Raises:
        HTTPException: 403 if the token does not carry the admin role
    """
    if token_payload.get("role") != ADMIN_ROLE:
        app_logger.warning(f"Admin access denied for user {token_payload.get('user_id')}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator role required",
        )
    return token_payload
