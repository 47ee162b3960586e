import os
import logging
from pydantic import BaseModel
from typing import Optional, Dict, Any
from fastapi import HTTPException, status

from jose import jwt, JWTError

logger = logging.getLogger(__name__)

# Environment variables
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET")
SUPABASE_JWT_AUDIENCE = os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated")
ALGORITHMS = ["HS256"]


class AuthUser(BaseModel):
    sub: str
    email: Optional[str] = None
    role: Optional[str] = None
    user_metadata: Dict[str, Any] = {}

    @property
    def full_name(self) -> Optional[str]:
        return self.user_metadata.get("full_name") or self.user_metadata.get("name")

    @property
    def is_admin(self) -> bool:
        return self.user_metadata.get("role") == "admin"


def _credentials_error(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_token(token: str) -> AuthUser:
    """
    Verifies a Supabase access token (HS256, signed with the project JWT secret).
    """
    if not token or not isinstance(token, str):
        logger.error("Token validation failed: Token is None or not a string")
        raise _credentials_error("Invalid token format")

    # header.payload.signature
    if token.count('.') != 2:
        logger.error(f"Invalid token format - wrong number of segments: {token[:20]}... (segments: {token.count('.')})")
        raise _credentials_error("Invalid token format")

    if not SUPABASE_JWT_SECRET:
        logger.error("SUPABASE_JWT_SECRET not set")
        raise HTTPException(status_code=500, detail="Authentication is not configured")

    try:
        payload = jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=ALGORITHMS,
            audience=SUPABASE_JWT_AUDIENCE,
        )
    except jwt.ExpiredSignatureError:
        raise _credentials_error("Token has expired")
    except JWTError as e:
        logger.warning(f"Error decoding token: {e}")
        raise _credentials_error("Could not validate credentials")

    if not payload.get("sub"):
        raise _credentials_error("Token has no subject")

    return AuthUser(
        sub=payload["sub"],
        email=payload.get("email"),
        role=payload.get("role"),
        user_metadata=payload.get("user_metadata") or {},
    )
