from fastapi import Depends, HTTPException, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
import logging
from fastapi.security import OAuth2PasswordBearer
from typing import Optional

from resume_coach.db import get_db
from resume_coach.models_db import User
from resume_coach.supabase_auth import verify_token, AuthUser

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)

SESSION_COOKIE_NAMES = [
    'sb-access-token',
    'supabase-auth-token',
]


def extract_token_from_request(request: Request, token_from_header: Optional[str] = None) -> Optional[str]:
    """
    Extract the access token from the Authorization header or a session cookie.
    """
    if token_from_header:
        return token_from_header

    for cookie_name in SESSION_COOKIE_NAMES:
        token = request.cookies.get(cookie_name)
        if token:
            logger.debug(f"Found token in cookie: {cookie_name}")
            return token

    logger.warning("No authentication token found in request")
    return None


async def sync_user(db: AsyncSession, auth_user: AuthUser) -> User:
    """Create the local user row on first sight, or fill in blanks from the token."""
    result = await db.execute(select(User).where(User.external_id == auth_user.sub))
    user = result.scalar_one_or_none()

    if user is None:
        logger.info(f"User with external_id {auth_user.sub} not found. Creating new user.")
        user = User(
            external_id=auth_user.sub,
            email=auth_user.email,
            name=auth_user.full_name or "New User",
            is_admin=auth_user.is_admin,
            active=True,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    update_needed = False
    if not user.email and auth_user.email:
        user.email = auth_user.email
        update_needed = True

    if (not user.name or user.name == "New User") and auth_user.full_name:
        user.name = auth_user.full_name
        update_needed = True

    if user.is_admin != auth_user.is_admin:
        user.is_admin = auth_user.is_admin
        update_needed = True

    if update_needed:
        logger.info(f"User profile for {user.external_id} enriched from token claims.")
        await db.commit()
        await db.refresh(user)
    return user


async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Verify the access token and return the matching local user.
    """
    auth_token = extract_token_from_request(request, token)
    if not auth_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    auth_user = verify_token(auth_token)
    try:
        user = await sync_user(db, auth_user)
    except Exception as e:
        logger.error(f"Error in get_current_user: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.info(f"Successfully authenticated user: {user.external_id}")
    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.active:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user


async def get_admin_user(user: User = Depends(get_current_active_user)) -> User:
    if not user.is_admin:
        logger.warning(f"User {user.id} attempted to access an admin endpoint.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized. Admin privileges required.",
        )
    return user
